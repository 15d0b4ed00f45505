"""HTTP client for the Splunk search export API."""

from datetime import date

import httpx
import structlog
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from additionalinfo.app.config import SplunkConfig
from additionalinfo.ingestion.splunk_results import SplunkResult, parse_results

logger = structlog.get_logger()

USER_AGENT = "AdditionalInfo/1.0 (Statistics Backend)"

# Lookback of the short, relative-window queries.
ACTIVE_APPS_DAYS_BACK = 10
COVIDCODES_ENTERED_DAYS_BACK = 7


def last_days_params(query: str, days_back: int) -> dict[str, str]:
    """Search parameters for the last ``days_back`` days up to now."""
    return {
        "search": query,
        "earliest_time": f"-{days_back}d@d",
        "latest_time": "now",
        "output_mode": "json",
    }


def absolute_params(query: str, start_date: date, end_days_back: int, today: date) -> dict[str, str]:
    """Search parameters from ``start_date`` until ``end_days_back`` days before today."""
    days_since_start = (today - start_date).days
    return {
        "search": query,
        "earliest_time": f"-{days_since_start}d@d",
        "latest_time": f"-{end_days_back}d@d",
        "output_mode": "json",
    }


class SplunkClient:
    """Issues the four fixed metric searches against Splunk."""

    def __init__(self, config: SplunkConfig, transport: httpx.AsyncBaseTransport | None = None):
        self.config = config
        self.client = httpx.AsyncClient(
            timeout=httpx.Timeout(config.timeout_seconds),
            auth=httpx.BasicAuth(config.username, config.password),
            headers={"User-Agent": USER_AGENT, "Accept": "application/json"},
            transport=transport,
        )

    async def fetch_active_apps(self) -> list[SplunkResult]:
        params = last_days_params(self.config.active_apps_query, ACTIVE_APPS_DAYS_BACK)
        return await self._search("active_apps", params)

    async def fetch_used_auth_code_count(self, today: date) -> list[SplunkResult]:
        params = absolute_params(
            self.config.used_auth_code_count_query,
            self.config.start_date,
            self.config.end_days_back,
            today,
        )
        return await self._search("used_auth_code_count", params)

    async def fetch_positive_test_count(self, today: date) -> list[SplunkResult]:
        params = absolute_params(
            self.config.positive_test_count_query,
            self.config.start_date,
            self.config.end_days_back,
            today,
        )
        return await self._search("positive_test_count", params)

    async def fetch_covidcodes_entered_within_window(self) -> list[SplunkResult]:
        params = last_days_params(self.config.covidcodes_entered_query, COVIDCODES_ENTERED_DAYS_BACK)
        return await self._search("covidcodes_entered_0to2d", params)

    async def _search(self, metric: str, params: dict[str, str]) -> list[SplunkResult]:
        logger.info(
            "Splunk search",
            metric=metric,
            earliest_time=params["earliest_time"],
            latest_time=params["latest_time"],
        )
        response = await self._post(self.config.url, data=params)
        logger.debug("Splunk response", metric=metric, status=response.status_code, body=response.text)

        results = parse_results(response.text)
        logger.info("Splunk search complete", metric=metric, results=len(results))
        return results

    @retry(
        retry=retry_if_exception_type(httpx.TransportError),
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=30),
        reraise=True,
    )
    async def _post(self, url: str, **kwargs) -> httpx.Response:
        """HTTP POST, retried on transport errors only."""
        response = await self.client.post(url, **kwargs)
        response.raise_for_status()
        return response

    async def close(self):
        await self.client.aclose()
