"""Statistics providers: one refresh cycle produces one StatisticsSnapshot."""

import asyncio
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import date, timedelta
from functools import lru_cache

import httpx
import structlog
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from additionalinfo.app.config import SplunkConfig, get_settings
from additionalinfo.app.schemas import DayRecord, StatisticsSnapshot
from additionalinfo.app.services.aggregation import (
    ROLLING_WINDOW_DAYS,
    apply_active_apps,
    apply_positive_test_count,
    apply_used_auth_code_count,
    build_history,
    covidcodes_entered_0to2d_ratio,
    relative_change,
)
from additionalinfo.app.services.history_store import HistoryStore
from additionalinfo.ingestion.splunk_client import SplunkClient
from additionalinfo.ingestion.splunk_results import SplunkError, SplunkResult

logger = structlog.get_logger()

STATISTICS_CACHE_KEY = "statistics"


class StatisticsUnavailableError(RuntimeError):
    """A refresh cycle failed; no snapshot was produced."""


class StatisticsProvider(ABC):
    @abstractmethod
    async def compute_statistics(self, db: AsyncSession, today: date | None = None) -> StatisticsSnapshot:
        """Run one refresh cycle."""
        ...

    async def close(self):
        pass


@dataclass
class FetchedMetrics:
    """Raw results of the four searches of one cycle, folded only once all arrived."""
    active_apps: list[SplunkResult]
    used_auth_code_count: list[SplunkResult]
    positive_test_count: list[SplunkResult]
    covidcodes_entered: list[SplunkResult]


class SplunkStatisticsProvider(StatisticsProvider):
    """Builds statistics from Splunk searches and the persisted 7-day averages."""

    def __init__(self, config: SplunkConfig, client: SplunkClient | None = None):
        self.config = config
        self.client = client or SplunkClient(config)
        self._lock = asyncio.Lock()

    async def compute_statistics(self, db: AsyncSession, today: date | None = None) -> StatisticsSnapshot:
        # Overlapping cycles would interleave reads and writes of the history store.
        async with self._lock:
            return await self._compute(db, today or date.today())

    async def _compute(self, db: AsyncSession, today: date) -> StatisticsSnapshot:
        started = time.monotonic()
        logger.info("Loading statistics from Splunk", url=self.config.url, today=str(today))

        snapshot = StatisticsSnapshot(last_updated=today, history=self._scaffold(today))
        try:
            fetched = await self._fetch_all(today)
            self._fold_active_apps(snapshot, fetched.active_apps)
            apply_used_auth_code_count(snapshot, fetched.used_auth_code_count)
            await self._fold_positive_test_count(snapshot, fetched.positive_test_count, HistoryStore(db))
            snapshot.covidcodes_entered_0to2d_prev_week = covidcodes_entered_0to2d_ratio(
                fetched.covidcodes_entered
            )
        except (httpx.HTTPError, SplunkError, SQLAlchemyError) as e:
            logger.error("Could not load statistics from Splunk", error=str(e))
            raise StatisticsUnavailableError(f"Could not load statistics from Splunk: {e}") from e

        logger.info(
            "Statistics loaded from Splunk",
            elapsed_ms=int((time.monotonic() - started) * 1000),
            history_days=len(snapshot.history),
        )
        return snapshot

    def _scaffold(self, today: date) -> list[DayRecord]:
        start_date = self.config.start_date
        end_date = today - timedelta(days=self.config.end_days_back)
        if start_date > end_date:
            logger.warning("Statistics start date after end date", start=str(start_date), end=str(end_date))
            return []
        logger.info("Setup statistics history", start=str(start_date), end=str(end_date))
        return build_history(start_date, end_date)

    async def _fetch_all(self, today: date) -> FetchedMetrics:
        tasks = [
            asyncio.create_task(self.client.fetch_active_apps()),
            asyncio.create_task(self.client.fetch_used_auth_code_count(today)),
            asyncio.create_task(self.client.fetch_positive_test_count(today)),
            asyncio.create_task(self.client.fetch_covidcodes_entered_within_window()),
        ]
        try:
            active_apps, used_auth_codes, positive_tests, covidcodes_entered = await asyncio.gather(*tasks)
        except BaseException:
            # No search of an aborted cycle may outlive the lock.
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            raise
        return FetchedMetrics(
            active_apps=active_apps,
            used_auth_code_count=used_auth_codes,
            positive_test_count=positive_tests,
            covidcodes_entered=covidcodes_entered,
        )

    def _fold_active_apps(self, snapshot: StatisticsSnapshot, results: list[SplunkResult]) -> None:
        apply_active_apps(snapshot, results)
        override = self.config.active_apps_override
        if override is not None:
            logger.info(
                "Override active app count",
                from_query=snapshot.total_active_users,
                override=override,
            )
            snapshot.total_active_users = override

    async def _fold_positive_test_count(
        self, snapshot: StatisticsSnapshot, results: list[SplunkResult], store: HistoryStore
    ) -> None:
        apply_positive_test_count(snapshot, results)

        history = snapshot.history
        latest = None
        previous = None
        for i in range(len(history) - 1, -1, -1):
            latest = history[i].new_infections_seven_day_average
            if latest is None:
                continue
            day = history[i].date
            await store.upsert(day, latest)
            previous = await store.get(day - timedelta(days=ROLLING_WINDOW_DAYS))
            if previous is None:
                logger.warning("No seven day average history, using current data as fallback", day=str(day))
                if i >= ROLLING_WINDOW_DAYS:
                    previous = history[i - ROLLING_WINDOW_DAYS].new_infections_seven_day_average
            break

        snapshot.new_infections_seven_day_avg = latest
        snapshot.new_infections_seven_day_avg_rel_prev_week = relative_change(latest, previous)

    async def close(self):
        await self.client.close()


@lru_cache
def get_statistics_provider() -> StatisticsProvider:
    """Splunk-backed provider when configured, synthetic data otherwise."""
    from additionalinfo.app.services.mock_statistics import MockStatisticsProvider

    settings = get_settings()
    if settings.splunk_configured:
        logger.info("Creating Splunk statistics provider")
        return SplunkStatisticsProvider(settings.splunk_config())
    logger.info("Creating mock statistics provider")
    return MockStatisticsProvider(active_apps_override=settings.splunk_active_apps_override)
