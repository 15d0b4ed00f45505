"""
Decoding of Splunk search export responses.

The export endpoint does not return a JSON document. It streams one JSON
envelope per line, each shaped like::

    {"preview": false, "offset": 0, "result": {"_time": "...", "activeApps": "1234"}}

Preview envelopes are partial results of a search still running and are
dropped. Numeric fields that Splunk could not fill carry the string
``"NO_DATA"``, which is read as a missing value.
"""

from datetime import date

from pydantic import AwareDatetime, BaseModel, ConfigDict, Field, ValidationError

NO_DATA_TOKEN = '"NO_DATA"'


class SplunkError(Exception):
    """Base class for failures talking to the Splunk search API."""


class SplunkResponseError(SplunkError):
    """A response line could not be decoded."""


class SplunkResult(BaseModel):
    """One result row. Only the fields of the queried metric are set."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    time: AwareDatetime = Field(alias="_time")
    active_apps: int | None = Field(default=None, alias="activeApps")
    used_authorization_codes_count: int | None = Field(
        default=None, alias="usedAuthorizationCodesCount"
    )
    positive_test_count: int | None = Field(default=None, alias="positiveTestCount")
    after_zero_days: int | None = Field(default=None, alias="afterZeroDays")
    after_one_days: int | None = Field(default=None, alias="afterOneDays")
    after_two_days: int | None = Field(default=None, alias="afterTwoDays")
    total: int | None = None

    @property
    def day(self) -> date:
        """Calendar date of the row in the offset Splunk reported it in."""
        return self.time.date()


class SplunkEnvelope(BaseModel):
    model_config = ConfigDict(extra="ignore")

    preview: bool = False
    result: SplunkResult | None = None


def parse_results(body: str) -> list[SplunkResult]:
    """Decode a line-delimited Splunk response, most recent result first.

    Raises SplunkResponseError on the first line that is not a valid
    envelope; there is no partial recovery.
    """
    sanitized = body.replace(NO_DATA_TOKEN, "null")

    results: list[SplunkResult] = []
    for line_number, line in enumerate(sanitized.split("\n"), start=1):
        if not line.strip():
            continue
        try:
            envelope = SplunkEnvelope.model_validate_json(line)
        except ValidationError as exc:
            raise SplunkResponseError(
                f"Malformed Splunk result on line {line_number}: {line[:200]}"
            ) from exc

        if envelope.preview or envelope.result is None:
            continue
        results.append(envelope.result)

    results.sort(key=lambda r: r.time, reverse=True)
    return results
