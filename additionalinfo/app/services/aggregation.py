"""Time-series helpers that fold Splunk results into the statistics history."""

from datetime import date, timedelta

from additionalinfo.app.schemas import DayRecord, StatisticsSnapshot
from additionalinfo.ingestion.splunk_results import SplunkResult

ROLLING_WINDOW_DAYS = 7


def build_history(start_date: date, end_date: date) -> list[DayRecord]:
    """Return one empty DayRecord per day in ``[start_date, end_date)``."""
    if start_date > end_date:
        raise ValueError(f"start_date {start_date} is after end_date {end_date}")
    return [
        DayRecord(date=start_date + timedelta(days=offset))
        for offset in range((end_date - start_date).days)
    ]


def seven_day_mean(values: list[int]) -> int:
    """Integer mean of a full window, rounded half up."""
    total = sum(values)
    return (2 * total + len(values)) // (2 * len(values))


def calculate_rolling_average(history: list[DayRecord], window_days: int = ROLLING_WINDOW_DAYS) -> None:
    """Set the trailing rolling average of new infections on every record.

    The average is only defined when all ``window_days`` days up to and
    including the record carry a value; partial windows leave it unset.
    Positions map to calendar days because the history has no gaps.
    """
    for i, record in enumerate(history):
        record.new_infections_seven_day_average = None
        if i < window_days - 1:
            continue
        window = [h.new_infections for h in history[i - window_days + 1:i + 1]]
        if any(v is None for v in window):
            continue
        record.new_infections_seven_day_average = seven_day_mean(window)


def relative_change(latest: int | None, previous: int | None) -> float | None:
    """Week-over-week change ``latest / previous - 1``, or None if undefined."""
    if latest is None or not previous:
        return None
    return latest / previous - 1


def _by_day(history: list[DayRecord]) -> dict[date, DayRecord]:
    return {record.date: record for record in history}


def apply_active_apps(snapshot: StatisticsSnapshot, results: list[SplunkResult]) -> int | None:
    """Use the most recent result that reports a count."""
    latest = next((r.active_apps for r in results if r.active_apps is not None), None)
    snapshot.total_active_users = latest
    return latest


def apply_used_auth_code_count(snapshot: StatisticsSnapshot, results: list[SplunkResult]) -> int:
    """Join used covidcodes onto the history and total them.

    Results for days outside the history are skipped and do not count
    towards the total.
    """
    days = _by_day(snapshot.history)
    total = 0
    for r in results:
        record = days.get(r.day)
        if record is None:
            continue
        record.covidcodes_entered = r.used_authorization_codes_count
        if r.used_authorization_codes_count is not None:
            total += r.used_authorization_codes_count
    snapshot.total_covidcodes_entered = total
    return total


def apply_positive_test_count(snapshot: StatisticsSnapshot, results: list[SplunkResult]) -> None:
    days = _by_day(snapshot.history)
    for r in results:
        record = days.get(r.day)
        if record is not None:
            record.new_infections = r.positive_test_count
    calculate_rolling_average(snapshot.history)


def covidcodes_entered_0to2d_ratio(results: list[SplunkResult]) -> float | None:
    """Share of covidcodes entered within two days of symptom onset.

    Returns None without results and exactly 1.0 when the total is zero.
    """
    if not results:
        return None
    within_0to2_days = 0
    total = 0
    for r in results:
        within_0to2_days += (r.after_zero_days or 0) + (r.after_one_days or 0) + (r.after_two_days or 0)
        total += r.total or 0
    if total == 0:
        return 1.0
    return within_0to2_days / total
