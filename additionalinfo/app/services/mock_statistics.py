"""Synthetic statistics for environments without a Splunk connection."""

import random
from datetime import date, timedelta

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from additionalinfo.app.schemas import StatisticsSnapshot
from additionalinfo.app.services.aggregation import (
    ROLLING_WINDOW_DAYS,
    build_history,
    calculate_rolling_average,
    relative_change,
)
from additionalinfo.app.services.statistics import StatisticsProvider

logger = structlog.get_logger()

MOCK_ACTIVE_USERS = 1_800_000


class MockStatisticsProvider(StatisticsProvider):
    """Deterministic per-day values, seeded from the date itself."""

    def __init__(self, history_days: int = 90, active_apps_override: int | None = None):
        self.history_days = history_days
        self.active_apps_override = active_apps_override

    async def compute_statistics(self, db: AsyncSession, today: date | None = None) -> StatisticsSnapshot:
        today = today or date.today()
        history = build_history(today - timedelta(days=self.history_days), today)

        total_codes = 0
        for record in history:
            rng = random.Random(record.date.toordinal())
            record.new_infections = rng.randint(80, 400)
            record.covidcodes_entered = rng.randint(20, 120)
            total_codes += record.covidcodes_entered
        calculate_rolling_average(history)

        latest = history[-1].new_infections_seven_day_average if history else None
        previous = None
        if len(history) > ROLLING_WINDOW_DAYS:
            previous = history[-1 - ROLLING_WINDOW_DAYS].new_infections_seven_day_average

        snapshot = StatisticsSnapshot(
            last_updated=today,
            history=history,
            total_active_users=(
                MOCK_ACTIVE_USERS if self.active_apps_override is None else self.active_apps_override
            ),
            total_covidcodes_entered=total_codes,
            new_infections_seven_day_avg=latest,
            new_infections_seven_day_avg_rel_prev_week=relative_change(latest, previous),
            covidcodes_entered_0to2d_prev_week=random.Random(today.toordinal()).uniform(0.4, 0.9),
        )
        logger.info("Mock statistics generated", history_days=len(history))
        return snapshot
