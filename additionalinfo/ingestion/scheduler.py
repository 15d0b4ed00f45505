"""Refresh scheduler that keeps the statistics cache warm."""

from datetime import datetime

import structlog
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from additionalinfo.app.cache import statistics_cache
from additionalinfo.app.config import get_settings
from additionalinfo.app.database import async_session
from additionalinfo.app.services.statistics import (
    STATISTICS_CACHE_KEY,
    StatisticsUnavailableError,
    get_statistics_provider,
)

logger = structlog.get_logger()
settings = get_settings()

scheduler = AsyncIOScheduler()


async def refresh_statistics():
    """Run one refresh cycle and publish the snapshot to the cache."""
    provider = get_statistics_provider()
    async with async_session() as db:
        try:
            snapshot = await provider.compute_statistics(db)
            await db.commit()
        except StatisticsUnavailableError as e:
            await db.rollback()
            logger.error("Statistics refresh failed", error=str(e))
            return

    statistics_cache.put(STATISTICS_CACHE_KEY, snapshot, ttl=settings.cache_control_seconds)
    logger.info(
        "Statistics refresh complete",
        history_days=len(snapshot.history),
        seven_day_avg=snapshot.new_infections_seven_day_avg,
    )


def start_scheduler():
    interval_minutes = settings.refresh_interval_minutes

    scheduler.add_job(
        refresh_statistics,
        trigger=IntervalTrigger(minutes=interval_minutes),
        id="refresh_statistics",
        name="Statistics Refresh",
        next_run_time=datetime.utcnow(),  # Warm the cache on startup
        max_instances=1,
        coalesce=True,
    )

    scheduler.start()
    logger.info("Scheduler started", jobs=len(scheduler.get_jobs()), interval_minutes=interval_minutes)


def stop_scheduler():
    if scheduler.running:
        scheduler.shutdown(wait=False)
