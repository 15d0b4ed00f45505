"""Tests for the cache-warming refresh job."""

from contextlib import asynccontextmanager
from datetime import date

import pytest

from additionalinfo.app.cache import statistics_cache
from additionalinfo.app.schemas import StatisticsSnapshot
from additionalinfo.app.services.statistics import STATISTICS_CACHE_KEY, StatisticsUnavailableError
from additionalinfo.ingestion import scheduler


class _Provider:
    def __init__(self, should_fail=False):
        self.should_fail = should_fail

    async def compute_statistics(self, db, today=None):
        if self.should_fail:
            raise StatisticsUnavailableError("splunk down")
        return StatisticsSnapshot(last_updated=date(2020, 6, 10))


def _patch(monkeypatch, db_session, provider):
    @asynccontextmanager
    async def _session():
        yield db_session

    monkeypatch.setattr(scheduler, "async_session", _session)
    monkeypatch.setattr(scheduler, "get_statistics_provider", lambda: provider)


@pytest.mark.asyncio
async def test_refresh_publishes_snapshot(monkeypatch, db_session):
    _patch(monkeypatch, db_session, _Provider())
    await scheduler.refresh_statistics()
    cached = statistics_cache.get(STATISTICS_CACHE_KEY)
    assert cached is not None
    assert cached.last_updated == date(2020, 6, 10)


@pytest.mark.asyncio
async def test_failed_refresh_keeps_cache_empty(monkeypatch, db_session):
    _patch(monkeypatch, db_session, _Provider(should_fail=True))
    await scheduler.refresh_statistics()
    assert statistics_cache.get(STATISTICS_CACHE_KEY) is None
