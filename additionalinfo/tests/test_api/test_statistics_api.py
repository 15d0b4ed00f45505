"""Tests for the statistics endpoint."""

from datetime import date

from additionalinfo.app.main import app
from additionalinfo.app.schemas import DayRecord, StatisticsSnapshot
from additionalinfo.app.services.statistics import (
    StatisticsProvider,
    StatisticsUnavailableError,
    get_statistics_provider,
)


class StubProvider(StatisticsProvider):
    def __init__(self, should_fail=False):
        self.should_fail = should_fail
        self.calls = 0

    async def compute_statistics(self, db, today=None):
        self.calls += 1
        if self.should_fail:
            raise StatisticsUnavailableError("splunk down")
        return StatisticsSnapshot(
            last_updated=date(2020, 6, 10),
            history=[
                DayRecord(date=date(2020, 6, 8), new_infections=12, covidcodes_entered=3),
                DayRecord(date=date(2020, 6, 9), new_infections=15, new_infections_seven_day_average=13),
            ],
            total_active_users=1_700_000,
            total_covidcodes_entered=3,
            new_infections_seven_day_avg=13,
            new_infections_seven_day_avg_rel_prev_week=-0.2,
            covidcodes_entered_0to2d_prev_week=0.3,
        )


def _use_provider(provider):
    app.dependency_overrides[get_statistics_provider] = lambda: provider


def test_statistics_payload(client):
    _use_provider(StubProvider())
    resp = client.get("/v1/statistics")
    assert resp.status_code == 200
    data = resp.json()
    assert data["lastUpdated"] == "2020-06-10"
    assert data["totalActiveUsers"] == 1_700_000
    assert data["totalCovidcodesEntered"] == 3
    assert data["newInfectionsSevenDayAvg"] == 13
    assert data["newInfectionsSevenDayAvgRelPrevWeek"] == -0.2
    assert data["covidcodesEntered0to2dPrevWeek"] == 0.3
    assert data["history"][0] == {
        "date": "2020-06-08",
        "newInfections": 12,
        "newInfectionsSevenDayAverage": None,
        "covidcodesEntered": 3,
    }


def test_statistics_cache_control_header(client):
    _use_provider(StubProvider())
    resp = client.get("/v1/statistics")
    assert resp.headers["cache-control"] == "public, max-age=3600"


def test_statistics_served_from_cache(client):
    provider = StubProvider()
    _use_provider(provider)
    first = client.get("/v1/statistics")
    second = client.get("/v1/statistics")
    assert first.json() == second.json()
    assert provider.calls == 1


def test_failed_cycle_returns_503_and_is_not_cached(client):
    provider = StubProvider(should_fail=True)
    _use_provider(provider)
    resp = client.get("/v1/statistics")
    assert resp.status_code == 503
    assert "lastUpdated" not in resp.json()

    provider.should_fail = False
    resp = client.get("/v1/statistics")
    assert resp.status_code == 200
    assert provider.calls == 2


def test_health(client):
    resp = client.get("/api/health")
    assert resp.status_code == 200
    assert resp.json() == {"status": "ok"}
