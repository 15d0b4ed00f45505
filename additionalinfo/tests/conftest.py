"""Pytest configuration and shared fixtures."""

import asyncio
from contextlib import asynccontextmanager
from datetime import date
from typing import Any

import httpx
import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker

from additionalinfo.app.config import SplunkConfig
from additionalinfo.app.database import Base, get_db
from additionalinfo.app.main import app


# No-op lifespan so the ASGI transport doesn't try to connect to the real DB
@asynccontextmanager
async def _noop_lifespan(app):
    yield


app.router.lifespan_context = _noop_lifespan


class AsyncSessionAdapter:
    """Tiny async facade over a sync SQLAlchemy session for tests."""

    def __init__(self, session: Session):
        self._session = session

    async def execute(self, *args: Any, **kwargs: Any):
        return self._session.execute(*args, **kwargs)

    async def commit(self) -> None:
        self._session.commit()

    async def flush(self) -> None:
        self._session.flush()

    async def rollback(self) -> None:
        self._session.rollback()

    async def close(self) -> None:
        self._session.close()

    def add(self, instance: Any) -> None:
        self._session.add(instance)


@pytest.fixture
def splunk_config() -> SplunkConfig:
    return SplunkConfig(
        url="https://splunk.example.org/services/search/jobs/export",
        username="statistics",
        password="secret",
        active_apps_query="search index=apps | stats dc(id) as activeApps",
        used_auth_code_count_query="search index=codes | timechart count as usedAuthorizationCodesCount",
        positive_test_count_query="search index=tests | timechart count as positiveTestCount",
        covidcodes_entered_query="search index=codes | stats count by onset",
        start_date=date(2020, 6, 1),
        end_days_back=0,
    )


@pytest.fixture(scope="function")
def db_engine(tmp_path):
    test_db = tmp_path / "test.db"
    engine = create_engine(f"sqlite:///{test_db}")
    Base.metadata.create_all(bind=engine)
    try:
        yield engine
    finally:
        Base.metadata.drop_all(bind=engine)
        engine.dispose()


@pytest.fixture(scope="function")
def session_factory(db_engine):
    return sessionmaker(bind=db_engine, expire_on_commit=False)


@pytest.fixture(scope="function")
def db_session(session_factory):
    session = session_factory()
    adapted = AsyncSessionAdapter(session)
    try:
        yield adapted
    finally:
        session.close()


def _override_get_db_with_factory(session_factory):
    async def override_get_db():
        session = session_factory()
        adapted = AsyncSessionAdapter(session)
        try:
            yield adapted
            await adapted.commit()
        except Exception:
            await adapted.rollback()
            raise
        finally:
            await adapted.close()

    return override_get_db


@pytest.fixture
def client(session_factory):
    """Test client with the database dependency bound to SQLite."""
    app.dependency_overrides[get_db] = _override_get_db_with_factory(session_factory)

    class SyncASGIClient:
        def get(self, path: str):
            async def _request():
                transport = httpx.ASGITransport(app=app)
                async with httpx.AsyncClient(transport=transport, base_url="http://testserver") as c:
                    return await c.get(path)

            return asyncio.run(_request())

    try:
        yield SyncASGIClient()
    finally:
        app.dependency_overrides.clear()


@pytest.fixture(autouse=True)
def clear_cache():
    """Clear the snapshot cache before each test."""
    from additionalinfo.app.cache import statistics_cache

    statistics_cache.invalidate()
    yield
    statistics_cache.invalidate()
