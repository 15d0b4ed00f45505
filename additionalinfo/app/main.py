import asyncio
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from additionalinfo.app.config import get_settings
from additionalinfo.app.database import Base
from additionalinfo.app.log_config import configure_logging
from additionalinfo.app.routers import statistics

settings = get_settings()
logger = structlog.get_logger()


def _is_retryable_db_error(exc: Exception) -> bool:
    from sqlalchemy.exc import OperationalError

    current: BaseException | None = exc
    while current is not None:
        if isinstance(current, (OperationalError, OSError, ConnectionError)):
            return True
        message = str(current).lower()
        if "connection refused" in message or "could not translate host name" in message:
            return True
        current = current.__cause__ or current.__context__
    return False


async def _init_db():
    """Create the history table, waiting for the database to come up."""
    from additionalinfo.app.database import engine
    from additionalinfo.app.models import SevenDayAverage  # noqa: F401 registers the table

    attempts = max(1, settings.db_startup_max_attempts)
    initial_backoff = max(1, settings.db_startup_initial_backoff_seconds)
    max_backoff = max(initial_backoff, settings.db_startup_max_backoff_seconds)

    for attempt in range(1, attempts + 1):
        try:
            async with engine.begin() as conn:
                await conn.run_sync(Base.metadata.create_all)
            logger.info("Database tables ensured")
            return
        except Exception as exc:
            if attempt >= attempts or not _is_retryable_db_error(exc):
                raise
            backoff = min(initial_backoff * (2 ** (attempt - 1)), max_backoff)
            logger.warning(
                "Database unavailable during startup; retrying",
                attempt=attempt,
                max_attempts=attempts,
                retry_in_seconds=backoff,
                error=str(exc),
            )
            await asyncio.sleep(backoff)


@asynccontextmanager
async def lifespan(app: FastAPI):
    configure_logging(settings.log_level)
    logger.info("Starting statistics backend", env=settings.app_env, splunk=settings.splunk_configured)
    await _init_db()
    if settings.refresh_enabled:
        from additionalinfo.ingestion.scheduler import start_scheduler
        start_scheduler()
    yield
    from additionalinfo.app.services.statistics import get_statistics_provider
    from additionalinfo.ingestion.scheduler import stop_scheduler

    stop_scheduler()
    await get_statistics_provider().close()
    logger.info("Shutting down statistics backend")


app = FastAPI(
    title="Additional Info Statistics API",
    version="1.0.0",
    description="Aggregated app usage and infection statistics",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["GET"],
    allow_headers=["*"],
)

app.include_router(statistics.router)


@app.get("/api/health")
async def health_check():
    return {"status": "ok"}
