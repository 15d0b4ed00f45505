from fastapi import APIRouter, Depends, HTTPException, Response
from sqlalchemy.ext.asyncio import AsyncSession

from additionalinfo.app.cache import statistics_cache
from additionalinfo.app.config import get_settings
from additionalinfo.app.database import get_db
from additionalinfo.app.schemas import StatisticsSnapshot
from additionalinfo.app.services.statistics import (
    STATISTICS_CACHE_KEY,
    StatisticsProvider,
    StatisticsUnavailableError,
    get_statistics_provider,
)

router = APIRouter(tags=["statistics"])


@router.get("/v1/statistics", response_model=StatisticsSnapshot)
async def get_statistics(
    response: Response,
    db: AsyncSession = Depends(get_db),
    provider: StatisticsProvider = Depends(get_statistics_provider),
):
    """Return the latest statistics snapshot, computing it on a cache miss."""
    max_age = get_settings().cache_control_seconds

    snapshot = statistics_cache.get(STATISTICS_CACHE_KEY)
    if snapshot is None:
        try:
            snapshot = await provider.compute_statistics(db)
        except StatisticsUnavailableError as e:
            raise HTTPException(status_code=503, detail="Statistics temporarily unavailable") from e
        statistics_cache.put(STATISTICS_CACHE_KEY, snapshot, ttl=max_age)

    response.headers["Cache-Control"] = f"public, max-age={max_age}"
    return snapshot
