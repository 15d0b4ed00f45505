"""Persisted 7-day averages, read back by later refresh cycles."""

from datetime import date

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from additionalinfo.app.models import SevenDayAverage


class HistoryStore:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def get(self, day: date) -> int | None:
        result = await self.db.execute(
            select(SevenDayAverage.value).where(SevenDayAverage.day == day)
        )
        return result.scalar_one_or_none()

    async def upsert(self, day: date, value: int) -> None:
        """Insert or overwrite the average stored for ``day``."""
        result = await self.db.execute(
            select(SevenDayAverage).where(SevenDayAverage.day == day)
        )
        row = result.scalar_one_or_none()
        if row is None:
            self.db.add(SevenDayAverage(day=day, value=value))
        else:
            row.value = value
        await self.db.flush()
