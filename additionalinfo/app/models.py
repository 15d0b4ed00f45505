from datetime import datetime

from sqlalchemy import Column, Date, DateTime, Integer

from additionalinfo.app.database import Base


class SevenDayAverage(Base):
    """Persisted 7-day rolling average of new infections, one row per day."""

    __tablename__ = "seven_day_average_history"

    day = Column(Date, primary_key=True)
    value = Column(Integer, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=datetime.utcnow, onupdate=datetime.utcnow)
