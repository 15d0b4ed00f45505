from datetime import date

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class DayRecord(BaseModel):
    """One calendar day of the statistics history."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    date: date
    new_infections: int | None = None
    new_infections_seven_day_average: int | None = None
    covidcodes_entered: int | None = None


class StatisticsSnapshot(BaseModel):
    """Result of one refresh cycle, serialized with camelCase names."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    last_updated: date
    history: list[DayRecord] = []
    total_active_users: int | None = None
    total_covidcodes_entered: int = 0
    new_infections_seven_day_avg: int | None = None
    new_infections_seven_day_avg_rel_prev_week: float | None = None
    covidcodes_entered_0to2d_prev_week: float | None = Field(
        default=None, alias="covidcodesEntered0to2dPrevWeek"
    )
