from datetime import date, datetime
import re

from pydantic import BaseModel, Field, field_validator, model_validator

from planbook.models.schedule_configuration import (
    DEFAULT_PERIOD_BACKGROUND,
    DEFAULT_PERIOD_FONT,
    SpecialPeriodType,
)
from planbook.services.teaching_days import canonical_day_names

HEX_COLOR = re.compile(r"^#(?:[0-9a-fA-F]{3}|[0-9a-fA-F]{6})$")


def _normalize_days(value: list[str] | None) -> list[str] | None:
    if value is None:
        return None
    return canonical_day_names(value)


def _validate_color(value: str) -> str:
    if not HEX_COLOR.match(value):
        raise ValueError("Colors must be hex values such as #2196F3")
    return value


class PeriodAssignmentIn(BaseModel):
    period: int = Field(ge=1, le=10)
    course_id: int | None = None
    special_period_type: SpecialPeriodType | None = None
    # None inherits the configuration's teaching days.
    teaching_days: list[str] | None = None
    room: str | None = Field(default=None, max_length=100)
    notes: str | None = None
    background_color: str = DEFAULT_PERIOD_BACKGROUND
    font_color: str = DEFAULT_PERIOD_FONT

    @field_validator("teaching_days")
    @classmethod
    def normalize_teaching_days(cls, value: list[str] | None) -> list[str] | None:
        return _normalize_days(value)

    @field_validator("background_color", "font_color")
    @classmethod
    def validate_colors(cls, value: str) -> str:
        return _validate_color(value)

    @model_validator(mode="after")
    def validate_single_assignment(self) -> "PeriodAssignmentIn":
        if self.course_id is not None and self.special_period_type is not None:
            raise ValueError("A period is assigned a course or a special period, not both")
        return self


class PeriodAssignmentOut(BaseModel):
    id: int
    period: int
    course_id: int | None = None
    special_period_type: SpecialPeriodType | None = None
    teaching_days: list[str]
    room: str | None = None
    notes: str | None = None
    background_color: str
    font_color: str

    model_config = {"from_attributes": True}


class ScheduleConfigurationBase(BaseModel):
    title: str = Field(min_length=1, max_length=200)
    school_year: str | None = Field(default=None, max_length=20)
    start_date: date
    end_date: date
    periods_per_day: int = Field(default=6, ge=1, le=10)
    teaching_days: list[str] = Field(
        default_factory=lambda: ["Monday", "Tuesday", "Wednesday", "Thursday", "Friday"]
    )
    is_active: bool = True

    @field_validator("teaching_days")
    @classmethod
    def normalize_teaching_days(cls, value: list[str]) -> list[str]:
        return canonical_day_names(value)


class ScheduleConfigurationCreate(ScheduleConfigurationBase):
    period_assignments: list[PeriodAssignmentIn] = Field(default_factory=list, max_length=10)

    @model_validator(mode="after")
    def validate_periods(self) -> "ScheduleConfigurationCreate":
        periods = [assignment.period for assignment in self.period_assignments]
        if len(periods) != len(set(periods)):
            raise ValueError("Each period can only be assigned once")
        for period in periods:
            if period > self.periods_per_day:
                raise ValueError(f"Period {period} exceeds periods_per_day ({self.periods_per_day})")
        return self


class ScheduleConfigurationUpdate(ScheduleConfigurationCreate):
    pass


class ScheduleConfigurationOut(ScheduleConfigurationBase):
    id: int
    period_assignments: list[PeriodAssignmentOut]
    created_at: datetime | None = None
    updated_at: datetime | None = None

    model_config = {"from_attributes": True}
