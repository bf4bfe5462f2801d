from dataclasses import asdict
from datetime import date, datetime

from pydantic import BaseModel, Field, field_validator, model_validator

from planbook.models.schedule import DEFAULT_SPECIAL_DAY_BACKGROUND, DEFAULT_SPECIAL_DAY_FONT, EventCategory, SpecialDayType
from planbook.services.rebuild_coordinator import JobState


class ScheduleEventOut(BaseModel):
    id: int
    date: date
    period: int
    event_type: str
    event_category: EventCategory | None = None
    course_id: int | None = None
    lesson_id: int | None = None
    special_day_id: int | None = None
    title: str | None = None
    comment: str | None = None
    schedule_sort: int

    model_config = {"from_attributes": True}


class ScheduleOut(BaseModel):
    id: int
    configuration_id: int
    title: str
    created_at: datetime | None = None
    updated_at: datetime | None = None

    model_config = {"from_attributes": True}


class ScheduleDetailOut(ScheduleOut):
    events: list[ScheduleEventOut]


class SpecialDayCreate(BaseModel):
    date: date
    periods: list[int] = Field(min_length=1, max_length=10)
    event_type: SpecialDayType
    title: str = Field(min_length=1, max_length=200)
    description: str | None = None
    background_color: str = DEFAULT_SPECIAL_DAY_BACKGROUND
    font_color: str = DEFAULT_SPECIAL_DAY_FONT

    @field_validator("periods")
    @classmethod
    def normalize_periods(cls, value: list[int]) -> list[int]:
        if any(period < 1 or period > 10 for period in value):
            raise ValueError("Periods must be between 1 and 10")
        return sorted(set(value))


class SpecialDayOut(BaseModel):
    id: int
    schedule_id: int
    date: date
    periods: list[int]
    event_type: SpecialDayType
    title: str
    description: str | None = None
    background_color: str
    font_color: str

    model_config = {"from_attributes": True}


class ValidationResultOut(BaseModel):
    is_valid: bool
    can_generate: bool
    errors: list[str]
    warnings: list[str]
    stats: dict[str, int]

    model_config = {"from_attributes": True}


class GenerationPreviewOut(BaseModel):
    configuration_id: int
    can_generate: bool
    start_date: date
    end_date: date
    teaching_days_in_range: int
    estimated_events: int
    events_by_period: dict[int, int]
    validation: ValidationResultOut

    model_config = {"from_attributes": True}


class GenerationResultOut(BaseModel):
    success: bool
    schedule_id: int
    total_events: int
    events: list[ScheduleEventOut]
    warnings: list[str]
    events_by_period: dict[int, int]
    events_by_type: dict[str, int]


class CoursePeriodDetailOut(BaseModel):
    period: int
    course_id: int
    course_title: str
    total_lessons: int
    assigned_lessons: int
    last_assigned_lesson_index: int
    last_assigned_date: date | None = None
    remaining_lessons: int
    needs_continuation: bool

    model_config = {"from_attributes": True}


class ContinuationPointOut(BaseModel):
    period: int
    course_id: int
    course_title: str
    last_assigned_lesson_index: int
    last_assigned_date: date | None = None
    continuation_date: date
    remaining_lessons: int
    total_lessons: int

    model_config = {"from_attributes": True}


class SequenceStateOut(BaseModel):
    after_date: date
    continuation_points: list[ContinuationPointOut]
    course_period_details: list[CoursePeriodDetailOut]

    model_config = {"from_attributes": True}


class ContinuationRequest(BaseModel):
    after_date: date
    end_date: date | None = None
    specific_periods: list[int] | None = None

    @model_validator(mode="after")
    def validate_window(self) -> "ContinuationRequest":
        if self.end_date is not None and self.end_date <= self.after_date:
            raise ValueError("end_date must be after after_date")
        return self


class PeriodRegenerationRequest(BaseModel):
    from_date: date | None = None


class RebuildRequest(BaseModel):
    reason: str = Field(default="manual", min_length=1, max_length=200)


class RebuildEnqueuedOut(BaseModel):
    job_id: str
    schedule_id: int


class JobStatusOut(BaseModel):
    job_id: str | None = None
    state: JobState
    reason: str | None = None
    created_at: datetime | None = None
    started_at: datetime | None = None
    completed_at: datetime | None = None
    attempts: int = 0
    error: str | None = None
    in_progress: bool = False

    model_config = {"from_attributes": True}


def validation_out(report) -> ValidationResultOut:
    return ValidationResultOut(
        is_valid=report.is_valid,
        can_generate=report.can_generate,
        errors=list(report.errors),
        warnings=list(report.warnings),
        stats=dict(report.stats),
    )


def preview_out(preview) -> GenerationPreviewOut:
    return GenerationPreviewOut(
        configuration_id=preview.configuration_id,
        can_generate=preview.can_generate,
        start_date=preview.start_date,
        end_date=preview.end_date,
        teaching_days_in_range=preview.teaching_days_in_range,
        estimated_events=preview.estimated_events,
        events_by_period=dict(preview.events_by_period),
        validation=validation_out(preview.validation),
    )


def sequence_state_out(analysis) -> SequenceStateOut:
    return SequenceStateOut(
        after_date=analysis.after_date,
        continuation_points=[asdict(point) for point in analysis.continuation_points],
        course_period_details=[asdict(detail) for detail in analysis.course_period_details],
    )


def job_status_out(job, *, in_progress: bool = False) -> JobStatusOut:
    return JobStatusOut(**asdict(job), in_progress=in_progress)
