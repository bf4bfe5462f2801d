from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date

from planbook.models.schedule import EventCategory
from planbook.models.schedule_configuration import Weekday
from planbook.services.lesson_sequencer import SequencedLesson
from planbook.services.lesson_tracker import PeriodLessonTracker
from planbook.services.special_days import SpecialDayOverride

LESSON_EVENT = "Lesson"
ERROR_EVENT = "Error"
UNASSIGNED_EVENT = "Unassigned"


@dataclass(frozen=True)
class PeriodSlot:
    """One period assignment, normalised for the generation loop."""

    period: int
    teaching_days: frozenset[Weekday]
    course_id: int | None = None
    course_title: str | None = None
    special_period_type: str | None = None
    room: str | None = None
    notes: str | None = None


@dataclass
class GeneratedEvent:
    id: int
    date: date
    period: int
    event_type: str
    event_category: EventCategory | None = None
    course_id: int | None = None
    lesson_id: int | None = None
    special_day_id: int | None = None
    comment: str | None = None
    schedule_sort: int = 0
    title: str | None = None
    details: dict[str, str | None] = field(default_factory=dict)

    @property
    def is_lesson(self) -> bool:
        return self.event_type == LESSON_EVENT

    @property
    def is_exhausted_placeholder(self) -> bool:
        return self.event_type == ERROR_EVENT and self.course_id is not None

    @property
    def cell(self) -> tuple[date, int]:
        return (self.date, self.period)


def exhausted_comment(course_id: int) -> str:
    return f"No more lessons available for Course {course_id}"


def special_day_event(event_id: int, day: date, slot: PeriodSlot, special_day: SpecialDayOverride) -> GeneratedEvent:
    return GeneratedEvent(
        id=event_id,
        date=day,
        period=slot.period,
        event_type=special_day.event_type,
        event_category=EventCategory.SpecialDay,
        special_day_id=special_day.special_day_id,
        comment=special_day.description or "",
        schedule_sort=0,
        title=special_day.title,
    )


def lesson_event(event_id: int, day: date, slot: PeriodSlot, lesson: SequencedLesson, index: int) -> GeneratedEvent:
    return GeneratedEvent(
        id=event_id,
        date=day,
        period=slot.period,
        event_type=LESSON_EVENT,
        event_category=EventCategory.Lesson,
        course_id=slot.course_id,
        lesson_id=lesson.lesson_id,
        schedule_sort=index,
        title=lesson.title,
        details={
            "objective": lesson.objective,
            "methods": lesson.methods,
            "materials": lesson.materials,
            "assessment": lesson.assessment,
        },
    )


def exhausted_event(event_id: int, day: date, slot: PeriodSlot, index: int) -> GeneratedEvent:
    return GeneratedEvent(
        id=event_id,
        date=day,
        period=slot.period,
        event_type=ERROR_EVENT,
        course_id=slot.course_id,
        comment=exhausted_comment(slot.course_id),
        schedule_sort=index,
    )


def special_period_event(event_id: int, day: date, slot: PeriodSlot) -> GeneratedEvent:
    return GeneratedEvent(
        id=event_id,
        date=day,
        period=slot.period,
        event_type=slot.special_period_type,
        event_category=EventCategory.SpecialPeriod,
        comment=slot.notes or "",
        schedule_sort=0,
        title=slot.special_period_type,
    )


def unassigned_event(event_id: int, day: date, slot: PeriodSlot) -> GeneratedEvent:
    return GeneratedEvent(
        id=event_id,
        date=day,
        period=slot.period,
        event_type=UNASSIGNED_EVENT,
        comment=f"Period {slot.period} has no course or special period assigned",
    )


def build_event(
    event_id: int,
    day: date,
    slot: PeriodSlot,
    *,
    special_day: SpecialDayOverride | None,
    tracker: PeriodLessonTracker | None,
) -> GeneratedEvent:
    """Resolve one (date, period) cell.

    Priority: special day, then the period's course (a lesson, or an Error
    once the sequence is exhausted), then its special period type, and
    finally Unassigned. The tracker is read but never advanced here.
    """
    if special_day is not None:
        return special_day_event(event_id, day, slot, special_day)
    if slot.course_id is not None:
        if tracker is None:
            return exhausted_event(event_id, day, slot, 0)
        lesson = tracker.current()
        if lesson is None:
            return exhausted_event(event_id, day, slot, tracker.current_index)
        return lesson_event(event_id, day, slot, lesson, tracker.current_index)
    if slot.special_period_type:
        return special_period_event(event_id, day, slot)
    return unassigned_event(event_id, day, slot)
