"""Sequence-state analysis and continuation over an already persisted schedule."""

from __future__ import annotations

import logging
from collections.abc import Collection, Iterable, Mapping, Sequence
from dataclasses import dataclass, field
from datetime import date, timedelta

from planbook.services.event_factory import (
    ERROR_EVENT,
    LESSON_EVENT,
    GeneratedEvent,
    lesson_event,
    special_day_event,
)
from planbook.services.lesson_sequencer import SequencedLesson
from planbook.services.lesson_tracker import PeriodLessonTracker
from planbook.services.schedule_generator import CONTINUATION_ID_BASE, GenerationConfig
from planbook.services.special_days import SpecialDayIndex, SpecialDayOverride
from planbook.services.teaching_days import iter_dates, period_fires

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RecordedEvent:
    """The fields of a persisted schedule event the analysis needs."""

    id: int
    date: date
    period: int
    event_type: str
    course_id: int | None = None
    lesson_id: int | None = None


@dataclass(frozen=True)
class CoursePeriodDetail:
    period: int
    course_id: int
    course_title: str
    total_lessons: int
    assigned_lessons: int
    last_assigned_lesson_index: int
    last_assigned_date: date | None
    remaining_lessons: int
    needs_continuation: bool


@dataclass(frozen=True)
class ContinuationPoint:
    period: int
    course_id: int
    course_title: str
    last_assigned_lesson_index: int
    last_assigned_date: date | None
    continuation_date: date
    remaining_lessons: int
    total_lessons: int

    @property
    def next_lesson_index(self) -> int:
        return self.last_assigned_lesson_index + 1


@dataclass
class SequenceAnalysis:
    after_date: date
    continuation_points: list[ContinuationPoint] = field(default_factory=list)
    course_period_details: list[CoursePeriodDetail] = field(default_factory=list)


@dataclass
class ContinuationPlan:
    events: list[GeneratedEvent] = field(default_factory=list)
    # Persisted exhaustion placeholders the new events take the place of.
    replaced_event_ids: list[int] = field(default_factory=list)


def analyze_sequence_state(
    config: GenerationConfig,
    sequences: Mapping[int, Sequence[SequencedLesson]],
    recorded_events: Iterable[RecordedEvent],
    after_date: date,
) -> SequenceAnalysis:
    """Find how far each course-bearing period has progressed.

    Progress is the highest position in the course's current sequence held by
    any persisted Lesson event of that period, matched by lesson id, so lessons
    reordered since generation are measured by where they sit now.
    """
    lesson_events: dict[tuple[int, int], list[RecordedEvent]] = {}
    for event in recorded_events:
        if event.event_type != LESSON_EVENT or event.course_id is None or event.lesson_id is None:
            continue
        lesson_events.setdefault((event.period, event.course_id), []).append(event)

    analysis = SequenceAnalysis(after_date=after_date)
    for slot in config.course_slots:
        sequence = sequences.get(slot.course_id, ())
        positions = {lesson.lesson_id: index for index, lesson in enumerate(sequence)}
        highest_index = -1
        last_date: date | None = None
        for event in lesson_events.get((slot.period, slot.course_id), ()):
            index = positions.get(event.lesson_id)
            if index is None:
                continue
            if index > highest_index:
                highest_index = index
                last_date = event.date

        total = len(sequence)
        assigned = highest_index + 1
        needs_continuation = highest_index < total - 1
        title = slot.course_title or f"Course {slot.course_id}"
        analysis.course_period_details.append(
            CoursePeriodDetail(
                period=slot.period,
                course_id=slot.course_id,
                course_title=title,
                total_lessons=total,
                assigned_lessons=assigned,
                last_assigned_lesson_index=highest_index,
                last_assigned_date=last_date,
                remaining_lessons=total - assigned,
                needs_continuation=needs_continuation,
            )
        )
        if needs_continuation:
            analysis.continuation_points.append(
                ContinuationPoint(
                    period=slot.period,
                    course_id=slot.course_id,
                    course_title=title,
                    last_assigned_lesson_index=highest_index,
                    last_assigned_date=last_date,
                    continuation_date=after_date + timedelta(days=1),
                    remaining_lessons=total - assigned,
                    total_lessons=total,
                )
            )
    return analysis


def generate_continuation(
    config: GenerationConfig,
    sequences: Mapping[int, Sequence[SequencedLesson]],
    special_days: Iterable[SpecialDayOverride],
    recorded_events: Iterable[RecordedEvent],
    points: Iterable[ContinuationPoint],
    *,
    after_date: date,
    end_date: date | None = None,
    specific_periods: Collection[int] | None = None,
) -> ContinuationPlan:
    """Emit the unassigned tail of each continued sequence after ``after_date``.

    Persisted events are never overwritten, except exhaustion Error events of
    the same period and course which only mark where lessons ran out. A special
    day on the point's own period takes its cell without consuming a lesson.
    The walk for a point stops as soon as its lessons run out.
    """
    window_start = after_date + timedelta(days=1)
    window_end = end_date or config.end_date
    special_index = SpecialDayIndex(special_days)
    occupied = {(event.date, event.period): event for event in recorded_events}

    plan = ContinuationPlan()
    event_id = CONTINUATION_ID_BASE
    for point in sorted(points, key=lambda item: item.period):
        if specific_periods is not None and point.period not in specific_periods:
            continue
        slot = config.slot_for(point.period)
        if slot is None or slot.course_id != point.course_id:
            continue
        tracker = PeriodLessonTracker(
            period=point.period,
            course_id=point.course_id,
            lessons=sequences.get(point.course_id, ()),
            start_index=point.next_lesson_index,
        )
        for day in iter_dates(window_start, window_end):
            if tracker.is_exhausted:
                break
            if not period_fires(day, config.teaching_days, slot.teaching_days):
                continue
            existing = occupied.get((day, slot.period))
            if existing is not None and not (
                existing.event_type == ERROR_EVENT and existing.course_id == slot.course_id
            ):
                continue

            special_day = special_index.resolve(day, slot.period)
            if special_day is not None:
                event = special_day_event(event_id, day, slot, special_day)
            else:
                event = lesson_event(event_id, day, slot, tracker.current(), tracker.current_index)
                tracker.advance()
            if existing is not None:
                plan.replaced_event_ids.append(existing.id)
            plan.events.append(event)
            event_id -= 1

        logger.debug(
            "CONTINUATION WALK | period=%s | course_id=%s | from_index=%s | to_index=%s",
            point.period,
            point.course_id,
            point.next_lesson_index,
            tracker.current_index,
        )

    plan.events.sort(key=lambda item: (item.date, item.period))
    return plan
