"""Full-range schedule generation.

The generator is a pure computation over a normalised configuration, each
course's lessons and the schedule's special days. It performs no I/O; the
caller persists the returned events.
"""

from __future__ import annotations

import logging
from collections import Counter
from collections.abc import Collection, Iterable, Mapping, Sequence
from dataclasses import dataclass, field
from datetime import date

from planbook.models.schedule_configuration import Weekday
from planbook.services.event_factory import GeneratedEvent, PeriodSlot, build_event
from planbook.services.lesson_sequencer import SequencedLesson, sequence_lessons
from planbook.services.lesson_tracker import PeriodLessonTracker
from planbook.services.special_days import SpecialDayIndex, SpecialDayOverride
from planbook.services.teaching_days import (
    WEEKDAY_ORDER,
    count_teaching_days,
    is_teaching_day,
    iter_dates,
    period_fires,
)

logger = logging.getLogger(__name__)

MIN_PERIODS_PER_DAY = 1
MAX_PERIODS_PER_DAY = 10

# Provisional (pre-persistence) event ids never overlap between operations.
FULL_GENERATION_ID_BASE = -1
CONTINUATION_ID_BASE = -50000


def period_regeneration_id_base(period: int) -> int:
    return -1000 - period * 1000


@dataclass(frozen=True)
class GenerationConfig:
    configuration_id: int
    start_date: date
    end_date: date
    periods_per_day: int
    teaching_days: frozenset[Weekday]
    slots: tuple[PeriodSlot, ...]

    def __post_init__(self) -> None:
        object.__setattr__(self, "slots", tuple(sorted(self.slots, key=lambda slot: slot.period)))

    @property
    def course_slots(self) -> tuple[PeriodSlot, ...]:
        return tuple(slot for slot in self.slots if slot.course_id is not None)

    def slot_for(self, period: int) -> PeriodSlot | None:
        for slot in self.slots:
            if slot.period == period:
                return slot
        return None


@dataclass
class ValidationReport:
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    stats: dict[str, int] = field(default_factory=dict)

    @property
    def is_valid(self) -> bool:
        return not self.errors

    @property
    def can_generate(self) -> bool:
        return self.is_valid


def _day_list(days: Iterable[Weekday]) -> str:
    wanted = set(days)
    return ", ".join(day.value for day in WEEKDAY_ORDER if day in wanted)


def validate_generation_config(config: GenerationConfig, lesson_counts: Mapping[int, int]) -> ValidationReport:
    """Structural feasibility check.

    Errors block generation; warnings describe cells that will come out as
    Error or Unassigned events, or periods that can never fire.
    """
    report = ValidationReport()

    if config.start_date > config.end_date:
        report.errors.append("Start date must be before end date")
    if not MIN_PERIODS_PER_DAY <= config.periods_per_day <= MAX_PERIODS_PER_DAY:
        report.errors.append(
            f"Periods per day must be between {MIN_PERIODS_PER_DAY} and {MAX_PERIODS_PER_DAY}"
        )
    if not config.teaching_days:
        report.errors.append("At least one teaching day must be specified")
    if not config.slots:
        report.errors.append("No period assignments configured")
    elif not config.course_slots:
        report.errors.append("No periods assigned to courses")

    seen: Counter[int] = Counter(slot.period for slot in config.slots)
    for period, count in sorted(seen.items()):
        if count > 1:
            report.errors.append(f"Period {period} is assigned more than once")
    unassigned: list[int] = []
    for slot in config.slots:
        if not 1 <= slot.period <= config.periods_per_day:
            report.errors.append(f"Period {slot.period} is outside the range 1-{config.periods_per_day}")
        if slot.course_id is not None and slot.special_period_type:
            report.errors.append(f"Period {slot.period} cannot have both a course and a special period")
        if not slot.teaching_days:
            if len(config.slots) == 1:
                report.errors.append(f"Period {slot.period} has no teaching days")
            else:
                report.warnings.append(f"Period {slot.period} has no teaching days and will never be scheduled")
        elif config.teaching_days and not slot.teaching_days <= config.teaching_days:
            report.warnings.append(
                f"Period {slot.period} teaching days {_day_list(slot.teaching_days - config.teaching_days)} "
                "are not schedule teaching days and will be skipped"
            )
        if slot.course_id is not None:
            if lesson_counts.get(slot.course_id, 0) == 0:
                report.warnings.append(f"Course {slot.course_title or slot.course_id} (Period {slot.period}) has no lessons")
        elif not slot.special_period_type:
            unassigned.append(slot.period)

    if unassigned:
        periods = ", ".join(str(period) for period in unassigned)
        report.warnings.append(f"Periods {periods} are unassigned and will generate error events")

    report.stats = {
        "total_periods_configured": len(config.slots),
        "course_assignments": len(config.course_slots),
        "special_period_assignments": sum(1 for slot in config.slots if slot.course_id is None and slot.special_period_type),
        "unassigned_periods": len(unassigned),
        "teaching_days_in_range": (
            count_teaching_days(config.start_date, config.end_date, config.teaching_days)
            if config.start_date <= config.end_date
            else 0
        ),
    }
    return report


def count_cells(config: GenerationConfig) -> dict[int, int]:
    """Number of (date, period) cells that pass both teaching-day filters, per period."""
    counts = {slot.period: 0 for slot in config.slots}
    for day in iter_dates(config.start_date, config.end_date):
        if not is_teaching_day(day, config.teaching_days):
            continue
        for slot in config.slots:
            if period_fires(day, config.teaching_days, slot.teaching_days):
                counts[slot.period] += 1
    return counts


def events_by_period(events: Iterable[GeneratedEvent]) -> dict[int, int]:
    return dict(sorted(Counter(event.period for event in events).items()))


def events_by_type(events: Iterable[GeneratedEvent]) -> dict[str, int]:
    return dict(sorted(Counter(event.event_type for event in events).items()))


class ScheduleGenerator:
    def __init__(
        self,
        config: GenerationConfig,
        lessons_by_course: Mapping[int, Sequence[SequencedLesson]],
        special_days: Iterable[SpecialDayOverride] = (),
    ) -> None:
        self.config = config
        self.sequences: dict[int, list[SequencedLesson]] = {
            course_id: sequence_lessons(lessons) for course_id, lessons in lessons_by_course.items()
        }
        self.special_days = SpecialDayIndex(special_days)

    def sequence_for(self, course_id: int) -> list[SequencedLesson]:
        return self.sequences.get(course_id, [])

    def build_trackers(self, start_indexes: Mapping[int, int] | None = None) -> dict[int, PeriodLessonTracker]:
        start_indexes = start_indexes or {}
        return {
            slot.period: PeriodLessonTracker(
                period=slot.period,
                course_id=slot.course_id,
                lessons=self.sequence_for(slot.course_id),
                start_index=start_indexes.get(slot.period, 0),
            )
            for slot in self.config.course_slots
        }

    def generate(
        self,
        *,
        only_periods: Collection[int] | None = None,
        start_date: date | None = None,
        start_indexes: Mapping[int, int] | None = None,
        first_event_id: int = FULL_GENERATION_ID_BASE,
    ) -> list[GeneratedEvent]:
        """Walk the date range day by day and, within a day, period by period.

        ``only_periods``, ``start_date`` and ``start_indexes`` restrict the walk
        for partial regeneration; a full run uses none of them.
        """
        trackers = self.build_trackers(start_indexes)
        window_start = max(start_date, self.config.start_date) if start_date else self.config.start_date
        events: list[GeneratedEvent] = []
        event_id = first_event_id

        for day in iter_dates(window_start, self.config.end_date):
            if not is_teaching_day(day, self.config.teaching_days):
                continue
            for slot in self.config.slots:
                if only_periods is not None and slot.period not in only_periods:
                    continue
                if not period_fires(day, self.config.teaching_days, slot.teaching_days):
                    continue
                tracker = trackers.get(slot.period)
                event = build_event(
                    event_id,
                    day,
                    slot,
                    special_day=self.special_days.resolve(day, slot.period),
                    tracker=tracker,
                )
                events.append(event)
                event_id -= 1
                if event.is_lesson and tracker is not None:
                    tracker.advance()

        logger.debug(
            "SCHEDULE WALK COMPLETE | configuration_id=%s | events=%s | trackers=%s",
            self.config.configuration_id,
            len(events),
            list(trackers.values()),
        )
        return events
