from __future__ import annotations

import logging
from collections.abc import Callable, Collection
from dataclasses import dataclass, field
from datetime import date
from time import perf_counter

from sqlalchemy.orm import Session

from planbook.core.exceptions import AccessDeniedError, ScheduleGenerationError
from planbook.models.schedule import Schedule, ScheduleEvent
from planbook.models.schedule_configuration import ScheduleConfiguration
from planbook.services import schedule_store as store
from planbook.services.event_factory import LESSON_EVENT, GeneratedEvent
from planbook.services.lesson_sequencer import SequencedLesson, sequence_lessons
from planbook.services.rebuild_coordinator import RebuildTask
from planbook.services.schedule_generator import (
    GenerationConfig,
    ScheduleGenerator,
    ValidationReport,
    count_cells,
    events_by_period,
    events_by_type,
    period_regeneration_id_base,
    validate_generation_config,
)
from planbook.services.sequence_analysis import SequenceAnalysis, analyze_sequence_state, generate_continuation
from planbook.services.special_days import SpecialDayOverride

logger = logging.getLogger(__name__)


@dataclass
class GenerationOutcome:
    success: bool
    schedule_id: int | None = None
    events: list[GeneratedEvent] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    events_by_period: dict[int, int] = field(default_factory=dict)
    events_by_type: dict[str, int] = field(default_factory=dict)

    @property
    def total_events(self) -> int:
        return len(self.events)


@dataclass
class GenerationPreview:
    configuration_id: int
    start_date: date
    end_date: date
    teaching_days_in_range: int
    estimated_events: int
    events_by_period: dict[int, int]
    validation: ValidationReport

    @property
    def can_generate(self) -> bool:
        return self.validation.can_generate


@dataclass
class _GenerationInputs:
    configuration: ScheduleConfiguration
    config: GenerationConfig
    lessons_by_course: dict[int, list[SequencedLesson]]
    special_days: list[SpecialDayOverride]

    @property
    def lesson_counts(self) -> dict[int, int]:
        return {course_id: len(lessons) for course_id, lessons in self.lessons_by_course.items()}

    def sequences(self) -> dict[int, list[SequencedLesson]]:
        return {course_id: sequence_lessons(lessons) for course_id, lessons in self.lessons_by_course.items()}


class ScheduleGenerationService:
    """Loads inputs, runs the pure generation engine and persists its output."""

    def __init__(self, db: Session) -> None:
        self.db = db

    def _inputs(self, configuration: ScheduleConfiguration, user_id: str) -> _GenerationInputs:
        course_ids = sorted(
            {assignment.course_id for assignment in configuration.period_assignments if assignment.course_id is not None}
        )
        titles = store.load_course_titles(self.db, course_ids=course_ids)
        lessons_by_course = {
            course_id: store.load_course_lessons(self.db, course_id=course_id, user_id=user_id)
            for course_id in course_ids
        }
        return _GenerationInputs(
            configuration=configuration,
            config=store.build_generation_config(configuration, titles),
            lessons_by_course=lessons_by_course,
            special_days=store.load_existing_special_days(
                self.db, configuration_id=configuration.id, user_id=user_id
            ),
        )

    def _load_inputs(self, configuration_id: int, user_id: str) -> _GenerationInputs:
        configuration = store.load_configuration(self.db, configuration_id=configuration_id, user_id=user_id)
        return self._inputs(configuration, user_id)

    def validate(self, configuration_id: int, user_id: str) -> ValidationReport:
        inputs = self._load_inputs(configuration_id, user_id)
        report = validate_generation_config(inputs.config, inputs.lesson_counts)
        logger.info(
            "SCHEDULE VALIDATION | configuration_id=%s | user_id=%s | errors=%s | warnings=%s",
            configuration_id,
            user_id,
            len(report.errors),
            len(report.warnings),
        )
        return report

    def preview(self, configuration_id: int, user_id: str) -> GenerationPreview:
        inputs = self._load_inputs(configuration_id, user_id)
        report = validate_generation_config(inputs.config, inputs.lesson_counts)
        per_period = count_cells(inputs.config) if report.is_valid else {}
        return GenerationPreview(
            configuration_id=configuration_id,
            start_date=inputs.config.start_date,
            end_date=inputs.config.end_date,
            teaching_days_in_range=report.stats.get("teaching_days_in_range", 0),
            estimated_events=sum(per_period.values()),
            events_by_period=per_period,
            validation=report,
        )

    def generate(self, configuration_id: int, user_id: str) -> GenerationOutcome:
        started = perf_counter()
        logger.info(
            "SCHEDULE GENERATION START | configuration_id=%s | user_id=%s",
            configuration_id,
            user_id,
        )
        try:
            inputs = self._load_inputs(configuration_id, user_id)
            report = validate_generation_config(inputs.config, inputs.lesson_counts)
            if not report.is_valid:
                logger.warning(
                    "SCHEDULE GENERATION REFUSED | configuration_id=%s | user_id=%s | errors=%s",
                    configuration_id,
                    user_id,
                    report.errors,
                )
                return GenerationOutcome(success=False, errors=report.errors, warnings=report.warnings)

            generator = ScheduleGenerator(inputs.config, inputs.lessons_by_course, inputs.special_days)
            events = generator.generate()
            schedule = store.replace_schedule_events(self.db, configuration=inputs.configuration, events=events)

            outcome = GenerationOutcome(
                success=True,
                schedule_id=schedule.id,
                events=events,
                warnings=report.warnings,
                events_by_period=events_by_period(events),
                events_by_type=events_by_type(events),
            )
            elapsed_ms = int((perf_counter() - started) * 1000)
            logger.info(
                "SCHEDULE GENERATION COMPLETE | configuration_id=%s | user_id=%s | schedule_id=%s | events=%s | warnings=%s | wall_ms=%s",
                configuration_id,
                user_id,
                schedule.id,
                outcome.total_events,
                len(outcome.warnings),
                elapsed_ms,
            )
            return outcome
        except Exception:
            elapsed_ms = int((perf_counter() - started) * 1000)
            logger.exception(
                "SCHEDULE GENERATION FAILED | configuration_id=%s | user_id=%s | wall_ms=%s",
                configuration_id,
                user_id,
                elapsed_ms,
            )
            raise

    def regenerate_schedule(self, schedule_id: int, user_id: str) -> GenerationOutcome:
        schedule = store.load_schedule(self.db, schedule_id=schedule_id, user_id=user_id)
        outcome = self.generate(schedule.configuration_id, user_id)
        if not outcome.success:
            raise ScheduleGenerationError(
                "Schedule regeneration failed",
                details={"schedule_id": schedule_id, "errors": outcome.errors, "warnings": outcome.warnings},
            )
        return outcome

    def analyze_sequence_state(self, schedule_id: int, after_date: date, user_id: str) -> SequenceAnalysis:
        schedule = store.load_schedule(self.db, schedule_id=schedule_id, user_id=user_id)
        inputs = self._load_inputs(schedule.configuration_id, user_id)
        analysis = analyze_sequence_state(
            inputs.config,
            inputs.sequences(),
            store.load_recorded_events(self.db, schedule_id=schedule.id),
            after_date,
        )
        logger.info(
            "SEQUENCE ANALYSIS | schedule_id=%s | user_id=%s | after_date=%s | periods=%s | continuation_points=%s",
            schedule_id,
            user_id,
            after_date,
            len(analysis.course_period_details),
            len(analysis.continuation_points),
        )
        return analysis

    def continue_sequences(
        self,
        schedule_id: int,
        user_id: str,
        *,
        after_date: date,
        end_date: date | None = None,
        specific_periods: Collection[int] | None = None,
    ) -> list[ScheduleEvent]:
        started = perf_counter()
        logger.info(
            "SEQUENCE CONTINUATION START | schedule_id=%s | user_id=%s | after_date=%s | end_date=%s | periods=%s",
            schedule_id,
            user_id,
            after_date,
            end_date,
            sorted(specific_periods) if specific_periods is not None else "all",
        )
        try:
            schedule = store.load_schedule(self.db, schedule_id=schedule_id, user_id=user_id)
            inputs = self._load_inputs(schedule.configuration_id, user_id)
            if end_date is not None and end_date <= after_date:
                raise ScheduleGenerationError(
                    "End date must be after the continuation date",
                    details={"after_date": after_date.isoformat(), "end_date": end_date.isoformat()},
                )
            sequences = inputs.sequences()
            recorded = store.load_recorded_events(self.db, schedule_id=schedule.id)
            analysis = analyze_sequence_state(inputs.config, sequences, recorded, after_date)
            plan = generate_continuation(
                inputs.config,
                sequences,
                inputs.special_days,
                recorded,
                analysis.continuation_points,
                after_date=after_date,
                end_date=end_date,
                specific_periods=specific_periods,
            )
            rows = store.append_schedule_events(
                self.db,
                schedule=schedule,
                events=plan.events,
                replaced_event_ids=plan.replaced_event_ids,
            )
            elapsed_ms = int((perf_counter() - started) * 1000)
            logger.info(
                "SEQUENCE CONTINUATION COMPLETE | schedule_id=%s | user_id=%s | events=%s | replaced=%s | wall_ms=%s",
                schedule_id,
                user_id,
                len(rows),
                len(plan.replaced_event_ids),
                elapsed_ms,
            )
            return rows
        except Exception:
            elapsed_ms = int((perf_counter() - started) * 1000)
            logger.exception(
                "SEQUENCE CONTINUATION FAILED | schedule_id=%s | user_id=%s | wall_ms=%s",
                schedule_id,
                user_id,
                elapsed_ms,
            )
            raise

    def regenerate_period(
        self,
        schedule_id: int,
        period: int,
        user_id: str,
        *,
        from_date: date | None = None,
    ) -> list[ScheduleEvent]:
        """Rebuild one course period from ``from_date`` onwards.

        The period's tracker resumes after the furthest lesson already held by
        an earlier event of that period, so history before ``from_date`` stays
        as it is.
        """
        started = perf_counter()
        schedule = store.load_schedule(self.db, schedule_id=schedule_id, user_id=user_id)
        inputs = self._load_inputs(schedule.configuration_id, user_id)
        slot = inputs.config.slot_for(period)
        if slot is None or slot.course_id is None:
            raise ScheduleGenerationError(
                f"Period {period} has no course assigned",
                details={"schedule_id": schedule_id, "period": period},
            )
        window_start = max(from_date or inputs.config.start_date, inputs.config.start_date)

        generator = ScheduleGenerator(inputs.config, inputs.lessons_by_course, inputs.special_days)
        positions = {lesson.lesson_id: index for index, lesson in enumerate(generator.sequence_for(slot.course_id))}
        resume_index = 0
        for event in store.load_recorded_events(self.db, schedule_id=schedule.id):
            if event.period != period or event.date >= window_start or event.event_type != LESSON_EVENT:
                continue
            if event.course_id != slot.course_id:
                continue
            index = positions.get(event.lesson_id)
            if index is not None:
                resume_index = max(resume_index, index + 1)

        events = generator.generate(
            only_periods={period},
            start_date=window_start,
            start_indexes={period: resume_index},
            first_event_id=period_regeneration_id_base(period),
        )
        rows = store.replace_period_events(
            self.db,
            schedule=schedule,
            period=period,
            from_date=window_start,
            events=events,
        )
        logger.info(
            "PERIOD REGENERATION COMPLETE | schedule_id=%s | period=%s | user_id=%s | from_date=%s | resume_index=%s | events=%s | wall_ms=%s",
            schedule_id,
            period,
            user_id,
            window_start,
            resume_index,
            len(rows),
            int((perf_counter() - started) * 1000),
        )
        return rows

    def execute_rebuild(self, task: RebuildTask) -> GenerationOutcome:
        """Run a queued rebuild; ownership is checked again since the queue may lag the request."""
        schedule = store.load_schedule(self.db, schedule_id=task.schedule_id, user_id=task.user_id)
        if schedule.configuration_id != task.configuration_id:
            raise AccessDeniedError("ScheduleConfiguration", task.configuration_id)
        return self.regenerate_schedule(schedule.id, task.user_id)


def run_schedule_rebuild(task: RebuildTask, *, session_factory: Callable[[], Session]) -> GenerationOutcome:
    db = session_factory()
    try:
        return ScheduleGenerationService(db).execute_rebuild(task)
    finally:
        db.close()


def rebuild_schedules_for_course(
    db: Session,
    *,
    course_id: int,
    user_id: str,
    reason: str,
    enqueue: Callable[..., str],
) -> list[str]:
    """Queue a rebuild for every schedule of the user whose configuration teaches ``course_id``."""
    schedules: list[Schedule] = store.schedules_using_course(db, course_id=course_id, user_id=user_id)
    return [
        enqueue(
            schedule_id=schedule.id,
            configuration_id=schedule.configuration_id,
            user_id=user_id,
            reason=reason,
        )
        for schedule in schedules
    ]
