from __future__ import annotations

from collections.abc import Iterable, Sequence
from datetime import date

from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, selectinload

from planbook.core.exceptions import AccessDeniedError, ResourceNotFoundError, ScheduleConflictError
from planbook.models.course import Course, Lesson, SubTopic, Topic
from planbook.models.schedule import Schedule, ScheduleEvent, SpecialDay
from planbook.models.schedule_configuration import ScheduleConfiguration
from planbook.services.event_factory import GeneratedEvent, PeriodSlot
from planbook.services.lesson_sequencer import MISSING_SORT_ORDER, SequencedLesson
from planbook.services.schedule_generator import GenerationConfig
from planbook.services.sequence_analysis import RecordedEvent
from planbook.services.special_days import SpecialDayOverride
from planbook.services.teaching_days import parse_teaching_days


def _owned(record, *, user_id: str, resource_type: str, resource_id):
    if record is None:
        raise ResourceNotFoundError(resource_type, resource_id)
    if record.user_id != user_id:
        raise AccessDeniedError(resource_type, resource_id)
    return record


def load_configuration(db: Session, *, configuration_id: int, user_id: str) -> ScheduleConfiguration:
    configuration = db.execute(
        select(ScheduleConfiguration)
        .options(selectinload(ScheduleConfiguration.period_assignments))
        .where(ScheduleConfiguration.id == configuration_id)
    ).scalar_one_or_none()
    return _owned(configuration, user_id=user_id, resource_type="ScheduleConfiguration", resource_id=configuration_id)


def load_schedule(db: Session, *, schedule_id: int, user_id: str) -> Schedule:
    return _owned(db.get(Schedule, schedule_id), user_id=user_id, resource_type="Schedule", resource_id=schedule_id)


def load_course(db: Session, *, course_id: int, user_id: str) -> Course:
    return _owned(db.get(Course, course_id), user_id=user_id, resource_type="Course", resource_id=course_id)


def schedule_for_configuration(db: Session, *, configuration_id: int) -> Schedule | None:
    return db.execute(select(Schedule).where(Schedule.configuration_id == configuration_id)).scalar_one_or_none()


def _sort_value(value: int | None) -> int:
    return value if value is not None else MISSING_SORT_ORDER


def _sequenced(lesson: Lesson, topic_sort: int | None, position: int | None) -> SequencedLesson:
    return SequencedLesson(
        lesson_id=lesson.id,
        title=lesson.title,
        topic_sort_order=_sort_value(topic_sort),
        position_in_topic=_sort_value(position),
        sort_order=_sort_value(lesson.sort_order),
        objective=lesson.objective,
        methods=lesson.methods,
        materials=lesson.materials,
        assessment=lesson.assessment,
    )


def load_course_lessons(db: Session, *, course_id: int, user_id: str) -> list[SequencedLesson]:
    """All non-archived lessons reachable from the course, unordered beyond lesson id."""
    direct = db.execute(
        select(Lesson, Topic.sort_order)
        .join(Topic, Lesson.topic_id == Topic.id)
        .where(Topic.course_id == course_id, Lesson.user_id == user_id, Lesson.archived.is_(False))
    ).all()
    nested = db.execute(
        select(Lesson, Topic.sort_order, SubTopic.sort_order)
        .join(SubTopic, Lesson.sub_topic_id == SubTopic.id)
        .join(Topic, SubTopic.topic_id == Topic.id)
        .where(Topic.course_id == course_id, Lesson.user_id == user_id, Lesson.archived.is_(False))
    ).all()

    lessons = [_sequenced(lesson, topic_sort, lesson.sort_order) for lesson, topic_sort in direct]
    lessons.extend(_sequenced(lesson, topic_sort, sub_sort) for lesson, topic_sort, sub_sort in nested)
    lessons.sort(key=lambda item: item.lesson_id)
    return lessons


def load_course_titles(db: Session, *, course_ids: Iterable[int]) -> dict[int, str]:
    ids = set(course_ids)
    if not ids:
        return {}
    rows = db.execute(select(Course.id, Course.title).where(Course.id.in_(ids))).all()
    return {course_id: title for course_id, title in rows}


def load_existing_special_days(db: Session, *, configuration_id: int, user_id: str) -> list[SpecialDayOverride]:
    schedule = schedule_for_configuration(db, configuration_id=configuration_id)
    if schedule is None or schedule.user_id != user_id:
        return []
    rows = db.execute(
        select(SpecialDay).where(SpecialDay.schedule_id == schedule.id).order_by(SpecialDay.date, SpecialDay.id)
    ).scalars()
    return [
        SpecialDayOverride(
            special_day_id=row.id,
            date=row.date,
            periods=frozenset(row.periods or []),
            event_type=row.event_type.value,
            title=row.title,
            description=row.description,
        )
        for row in rows
    ]


def build_generation_config(configuration: ScheduleConfiguration, course_titles: dict[int, str]) -> GenerationConfig:
    slots = [
        PeriodSlot(
            period=assignment.period,
            teaching_days=parse_teaching_days(assignment.teaching_days),
            course_id=assignment.course_id,
            course_title=course_titles.get(assignment.course_id) if assignment.course_id is not None else None,
            special_period_type=assignment.special_period_type.value if assignment.special_period_type else None,
            room=assignment.room,
            notes=assignment.notes,
        )
        for assignment in configuration.period_assignments
    ]
    return GenerationConfig(
        configuration_id=configuration.id,
        start_date=configuration.start_date,
        end_date=configuration.end_date,
        periods_per_day=configuration.periods_per_day,
        teaching_days=parse_teaching_days(configuration.teaching_days),
        slots=tuple(slots),
    )


def load_recorded_events(db: Session, *, schedule_id: int) -> list[RecordedEvent]:
    rows = db.execute(
        select(ScheduleEvent)
        .where(ScheduleEvent.schedule_id == schedule_id)
        .order_by(ScheduleEvent.date, ScheduleEvent.period)
    ).scalars()
    return [
        RecordedEvent(
            id=row.id,
            date=row.date,
            period=row.period,
            event_type=row.event_type,
            course_id=row.course_id,
            lesson_id=row.lesson_id,
        )
        for row in rows
    ]


def _to_row(schedule_id: int, event: GeneratedEvent) -> ScheduleEvent:
    return ScheduleEvent(
        schedule_id=schedule_id,
        date=event.date,
        period=event.period,
        course_id=event.course_id,
        lesson_id=event.lesson_id,
        special_day_id=event.special_day_id,
        event_type=event.event_type,
        event_category=event.event_category,
        comment=event.comment,
        schedule_sort=event.schedule_sort,
    )


def replace_schedule_events(
    db: Session,
    *,
    configuration: ScheduleConfiguration,
    events: Sequence[GeneratedEvent],
) -> Schedule:
    """Create the configuration's schedule if needed and swap its whole event set in one transaction."""
    try:
        schedule = schedule_for_configuration(db, configuration_id=configuration.id)
        if schedule is None:
            schedule = Schedule(
                user_id=configuration.user_id,
                configuration_id=configuration.id,
                title=configuration.title,
            )
            db.add(schedule)
            db.flush()
        else:
            db.execute(delete(ScheduleEvent).where(ScheduleEvent.schedule_id == schedule.id))
        db.add_all([_to_row(schedule.id, event) for event in events])
        db.commit()
    except Exception:
        db.rollback()
        raise
    db.refresh(schedule)
    return schedule


def append_schedule_events(
    db: Session,
    *,
    schedule: Schedule,
    events: Sequence[GeneratedEvent],
    replaced_event_ids: Sequence[int] = (),
) -> list[ScheduleEvent]:
    """Add continuation events; only the listed placeholder rows are removed."""
    rows = [_to_row(schedule.id, event) for event in events]
    try:
        if replaced_event_ids:
            db.execute(
                delete(ScheduleEvent).where(
                    ScheduleEvent.schedule_id == schedule.id,
                    ScheduleEvent.id.in_(list(replaced_event_ids)),
                )
            )
        db.add_all(rows)
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        raise ScheduleConflictError(
            "Continuation events collide with existing schedule events",
            details={"schedule_id": schedule.id},
        ) from exc
    except Exception:
        db.rollback()
        raise
    for row in rows:
        db.refresh(row)
    return rows


def replace_period_events(
    db: Session,
    *,
    schedule: Schedule,
    period: int,
    from_date: date,
    events: Sequence[GeneratedEvent],
) -> list[ScheduleEvent]:
    """Swap one period's events on and after ``from_date``; other periods are untouched."""
    rows = [_to_row(schedule.id, event) for event in events]
    try:
        db.execute(
            delete(ScheduleEvent).where(
                ScheduleEvent.schedule_id == schedule.id,
                ScheduleEvent.period == period,
                ScheduleEvent.date >= from_date,
            )
        )
        db.add_all(rows)
        db.commit()
    except Exception:
        db.rollback()
        raise
    for row in rows:
        db.refresh(row)
    return rows


def list_schedule_events(
    db: Session,
    *,
    schedule_id: int,
    start_date: date | None = None,
    end_date: date | None = None,
) -> list[ScheduleEvent]:
    query = select(ScheduleEvent).where(ScheduleEvent.schedule_id == schedule_id)
    if start_date is not None:
        query = query.where(ScheduleEvent.date >= start_date)
    if end_date is not None:
        query = query.where(ScheduleEvent.date <= end_date)
    query = query.options(selectinload(ScheduleEvent.lesson), selectinload(ScheduleEvent.special_day))
    return list(db.execute(query.order_by(ScheduleEvent.date, ScheduleEvent.period)).scalars())


def schedules_using_course(db: Session, *, course_id: int, user_id: str) -> list[Schedule]:
    return list(
        db.execute(
            select(Schedule)
            .join(ScheduleConfiguration, Schedule.configuration_id == ScheduleConfiguration.id)
            .where(Schedule.user_id == user_id)
            .where(
                ScheduleConfiguration.period_assignments.any(course_id=course_id)
            )
            .order_by(Schedule.id)
        ).scalars()
    )


def course_id_for_lesson(db: Session, lesson: Lesson) -> int | None:
    if lesson.topic_id is not None:
        topic = db.get(Topic, lesson.topic_id)
        return topic.course_id if topic else None
    if lesson.sub_topic_id is not None:
        sub_topic = db.get(SubTopic, lesson.sub_topic_id)
        if sub_topic is None:
            return None
        topic = db.get(Topic, sub_topic.topic_id)
        return topic.course_id if topic else None
    return None
