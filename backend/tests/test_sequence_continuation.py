from datetime import date, timedelta

from planbook.models.schedule_configuration import Weekday
from planbook.services.event_factory import PeriodSlot
from planbook.services.lesson_sequencer import SequencedLesson
from planbook.services.schedule_generator import GenerationConfig, ScheduleGenerator
from planbook.services.sequence_analysis import (
    RecordedEvent,
    analyze_sequence_state,
    generate_continuation,
)
from planbook.services.special_days import SpecialDayOverride

WEEKDAYS = frozenset({Weekday.Monday, Weekday.Tuesday, Weekday.Wednesday, Weekday.Thursday, Weekday.Friday})
MONDAY = date(2024, 9, 2)


def make_lessons(offset, count):
    return [
        SequencedLesson(lesson_id=offset + i, title=f"L{i}", topic_sort_order=0, position_in_topic=i, sort_order=0)
        for i in range(count)
    ]


def two_week_config():
    return GenerationConfig(
        configuration_id=1,
        start_date=MONDAY,
        end_date=MONDAY + timedelta(days=11),
        periods_per_day=2,
        teaching_days=WEEKDAYS,
        slots=(
            PeriodSlot(period=1, teaching_days=WEEKDAYS, course_id=7, course_title="Algebra"),
            PeriodSlot(period=2, teaching_days=WEEKDAYS, course_id=8, course_title="Chemistry"),
        ),
    )


def persisted(events):
    """Give generated events positive ids the way the database would."""
    return [
        RecordedEvent(
            id=index + 1,
            date=event.date,
            period=event.period,
            event_type=event.event_type,
            course_id=event.course_id,
            lesson_id=event.lesson_id,
        )
        for index, event in enumerate(events)
    ]


def test_analysis_reports_progress_per_period():
    config = two_week_config()
    generated = ScheduleGenerator(config, {7: make_lessons(100, 3), 8: make_lessons(200, 20)}).generate()
    # Lessons were added to course 7 after the schedule was generated.
    sequences = {7: make_lessons(100, 6), 8: make_lessons(200, 20)}

    analysis = analyze_sequence_state(config, sequences, persisted(generated), date(2024, 9, 6))

    details = {detail.period: detail for detail in analysis.course_period_details}
    assert details[1].assigned_lessons == 3
    assert details[1].last_assigned_lesson_index == 2
    assert details[1].last_assigned_date == date(2024, 9, 4)
    assert details[1].remaining_lessons == 3
    assert details[1].course_title == "Algebra"
    assert details[2].assigned_lessons == 10
    assert details[2].needs_continuation

    points = {point.period: point for point in analysis.continuation_points}
    assert points[1].next_lesson_index == 3
    assert points[1].continuation_date == date(2024, 9, 7)
    assert points[2].remaining_lessons == 10


def test_analysis_matches_lessons_by_identity_after_reordering():
    config = two_week_config()
    recorded = [
        RecordedEvent(id=1, date=MONDAY, period=1, event_type="Lesson", course_id=7, lesson_id=100),
        RecordedEvent(id=2, date=MONDAY + timedelta(days=1), period=1, event_type="Lesson", course_id=7, lesson_id=101),
    ]
    reordered = list(reversed(make_lessons(100, 4)))  # 103, 102, 101, 100
    analysis = analyze_sequence_state(config, {7: reordered, 8: []}, recorded, MONDAY)

    detail = next(item for item in analysis.course_period_details if item.period == 1)
    assert detail.last_assigned_lesson_index == 3
    assert detail.last_assigned_date == MONDAY
    assert not detail.needs_continuation
    assert [point.period for point in analysis.continuation_points] == []


def test_fully_assigned_period_has_no_continuation_point():
    config = two_week_config()
    generated = ScheduleGenerator(config, {7: make_lessons(100, 2), 8: make_lessons(200, 2)}).generate()
    analysis = analyze_sequence_state(config, {7: make_lessons(100, 2), 8: make_lessons(200, 2)}, persisted(generated), MONDAY)
    assert analysis.continuation_points == []


def test_continuation_emits_only_unassigned_lessons_into_placeholders():
    config = two_week_config()
    generated = ScheduleGenerator(config, {7: make_lessons(100, 3), 8: make_lessons(200, 20)}).generate()
    recorded = persisted(generated)
    sequences = {7: make_lessons(100, 6), 8: make_lessons(200, 20)}
    after = date(2024, 9, 4)
    analysis = analyze_sequence_state(config, sequences, recorded, after)

    plan = generate_continuation(config, sequences, [], recorded, analysis.continuation_points, after_date=after)

    period_one = [event for event in plan.events if event.period == 1]
    assert [event.lesson_id for event in period_one] == [103, 104, 105]
    assert [event.schedule_sort for event in period_one] == [3, 4, 5]
    assert [event.date for event in period_one] == [date(2024, 9, 5), date(2024, 9, 6), date(2024, 9, 9)]
    # Period 2 already holds lessons in every cell after the cutoff.
    assert [event for event in plan.events if event.period == 2] == []
    replaced = {event.id for event in recorded if event.period == 1 and event.event_type == "Error"}
    assert set(plan.replaced_event_ids) <= replaced
    assert len(plan.replaced_event_ids) == 3
    assert all(event.id <= -50000 for event in plan.events)
    assert all(event.event_type != "Error" for event in plan.events)


def test_continuation_never_re_emits_assigned_lessons():
    config = two_week_config()
    recorded = [
        RecordedEvent(id=i + 1, date=MONDAY + timedelta(days=i), period=1, event_type="Lesson", course_id=7, lesson_id=100 + i)
        for i in range(3)
    ]
    sequences = {7: make_lessons(100, 5), 8: []}
    after = MONDAY + timedelta(days=2)
    analysis = analyze_sequence_state(config, sequences, recorded, after)
    plan = generate_continuation(config, sequences, [], recorded, analysis.continuation_points, after_date=after)

    assert [event.lesson_id for event in plan.events] == [103, 104]
    assert plan.replaced_event_ids == []


def test_continuation_respects_special_days_and_specific_periods():
    config = two_week_config()
    recorded = [RecordedEvent(id=1, date=MONDAY, period=1, event_type="Lesson", course_id=7, lesson_id=100)]
    sequences = {7: make_lessons(100, 3), 8: make_lessons(200, 3)}
    holiday = SpecialDayOverride(
        special_day_id=5,
        date=MONDAY + timedelta(days=1),
        periods=frozenset({1}),
        event_type="Holiday",
        title="Holiday",
    )
    analysis = analyze_sequence_state(config, sequences, recorded, MONDAY)

    plan = generate_continuation(
        config,
        sequences,
        [holiday],
        recorded,
        analysis.continuation_points,
        after_date=MONDAY,
        end_date=MONDAY + timedelta(days=4),
        specific_periods=[1],
    )
    assert [(event.date, event.event_type, event.lesson_id) for event in plan.events] == [
        (MONDAY + timedelta(days=1), "Holiday", None),
        (MONDAY + timedelta(days=2), "Lesson", 101),
        (MONDAY + timedelta(days=3), "Lesson", 102),
    ]
