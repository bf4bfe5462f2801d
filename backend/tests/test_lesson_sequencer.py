from planbook.services.lesson_sequencer import SequencedLesson, sequence_lessons


def lesson(lesson_id, topic, position, sort, title=None):
    return SequencedLesson(
        lesson_id=lesson_id,
        title=title or f"L{lesson_id}",
        topic_sort_order=topic,
        position_in_topic=position,
        sort_order=sort,
    )


def test_orders_by_topic_then_position_then_lesson_sort():
    lessons = [
        lesson(1, topic=1, position=0, sort=0),
        lesson(2, topic=0, position=1, sort=1),
        lesson(3, topic=0, position=0, sort=0),
        lesson(4, topic=0, position=1, sort=0),
    ]
    assert [item.lesson_id for item in sequence_lessons(lessons)] == [3, 4, 2, 1]


def test_subtopic_lessons_cluster_at_subtopic_position():
    # Topic 0 holds: direct lesson at 0, subtopic at 1 (lessons 11, 12), direct lesson at 2.
    lessons = [
        lesson(20, topic=0, position=2, sort=2),
        lesson(12, topic=0, position=1, sort=1),
        lesson(10, topic=0, position=0, sort=0),
        lesson(11, topic=0, position=1, sort=0),
    ]
    assert [item.lesson_id for item in sequence_lessons(lessons)] == [10, 11, 12, 20]


def test_ties_keep_input_order():
    lessons = [lesson(5, 0, 0, 0), lesson(3, 0, 0, 0), lesson(9, 0, 0, 0)]
    assert [item.lesson_id for item in sequence_lessons(lessons)] == [5, 3, 9]


def test_sequence_is_recomputed_from_input():
    lessons = [lesson(1, 0, 0, 0), lesson(2, 0, 0, 1)]
    assert [item.lesson_id for item in sequence_lessons(lessons)] == [1, 2]
    moved = [lesson(1, 0, 0, 5), lesson(2, 0, 0, 1)]
    assert [item.lesson_id for item in sequence_lessons(moved)] == [2, 1]
