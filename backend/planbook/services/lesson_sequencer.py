from __future__ import annotations

from dataclasses import dataclass
from collections.abc import Iterable

# Lessons whose container is missing its sort order sink to the end of their topic.
MISSING_SORT_ORDER = 999


@dataclass(frozen=True)
class SequencedLesson:
    lesson_id: int
    title: str
    topic_sort_order: int
    position_in_topic: int
    sort_order: int
    objective: str | None = None
    methods: str | None = None
    materials: str | None = None
    assessment: str | None = None

    @property
    def sort_key(self) -> tuple[int, int, int]:
        return (self.topic_sort_order, self.position_in_topic, self.sort_order)


def sequence_lessons(lessons: Iterable[SequencedLesson]) -> list[SequencedLesson]:
    """Flatten a course's lessons into teaching order.

    Ordering is (topic sort order, position within the topic, lesson sort order).
    A lesson directly under a topic is positioned by its own sort order; a lesson
    inside a subtopic is positioned by the subtopic's sort order, so a subtopic's
    lessons stay together at the subtopic's slot. Ties keep input order, and
    callers load lessons ordered by id so the result is deterministic.
    """
    return sorted(lessons, key=lambda lesson: lesson.sort_key)
