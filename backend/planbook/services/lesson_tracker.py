from __future__ import annotations

from collections.abc import Sequence

from planbook.services.lesson_sequencer import SequencedLesson


class PeriodLessonTracker:
    """Cursor over one course's lesson sequence for one period.

    Built fresh for every generation run. Only a Lesson event advances it;
    special days and non-course periods leave it untouched.
    """

    def __init__(self, *, period: int, course_id: int, lessons: Sequence[SequencedLesson], start_index: int = 0) -> None:
        if start_index < 0:
            raise ValueError("start_index cannot be negative")
        self.period = period
        self.course_id = course_id
        self.lessons: tuple[SequencedLesson, ...] = tuple(lessons)
        self.current_index = min(start_index, len(self.lessons))

    def current(self) -> SequencedLesson | None:
        if self.current_index >= len(self.lessons):
            return None
        return self.lessons[self.current_index]

    def advance(self) -> None:
        if self.current_index < len(self.lessons):
            self.current_index += 1

    @property
    def is_exhausted(self) -> bool:
        return self.current_index >= len(self.lessons)

    @property
    def remaining(self) -> int:
        return len(self.lessons) - self.current_index

    def __repr__(self) -> str:
        return (
            f"PeriodLessonTracker(period={self.period}, course_id={self.course_id}, "
            f"index={self.current_index}/{len(self.lessons)})"
        )
