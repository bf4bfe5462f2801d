from __future__ import annotations

from collections import defaultdict
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import date


@dataclass(frozen=True)
class SpecialDayOverride:
    special_day_id: int
    date: date
    periods: frozenset[int]
    event_type: str
    title: str
    description: str | None = None


class SpecialDayIndex:
    """Date-keyed lookup of special days; first declared match wins."""

    def __init__(self, special_days: Iterable[SpecialDayOverride] = ()) -> None:
        self._by_date: dict[date, list[SpecialDayOverride]] = defaultdict(list)
        for special_day in special_days:
            self._by_date[special_day.date].append(special_day)

    def resolve(self, day: date, period: int) -> SpecialDayOverride | None:
        for special_day in self._by_date.get(day, ()):
            if period in special_day.periods:
                return special_day
        return None

    def for_date(self, day: date) -> list[SpecialDayOverride]:
        return list(self._by_date.get(day, ()))

    def __len__(self) -> int:
        return sum(len(items) for items in self._by_date.values())
