"""Weekday normalisation and the two-level teaching-day filter.

Teaching days arrive as free-form weekday names ("monday", "Tue", "FRIDAY").
They are normalised once to ``Weekday`` members at the boundary so the
generation loop only compares enum members.
"""

from __future__ import annotations

from collections.abc import Iterable, Iterator
from datetime import date, timedelta

from planbook.models.schedule_configuration import Weekday

# date.weekday(): Monday == 0
WEEKDAY_ORDER: tuple[Weekday, ...] = (
    Weekday.Monday,
    Weekday.Tuesday,
    Weekday.Wednesday,
    Weekday.Thursday,
    Weekday.Friday,
    Weekday.Saturday,
    Weekday.Sunday,
)

_LOOKUP: dict[str, Weekday] = {}
for _day in WEEKDAY_ORDER:
    _LOOKUP[_day.value.lower()] = _day
    _LOOKUP[_day.value[:3].lower()] = _day
_LOOKUP.update({"tues": Weekday.Tuesday, "thur": Weekday.Thursday, "thurs": Weekday.Thursday})


def parse_weekday(value: str | Weekday) -> Weekday:
    if isinstance(value, Weekday):
        return value
    key = str(value).strip().lower()
    try:
        return _LOOKUP[key]
    except KeyError:
        raise ValueError(f"Unknown weekday name: {value!r}") from None


def parse_teaching_days(values: Iterable[str | Weekday] | None) -> frozenset[Weekday]:
    if not values:
        return frozenset()
    return frozenset(parse_weekday(value) for value in values)


def canonical_day_names(values: Iterable[str | Weekday] | None) -> list[str]:
    """Sorted Monday-first canonical names, deduplicated."""
    days = parse_teaching_days(values)
    return [day.value for day in WEEKDAY_ORDER if day in days]


def weekday_of(day: date) -> Weekday:
    return WEEKDAY_ORDER[day.weekday()]


def iter_dates(start: date, end: date) -> Iterator[date]:
    current = start
    step = timedelta(days=1)
    while current <= end:
        yield current
        current += step


def is_teaching_day(day: date, teaching_days: frozenset[Weekday]) -> bool:
    return weekday_of(day) in teaching_days


def period_fires(day: date, configuration_days: frozenset[Weekday], period_days: frozenset[Weekday]) -> bool:
    weekday = weekday_of(day)
    return weekday in configuration_days and weekday in period_days


def count_teaching_days(start: date, end: date, teaching_days: frozenset[Weekday]) -> int:
    return sum(1 for day in iter_dates(start, end) if is_teaching_day(day, teaching_days))
