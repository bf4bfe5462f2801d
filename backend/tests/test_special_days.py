from datetime import date

from planbook.services.special_days import SpecialDayIndex, SpecialDayOverride


def override(special_day_id, day, periods, event_type="Assembly"):
    return SpecialDayOverride(
        special_day_id=special_day_id,
        date=day,
        periods=frozenset(periods),
        event_type=event_type,
        title=event_type,
    )


def test_resolve_matches_date_and_period():
    index = SpecialDayIndex([override(1, date(2024, 9, 4), {1, 3})])
    assert index.resolve(date(2024, 9, 4), 1).special_day_id == 1
    assert index.resolve(date(2024, 9, 4), 3).special_day_id == 1
    assert index.resolve(date(2024, 9, 4), 2) is None
    assert index.resolve(date(2024, 9, 5), 1) is None


def test_first_declared_special_day_wins():
    index = SpecialDayIndex([
        override(1, date(2024, 9, 4), {1}, "Assembly"),
        override(2, date(2024, 9, 4), {1, 2}, "Testing"),
    ])
    assert index.resolve(date(2024, 9, 4), 1).special_day_id == 1
    assert index.resolve(date(2024, 9, 4), 2).special_day_id == 2
    assert len(index) == 2
    assert [item.special_day_id for item in index.for_date(date(2024, 9, 4))] == [1, 2]
