from datetime import date, datetime, timezone

import pytest

from app.core.errors import ValidationError
from app.sla.calendar import (
    BusinessCalendar,
    TimeWindow,
    add_business_hours,
    business_hours_elapsed,
    business_seconds_elapsed,
)

UTC = BusinessCalendar(timezone="UTC")


def _at(day: int, hour: int, minute: int = 0) -> datetime:
    # March 2024: the 4th is a Monday.
    return datetime(2024, 3, day, hour, minute, tzinfo=timezone.utc)


def test_same_day_inside_window():
    assert business_hours_elapsed(_at(4, 9), _at(4, 12), UTC) == pytest.approx(3.0)


def test_clips_to_business_window():
    assert business_hours_elapsed(_at(4, 6), _at(4, 20), UTC) == pytest.approx(9.0)


def test_overnight_counts_only_working_hours():
    assert business_hours_elapsed(_at(4, 16), _at(5, 9), UTC) == pytest.approx(2.0)


def test_weekend_is_skipped():
    # Friday 16:00 to Monday 09:00.
    assert business_hours_elapsed(_at(8, 16), _at(11, 9), UTC) == pytest.approx(2.0)


def test_holidays_are_skipped():
    calendar = BusinessCalendar(timezone="UTC", holidays=frozenset({date(2024, 3, 5)}))
    assert business_hours_elapsed(_at(4, 16), _at(6, 9), calendar) == pytest.approx(2.0)


def test_reversed_range_is_zero():
    assert business_seconds_elapsed(_at(4, 12), _at(4, 9), UTC) == 0.0


def test_business_timezone_applies():
    jakarta = BusinessCalendar(timezone="Asia/Jakarta")
    # 08:00-17:00 WIB is 01:00-10:00 UTC.
    assert business_hours_elapsed(_at(4, 0), _at(4, 12), jakarta) == pytest.approx(9.0)
    assert jakarta.local_date(_at(4, 20)) == date(2024, 3, 5)


def test_naive_datetimes_are_utc():
    start = datetime(2024, 3, 4, 9, 0)
    assert business_hours_elapsed(start, _at(4, 10), UTC) == pytest.approx(1.0)


def test_add_business_hours_rolls_over_weekend():
    assert add_business_hours(_at(8, 15), 4, UTC) == _at(11, 10)
    assert add_business_hours(_at(4, 7), 1, UTC) == _at(4, 9)
    assert add_business_hours(_at(4, 9), 0, UTC) == _at(4, 9)


def test_calendar_rejects_bad_hours():
    with pytest.raises(ValueError):
        BusinessCalendar(timezone="UTC", start_hour=17, end_hour=8)


def test_time_window():
    window = TimeWindow(_at(4, 0), _at(5, 0))
    assert window.contains(_at(4, 12))
    assert not window.contains(_at(5, 0))
    assert TimeWindow().contains(_at(4, 12))
    with pytest.raises(ValidationError):
        TimeWindow(_at(5, 0), _at(4, 0))


def test_zero_length_range_is_zero():
    assert business_hours_elapsed(_at(4, 10), _at(4, 10), UTC) == 0.0


def test_saturday_counts_nothing():
    assert business_hours_elapsed(_at(9, 10), _at(9, 18), UTC) == 0.0


def test_monday_open_to_tuesday_open_is_one_working_day():
    assert business_hours_elapsed(_at(4, 8), _at(5, 8), UTC) == pytest.approx(9.0)
