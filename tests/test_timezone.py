from datetime import date, datetime, timedelta, timezone

import pytest

from app.core.exceptions import ValidationError
from app.utils.timezone import (
    as_aware_utc,
    day_window,
    format_local,
    parse_day,
    to_naive_utc,
    window_for,
)


def test_utc_window_bounds():
    window = day_window(date(2024, 1, 10), "UTC")

    assert window.start_utc == datetime(2024, 1, 10)
    assert window.end_utc == datetime(2024, 1, 11)


def test_window_in_offset_zone():
    window = day_window(date(2024, 1, 10), "Asia/Kolkata")

    assert window.start_utc == datetime(2024, 1, 9, 18, 30)
    assert window.end_utc == datetime(2024, 1, 10, 18, 30)
    assert window.contains(datetime(2024, 1, 9, 19, 0, tzinfo=timezone.utc))
    assert not window.contains(datetime(2024, 1, 10, 18, 30, tzinfo=timezone.utc))


def test_window_covers_short_dst_day():
    window = day_window(date(2024, 3, 31), "Europe/Berlin")

    assert window.end_utc - window.start_utc == timedelta(hours=23)


def test_window_for_moment_uses_local_calendar_day():
    late_evening_utc = datetime(2024, 1, 10, 20, 0, tzinfo=timezone.utc)

    assert window_for(late_evening_utc, "UTC").day == date(2024, 1, 10)
    assert window_for(late_evening_utc, "Asia/Kolkata").day == date(2024, 1, 11)


def test_naive_moment_is_treated_as_utc():
    window = day_window(date(2024, 1, 10), "UTC")

    assert window.contains(datetime(2024, 1, 10, 23, 59, 59))
    assert as_aware_utc(datetime(2024, 1, 10, 9)).tzinfo == timezone.utc


def test_to_naive_utc_converts_offsets():
    ist = timezone(timedelta(hours=5, minutes=30))
    assert to_naive_utc(datetime(2024, 1, 10, 9, 0, tzinfo=ist)) == datetime(2024, 1, 10, 3, 30)


def test_unknown_timezone():
    with pytest.raises(ValidationError) as exc_info:
        day_window(date(2024, 1, 10), "Mars/Olympus")
    assert "tz" in exc_info.value.fields


@pytest.mark.parametrize("value", ["2024-13-01", "10/01/2024", "yesterday", ""])
def test_invalid_date(value):
    with pytest.raises(ValidationError) as exc_info:
        parse_day(value)
    assert exc_info.value.message == "Invalid date format"


def test_parse_day():
    assert parse_day("2024-01-10") == date(2024, 1, 10)


def test_format_local():
    moment = datetime(2024, 1, 10, 3, 30)

    assert format_local(moment, "Asia/Kolkata") == "2024-01-10 09:00:00"
    assert format_local(None, "UTC") == "N/A"
