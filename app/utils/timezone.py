"""
Day window and UTC helpers.

"Today" is never derived from the server's local clock: every attendance
operation receives a DayWindow built from an explicit IANA timezone.
Timestamps are stored in the database as naive UTC.
"""
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta, timezone
from typing import Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from app.core.exceptions import ValidationError


@dataclass(frozen=True)
class DayWindow:
    """Half-open interval [start, end) covering one calendar day"""
    day: date
    start: datetime
    end: datetime
    tz_name: str

    @property
    def start_utc(self) -> datetime:
        return to_naive_utc(self.start)

    @property
    def end_utc(self) -> datetime:
        return to_naive_utc(self.end)

    def contains(self, moment: datetime) -> bool:
        return self.start <= as_aware_utc(moment) < self.end


def get_zone(tz_name: str) -> ZoneInfo:
    """Resolve an IANA zone name"""
    try:
        return ZoneInfo(tz_name)
    except (ZoneInfoNotFoundError, ValueError):
        raise ValidationError({"tz": f"Unknown timezone: {tz_name}"})


def day_window(day: date, tz_name: str) -> DayWindow:
    zone = get_zone(tz_name)
    start = datetime.combine(day, time.min, tzinfo=zone)
    # calendar day, not 24h (DST)
    end = datetime.combine(day + timedelta(days=1), time.min, tzinfo=zone)
    return DayWindow(day=day, start=start, end=end, tz_name=tz_name)


def window_for(moment: datetime, tz_name: str) -> DayWindow:
    """Window of the day containing the given moment"""
    local = as_aware_utc(moment).astimezone(get_zone(tz_name))
    return day_window(local.date(), tz_name)


def parse_day(value: str, field: str = "date") -> date:
    try:
        return date.fromisoformat(value)
    except (TypeError, ValueError):
        raise ValidationError({field: "Invalid date format, expected YYYY-MM-DD"}, "Invalid date format")


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def as_aware_utc(dt: datetime) -> datetime:
    """Naive values are taken as UTC"""
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def to_naive_utc(dt: datetime) -> datetime:
    """Naive UTC, as stored in the database"""
    return as_aware_utc(dt).replace(tzinfo=None)


def format_local(dt: Optional[datetime], tz_name: str, format_str: str = "%Y-%m-%d %H:%M:%S") -> str:
    if dt is None:
        return "N/A"
    return as_aware_utc(dt).astimezone(get_zone(tz_name)).strftime(format_str)
