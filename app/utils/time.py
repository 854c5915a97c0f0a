"""Clock-face and timezone helpers shared by the scheduling engine.

All "what time is it now" decisions are made in the business timezone. Stored
instants are UTC; naive values read back from the database are treated as UTC.
"""

import re
from datetime import date, datetime, time, timedelta, timezone
from typing import Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

TIME_PATTERN = re.compile(r"^([0-1][0-9]|2[0-3]):([0-5][0-9])$")

MINUTES_PER_DAY = 24 * 60


def time_to_minutes(value: str) -> int:
    """Convert ``"HH:MM"`` into minutes after midnight."""
    match = TIME_PATTERN.match(value or "")
    if not match:
        raise ValueError(f"Invalid time of day: {value!r} (expected HH:MM)")
    return int(match.group(1)) * 60 + int(match.group(2))


def minutes_to_time(minutes: int) -> str:
    """Convert minutes after midnight into ``"HH:MM"``.

    ``1440`` is accepted and rendered as ``"24:00"`` so an interval can end at
    midnight.
    """
    if minutes < 0 or minutes > MINUTES_PER_DAY:
        raise ValueError(f"Minutes out of range for a single day: {minutes}")
    return f"{minutes // 60:02d}:{minutes % 60:02d}"


def is_valid_time(value: str) -> bool:
    return bool(TIME_PATTERN.match(value or ""))


def get_zone(tz_name: str) -> ZoneInfo:
    try:
        return ZoneInfo(tz_name)
    except (ZoneInfoNotFoundError, ValueError, TypeError):
        raise ValueError(f"Invalid timezone: {tz_name}")


def as_utc(value: datetime) -> datetime:
    """Normalise an instant to aware UTC (naive values are assumed UTC)."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def now_in_timezone(tz_name: str, now: Optional[datetime] = None) -> datetime:
    return as_utc(now or utc_now()).astimezone(get_zone(tz_name))


def current_minutes_in_timezone(tz_name: str, now: Optional[datetime] = None) -> int:
    local_now = now_in_timezone(tz_name, now)
    return local_now.hour * 60 + local_now.minute


def today_in_timezone(tz_name: str, now: Optional[datetime] = None) -> date:
    return now_in_timezone(tz_name, now).date()


def to_local(value: datetime, tz_name: str) -> datetime:
    return as_utc(value).astimezone(get_zone(tz_name))


def combine_local(day: date, time_of_day: str, tz_name: str) -> datetime:
    """Build the UTC instant for a wall-clock time on a date in ``tz_name``."""
    minutes = time_to_minutes(time_of_day)
    local = datetime.combine(day, time(minutes // 60, minutes % 60))
    return local.replace(tzinfo=get_zone(tz_name)).astimezone(timezone.utc)


def local_day_bounds(day: date, tz_name: str) -> tuple[datetime, datetime]:
    """UTC instants covering the local calendar day ``[start, end)``."""
    zone = get_zone(tz_name)
    start = datetime.combine(day, time.min).replace(tzinfo=zone)
    end = datetime.combine(day + timedelta(days=1), time.min).replace(tzinfo=zone)
    return start.astimezone(timezone.utc), end.astimezone(timezone.utc)


def minutes_of_day(value: datetime, tz_name: str) -> int:
    local = to_local(value, tz_name)
    return local.hour * 60 + local.minute


def weekday_sunday_first(day: date) -> int:
    """Weekday number with Sunday as 0 and Saturday as 6."""
    return (day.weekday() + 1) % 7


def parse_date(value: str) -> date:
    try:
        return date.fromisoformat(value)
    except (TypeError, ValueError):
        raise ValueError(f"Invalid date: {value!r} (expected YYYY-MM-DD)")


def date_range(start: date, end: date) -> list[date]:
    """Every calendar date from ``start`` to ``end`` inclusive."""
    return [start + timedelta(days=i) for i in range((end - start).days + 1)]
