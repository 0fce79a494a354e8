"""
Time parsing and timezone normalization.

TripWeaver treats all input/output timestamps as timezone-aware datetimes. Internally the
scheduler works in integer minutes:
- day-local minutes (0..1440) for clock arithmetic inside one calendar day
- cumulative minutes since the trip-start midnight for anything spanning days
"""

from __future__ import annotations

from datetime import date, datetime, time, timedelta
from zoneinfo import ZoneInfo

MINUTES_PER_DAY = 24 * 60


def ensure_tz(dt: datetime, timezone: str) -> datetime:
    """Ensure `dt` has tzinfo; attach `timezone` if naive."""
    if dt.tzinfo is None:
        return dt.replace(tzinfo=ZoneInfo(timezone))
    return dt


def parse_clock(value: str) -> int:
    """Parse `HH:MM` into minutes since midnight (24:00 is allowed as end of day)."""
    try:
        hours_text, minutes_text = value.strip().split(":", 1)
        hours, minutes = int(hours_text), int(minutes_text)
    except ValueError as e:
        raise ValueError(f"Invalid clock time '{value}', expected HH:MM") from e
    if not (0 <= minutes < 60) or not (0 <= hours <= 24) or (hours == 24 and minutes):
        raise ValueError(f"Invalid clock time '{value}', expected HH:MM")
    return hours * 60 + minutes


def format_clock(minute: int) -> str:
    minute = max(0, min(MINUTES_PER_DAY, int(minute)))
    return f"{minute // 60:02d}:{minute % 60:02d}"


def trip_origin(trip_start: date, timezone: str) -> datetime:
    """Absolute origin for cumulative minutes: midnight of the first trip day."""
    return datetime.combine(trip_start, time(0, 0), tzinfo=ZoneInfo(timezone))


def to_cumulative_minutes(dt: datetime, origin: datetime) -> int:
    """Minutes between `origin` and `dt`, measured in the origin's timezone."""
    local = ensure_tz(dt, str(origin.tzinfo)).astimezone(origin.tzinfo)
    local_day = (local.date() - origin.date()).days
    return local_day * MINUTES_PER_DAY + local.hour * 60 + local.minute


def split_cumulative(minute: int) -> tuple[int, int]:
    """Cumulative minutes -> (1-based day number, day-local minute)."""
    day_index, local = divmod(int(minute), MINUTES_PER_DAY)
    return day_index + 1, local


def day_minute_to_datetime(day_date: date, minute: int, timezone: str) -> datetime:
    """Render a day-local minute as an absolute datetime.

    Minute 1440 (end of day) is rendered as 23:59:59 of the same day so split parts never
    spill onto the next calendar date.
    """
    tz = ZoneInfo(timezone)
    if minute >= MINUTES_PER_DAY:
        return datetime.combine(day_date, time(23, 59, 59), tzinfo=tz)
    base = datetime.combine(day_date, time(0, 0), tzinfo=tz)
    return base + timedelta(minutes=max(0, int(minute)))
