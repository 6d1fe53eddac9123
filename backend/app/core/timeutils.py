"""
Time helpers for the tracking engine.

All timestamps are stored and compared in UTC. The operational timezone is
only used to decide what "today" and the daily cutoff mean.
"""

from datetime import date, datetime, time, timedelta, timezone
from typing import Optional, Tuple
from zoneinfo import ZoneInfo

from backend.app.core.config import settings


def utcnow() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """
    Normalize a datetime to aware UTC.

    Naive values are treated as UTC (SQLite returns stored values naive).
    """
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def operational_tz(tz_name: str = None) -> ZoneInfo:
    return ZoneInfo(tz_name or settings.operational_timezone)


def local_today(now: Optional[datetime] = None, tz_name: str = None) -> date:
    """The current date in the operational timezone."""
    return as_utc(now or utcnow()).astimezone(operational_tz(tz_name)).date()


def local_day_bounds(day: date, tz_name: str = None) -> Tuple[datetime, datetime]:
    """
    UTC bounds of a local calendar day.

    Returns:
        (start, end) where end is the last microsecond of the day
    """
    tz = operational_tz(tz_name)
    start = datetime.combine(day, time.min, tzinfo=tz)
    end = datetime.combine(day + timedelta(days=1), time.min, tzinfo=tz) - timedelta(microseconds=1)
    return as_utc(start), as_utc(end)


def local_instant(day: date, at: time, tz_name: str = None) -> datetime:
    """UTC instant of a local wall-clock time on a given day."""
    return as_utc(datetime.combine(day, at, tzinfo=operational_tz(tz_name)))


def parse_clock(value: str) -> time:
    """Parse an "HH:MM" or "HH:MM:SS" string."""
    return time.fromisoformat(value)


def whole_minutes(start: datetime, end: datetime) -> int:
    """Whole minutes elapsed between two instants, truncated."""
    return int((as_utc(end) - as_utc(start)).total_seconds() // 60)
