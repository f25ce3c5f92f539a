"""Time utilities for consistent timestamp handling."""

from datetime import date, datetime, time, timezone
from zoneinfo import ZoneInfo


def utc_now() -> datetime:
    """Return current UTC timestamp (timezone-aware)."""
    return datetime.now(timezone.utc)


def to_utc(value: datetime) -> datetime:
    """Convert an aware datetime to UTC. Naive values are rejected."""
    if value.tzinfo is None:
        raise ValueError("naive datetime cannot be converted to UTC")
    return value.astimezone(timezone.utc)


def parse_hhmm(value: str | time | None, default: str) -> time:
    """Parse "HH:MM" (or "HH:MM:SS") into a time, falling back to default."""
    if isinstance(value, time):
        return value.replace(second=0, microsecond=0)
    raw = value or default
    parts = raw.split(":")
    return time(hour=int(parts[0]), minute=int(parts[1]) if len(parts) > 1 else 0)


def local_instant(day: date, at: time, tz_name: str) -> datetime:
    """Combine a calendar date and wall-clock time in tz_name."""
    return datetime.combine(day, at, tzinfo=ZoneInfo(tz_name))


def local_today(tz_name: str, now: datetime | None = None) -> date:
    """Return the calendar date in tz_name for now (default: current time)."""
    current = now or utc_now()
    return current.astimezone(ZoneInfo(tz_name)).date()
