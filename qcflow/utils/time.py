"""Time Utilities - UTC timestamps and durations"""
from datetime import datetime, timezone, timedelta
from typing import Optional


def utc_now() -> datetime:
    """Get current UTC datetime"""
    return datetime.now(timezone.utc)


def ensure_utc(dt: datetime) -> datetime:
    """Attach UTC to naive datetimes (Mongo and older records store naive UTC)"""
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt


def format_iso(dt: datetime) -> str:
    """
    Format datetime to ISO 8601 string

    Args:
        dt: Datetime object

    Returns:
        ISO formatted string with Z suffix for UTC
    """
    return ensure_utc(dt).isoformat().replace("+00:00", "Z")


def add_hours(dt: datetime, hours: float) -> datetime:
    """Add (possibly fractional) hours to datetime"""
    return dt + timedelta(hours=hours)


def hours_between(start: datetime, end: datetime) -> float:
    """Elapsed hours from start to end"""
    return (ensure_utc(end) - ensure_utc(start)).total_seconds() / 3600


def is_expired(deadline: Optional[datetime], now: Optional[datetime] = None) -> bool:
    """
    Check if a deadline has been reached

    Args:
        deadline: Deadline or None
        now: Reference time (defaults to current UTC time)

    Returns:
        True if deadline <= now, False if no deadline
    """
    if deadline is None:
        return False
    return ensure_utc(deadline) <= ensure_utc(now or utc_now())
