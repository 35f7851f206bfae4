"""Utility functions for time handling.

All timestamps should be UTC and timezone-aware. Persist UTC timestamps as
integer microseconds since the Unix epoch via to_epoch_us() so that SQLite
ordering comparisons are exact.
"""

from __future__ import annotations

from datetime import date, datetime, time, timedelta, timezone
from typing import Any

EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


def utc_now() -> datetime:
    """Return current UTC time as an aware datetime."""
    return datetime.now(timezone.utc)


def iso_now(*, timespec: str | None = None) -> str:
    """Return current UTC time as an ISO8601 string (timezone-aware)."""
    now = utc_now()
    if timespec:
        return now.isoformat(timespec=timespec)
    return now.isoformat()


def ensure_utc(dt: datetime) -> datetime:
    """Return *dt* as an aware UTC datetime (naive values are assumed UTC)."""
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def to_epoch_us(dt: datetime) -> int:
    """Microseconds since the Unix epoch, exact for any aware datetime."""
    delta = ensure_utc(dt) - EPOCH
    return (delta.days * 86_400 + delta.seconds) * 1_000_000 + delta.microseconds


def from_epoch_us(value: int) -> datetime:
    return EPOCH + timedelta(microseconds=int(value))


def unix_seconds(dt: datetime) -> int:
    """Whole seconds since the Unix epoch; anything at or before the epoch maps to 0."""
    dt = ensure_utc(dt)
    if dt <= EPOCH:
        return 0
    return int((dt - EPOCH).total_seconds())


def end_of_day(day: date) -> datetime:
    """Day marker used by history blocks: the last microsecond of *day* in UTC."""
    return datetime.combine(day, time.max, tzinfo=timezone.utc)


def coerce_datetime(value: Any) -> datetime | None:
    """
    Coerce value to datetime, returning None on failure.

    Args:
        value: String or datetime to coerce

    Returns:
        Datetime in timezone.utc or None if invalid
    """
    if value is None:
        return None

    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, str):
        raw = value.strip()
        if raw.endswith("Z"):
            raw = raw.replace("Z", "+00:00")
        try:
            parsed = datetime.fromisoformat(raw)
        except ValueError:
            return None
    else:
        return None

    return ensure_utc(parsed)
