# tightbudget/timeutil.py
"""Conversions between epoch milliseconds and timezone-aware datetimes.

Every timestamp stored on a record is an integer count of milliseconds since
the Unix epoch. Datetimes handed out by this package are always UTC-aware.
"""
from __future__ import annotations

import time
from datetime import date, datetime, timedelta, timezone

MILLIS_PER_DAY = 86_400_000

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


def now_millis() -> int:
    return time.time_ns() // 1_000_000


def from_millis(millis: int) -> datetime:
    # timedelta arithmetic keeps every millisecond exact, unlike float seconds
    return _EPOCH + timedelta(milliseconds=int(millis))


def to_millis(value) -> int:
    """Return epoch milliseconds for a datetime, date or ISO string.

    Naive datetimes and plain dates are interpreted as UTC.
    """
    if isinstance(value, str):
        value = datetime.fromisoformat(value)
    if isinstance(value, datetime):
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
    elif isinstance(value, date):
        value = datetime(value.year, value.month, value.day, tzinfo=timezone.utc)
    else:
        raise TypeError(f"Cannot convert {value!r} to epoch milliseconds")
    return (value - _EPOCH) // timedelta(milliseconds=1)


def utc_day_key(millis: int) -> str:
    """Calendar day (UTC) of a timestamp as ``YYYY-MM-DD``."""
    return from_millis(millis).date().isoformat()
