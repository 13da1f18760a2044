"""Utilities for working with timestamps and calendar dates in UTC."""

from __future__ import annotations

from datetime import date, datetime, time, timezone
from typing import Optional, Union

DateLike = Union[date, datetime, str]


def utc_now() -> datetime:
    """Return the current time as a timezone-aware ``datetime`` in UTC."""

    return datetime.now(timezone.utc)


def ensure_utc(dt: datetime) -> datetime:
    """Normalise ``dt`` to a timezone-aware UTC ``datetime``."""

    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def format_date(value: Optional[DateLike]) -> Optional[str]:
    """Render ``value`` as ``YYYY-MM-DD`` using the UTC calendar day.

    Datetimes are converted to UTC before the date is taken so a value stored
    as midnight UTC never renders as the previous day on hosts with a negative
    UTC offset.  Strings are parsed as ISO 8601 first.
    """

    if value is None:
        return None
    if isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            value = datetime.fromisoformat(text)
        except ValueError:
            value = date.fromisoformat(text[:10])
    if isinstance(value, datetime):
        return ensure_utc(value).date().isoformat()
    return value.isoformat()


def format_time(value: Optional[Union[time, str]]) -> Optional[str]:
    """Render ``value`` as ``HH:MM:SS``."""

    if value is None:
        return None
    if isinstance(value, str):
        return value
    return value.replace(microsecond=0).strftime("%H:%M:%S")


__all__ = ["utc_now", "ensure_utc", "format_date", "format_time"]
