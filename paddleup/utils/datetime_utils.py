"""
Datetime utility functions.
Provides replacements for deprecated datetime functions.
"""

from datetime import datetime
from typing import Optional
import pytz


def utcnow() -> datetime:
    """
    Get current UTC datetime using pytz.UTC.

    Returns:
        Current UTC datetime with pytz timezone information
    """
    return datetime.now(pytz.UTC)


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """
    Return a timezone-aware UTC datetime.

    Some drivers (SQLite) hand back naive datetimes for timezone-aware
    columns; those are stored in UTC, so they are tagged rather than shifted.

    Args:
        value: Datetime from the database or a request, or None

    Returns:
        The same instant as an aware UTC datetime, or None
    """
    if value is None:
        return None
    if value.tzinfo is None:
        return pytz.UTC.localize(value)
    return value.astimezone(pytz.UTC)


def isoformat(value: Optional[datetime]) -> Optional[str]:
    """ISO-8601 string for a datetime column, or None."""
    value = as_utc(value)
    return value.isoformat() if value else None
