"""
Centralized datetime and timezone utilities.

Timestamps are stored naive in the configured timezone. Anything coming in
from clients (share expiry, filters) goes through to_naive_local() before it
is compared with stored values.
"""

from datetime import datetime, timedelta
from typing import Optional
import pytz

from config import settings


def get_local_tz() -> pytz.BaseTzInfo:
    """Get the configured local timezone."""
    return pytz.timezone(settings.timezone)


def get_local_now() -> datetime:
    """Get current time in local timezone (naive)."""
    local_tz = get_local_tz()
    return datetime.now(local_tz).replace(tzinfo=None)


def to_naive_local(dt: Optional[datetime]) -> Optional[datetime]:
    """
    Convert any datetime to naive local time for database storage.

    Args:
        dt: Datetime to convert (can be aware or naive)

    Returns:
        Naive datetime in local timezone, or None if input is None
    """
    if dt is None:
        return None

    if dt.tzinfo is not None:
        local_tz = get_local_tz()
        return dt.astimezone(local_tz).replace(tzinfo=None)

    # Already naive, assume it's in local time
    return dt


def is_past(moment: Optional[datetime]) -> bool:
    """True if the moment lies before now. None never expires."""
    if moment is None:
        return False
    return to_naive_local(moment) < get_local_now()


def days_ago(days: int) -> datetime:
    """Naive local timestamp `days` days before now."""
    return get_local_now() - timedelta(days=days)
