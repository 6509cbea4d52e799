"""Utility modules for Roadmap Canvas."""

from .datetime_utils import (
    get_local_tz,
    get_local_now,
    to_naive_local,
    is_past,
    days_ago,
)

__all__ = [
    "get_local_tz",
    "get_local_now",
    "to_naive_local",
    "is_past",
    "days_ago",
]
