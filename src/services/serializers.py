"""
Row to JSON-ready dict conversion.

Dates and datetimes become ISO-8601 strings so assembled trees can be cached
in Redis and returned from the API unchanged.
"""

from datetime import date, datetime
from typing import Any, Dict, Iterable, Optional


def serialize_value(value: Any) -> Any:
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    return value


def row_to_dict(row: Any, fields: Optional[Iterable[str]] = None) -> Dict[str, Any]:
    """Convert an ORM row to a dict of its column values (or only `fields`)."""
    if row is None:
        return None
    names = fields if fields is not None else [c.key for c in row.__table__.columns]
    return {name: serialize_value(getattr(row, name)) for name in names}


def rows_to_dicts(rows: Iterable[Any], fields: Optional[Iterable[str]] = None):
    fields = list(fields) if fields is not None else None
    return [row_to_dict(row, fields) for row in rows]


PUBLIC_PROFILE_FIELDS = ("id", "email", "display_name", "first_name", "last_name", "avatar_url")


def public_profile(profile: Any) -> Optional[Dict[str, Any]]:
    """Profile fields safe to show to other users."""
    if profile is None:
        return None
    return row_to_dict(profile, PUBLIC_PROFILE_FIELDS)
