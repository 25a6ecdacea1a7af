"""Helpers shared by the API routers"""
import json
from datetime import datetime


def parse_json_field(value, expected_type):
    """Parse JSON field from database, handling both parsed and string forms."""
    if isinstance(value, expected_type):
        return value
    return json.loads(value)


def to_iso8601(dt: datetime | str | None) -> str | None:
    """Convert datetime to ISO8601 string format, handling both datetime objects and strings"""
    if dt is None:
        return None
    if isinstance(dt, datetime):
        return dt.isoformat()
    try:
        # SQLite hands back stored strings, sometimes space-separated
        parsed = datetime.fromisoformat(dt.replace(' ', 'T').replace('Z', '+00:00'))
        return parsed.isoformat()
    except (ValueError, AttributeError):
        return dt


def to_iso8601_required(dt: datetime | str | None) -> str:
    """Convert datetime to ISO8601 string, raises if None."""
    result = to_iso8601(dt)
    if result is None:
        raise ValueError("Required datetime field is None")
    return result
