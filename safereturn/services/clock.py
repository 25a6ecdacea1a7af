"""Wall-clock helpers for the configured service timezone."""
from __future__ import annotations

from datetime import datetime

import pytz

from ..config import get_settings

settings = get_settings()


def service_timezone():
    return pytz.timezone(settings.TIMEZONE)


def local_now() -> datetime:
    """Current naive wall-clock time in ``settings.TIMEZONE``."""
    return datetime.now(pytz.UTC).astimezone(service_timezone()).replace(tzinfo=None)


def as_wall_clock(dt: datetime) -> datetime:
    """Convert an aware datetime to naive wall clock; naive values pass through."""
    if dt.tzinfo is None:
        return dt
    return dt.astimezone(service_timezone()).replace(tzinfo=None)


def parse_datetime(value) -> datetime | None:
    """Parse a datetime column that may come back as a string (SQLite) or a datetime."""
    if value is None:
        return None
    if isinstance(value, str):
        value = datetime.fromisoformat(value.replace(' ', 'T').replace('Z', '+00:00'))
    return as_wall_clock(value)
