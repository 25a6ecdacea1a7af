"""Return-deadline engine.

A trip's return window is stored coarsely: a calendar date plus one of four
slot codes. Each code names the hour at which its six-hour window ends:

    AM_early -> 06:00
    AM_late  -> 12:00
    PM_early -> 18:00
    PM_late  -> 00:00 of the following day

Everything here is a pure function of its arguments. Datetimes are naive
wall-clock values; callers decide which zone "wall clock" means (see
``safereturn.services.clock``).
"""
from __future__ import annotations

import enum
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from typing import NamedTuple

DEFAULT_EXTENSION_HOURS = 2
EXPIRED_LABEL = "Time's up"
DATE_FORMAT = "%Y-%m-%d"


class InvalidSlotCode(ValueError):
    """Raised when a return time slot is not one of the four known codes."""

    def __init__(self, value):
        self.value = value
        super().__init__(
            f"Invalid return time slot {value!r}; expected one of "
            f"{', '.join(code.value for code in TimeSlotCode)}"
        )


class TimeSlotCode(str, enum.Enum):
    AM_EARLY = "AM_early"
    AM_LATE = "AM_late"
    PM_EARLY = "PM_early"
    PM_LATE = "PM_late"

    @property
    def period(self) -> str:
        return self.value.split("_")[0]

    @property
    def segment(self) -> str:
        return self.value.split("_")[1]

    @classmethod
    def parse(cls, value: TimeSlotCode | str) -> TimeSlotCode:
        """Return the slot for a member or its serialized literal.

        Matching is exact: "am_early" or "AM-early" are rejected rather than
        guessed at.
        """
        if isinstance(value, cls):
            return value
        try:
            return cls(value)
        except ValueError:
            raise InvalidSlotCode(value) from None

    def __str__(self) -> str:
        return self.value


class SlotBoundary(NamedTuple):
    hour: int
    day_offset: int


class SlotClassification(NamedTuple):
    code: TimeSlotCode
    boundary_hour: int
    day_offset: int


class ReturnWindow(NamedTuple):
    return_date: date
    slot: TimeSlotCode

    def serialize(self) -> dict[str, str]:
        return {
            "returnDate": self.return_date.strftime(DATE_FORMAT),
            "returnTimeSlot": self.slot.value,
        }


_BOUNDARIES: dict[TimeSlotCode, SlotBoundary] = {
    TimeSlotCode.AM_EARLY: SlotBoundary(6, 0),
    TimeSlotCode.AM_LATE: SlotBoundary(12, 0),
    TimeSlotCode.PM_EARLY: SlotBoundary(18, 0),
    TimeSlotCode.PM_LATE: SlotBoundary(0, 1),
}

# Half-open [start, end) hour ranges, checked in order.
_QUADRANTS: tuple[tuple[int, int, TimeSlotCode], ...] = (
    (0, 6, TimeSlotCode.AM_EARLY),
    (6, 12, TimeSlotCode.AM_LATE),
    (12, 18, TimeSlotCode.PM_EARLY),
    (18, 24, TimeSlotCode.PM_LATE),
)


def slot_to_boundary(code: TimeSlotCode | str) -> SlotBoundary:
    """Look up the boundary hour and day offset a slot code denotes."""
    return _BOUNDARIES[TimeSlotCode.parse(code)]


def hour_to_slot(hour: int) -> SlotClassification:
    """Classify an hour of day into the slot whose window contains it.

    The hour is reduced modulo 24 first. Note that a slot's own boundary hour
    is not a fixed point: hour 0 (PM_late's boundary) classifies as AM_early,
    hour 6 as AM_late, and so on. Each boundary opens the next window.
    """
    hour = int(hour) % 24
    for start, end, code in _QUADRANTS:
        if start <= hour < end:
            boundary = _BOUNDARIES[code]
            return SlotClassification(code, boundary.hour, boundary.day_offset)
    raise AssertionError(f"hour {hour} not covered by any slot")  # pragma: no cover


def parse_return_date(value: date | str) -> date:
    """Accept a ``date`` (or ``datetime``) or a ``YYYY-MM-DD`` string."""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return datetime.strptime(value, DATE_FORMAT).date()
    except (TypeError, ValueError):
        raise ValueError(f"Invalid return date {value!r}; expected YYYY-MM-DD") from None


def compute_deadline(return_date: date | str, slot: TimeSlotCode | str) -> datetime:
    """Resolve a stored return window to the absolute deadline.

    >>> compute_deadline("2024-06-15", "PM_late")
    datetime.datetime(2024, 6, 16, 0, 0)
    """
    day = parse_return_date(return_date)
    boundary = slot_to_boundary(slot)
    deadline = datetime.combine(day, time(hour=boundary.hour))
    if boundary.day_offset:
        deadline += timedelta(days=boundary.day_offset)
    return deadline


@dataclass(frozen=True)
class Countdown:
    remaining: timedelta
    total_duration: timedelta
    elapsed_fraction: float

    @property
    def expired(self) -> bool:
        return self.remaining <= timedelta(0)

    @property
    def label(self) -> str:
        return format_remaining(self.remaining)


def countdown(now: datetime, deadline: datetime, trip_start: datetime) -> Countdown:
    """Remaining time and progress for a trip.

    A negative ``remaining`` means the deadline has passed. When the trip
    window is empty or inverted, or the clock reads earlier than the trip
    start, progress is reported as 0 rather than raising.
    """
    remaining = deadline - now
    total_duration = deadline - trip_start

    elapsed_fraction = 0.0
    if total_duration > timedelta(0):
        elapsed = (total_duration - remaining) / total_duration
        elapsed_fraction = min(max(elapsed, 0.0), 1.0)

    return Countdown(
        remaining=remaining,
        total_duration=total_duration,
        elapsed_fraction=elapsed_fraction,
    )


def format_remaining(remaining: timedelta) -> str:
    if remaining <= timedelta(0):
        return EXPIRED_LABEL

    total_minutes = int(remaining.total_seconds()) // 60
    hours, minutes = divmod(total_minutes, 60)
    if hours > 0:
        return f"{hours}h {minutes}m"
    return f"{minutes}m"


def extend_deadline(
    current_deadline: datetime,
    delta_hours: float,
    return_date_basis: date | str | None = None,
) -> ReturnWindow:
    """Push a deadline back by ``delta_hours`` and snap it to a slot boundary.

    The shifted instant is rounded forward to the end of the slot window it
    lands in, so the time actually added is usually more than requested:
    05:30 + 2h = 07:30, which falls in AM_late and becomes 12:00.

    The returned date is the shifted instant's calendar date, so passing the
    result back through ``compute_deadline`` yields the snapped instant
    (PM_late carries its own +1 day).

    ``return_date_basis`` is accepted so callers can pass the stored window
    through unchanged; the new window depends only on the shifted instant.
    """
    shifted = current_deadline + timedelta(hours=delta_hours)
    classification = hour_to_slot(shifted.hour)
    return ReturnWindow(shifted.date(), classification.code)
