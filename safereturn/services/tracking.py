"""Location reporting policy and per-trip timers.

Clients report network conditions with each location update. A weak signal
shortens the reporting interval so a last-known position stays fresh when
coverage is patchy.
"""
from __future__ import annotations

import enum
import logging

from apscheduler.triggers.interval import IntervalTrigger

from ..config import get_settings

settings = get_settings()
log = logging.getLogger(__name__)

WEAK_EFFECTIVE_TYPES = {"slow-2g", "2g"}


class SignalStrength(str, enum.Enum):
    WEAK = "weak"
    STRONG = "strong"


def classify_signal(
    effective_type: str | None = None,
    downlink: float | None = None,
    connection_type: str | None = None,
    online: bool = True,
) -> SignalStrength:
    """Classify browser Network Information readings into a signal tier.

    Args:
        effective_type: "slow-2g", "2g", "3g" or "4g"
        downlink: Estimated bandwidth in Mbps
        connection_type: "cellular", "wifi", ...
        online: navigator.onLine

    Returns:
        SignalStrength.WEAK or SignalStrength.STRONG
    """
    if effective_type and effective_type.lower() in WEAK_EFFECTIVE_TYPES:
        return SignalStrength.WEAK
    if downlink and downlink < 1:
        return SignalStrength.WEAK
    if connection_type == "cellular" and downlink and downlink < 2:
        return SignalStrength.WEAK
    if not online:
        return SignalStrength.WEAK
    return SignalStrength.STRONG


def select_interval(strength: SignalStrength | str) -> int:
    """Seconds between location reports for a signal tier."""
    if SignalStrength(strength) is SignalStrength.WEAK:
        return settings.TRACKING_INTERVAL_WEAK_SECONDS
    return settings.TRACKING_INTERVAL_STRONG_SECONDS


class TripTimers:
    """One cancellable interval job per tracked trip.

    ``job_func`` is called with the trip id on every tick.
    """

    def __init__(self, scheduler, job_func):
        self.scheduler = scheduler
        self.job_func = job_func

    @staticmethod
    def job_id(trip_id: int) -> str:
        return f"trip-watch-{trip_id}"

    def start(self, trip_id: int, strength: SignalStrength | str = SignalStrength.STRONG):
        """Start (or replace) the timer for a trip."""
        interval = select_interval(strength)
        if self.is_tracking(trip_id):
            self.scheduler.remove_job(self.job_id(trip_id))
        self.scheduler.add_job(
            self.job_func,
            IntervalTrigger(seconds=interval),
            args=[trip_id],
            id=self.job_id(trip_id),
            name=f"Watch trip {trip_id}",
            replace_existing=True,
            max_instances=1,
            coalesce=True,
        )
        log.info(f"[Tracking] Timer started for trip {trip_id} every {interval}s")

    def reschedule(self, trip_id: int, strength: SignalStrength | str):
        """Switch a trip's timer to the interval for ``strength``."""
        interval = select_interval(strength)
        if self.interval_for(trip_id) == interval:
            return
        if not self.is_tracking(trip_id):
            self.start(trip_id, strength)
            return
        self.scheduler.reschedule_job(self.job_id(trip_id), trigger=IntervalTrigger(seconds=interval))
        log.info(f"[Tracking] Timer for trip {trip_id} now every {interval}s")

    def cancel(self, trip_id: int) -> bool:
        """Stop a trip's timer. Returns False if none was running."""
        if not self.is_tracking(trip_id):
            return False
        self.scheduler.remove_job(self.job_id(trip_id))
        log.info(f"[Tracking] Timer cancelled for trip {trip_id}")
        return True

    def is_tracking(self, trip_id: int) -> bool:
        return self.scheduler.get_job(self.job_id(trip_id)) is not None

    def interval_for(self, trip_id: int) -> int | None:
        job = self.scheduler.get_job(self.job_id(trip_id))
        if job is None:
            return None
        return int(job.trigger.interval.total_seconds())
