from __future__ import annotations

import logging

import sqlalchemy
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from .. import database as db
from ..config import get_settings
from .alerts import send_trip_alert
from .clock import local_now
from .deadline import InvalidSlotCode, compute_deadline
from .tracking import TripTimers

settings = get_settings()
log = logging.getLogger(__name__)

# Global scheduler instance
scheduler: AsyncIOScheduler | None = None
trip_timers: TripTimers | None = None


def _deadline_passed(trip, now) -> bool:
    deadline = compute_deadline(trip.return_date, trip.return_time_slot)
    return now >= deadline


async def watch_trip(trip_id: int):
    """Per-trip timer tick: alert once the deadline passes, stop when done."""
    try:
        with db.engine.begin() as conn:
            trip = conn.execute(
                sqlalchemy.text("""
                    SELECT id, return_date, return_time_slot, is_active, alerted_at
                    FROM trips WHERE id = :trip_id
                """),
                {"trip_id": trip_id}
            ).fetchone()

        if not trip or not trip.is_active:
            log.info(f"[Scheduler] Trip {trip_id} missing or inactive, cancelling timer")
            get_trip_timers().cancel(trip_id)
            return

        if trip.alerted_at is not None:
            get_trip_timers().cancel(trip_id)
            return

        if _deadline_passed(trip, local_now()):
            log.info(f"[Scheduler] Trip {trip_id} deadline passed, sending alert")
            if await send_trip_alert(trip_id):
                get_trip_timers().cancel(trip_id)

    except Exception as e:
        log.error(f"[Scheduler] Error watching trip {trip_id}: {e}", exc_info=True)


async def check_overdue_trips():
    """Sweep all active trips and alert those past their deadline."""
    try:
        now = local_now()
        log.info(f"[Scheduler] Checking for overdue trips at {now}")

        with db.engine.begin() as conn:
            trips = conn.execute(
                sqlalchemy.text("""
                    SELECT id, return_date, return_time_slot
                    FROM trips
                    WHERE is_active = :active AND alerted_at IS NULL
                """),
                {"active": True}
            ).fetchall()

        overdue = []
        for trip in trips:
            try:
                if _deadline_passed(trip, now):
                    overdue.append(trip.id)
            except (InvalidSlotCode, ValueError) as e:
                log.error(f"[Scheduler] Trip {trip.id} has an unusable return window: {e}")

        log.info(f"[Scheduler] Found {len(overdue)} overdue trips")

        for trip_id in overdue:
            await send_trip_alert(trip_id)

    except Exception as e:
        log.error(f"Error checking overdue trips: {e}", exc_info=True)


def restore_trip_timers():
    """Register timers for every active, not yet alerted trip."""
    timers = get_trip_timers()
    with db.engine.begin() as conn:
        trips = conn.execute(
            sqlalchemy.text("""
                SELECT id, signal_strength
                FROM trips
                WHERE is_active = :active AND alerted_at IS NULL
            """),
            {"active": True}
        ).fetchall()

    for trip in trips:
        timers.start(trip.id, trip.signal_strength or "strong")

    log.info(f"[Scheduler] Restored timers for {len(trips)} active trips")


def init_scheduler() -> AsyncIOScheduler:
    """Initialize and configure the scheduler."""
    global scheduler

    if scheduler is not None:
        return scheduler

    scheduler = AsyncIOScheduler(timezone=settings.TIMEZONE)

    scheduler.add_job(
        check_overdue_trips,
        IntervalTrigger(seconds=settings.OVERDUE_CHECK_SECONDS),
        id="check_overdue",
        name="Check for overdue trips",
        replace_existing=True,
        max_instances=1,
    )

    return scheduler


def get_trip_timers() -> TripTimers:
    global trip_timers
    if trip_timers is None:
        trip_timers = TripTimers(init_scheduler(), watch_trip)
    return trip_timers


def start_scheduler():
    """Start the scheduler."""
    global scheduler
    if scheduler is None:
        scheduler = init_scheduler()

    restore_trip_timers()

    if not scheduler.running:
        scheduler.start()
        log.info("Scheduler started")


def stop_scheduler():
    """Stop the scheduler."""
    global scheduler
    if scheduler and scheduler.running:
        scheduler.shutdown()
        log.info("Scheduler stopped")
