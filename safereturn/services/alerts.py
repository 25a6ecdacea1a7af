from __future__ import annotations

import json
import logging
from typing import Any

import sqlalchemy

from .. import database as db
from ..messaging.sms import send_sms
from .clock import local_now
from .geocoding import reverse_geocode

log = logging.getLogger(__name__)

NOT_AVAILABLE = "Not available"
DESTINATION_RADIUS_KM = 10


def describe_location(location: dict[str, Any] | None) -> str:
    """Render a location as its address, else "lat, lng", else a placeholder."""
    if not location:
        return NOT_AVAILABLE
    if location.get("address"):
        return location["address"]
    if location.get("lat") is not None and location.get("lng") is not None:
        return f"{location['lat']}, {location['lng']}"
    return NOT_AVAILABLE


def build_alert_message(last_location: dict[str, Any] | None, destination: dict[str, Any] | None) -> str:
    """Build the SMS sent to emergency contacts when a return is not confirmed.

    Args:
        last_location: {"lat", "lng", "address"?} of the last saved position, or None
        destination: {"lat", "lng", "address"?} of the trip destination, or None
    """
    return (
        "Safety alert\n"
        "This is an automated message from SafeReturn.\n\n"
        "The user's expected return time has passed and their return has not been confirmed. "
        "Please contact them to make sure they are safe and, if needed, escalate to the "
        "relevant authorities.\n\n"
        "Last saved location:\n"
        f"{describe_location(last_location)}\n\n"
        f"Destination set by the user (within a {DESTINATION_RADIUS_KM} km radius):\n"
        f"{describe_location(destination)}"
    )


def parse_contact_phones(value) -> list[str]:
    """Parse the stored selected_contact_ids column (JSON list of phones)."""
    if isinstance(value, list):
        return value
    if not value:
        return []
    return json.loads(value)


def _record_event(conn, trip_id: int, what: str):
    conn.execute(
        sqlalchemy.text("""
            INSERT INTO events (trip_id, what, timestamp)
            VALUES (:trip_id, :what, :timestamp)
        """),
        {"trip_id": trip_id, "what": what, "timestamp": local_now().isoformat()}
    )


async def send_trip_alert(trip_id: int) -> bool:
    """Send the overdue alert for a trip to its selected contacts.

    The trip is claimed by setting alerted_at before anything is sent, so a
    timer tick and the overdue sweep racing on the same trip send once. If
    every SMS fails the claim is released and a later sweep retries.

    Returns:
        True if at least one contact was messaged
    """
    now = local_now()

    with db.engine.begin() as conn:
        claimed = conn.execute(
            sqlalchemy.text("""
                UPDATE trips SET alerted_at = :now
                WHERE id = :trip_id AND is_active = :active AND alerted_at IS NULL
            """),
            {"now": now.isoformat(), "trip_id": trip_id, "active": True}
        )
        if claimed.rowcount != 1:
            log.info(f"[Alerts] Trip {trip_id} is inactive, missing or already alerted, skipping")
            return False

        trip = conn.execute(
            sqlalchemy.text("""
                SELECT id, destination_lat, destination_lng, selected_contact_ids
                FROM trips WHERE id = :trip_id
            """),
            {"trip_id": trip_id}
        ).fetchone()

        last_update = conn.execute(
            sqlalchemy.text("""
                SELECT latitude, longitude
                FROM location_updates
                WHERE trip_id = :trip_id
                ORDER BY timestamp DESC, id DESC
                LIMIT 1
            """),
            {"trip_id": trip_id}
        ).fetchone()

    phones = parse_contact_phones(trip.selected_contact_ids)

    last_location = None
    if last_update:
        last_location = {"lat": last_update.latitude, "lng": last_update.longitude}
        last_location["address"] = await reverse_geocode(last_update.latitude, last_update.longitude)

    destination = None
    if trip.destination_lat is not None and trip.destination_lng is not None:
        destination = {"lat": trip.destination_lat, "lng": trip.destination_lng}
        destination["address"] = await reverse_geocode(trip.destination_lat, trip.destination_lng)

    message = build_alert_message(last_location, destination)

    sent = 0
    for phone in phones:
        result = await send_sms(phone, message)
        if result.success:
            sent += 1
        else:
            log.warning(f"[Alerts] Trip {trip_id}: SMS to {phone} failed: {result.error}")

    with db.engine.begin() as conn:
        if sent:
            _record_event(conn, trip_id, "alert")
            log.info(f"[Alerts] Trip {trip_id}: alert sent to {sent}/{len(phones)} contacts")
        else:
            conn.execute(
                sqlalchemy.text("UPDATE trips SET alerted_at = NULL WHERE id = :trip_id"),
                {"trip_id": trip_id}
            )
            _record_event(conn, trip_id, "alert_failed")
            log.error(f"[Alerts] Trip {trip_id}: no alert could be delivered to {len(phones)} contacts")

    return sent > 0
