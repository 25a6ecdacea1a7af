"""Location update endpoints"""
import logging

import sqlalchemy
from fastapi import APIRouter, HTTPException, status
from pydantic import BaseModel, Field

from safereturn import database as db
from safereturn.api.common import to_iso8601_required
from safereturn.services.clock import local_now
from safereturn.services.scheduler import get_trip_timers
from safereturn.services.tracking import classify_signal, select_interval

log = logging.getLogger(__name__)

router = APIRouter(
    prefix="/api/v1/location-updates",
    tags=["locations"]
)


class LocationUpdateCreate(BaseModel):
    trip_id: int
    latitude: float = Field(ge=-90, le=90)
    longitude: float = Field(ge=-180, le=180)
    accuracy: float | None = None
    # Network Information API readings from the client
    effective_type: str | None = None
    downlink: float | None = None
    connection_type: str | None = None
    online: bool = True


class LocationUpdate(BaseModel):
    id: int
    trip_id: int
    latitude: float
    longitude: float
    accuracy: float | None
    timestamp: str


class LocationUpdateResponse(LocationUpdate):
    signal_strength: str
    next_update_seconds: int


def _to_location(row) -> LocationUpdate:
    return LocationUpdate(
        id=row.id,
        trip_id=row.trip_id,
        latitude=row.latitude,
        longitude=row.longitude,
        accuracy=row.accuracy,
        timestamp=to_iso8601_required(row.timestamp)
    )


@router.post("/", response_model=LocationUpdateResponse, status_code=status.HTTP_201_CREATED)
def create_location_update(body: LocationUpdateCreate):
    """Record the traveller's position and adapt the reporting interval to their signal"""
    strength = classify_signal(body.effective_type, body.downlink, body.connection_type, body.online)

    with db.engine.begin() as connection:
        trip = connection.execute(
            sqlalchemy.text("SELECT id, is_active, signal_strength FROM trips WHERE id = :trip_id"),
            {"trip_id": body.trip_id}
        ).fetchone()

        if not trip:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail="Trip not found"
            )

        if not trip.is_active:
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail="Trip is not active"
            )

        result = connection.execute(
            sqlalchemy.text(
                """
                INSERT INTO location_updates (trip_id, latitude, longitude, accuracy, timestamp)
                VALUES (:trip_id, :latitude, :longitude, :accuracy, :timestamp)
                RETURNING id
                """
            ),
            {
                "trip_id": body.trip_id,
                "latitude": body.latitude,
                "longitude": body.longitude,
                "accuracy": body.accuracy,
                "timestamp": local_now().isoformat()
            }
        )
        row = result.fetchone()
        assert row is not None
        location_id = row[0]

        signal_changed = trip.signal_strength != strength.value
        if signal_changed:
            connection.execute(
                sqlalchemy.text("UPDATE trips SET signal_strength = :strength WHERE id = :trip_id"),
                {"strength": strength.value, "trip_id": body.trip_id}
            )

        saved = connection.execute(
            sqlalchemy.text(
                """
                SELECT id, trip_id, latitude, longitude, accuracy, timestamp
                FROM location_updates WHERE id = :location_id
                """
            ),
            {"location_id": location_id}
        ).fetchone()
        assert saved is not None

    if signal_changed:
        log.info(f"[Locations] Trip {body.trip_id} signal is now {strength.value}")
        get_trip_timers().reschedule(body.trip_id, strength)

    return LocationUpdateResponse(
        **_to_location(saved).model_dump(),
        signal_strength=strength.value,
        next_update_seconds=select_interval(strength)
    )


@router.get("/trip/{trip_id}/latest", response_model=LocationUpdate)
def get_latest_location(trip_id: int):
    """Get the most recent location reported for a trip"""
    with db.engine.begin() as connection:
        update = connection.execute(
            sqlalchemy.text(
                """
                SELECT id, trip_id, latitude, longitude, accuracy, timestamp
                FROM location_updates
                WHERE trip_id = :trip_id
                ORDER BY timestamp DESC, id DESC
                LIMIT 1
                """
            ),
            {"trip_id": trip_id}
        ).fetchone()

        if not update:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail="No location updates for this trip"
            )

        return _to_location(update)
