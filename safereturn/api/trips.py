"""Trip management endpoints"""
import json
import logging
import math

import sqlalchemy
from fastapi import APIRouter, HTTPException, status
from pydantic import BaseModel

from safereturn import database as db
from safereturn.api.common import parse_json_field, to_iso8601, to_iso8601_required
from safereturn.config import get_settings
from safereturn.services.clock import local_now, parse_datetime
from safereturn.services.deadline import (
    DATE_FORMAT,
    InvalidSlotCode,
    TimeSlotCode,
    compute_deadline,
    countdown,
    extend_deadline,
    parse_return_date,
)
from safereturn.services.scheduler import get_trip_timers

settings = get_settings()
log = logging.getLogger(__name__)

router = APIRouter(
    prefix="/api/v1/trips",
    tags=["trips"]
)

TRIP_COLUMNS = """
    id, user_profile_id, destination_lat, destination_lng, return_date, return_time_slot,
    selected_contact_ids, is_active, signal_strength, alerted_at, ended_at, created_at
"""


class TripCreate(BaseModel):
    user_profile_id: int
    destination_lat: float | None = None
    destination_lng: float | None = None
    return_date: str  # YYYY-MM-DD
    return_time_slot: str  # AM_early | AM_late | PM_early | PM_late
    selected_contact_ids: list[str]  # Contact phone numbers


class TripUpdate(BaseModel):
    """Partial update. All fields are optional."""
    return_date: str | None = None
    return_time_slot: str | None = None
    is_active: bool | None = None


class TripResponse(BaseModel):
    id: int
    user_profile_id: int
    destination_lat: float | None
    destination_lng: float | None
    return_date: str
    return_time_slot: str
    selected_contact_ids: list[str]
    is_active: bool
    signal_strength: str
    alerted_at: str | None
    ended_at: str | None
    created_at: str
    deadline: str


class ExtensionResponse(BaseModel):
    ok: bool
    trip_id: int
    return_date: str
    return_time_slot: str
    previous_deadline: str
    new_deadline: str
    requested_hours: float
    added_hours: float


class CountdownResponse(BaseModel):
    trip_id: int
    now: str
    deadline: str
    started_at: str
    remaining_seconds: int
    total_seconds: int
    elapsed_fraction: float
    label: str
    expired: bool
    is_active: bool


class TimelineEvent(BaseModel):
    id: int
    kind: str
    at: str
    extended_by_hours: float | None


def validate_return_window(return_date: str, return_time_slot: str) -> tuple[str, TimeSlotCode]:
    """Normalize a date + slot pair, raising 400 on anything malformed."""
    try:
        day = parse_return_date(return_date)
        slot = TimeSlotCode.parse(return_time_slot)
        compute_deadline(day, slot)
    except InvalidSlotCode as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    except OverflowError:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Return date is out of range")
    return day.strftime(DATE_FORMAT), slot


def _fetch_trip(connection, trip_id: int):
    trip = connection.execute(
        sqlalchemy.text(f"SELECT {TRIP_COLUMNS} FROM trips WHERE id = :trip_id"),
        {"trip_id": trip_id}
    ).fetchone()

    if not trip:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Trip not found"
        )
    return trip


def _to_response(trip) -> TripResponse:
    deadline = compute_deadline(trip.return_date, trip.return_time_slot)
    return TripResponse(
        id=trip.id,
        user_profile_id=trip.user_profile_id,
        destination_lat=trip.destination_lat,
        destination_lng=trip.destination_lng,
        return_date=trip.return_date,
        return_time_slot=trip.return_time_slot,
        selected_contact_ids=parse_json_field(trip.selected_contact_ids, list),
        is_active=bool(trip.is_active),
        signal_strength=trip.signal_strength,
        alerted_at=to_iso8601(trip.alerted_at),
        ended_at=to_iso8601(trip.ended_at),
        created_at=to_iso8601_required(trip.created_at),
        deadline=deadline.isoformat()
    )


def _log_event(connection, trip_id: int, what: str, extended_by_hours: float | None = None):
    connection.execute(
        sqlalchemy.text(
            """
            INSERT INTO events (trip_id, what, timestamp, extended_by_hours)
            VALUES (:trip_id, :what, :timestamp, :extended_by_hours)
            """
        ),
        {
            "trip_id": trip_id,
            "what": what,
            "timestamp": local_now().isoformat(),
            "extended_by_hours": extended_by_hours
        }
    )


@router.post("/", response_model=TripResponse, status_code=status.HTTP_201_CREATED)
def create_trip(body: TripCreate):
    """Activate the service: store the return window and contacts to alert"""
    log.info(f"[Trips] Creating trip for profile {body.user_profile_id}")
    log.info(f"[Trips] return_date={body.return_date}, slot={body.return_time_slot}")

    return_date, slot = validate_return_window(body.return_date, body.return_time_slot)

    # Keep selection order, drop duplicates
    phones = list(dict.fromkeys(p.strip() for p in body.selected_contact_ids if p.strip()))
    if len(phones) < settings.MIN_TRIP_CONTACTS:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"At least {settings.MIN_TRIP_CONTACTS} emergency contacts must be selected"
        )

    with db.engine.begin() as connection:
        profile = connection.execute(
            sqlalchemy.text("SELECT id FROM user_profiles WHERE id = :profile_id"),
            {"profile_id": body.user_profile_id}
        ).fetchone()

        if not profile:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail="Profile not found"
            )

        known_phones = {
            row.phone for row in connection.execute(
                sqlalchemy.text("SELECT phone FROM contacts WHERE user_profile_id = :profile_id"),
                {"profile_id": body.user_profile_id}
            ).fetchall()
        }
        unknown = [p for p in phones if p not in known_phones]
        if unknown:
            log.warning(f"[Trips] Unknown contacts selected: {unknown}")
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail=f"Selected contacts not found: {', '.join(unknown)}"
            )

        result = connection.execute(
            sqlalchemy.text(
                """
                INSERT INTO trips (
                    user_profile_id, destination_lat, destination_lng,
                    return_date, return_time_slot, selected_contact_ids,
                    is_active, signal_strength, created_at
                ) VALUES (
                    :user_profile_id, :destination_lat, :destination_lng,
                    :return_date, :return_time_slot, :selected_contact_ids,
                    :is_active, 'strong', :created_at
                )
                RETURNING id
                """
            ),
            {
                "user_profile_id": body.user_profile_id,
                "destination_lat": body.destination_lat,
                "destination_lng": body.destination_lng,
                "return_date": return_date,
                "return_time_slot": slot.value,
                "selected_contact_ids": json.dumps(phones),
                "is_active": True,
                "created_at": local_now().isoformat()
            }
        )
        row = result.fetchone()
        assert row is not None
        trip_id = row[0]

        _log_event(connection, trip_id, "created")
        trip = _fetch_trip(connection, trip_id)

    get_trip_timers().start(trip_id)
    log.info(f"[Trips] Trip {trip_id} created, deadline {compute_deadline(return_date, slot)}")
    return _to_response(trip)


@router.get("/profile/{profile_id}", response_model=list[TripResponse])
def get_active_trips(profile_id: int):
    """Get the active trips of a profile"""
    with db.engine.begin() as connection:
        trips = connection.execute(
            sqlalchemy.text(
                f"""
                SELECT {TRIP_COLUMNS}
                FROM trips
                WHERE user_profile_id = :profile_id AND is_active = :active
                ORDER BY created_at DESC, id DESC
                """
            ),
            {"profile_id": profile_id, "active": True}
        ).fetchall()

        return [_to_response(t) for t in trips]


@router.get("/{trip_id}", response_model=TripResponse)
def get_trip(trip_id: int):
    """Get a specific trip"""
    with db.engine.begin() as connection:
        return _to_response(_fetch_trip(connection, trip_id))


@router.put("/{trip_id}", response_model=TripResponse)
def update_trip(trip_id: int, body: TripUpdate):
    """Change the return window or deactivate a trip.

    A changed window re-arms the alert. Deactivation is final.
    """
    log.info(f"[Trips] Updating trip {trip_id}")

    with db.engine.begin() as connection:
        trip = _fetch_trip(connection, trip_id)

        if body.is_active and not trip.is_active:
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail="Ended trips cannot be reactivated"
            )

        update_fields = []
        params = {"trip_id": trip_id}
        window_changed = body.return_date is not None or body.return_time_slot is not None

        if window_changed:
            if not trip.is_active:
                raise HTTPException(
                    status_code=status.HTTP_409_CONFLICT,
                    detail="Trip is not active"
                )
            return_date, slot = validate_return_window(
                body.return_date if body.return_date is not None else trip.return_date,
                body.return_time_slot if body.return_time_slot is not None else trip.return_time_slot
            )
            update_fields += ["return_date = :return_date", "return_time_slot = :return_time_slot", "alerted_at = NULL"]
            params["return_date"] = return_date
            params["return_time_slot"] = slot.value

        deactivating = body.is_active is False and trip.is_active
        if deactivating:
            update_fields += ["is_active = :is_active", "ended_at = :ended_at"]
            params["is_active"] = False
            params["ended_at"] = local_now().isoformat()

        if update_fields:
            connection.execute(
                sqlalchemy.text(f"UPDATE trips SET {', '.join(update_fields)} WHERE id = :trip_id"),
                params
            )
            log.info(f"[Trips] Updated trip {trip_id}: {update_fields}")

        if deactivating:
            _log_event(connection, trip_id, "ended")

        updated = _fetch_trip(connection, trip_id)

    if deactivating:
        get_trip_timers().cancel(trip_id)
    elif window_changed:
        get_trip_timers().start(trip_id, updated.signal_strength)

    return _to_response(updated)


@router.post("/{trip_id}/extend", response_model=ExtensionResponse)
def extend_trip(trip_id: int, hours: float = settings.DEFAULT_EXTENSION_HOURS):
    """Push the return deadline back by ``hours``, snapped forward to a slot boundary.

    The actual time added can exceed the request: the new deadline is the end
    of whichever slot window the shifted time falls in.
    """
    if not math.isfinite(hours) or hours <= 0 or hours > settings.MAX_EXTENSION_HOURS:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Extension must be between 0 and {settings.MAX_EXTENSION_HOURS} hours"
        )

    with db.engine.begin() as connection:
        trip = _fetch_trip(connection, trip_id)

        if not trip.is_active:
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail="Can only extend active trips"
            )

        previous_deadline = compute_deadline(trip.return_date, trip.return_time_slot)
        try:
            window = extend_deadline(previous_deadline, hours, trip.return_date)
            new_deadline = compute_deadline(window.return_date, window.slot)
        except OverflowError:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Extension moves the deadline out of range"
            )
        stored = window.serialize()

        connection.execute(
            sqlalchemy.text(
                """
                UPDATE trips
                SET return_date = :return_date, return_time_slot = :return_time_slot, alerted_at = NULL
                WHERE id = :trip_id
                """
            ),
            {
                "trip_id": trip_id,
                "return_date": stored["returnDate"],
                "return_time_slot": stored["returnTimeSlot"]
            }
        )
        _log_event(connection, trip_id, "extended", extended_by_hours=hours)

    added_hours = (new_deadline - previous_deadline).total_seconds() / 3600
    log.info(f"[Trips] Trip {trip_id} extended: {previous_deadline} -> {new_deadline} "
             f"(requested {hours}h, added {added_hours}h)")

    get_trip_timers().start(trip_id, trip.signal_strength)

    return ExtensionResponse(
        ok=True,
        trip_id=trip_id,
        return_date=stored["returnDate"],
        return_time_slot=stored["returnTimeSlot"],
        previous_deadline=previous_deadline.isoformat(),
        new_deadline=new_deadline.isoformat(),
        requested_hours=hours,
        added_hours=added_hours
    )


@router.post("/{trip_id}/end")
def end_trip(trip_id: int):
    """Confirm return and stop tracking. Ending an ended trip is a no-op."""
    with db.engine.begin() as connection:
        trip = _fetch_trip(connection, trip_id)

        if trip.is_active:
            connection.execute(
                sqlalchemy.text(
                    """
                    UPDATE trips
                    SET is_active = :is_active, ended_at = :ended_at
                    WHERE id = :trip_id
                    """
                ),
                {"trip_id": trip_id, "is_active": False, "ended_at": local_now().isoformat()}
            )
            _log_event(connection, trip_id, "ended")
            log.info(f"[Trips] Trip {trip_id} ended")

    get_trip_timers().cancel(trip_id)
    return {"ok": True, "message": "Trip ended successfully"}


@router.get("/{trip_id}/countdown", response_model=CountdownResponse)
def get_trip_countdown(trip_id: int):
    """Remaining time and progress toward the return deadline"""
    with db.engine.begin() as connection:
        trip = _fetch_trip(connection, trip_id)

    now = local_now()
    deadline = compute_deadline(trip.return_date, trip.return_time_slot)
    started_at = parse_datetime(trip.created_at)
    state = countdown(now, deadline, started_at)

    return CountdownResponse(
        trip_id=trip_id,
        now=now.isoformat(),
        deadline=deadline.isoformat(),
        started_at=started_at.isoformat(),
        remaining_seconds=int(state.remaining.total_seconds()),
        total_seconds=int(state.total_duration.total_seconds()),
        elapsed_fraction=state.elapsed_fraction,
        label=state.label,
        expired=state.expired,
        is_active=bool(trip.is_active)
    )


@router.get("/{trip_id}/timeline", response_model=list[TimelineEvent])
def get_trip_timeline(trip_id: int):
    """Get timeline events for a trip, newest first"""
    with db.engine.begin() as connection:
        _fetch_trip(connection, trip_id)

        events = connection.execute(
            sqlalchemy.text(
                """
                SELECT id, what AS kind, timestamp AS at, extended_by_hours
                FROM events
                WHERE trip_id = :trip_id
                ORDER BY timestamp DESC, id DESC
                """
            ),
            {"trip_id": trip_id}
        ).fetchall()

        return [
            TimelineEvent(
                id=e.id,
                kind=e.kind,
                at=to_iso8601(e.at) or "",
                extended_by_hours=e.extended_by_hours
            )
            for e in events
        ]
