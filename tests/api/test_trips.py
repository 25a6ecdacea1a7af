"""Tests for trip API endpoints"""
from datetime import datetime
from unittest.mock import patch

import pytest
import sqlalchemy
from fastapi import HTTPException

from safereturn import database as db
from safereturn.api.trips import (
    TripCreate,
    TripResponse,
    TripUpdate,
    create_trip,
    end_trip,
    extend_trip,
    get_active_trips,
    get_trip,
    get_trip_countdown,
    get_trip_timeline,
    update_trip,
)
from safereturn.services import scheduler


def make_trip(fixture, return_date="2024-06-15", slot="AM_early", **kwargs):
    return create_trip(TripCreate(
        user_profile_id=fixture["profile"].id,
        return_date=return_date,
        return_time_slot=slot,
        selected_contact_ids=fixture["phones"],
        **kwargs
    ))


def set_created_at(trip_id, value):
    with db.engine.begin() as conn:
        conn.execute(
            sqlalchemy.text("UPDATE trips SET created_at = :created_at WHERE id = :id"),
            {"created_at": value.isoformat(), "id": trip_id}
        )


class TestCreateTrip:

    def test_create_trip(self, profile_with_contacts):
        trip = make_trip(profile_with_contacts, slot="PM_late", destination_lat=24.7, destination_lng=46.6)

        assert isinstance(trip, TripResponse)
        assert trip.is_active is True
        assert trip.return_date == "2024-06-15"
        assert trip.return_time_slot == "PM_late"
        assert trip.deadline == "2024-06-16T00:00:00"
        assert trip.selected_contact_ids == profile_with_contacts["phones"]
        assert trip.destination_lat == 24.7
        assert trip.signal_strength == "strong"
        assert trip.alerted_at is None

    def test_create_registers_timer(self, profile_with_contacts):
        trip = make_trip(profile_with_contacts)
        assert scheduler.get_trip_timers().interval_for(trip.id) == 300

    def test_create_logs_event(self, profile_with_contacts):
        trip = make_trip(profile_with_contacts)
        assert [e.kind for e in get_trip_timeline(trip.id)] == ["created"]

    def test_invalid_slot_rejected(self, profile_with_contacts):
        with pytest.raises(HTTPException) as exc_info:
            make_trip(profile_with_contacts, slot="PM_mid")
        assert exc_info.value.status_code == 400
        assert "PM_mid" in exc_info.value.detail

    def test_invalid_date_rejected(self, profile_with_contacts):
        with pytest.raises(HTTPException) as exc_info:
            make_trip(profile_with_contacts, return_date="15-06-2024")
        assert exc_info.value.status_code == 400

    def test_deadline_out_of_range_rejected(self, profile_with_contacts):
        with pytest.raises(HTTPException) as exc_info:
            make_trip(profile_with_contacts, return_date="9999-12-31", slot="PM_late")
        assert exc_info.value.status_code == 400

    def test_requires_minimum_contacts(self, profile_with_contacts):
        with pytest.raises(HTTPException) as exc_info:
            create_trip(TripCreate(
                user_profile_id=profile_with_contacts["profile"].id,
                return_date="2024-06-15",
                return_time_slot="AM_early",
                selected_contact_ids=profile_with_contacts["phones"][:2],
            ))
        assert exc_info.value.status_code == 400

    def test_duplicate_phones_do_not_count_twice(self, profile_with_contacts):
        phones = profile_with_contacts["phones"]
        with pytest.raises(HTTPException) as exc_info:
            create_trip(TripCreate(
                user_profile_id=profile_with_contacts["profile"].id,
                return_date="2024-06-15",
                return_time_slot="AM_early",
                selected_contact_ids=[phones[0], phones[0], phones[1]],
            ))
        assert exc_info.value.status_code == 400

    def test_unknown_contact_rejected(self, profile_with_contacts):
        phones = profile_with_contacts["phones"][:2] + ["0509999999"]
        with pytest.raises(HTTPException) as exc_info:
            create_trip(TripCreate(
                user_profile_id=profile_with_contacts["profile"].id,
                return_date="2024-06-15",
                return_time_slot="AM_early",
                selected_contact_ids=phones,
            ))
        assert exc_info.value.status_code == 400
        assert "0509999999" in exc_info.value.detail

    def test_unknown_profile(self, profile_with_contacts):
        with pytest.raises(HTTPException) as exc_info:
            create_trip(TripCreate(
                user_profile_id=999999,
                return_date="2024-06-15",
                return_time_slot="AM_early",
                selected_contact_ids=profile_with_contacts["phones"],
            ))
        assert exc_info.value.status_code == 404


class TestReadTrips:

    def test_get_trip(self, profile_with_contacts):
        trip = make_trip(profile_with_contacts, slot="AM_late")
        assert get_trip(trip.id).deadline == "2024-06-15T12:00:00"

    def test_get_missing_trip(self):
        with pytest.raises(HTTPException) as exc_info:
            get_trip(999999)
        assert exc_info.value.status_code == 404

    def test_active_trips_exclude_ended(self, profile_with_contacts):
        kept = make_trip(profile_with_contacts)
        ended = make_trip(profile_with_contacts)
        end_trip(ended.id)

        active = get_active_trips(profile_with_contacts["profile"].id)
        assert [t.id for t in active] == [kept.id]


class TestUpdateTrip:

    def test_change_return_window(self, profile_with_contacts):
        trip = make_trip(profile_with_contacts)
        updated = update_trip(trip.id, TripUpdate(return_date="2024-06-20", return_time_slot="PM_early"))

        assert updated.return_date == "2024-06-20"
        assert updated.return_time_slot == "PM_early"
        assert updated.deadline == "2024-06-20T18:00:00"

    def test_change_slot_only(self, profile_with_contacts):
        trip = make_trip(profile_with_contacts)
        updated = update_trip(trip.id, TripUpdate(return_time_slot="AM_late"))

        assert updated.return_date == "2024-06-15"
        assert updated.deadline == "2024-06-15T12:00:00"

    def test_invalid_slot_rejected(self, profile_with_contacts):
        trip = make_trip(profile_with_contacts)
        with pytest.raises(HTTPException) as exc_info:
            update_trip(trip.id, TripUpdate(return_time_slot="late"))
        assert exc_info.value.status_code == 400
        assert get_trip(trip.id).return_time_slot == "AM_early"

    def test_deactivate(self, profile_with_contacts):
        trip = make_trip(profile_with_contacts)
        updated = update_trip(trip.id, TripUpdate(is_active=False))

        assert updated.is_active is False
        assert updated.ended_at is not None
        assert not scheduler.get_trip_timers().is_tracking(trip.id)
        assert get_trip_timeline(trip.id)[0].kind == "ended"

    def test_cannot_reactivate(self, profile_with_contacts):
        trip = make_trip(profile_with_contacts)
        update_trip(trip.id, TripUpdate(is_active=False))

        with pytest.raises(HTTPException) as exc_info:
            update_trip(trip.id, TripUpdate(is_active=True))
        assert exc_info.value.status_code == 409

    def test_window_change_rearms_alert(self, profile_with_contacts):
        trip = make_trip(profile_with_contacts)
        with db.engine.begin() as conn:
            conn.execute(
                sqlalchemy.text("UPDATE trips SET alerted_at = '2024-06-15T06:00:30' WHERE id = :id"),
                {"id": trip.id}
            )
        scheduler.get_trip_timers().cancel(trip.id)

        updated = update_trip(trip.id, TripUpdate(return_time_slot="PM_late"))

        assert updated.alerted_at is None
        assert scheduler.get_trip_timers().is_tracking(trip.id)


class TestExtendTrip:

    def test_extension_snaps_to_slot_boundary(self, profile_with_contacts):
        # AM_early ends 06:00; +2h = 08:00, inside AM_late, so the new deadline is noon
        trip = make_trip(profile_with_contacts, slot="AM_early")
        result = extend_trip(trip.id, hours=2)

        assert result.return_date == "2024-06-15"
        assert result.return_time_slot == "AM_late"
        assert result.previous_deadline == "2024-06-15T06:00:00"
        assert result.new_deadline == "2024-06-15T12:00:00"
        assert result.requested_hours == 2
        assert result.added_hours == 6

        stored = get_trip(trip.id)
        assert stored.return_time_slot == "AM_late"
        assert stored.deadline == "2024-06-15T12:00:00"

    def test_extension_past_midnight(self, profile_with_contacts):
        trip = make_trip(profile_with_contacts, slot="PM_late")
        result = extend_trip(trip.id, hours=2)

        assert result.return_date == "2024-06-16"
        assert result.return_time_slot == "AM_early"
        assert result.new_deadline == "2024-06-16T06:00:00"

    def test_into_pm_late_keeps_same_date(self, profile_with_contacts):
        trip = make_trip(profile_with_contacts, slot="PM_early")
        result = extend_trip(trip.id, hours=2)

        assert result.return_date == "2024-06-15"
        assert result.return_time_slot == "PM_late"
        assert get_trip(trip.id).deadline == "2024-06-16T00:00:00"

    def test_repeated_extensions_move_forward(self, profile_with_contacts):
        trip = make_trip(profile_with_contacts, slot="AM_early")
        deadlines = [extend_trip(trip.id, hours=2).new_deadline for _ in range(4)]

        assert deadlines == [
            "2024-06-15T12:00:00",
            "2024-06-15T18:00:00",
            "2024-06-16T00:00:00",
            "2024-06-16T06:00:00",
        ]

    def test_extension_logs_event_and_rearms_alert(self, profile_with_contacts):
        trip = make_trip(profile_with_contacts)
        with db.engine.begin() as conn:
            conn.execute(
                sqlalchemy.text("UPDATE trips SET alerted_at = '2024-06-15T06:00:30' WHERE id = :id"),
                {"id": trip.id}
            )

        extend_trip(trip.id, hours=2)

        assert get_trip(trip.id).alerted_at is None
        latest = get_trip_timeline(trip.id)[0]
        assert latest.kind == "extended"
        assert latest.extended_by_hours == 2
        assert scheduler.get_trip_timers().is_tracking(trip.id)

    def test_cannot_extend_ended_trip(self, profile_with_contacts):
        trip = make_trip(profile_with_contacts)
        end_trip(trip.id)

        with pytest.raises(HTTPException) as exc_info:
            extend_trip(trip.id, hours=2)
        assert exc_info.value.status_code == 409

    @pytest.mark.parametrize("hours", [0, -2])
    def test_extension_must_be_positive(self, profile_with_contacts, hours):
        trip = make_trip(profile_with_contacts)
        with pytest.raises(HTTPException) as exc_info:
            extend_trip(trip.id, hours=hours)
        assert exc_info.value.status_code == 400

    @pytest.mark.parametrize("hours", [float("nan"), float("inf"), 1e12, 169])
    def test_extension_must_be_finite_and_bounded(self, profile_with_contacts, hours):
        trip = make_trip(profile_with_contacts)
        with pytest.raises(HTTPException) as exc_info:
            extend_trip(trip.id, hours=hours)
        assert exc_info.value.status_code == 400
        assert get_trip(trip.id).return_time_slot == "AM_early"

    def test_extension_past_last_representable_day(self, profile_with_contacts):
        trip = make_trip(profile_with_contacts, return_date="9999-12-31", slot="PM_early")
        with pytest.raises(HTTPException) as exc_info:
            extend_trip(trip.id, hours=2)
        assert exc_info.value.status_code == 400
        assert get_trip(trip.id).return_time_slot == "PM_early"


class TestEndTrip:

    def test_end_trip_is_idempotent(self, profile_with_contacts):
        trip = make_trip(profile_with_contacts)

        assert end_trip(trip.id)["ok"] is True
        first_end = get_trip(trip.id).ended_at
        assert end_trip(trip.id)["ok"] is True

        assert get_trip(trip.id).ended_at == first_end
        assert [e.kind for e in get_trip_timeline(trip.id)].count("ended") == 1

    def test_end_missing_trip(self):
        with pytest.raises(HTTPException) as exc_info:
            end_trip(999999)
        assert exc_info.value.status_code == 404


class TestCountdown:

    def test_half_way(self, profile_with_contacts):
        trip = make_trip(profile_with_contacts, slot="AM_early")
        set_created_at(trip.id, datetime(2024, 6, 14, 6, 0))

        with patch("safereturn.api.trips.local_now", return_value=datetime(2024, 6, 14, 18, 0)):
            state = get_trip_countdown(trip.id)

        assert state.deadline == "2024-06-15T06:00:00"
        assert state.remaining_seconds == 12 * 3600
        assert state.total_seconds == 24 * 3600
        assert state.elapsed_fraction == 0.5
        assert state.label == "12h 0m"
        assert state.expired is False

    def test_expired(self, profile_with_contacts):
        trip = make_trip(profile_with_contacts, slot="AM_early")
        set_created_at(trip.id, datetime(2024, 6, 14, 6, 0))

        with patch("safereturn.api.trips.local_now", return_value=datetime(2024, 6, 15, 6, 30)):
            state = get_trip_countdown(trip.id)

        assert state.remaining_seconds == -1800
        assert state.expired is True
        assert state.label == "Time's up"
        assert state.elapsed_fraction == 1.0

    def test_deadline_before_creation(self, profile_with_contacts):
        trip = make_trip(profile_with_contacts, slot="AM_early")
        set_created_at(trip.id, datetime(2024, 6, 15, 9, 0))

        with patch("safereturn.api.trips.local_now", return_value=datetime(2024, 6, 15, 9, 30)):
            state = get_trip_countdown(trip.id)

        assert state.elapsed_fraction == 0.0
        assert state.expired is True
