"""User profile endpoints (city and medical info)"""
import logging

import sqlalchemy
from fastapi import APIRouter, HTTPException, status
from pydantic import BaseModel

from safereturn import database as db
from safereturn.api.common import to_iso8601_required
from safereturn.services.clock import local_now

log = logging.getLogger(__name__)

router = APIRouter(
    prefix="/api/v1/profile",
    tags=["profile"]
)


class ProfileUpsert(BaseModel):
    id: int | None = None
    city: str
    blood_type: str | None = None
    chronic_diseases: str | None = None


class Profile(BaseModel):
    id: int
    city: str
    blood_type: str | None
    chronic_diseases: str | None
    created_at: str
    updated_at: str


def _fetch_profile(connection, profile_id: int):
    return connection.execute(
        sqlalchemy.text(
            """
            SELECT id, city, blood_type, chronic_diseases, created_at, updated_at
            FROM user_profiles
            WHERE id = :profile_id
            """
        ),
        {"profile_id": profile_id}
    ).fetchone()


def _to_profile(row) -> Profile:
    return Profile(
        id=row.id,
        city=row.city,
        blood_type=row.blood_type,
        chronic_diseases=row.chronic_diseases,
        created_at=to_iso8601_required(row.created_at),
        updated_at=to_iso8601_required(row.updated_at)
    )


@router.get("/{profile_id}", response_model=Profile)
def get_profile(profile_id: int):
    """Get a user profile"""
    with db.engine.begin() as connection:
        profile = _fetch_profile(connection, profile_id)

        if not profile:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail="Profile not found"
            )

        return _to_profile(profile)


@router.post("/", response_model=Profile)
def save_profile(body: ProfileUpsert):
    """Create a profile, or update it when the body carries an existing id"""
    now = local_now().isoformat()
    params = {
        "city": body.city,
        "blood_type": body.blood_type,
        "chronic_diseases": body.chronic_diseases,
        "now": now
    }

    with db.engine.begin() as connection:
        existing = _fetch_profile(connection, body.id) if body.id is not None else None

        if existing:
            connection.execute(
                sqlalchemy.text(
                    """
                    UPDATE user_profiles
                    SET city = :city, blood_type = :blood_type,
                        chronic_diseases = :chronic_diseases, updated_at = :now
                    WHERE id = :profile_id
                    """
                ),
                {**params, "profile_id": body.id}
            )
            profile_id = body.id
            log.info(f"[Profile] Updated profile {profile_id}")
        elif body.id is not None:
            connection.execute(
                sqlalchemy.text(
                    """
                    INSERT INTO user_profiles (id, city, blood_type, chronic_diseases, created_at, updated_at)
                    VALUES (:profile_id, :city, :blood_type, :chronic_diseases, :now, :now)
                    """
                ),
                {**params, "profile_id": body.id}
            )
            profile_id = body.id
            log.info(f"[Profile] Created profile {profile_id} with client-supplied id")
        else:
            result = connection.execute(
                sqlalchemy.text(
                    """
                    INSERT INTO user_profiles (city, blood_type, chronic_diseases, created_at, updated_at)
                    VALUES (:city, :blood_type, :chronic_diseases, :now, :now)
                    RETURNING id
                    """
                ),
                params
            )
            row = result.fetchone()
            assert row is not None
            profile_id = row[0]
            log.info(f"[Profile] Created profile {profile_id}")

        profile = _fetch_profile(connection, profile_id)
        assert profile is not None
        return _to_profile(profile)


@router.put("/{profile_id}", response_model=Profile)
def update_profile(profile_id: int, body: ProfileUpsert):
    """Update a profile (created if missing)"""
    return save_profile(body.model_copy(update={"id": profile_id}))
