"""Emergency contact endpoints"""
import json
import logging

import sqlalchemy
from fastapi import APIRouter, HTTPException, status
from pydantic import BaseModel, field_validator

from safereturn import database as db
from safereturn.services.clock import local_now

log = logging.getLogger(__name__)

router = APIRouter(
    prefix="/api/v1/contacts",
    tags=["contacts"]
)


class ContactCreate(BaseModel):
    user_profile_id: int
    name: str
    phone: str
    relationship: str

    @field_validator("name", "phone", "relationship")
    @classmethod
    def not_blank(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("must not be blank")
        return value


class Contact(BaseModel):
    id: int
    user_profile_id: int
    name: str
    phone: str
    relationship: str


@router.get("/profile/{profile_id}", response_model=list[Contact])
def get_contacts(profile_id: int):
    """Get all contacts of a profile"""
    with db.engine.begin() as connection:
        contacts = connection.execute(
            sqlalchemy.text(
                """
                SELECT id, user_profile_id, name, phone, relationship
                FROM contacts
                WHERE user_profile_id = :profile_id
                ORDER BY id
                """
            ),
            {"profile_id": profile_id}
        ).fetchall()

        return [Contact(**dict(c._mapping)) for c in contacts]


@router.post("/", response_model=Contact, status_code=status.HTTP_201_CREATED)
def create_contact(body: ContactCreate):
    """Create a new contact"""
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

        result = connection.execute(
            sqlalchemy.text(
                """
                INSERT INTO contacts (user_profile_id, name, phone, relationship, created_at)
                VALUES (:user_profile_id, :name, :phone, :relationship, :created_at)
                RETURNING id
                """
            ),
            {
                "user_profile_id": body.user_profile_id,
                "name": body.name,
                "phone": body.phone,
                "relationship": body.relationship,
                "created_at": local_now().isoformat()
            }
        )
        row = result.fetchone()
        assert row is not None
        contact_id = row[0]

        contact = connection.execute(
            sqlalchemy.text(
                """
                SELECT id, user_profile_id, name, phone, relationship
                FROM contacts
                WHERE id = :contact_id
                """
            ),
            {"contact_id": contact_id}
        ).fetchone()
        assert contact is not None

        log.info(f"[Contacts] Created contact {contact_id} for profile {body.user_profile_id}")
        return Contact(**dict(contact._mapping))


@router.delete("/{contact_id}")
def delete_contact(contact_id: int):
    """Delete a contact"""
    with db.engine.begin() as connection:
        contact = connection.execute(
            sqlalchemy.text(
                """
                SELECT id, user_profile_id, phone
                FROM contacts
                WHERE id = :contact_id
                """
            ),
            {"contact_id": contact_id}
        ).fetchone()

        if not contact:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail="Contact not found"
            )

        # Active trips reference contacts by phone number
        active_trips = connection.execute(
            sqlalchemy.text(
                """
                SELECT id, selected_contact_ids
                FROM trips
                WHERE user_profile_id = :profile_id AND is_active = :active
                """
            ),
            {"profile_id": contact.user_profile_id, "active": True}
        ).fetchall()

        for trip in active_trips:
            if contact.phone in json.loads(trip.selected_contact_ids):
                raise HTTPException(
                    status_code=status.HTTP_409_CONFLICT,
                    detail=f"Cannot delete contact. Selected on active trip {trip.id}"
                )

        connection.execute(
            sqlalchemy.text("DELETE FROM contacts WHERE id = :contact_id"),
            {"contact_id": contact_id}
        )

        return {"ok": True, "message": "Contact deleted successfully"}
