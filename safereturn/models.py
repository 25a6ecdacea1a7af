"""Table definitions.

The declarative models exist for table creation only; request handlers and
jobs query with raw SQL through ``database.engine``.
"""
from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    Text,
)
from sqlalchemy.orm import declarative_base

from safereturn import database as db

Base = declarative_base()


class UserProfile(Base):
    __tablename__ = "user_profiles"
    id = Column(Integer, primary_key=True)
    city = Column(Text, nullable=False)
    blood_type = Column(Text, nullable=True)
    chronic_diseases = Column(Text, nullable=True)
    created_at = Column(DateTime, nullable=False)
    updated_at = Column(DateTime, nullable=False)


class Contact(Base):
    __tablename__ = "contacts"
    id = Column(Integer, primary_key=True)
    user_profile_id = Column(Integer, ForeignKey("user_profiles.id", ondelete="CASCADE"), nullable=False)
    name = Column(Text, nullable=False)
    phone = Column(Text, nullable=False)
    relationship = Column(Text, nullable=False)
    created_at = Column(DateTime, nullable=False)


class Trip(Base):
    __tablename__ = "trips"
    id = Column(Integer, primary_key=True)
    user_profile_id = Column(Integer, ForeignKey("user_profiles.id", ondelete="CASCADE"), nullable=False)
    destination_lat = Column(Float, nullable=True)
    destination_lng = Column(Float, nullable=True)
    return_date = Column(Text, nullable=False)  # YYYY-MM-DD
    return_time_slot = Column(Text, nullable=False)  # AM_early | AM_late | PM_early | PM_late
    selected_contact_ids = Column(Text, nullable=False)  # JSON list of contact phone numbers
    is_active = Column(Boolean, nullable=False, default=True)
    signal_strength = Column(Text, nullable=False, default="strong")
    alerted_at = Column(DateTime, nullable=True)
    ended_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, nullable=False)  # wall clock in settings.TIMEZONE


class LocationUpdate(Base):
    __tablename__ = "location_updates"
    id = Column(Integer, primary_key=True)
    trip_id = Column(Integer, ForeignKey("trips.id", ondelete="CASCADE"), nullable=False, index=True)
    latitude = Column(Float, nullable=False)
    longitude = Column(Float, nullable=False)
    accuracy = Column(Float, nullable=True)
    timestamp = Column(DateTime, nullable=False)


class Event(Base):
    __tablename__ = "events"
    id = Column(Integer, primary_key=True)
    trip_id = Column(Integer, ForeignKey("trips.id", ondelete="CASCADE"), nullable=False, index=True)
    what = Column(Text, nullable=False)  # created | extended | ended | alert | alert_failed
    timestamp = Column(DateTime, nullable=False)
    extended_by_hours = Column(Float, nullable=True)


def init_db():
    """Create any missing tables."""
    Base.metadata.create_all(db.engine)
