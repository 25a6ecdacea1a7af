"""Shared fixtures: a throwaway SQLite database and a clean scheduler per test."""
import os
import tempfile

_db_dir = tempfile.mkdtemp(prefix="safereturn-tests-")
os.environ["DATABASE_URL"] = f"sqlite:///{os.path.join(_db_dir, 'test.db')}"
os.environ["SMS_BACKEND"] = "dummy"
os.environ["ENABLE_SCHEDULER"] = "false"
os.environ["MIN_TRIP_CONTACTS"] = "3"

import pytest  # noqa: E402
import sqlalchemy  # noqa: E402

from safereturn import database as db  # noqa: E402
from safereturn.api.contacts import ContactCreate, create_contact  # noqa: E402
from safereturn.api.profile import ProfileUpsert, save_profile  # noqa: E402
from safereturn.models import init_db  # noqa: E402
from safereturn.services import scheduler  # noqa: E402

TABLES = ("events", "location_updates", "trips", "contacts", "user_profiles")


@pytest.fixture(scope="session", autouse=True)
def database():
    init_db()
    yield
    db.engine.dispose()


@pytest.fixture(autouse=True)
def clean_state():
    yield
    with db.engine.begin() as conn:
        for table in TABLES:
            conn.execute(sqlalchemy.text(f"DELETE FROM {table}"))
    # Timers are registered on a never-started scheduler; drop it between tests
    scheduler.scheduler = None
    scheduler.trip_timers = None


@pytest.fixture
def profile_with_contacts():
    """A profile with three emergency contacts"""
    profile = save_profile(ProfileUpsert(city="Riyadh", blood_type="O+", chronic_diseases=None))
    contacts = [
        create_contact(ContactCreate(user_profile_id=profile.id, name=name, phone=phone, relationship=rel))
        for name, phone, rel in [
            ("Sara", "0501111111", "Sister"),
            ("Omar", "0502222222", "Brother"),
            ("Huda", "0503333333", "Friend"),
        ]
    ]
    return {"profile": profile, "contacts": contacts, "phones": [c.phone for c in contacts]}
