"""Shared pytest fixtures for InviteFlow."""

from __future__ import annotations

import sys
from datetime import timedelta
from pathlib import Path

import pytest
from sqlalchemy.pool import StaticPool

PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from inviteflow import api, crud, database, storage
from inviteflow.identity import Identity
from inviteflow.models import Base
from inviteflow.utils import utcnow


@pytest.fixture(scope="session", autouse=True)
def configure_in_memory_db():
    """Reuse a single in-memory SQLite database for fast, isolated tests."""

    engine = database.build_engine("sqlite+pysqlite:///:memory:", poolclass=StaticPool)
    session_factory = database.make_session_factory(engine)
    database.engine = engine
    database.SessionLocal = session_factory
    storage.engine = engine
    api.SessionLocal = session_factory
    Base.metadata.create_all(bind=engine)
    yield
    session_factory.remove()


@pytest.fixture(autouse=True)
def clean_database():
    """Reset all tables between tests to guarantee isolation."""

    database.SessionLocal.remove()
    Base.metadata.drop_all(bind=database.engine)
    Base.metadata.create_all(bind=database.engine)
    yield


@pytest.fixture()
def session():
    db = database.SessionLocal()
    try:
        yield db
    finally:
        db.close()


def make_profile(session, email: str, full_name: str | None = None):
    profile = crud.create_profile(session, email=email, full_name=full_name)
    session.commit()
    return profile


def make_event(session, owner, *, title: str = "Garden Party", invite_code=None):
    event = crud.create_event(
        session,
        owner_id=owner.id,
        title=title,
        description="Bring a friend",
        event_date=utcnow() + timedelta(days=7),
        location="Back yard",
    )
    if invite_code:
        crud.set_invite_code(session, event, invite_code)
    session.commit()
    return event


def make_invitation(session, event, email: str, *, short_code=None, status="pending"):
    invitation = crud.create_invitation(
        session, event=event, email=email, short_code=short_code, status=status
    )
    session.commit()
    return invitation


@pytest.fixture()
def owner(session):
    return make_profile(session, "owner@example.com", "Olive Organizer")


@pytest.fixture()
def guest(session):
    return make_profile(session, "guest@example.com", "Gus Guest")


@pytest.fixture()
def owner_identity(owner):
    return Identity.from_profile(owner)


@pytest.fixture()
def guest_identity(guest):
    return Identity.from_profile(guest)
