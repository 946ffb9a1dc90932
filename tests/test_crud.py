from __future__ import annotations

from datetime import timedelta

import pytest
from sqlalchemy.exc import IntegrityError

from inviteflow import crud
from inviteflow.models import ActivityLog, Event, Invitation
from inviteflow.utils import utcnow

from conftest import make_event, make_invitation, make_profile


def test_create_profile_normalizes_email_and_issues_token(session):
    profile = crud.create_profile(session, email="  Alice@Example.COM ", full_name="Alice")
    assert profile.email == "alice@example.com"
    assert profile.api_token
    assert crud.get_profile_by_email(session, "ALICE@example.com").id == profile.id


def test_create_profile_rejects_duplicates_and_bad_email(session):
    make_profile(session, "dup@example.com")
    with pytest.raises(ValueError):
        crud.create_profile(session, email="DUP@example.com")
    with pytest.raises(ValueError):
        crud.create_profile(session, email="not-an-email")


def test_rotate_api_token(session, owner):
    original = owner.api_token
    rotated = crud.rotate_api_token(session, owner)
    assert rotated != original
    assert owner.api_token == rotated


def test_create_and_update_event(session, owner):
    event = make_event(session, owner, title="Original")
    new_date = utcnow() + timedelta(days=30)
    crud.update_event(
        session,
        event,
        title="Updated",
        description=None,
        event_date=new_date,
        location="Elsewhere",
    )
    assert event.title == "Updated"
    assert event.description is None
    assert event.event_date == new_date
    assert event.location == "Elsewhere"
    assert event.invite_code is None


def test_invite_code_lookup(session, owner):
    make_event(session, owner, invite_code="ABC23456")
    assert crud.invite_code_exists(session, "ABC23456")
    assert not crud.invite_code_exists(session, "ZZZ23456")


def test_invite_code_is_unique_across_events(session, owner):
    make_event(session, owner, invite_code="ABC23456")
    other = make_event(session, owner, title="Other")
    with pytest.raises(IntegrityError):
        crud.set_invite_code(session, other, "ABC23456")
    session.rollback()


def test_invitation_is_unique_per_event_and_email(session, owner):
    event = make_event(session, owner)
    make_invitation(session, event, "guest@example.com")
    with pytest.raises(IntegrityError):
        crud.create_invitation(session, event=event, email="GUEST@example.com")
    session.rollback()


def test_find_invitation_is_case_insensitive(session, owner):
    event = make_event(session, owner)
    invitation = make_invitation(session, event, "Guest@Example.com")
    assert invitation.email == "guest@example.com"
    assert crud.find_invitation(session, event.id, "GUEST@EXAMPLE.COM").id == invitation.id


def test_set_invitation_status_validates(session, owner):
    event = make_event(session, owner)
    invitation = make_invitation(session, event, "guest@example.com")
    crud.set_invitation_status(session, invitation=invitation, status="MAYBE")
    assert invitation.status == "maybe"
    with pytest.raises(ValueError):
        crud.set_invitation_status(session, invitation=invitation, status="perhaps")


def test_delete_events_cascade_removes_dependents(session, owner, guest):
    event = make_event(session, owner)
    keep = make_event(session, owner, title="Keep me")
    make_invitation(session, event, "guest@example.com")
    make_invitation(session, keep, "guest@example.com")
    crud.log_activity(session, user_id=owner.id, event_id=event.id, action="created_event")
    crud.log_activity(session, user_id=owner.id, event_id=keep.id, action="created_event")
    session.commit()
    event_id = event.id

    deleted = crud.delete_events_cascade(session, [event_id])
    session.commit()

    assert deleted == {"invitations": 1, "activity_logs": 1, "events": 1}
    assert session.get(Event, event_id) is None
    assert session.query(Invitation).filter_by(event_id=event_id).count() == 0
    assert session.query(ActivityLog).filter_by(event_id=event_id).count() == 0
    assert session.query(Invitation).filter_by(event_id=keep.id).count() == 1
