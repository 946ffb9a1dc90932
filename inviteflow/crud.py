"""CRUD helpers for profiles, events, invitations, and activity logs."""

from __future__ import annotations

import secrets
from datetime import datetime
from typing import Any, Sequence

from sqlalchemy import delete, select
from sqlalchemy.orm import Session

from .models import (
    INVITATION_STATUSES,
    ActivityLog,
    Event,
    Invitation,
    Profile,
)
from .utils import normalize_email, to_naive_utc, utcnow


def _now() -> datetime:
    return utcnow()


def _normalize_status(status: str | None) -> str:
    normalized = (status or "").strip().lower()
    if normalized not in INVITATION_STATUSES:
        raise ValueError(f"Invalid invitation status: {status!r}")
    return normalized


def get_profile_by_email(session: Session, email: str) -> Profile | None:
    normalized = normalize_email(email)
    if not normalized:
        return None
    stmt = select(Profile).where(Profile.email == normalized)
    return session.scalars(stmt).first()


def create_profile(
    session: Session,
    *,
    email: str,
    full_name: str | None = None,
    avatar_url: str | None = None,
) -> Profile:
    """Create a profile with a fresh API token."""
    normalized = normalize_email(email)
    if "@" not in normalized:
        raise ValueError("Invalid email address")
    if get_profile_by_email(session, normalized):
        raise ValueError("A profile with that email already exists")
    profile = Profile(
        email=normalized,
        full_name=full_name,
        avatar_url=avatar_url,
        api_token=secrets.token_urlsafe(32),
        created_at=_now(),
    )
    session.add(profile)
    session.flush()
    return profile


def rotate_api_token(session: Session, profile: Profile) -> str:
    profile.api_token = secrets.token_urlsafe(32)
    session.add(profile)
    session.flush()
    return profile.api_token


def create_event(
    session: Session,
    *,
    owner_id: str,
    title: str,
    description: str | None,
    event_date: datetime,
    location: str | None = None,
) -> Event:
    """Create and persist a new event."""
    event = Event(
        owner_id=owner_id,
        title=title,
        description=description,
        event_date=to_naive_utc(event_date),
        location=location,
    )
    session.add(event)
    session.flush()
    return event


def update_event(
    session: Session,
    event: Event,
    *,
    title: str,
    description: str | None,
    event_date: datetime,
    location: str | None = None,
) -> Event:
    """Update an existing event."""
    event.title = title
    event.description = description
    event.event_date = to_naive_utc(event_date)
    event.location = location
    event.updated_at = _now()
    session.add(event)
    session.flush()
    return event


def set_invite_code(session: Session, event: Event, code: str) -> Event:
    event.invite_code = code
    event.updated_at = _now()
    session.add(event)
    session.flush()
    return event


def invite_code_exists(session: Session, code: str) -> bool:
    stmt = select(Event.id).where(Event.invite_code == code)
    return session.scalar(stmt) is not None


def short_code_exists(session: Session, code: str) -> bool:
    stmt = select(Invitation.id).where(Invitation.short_code == code)
    return session.scalar(stmt) is not None


def get_owned_events(
    session: Session, owner_id: str, event_ids: Sequence[str]
) -> Sequence[Event]:
    if not event_ids:
        return []
    stmt = select(Event).where(Event.owner_id == owner_id, Event.id.in_(event_ids))
    return session.scalars(stmt).all()


def list_owned_events(
    session: Session, owner_id: str, limit: int | None = None
) -> Sequence[Event]:
    stmt = (
        select(Event)
        .where(Event.owner_id == owner_id)
        .order_by(Event.event_date.asc())
    )
    if limit and limit > 0:
        stmt = stmt.limit(limit)
    return session.scalars(stmt).all()


def find_invitation(session: Session, event_id: str, email: str) -> Invitation | None:
    """Return the invitation addressed to ``email`` for the event, if any."""
    stmt = select(Invitation).where(
        Invitation.event_id == event_id,
        Invitation.email == normalize_email(email),
    )
    return session.scalars(stmt).first()


def list_invitations_for_email(session: Session, email: str) -> Sequence[Invitation]:
    stmt = (
        select(Invitation)
        .where(Invitation.email == normalize_email(email))
        .order_by(Invitation.created_at.desc())
    )
    return session.scalars(stmt).all()


def create_invitation(
    session: Session,
    *,
    event: Event,
    email: str,
    name: str | None = None,
    status: str = "pending",
    short_code: str | None = None,
) -> Invitation:
    """Create an invitation; the unique (event, email) constraint guards duplicates."""
    invitation = Invitation(
        event=event,
        email=normalize_email(email),
        name=name,
        status=_normalize_status(status),
        short_code=short_code,
        created_at=_now(),
        updated_at=_now(),
    )
    session.add(invitation)
    session.flush()
    return invitation


def set_invitation_status(
    session: Session,
    *,
    invitation: Invitation,
    status: str,
) -> Invitation:
    """Overwrite the response status; no version check, last write wins."""
    invitation.status = _normalize_status(status)
    invitation.updated_at = _now()
    session.add(invitation)
    session.flush()
    return invitation


def touch_invitation(session: Session, invitation: Invitation) -> Invitation:
    invitation.updated_at = _now()
    session.add(invitation)
    session.flush()
    return invitation


def log_activity(
    session: Session,
    *,
    user_id: str,
    action: str,
    event_id: str | None = None,
    details: dict[str, Any] | None = None,
) -> ActivityLog:
    """Append an activity log entry."""
    entry = ActivityLog(
        user_id=user_id,
        event_id=event_id,
        action=action,
        details=details,
        created_at=_now(),
    )
    session.add(entry)
    session.flush()
    return entry


def list_activity_for_user(
    session: Session, user_id: str, limit: int | None = None
) -> Sequence[ActivityLog]:
    stmt = (
        select(ActivityLog)
        .where(ActivityLog.user_id == user_id)
        .order_by(ActivityLog.created_at.desc())
    )
    if limit and limit > 0:
        stmt = stmt.limit(limit)
    return session.scalars(stmt).all()


def delete_events_cascade(session: Session, event_ids: Sequence[str]) -> dict[str, int]:
    """Delete invitations, then activity logs, then the events themselves."""
    ids = list(event_ids)
    invitations = session.execute(
        delete(Invitation).where(Invitation.event_id.in_(ids))
    ).rowcount
    logs = session.execute(
        delete(ActivityLog).where(ActivityLog.event_id.in_(ids))
    ).rowcount
    events = session.execute(delete(Event).where(Event.id.in_(ids))).rowcount
    session.expire_all()
    return {"invitations": invitations, "activity_logs": logs, "events": events}
