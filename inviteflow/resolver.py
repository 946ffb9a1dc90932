"""Resolve user-supplied tokens to invitations or events.

A token may be either a primary identifier or a human-friendly code (an
invitation short code, or an event invite code). Both lookups go through one
function so every entry point (direct link, QR link, quick-response link,
manual code entry) agrees on what a token means.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Literal

from sqlalchemy import select
from sqlalchemy.orm import Session, joinedload

from .codes import normalize_code
from .errors import NotFoundError
from .models import Event, Invitation

MatchedBy = Literal["id", "short_code", "invite_code"]


@dataclass(frozen=True)
class Resolution:
    invitation: Invitation
    matched_by: MatchedBy


@dataclass(frozen=True)
class EventResolution:
    event: Event
    matched_by: MatchedBy


def _invitation_query():
    return select(Invitation).options(
        joinedload(Invitation.event).joinedload(Event.owner)
    )


def find_invitation(session: Session, token: str | None) -> Resolution | None:
    cleaned = (token or "").strip()
    if not cleaned:
        return None
    invitation = session.scalars(
        _invitation_query().where(Invitation.id == cleaned)
    ).first()
    if invitation:
        return Resolution(invitation=invitation, matched_by="id")
    invitation = session.scalars(
        _invitation_query().where(Invitation.short_code == normalize_code(cleaned))
    ).first()
    if invitation:
        return Resolution(invitation=invitation, matched_by="short_code")
    return None


def resolve_invitation(session: Session, token: str | None) -> Resolution:
    """Return the invitation (with event and owner loaded) or raise ``NotFoundError``."""
    resolution = find_invitation(session, token)
    if resolution is None:
        raise NotFoundError("Invitation not found")
    return resolution


def resolve_event_by_code(session: Session, code: str | None) -> EventResolution:
    """Resolve an event by invite code, falling back to its identifier."""
    cleaned = (code or "").strip()
    if cleaned:
        stmt = select(Event).options(joinedload(Event.owner))
        event = session.scalars(
            stmt.where(Event.invite_code == normalize_code(cleaned))
        ).first()
        if event:
            return EventResolution(event=event, matched_by="invite_code")
        event = session.scalars(stmt.where(Event.id == cleaned)).first()
        if event:
            return EventResolution(event=event, matched_by="id")
    raise NotFoundError(
        "Invalid invite code. The event may not exist or the code is incorrect."
    )
