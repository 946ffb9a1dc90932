"""Invitation and event workflows.

Each public function takes the caller's ``Identity`` explicitly and returns a
``Result``. Helpers raise ``WorkflowError`` subclasses; the ``workflow``
decorator rolls the session back and converts the error into a failed
``Result`` so a failing step never leaves earlier steps pending a commit.
"""

from __future__ import annotations

import functools
import logging
from datetime import datetime
from typing import Any, Callable, Iterable

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from . import crud, resolver
from .codes import generate_invite_code as _new_invite_code
from .codes import generate_short_code, normalize_code, unique_code
from .config import settings
from .errors import (
    ConflictError,
    ForbiddenError,
    InvalidInputError,
    NotFoundError,
    PersistenceError,
    Result,
    SelfJoinForbiddenError,
    WorkflowError,
    WrongEmailError,
)
from .identity import Identity, require_identity
from .links import invitation_links
from .models import INVITATION_STATUSES, RESPONSE_STATUSES, Event, Invitation
from .serializers import (
    serialize_activity,
    serialize_event,
    serialize_invitation,
)
from .utils import emails_match, normalize_email

# Use uvicorn's error logger so messages get the level prefix in the default log
# format.
logger = logging.getLogger("uvicorn.error")

RESPONSE_VERBS = {
    "yes": "accepted",
    "no": "declined",
    "maybe": "tentatively accepted",
}

EVENT_FIELDS = ("title", "description", "event_date", "location")


def workflow(func: Callable[..., dict[str, Any]]) -> Callable[..., Result]:
    """Run ``func`` and wrap its payload (or failure) in a ``Result``."""

    @functools.wraps(func)
    def wrapper(session: Session, *args: Any, **kwargs: Any) -> Result:
        try:
            data = func(session, *args, **kwargs)
        except WorkflowError as exc:
            session.rollback()
            logger.info("%s failed (%s): %s", func.__name__, exc.kind.value, exc.message)
            return Result.fail(exc)
        except ValueError as exc:
            session.rollback()
            return Result.fail(InvalidInputError(str(exc)))
        except SQLAlchemyError as exc:
            session.rollback()
            logger.exception("Database error during %s", func.__name__)
            raw = str(exc.orig) if getattr(exc, "orig", None) else str(exc)
            return Result.fail(PersistenceError(raw))
        return Result.ok(data)

    return wrapper


def _require_owned_event(
    session: Session, event_id: str, identity: Identity, action: str = "modify"
) -> Event:
    event = session.get(Event, event_id) if event_id else None
    if event is None:
        raise NotFoundError("Event not found")
    if event.owner_id != identity.id:
        logger.warning(
            "Identity %s tried to %s event %s owned by %s",
            identity.id,
            action,
            event.id,
            event.owner_id,
        )
        raise ForbiddenError(f"You don't have permission to {action} this event")
    return event


def _new_short_code(session: Session) -> str:
    return unique_code(
        lambda code: crud.short_code_exists(session, code), generate_short_code
    )


def check_invitation_email(identity: Identity | None, invitation: Invitation) -> Identity:
    """Ensure the caller is signed in as the invitation's addressee.

    No identity raises ``AuthenticationRequiredError`` (prompt to sign in); a
    different email raises ``WrongEmailError`` carrying the invitation's email
    (prompt to switch accounts).
    """
    identity = require_identity(
        identity, "You must be logged in to respond to invitations"
    )
    if not emails_match(identity.email, invitation.email):
        logger.warning(
            "Identity %s attempted to answer invitation %s addressed elsewhere",
            identity.id,
            invitation.id,
        )
        raise WrongEmailError(invitation.email)
    return identity


@workflow
def generate_invite_code(
    session: Session,
    event_id: str,
    identity: Identity | None,
    *,
    regenerate: bool = False,
) -> dict[str, Any]:
    """Give an owned event an invite code, reusing the existing one by default."""
    identity = require_identity(
        identity, "You must be logged in to generate an invite code"
    )
    event = _require_owned_event(session, event_id, identity)
    if event.invite_code and not regenerate:
        return {
            "code": event.invite_code,
            "created": False,
            "event_id": event.id,
            "message": "This event already has an invite code",
        }
    code = unique_code(
        lambda candidate: crud.invite_code_exists(session, candidate),
        _new_invite_code,
    )
    try:
        crud.set_invite_code(session, event, code)
    except IntegrityError as exc:
        raise ConflictError(
            "Failed to generate a unique invite code. Please try again."
        ) from exc
    crud.log_activity(
        session,
        user_id=identity.id,
        event_id=event.id,
        action="generated_invite_code",
        details={"invite_code": code},
    )
    logger.info("Generated invite code for event %s", event.id)
    return {
        "code": code,
        "created": True,
        "event_id": event.id,
        "message": "Invite code generated successfully",
    }


def _resolve_guest_event(
    session: Session, code: str, identity: Identity
) -> resolver.EventResolution:
    if not (code or "").strip():
        raise InvalidInputError("Invite code is required")
    resolution = resolver.resolve_event_by_code(session, code)
    if resolution.event.owner_id == identity.id:
        raise SelfJoinForbiddenError()
    return resolution


def _submitted_code(resolution: resolver.EventResolution, code: str) -> str:
    """The code as the guest entered it, canonicalized when it was an invite code."""
    if resolution.matched_by == "invite_code":
        return normalize_code(code)
    return code.strip()


def _upsert_guest_invitation(
    session: Session, event: Event, identity: Identity, status: str | None
) -> tuple[Invitation, str | None]:
    """Create or update the caller's own invitation to ``event``.

    ``status=None`` leaves an existing answer alone and creates new rows as
    pending. Returns the invitation and its previous status (``None`` when
    it was just created).
    """
    invitation = crud.find_invitation(session, event.id, identity.email)
    if invitation is not None:
        previous = invitation.status
        if status:
            crud.set_invitation_status(session, invitation=invitation, status=status)
        else:
            crud.touch_invitation(session, invitation)
        return invitation, previous
    try:
        invitation = crud.create_invitation(
            session,
            event=event,
            email=identity.email,
            name=identity.full_name,
            status=status or "pending",
            short_code=_new_short_code(session),
        )
    except IntegrityError as exc:
        raise ConflictError("You have already joined this event") from exc
    return invitation, None


@workflow
def join_event_by_code(
    session: Session, code: str, identity: Identity | None
) -> dict[str, Any]:
    identity = require_identity(identity, "You must be logged in to join an event")
    resolution = _resolve_guest_event(session, code, identity)
    event = resolution.event

    status = "yes" if settings.join_auto_accept else None
    invitation, previous = _upsert_guest_invitation(session, event, identity, status)
    created = previous is None
    crud.log_activity(
        session,
        user_id=identity.id,
        event_id=event.id,
        action="joined_with_invite_code",
        details={
            "invite_code": _submitted_code(resolution, code),
            "status": "new_invitation" if created else "updated_existing",
        },
    )
    outcome = "created" if created else "updated"
    logger.info("Identity %s joined event %s (%s)", identity.id, event.id, outcome)
    return {
        "event": serialize_event(event, include_owner=True, include_invite_code=False),
        "status": outcome,
        "invitation_id": invitation.id,
        "message": "You have successfully joined the event!",
    }


@workflow
def respond_to_event(
    session: Session, code: str, response: str, identity: Identity | None
) -> dict[str, Any]:
    """Answer an event directly from its code or id (the QR entry point).

    The caller's invitation is created with the chosen answer, or updated
    if one already exists for their email.
    """
    normalized = (response or "").strip().lower()
    if normalized not in RESPONSE_STATUSES:
        raise InvalidInputError("Invalid response type")
    identity = require_identity(
        identity, "You must be logged in to respond to invitations"
    )
    resolution = _resolve_guest_event(session, code, identity)
    event = resolution.event

    invitation, previous = _upsert_guest_invitation(
        session, event, identity, normalized
    )
    crud.log_activity(
        session,
        user_id=identity.id,
        event_id=event.id,
        action=f"responded_{normalized}",
        details={
            "invitation_id": invitation.id,
            "previous_status": previous,
            "code": _submitted_code(resolution, code),
        },
    )
    logger.info(
        "Event %s answered %s by identity %s (was %s)",
        event.id,
        normalized,
        identity.id,
        previous,
    )
    return {
        "message": f"You have {RESPONSE_VERBS[normalized]} the invitation.",
        "event_id": event.id,
        "invitation_id": invitation.id,
        "status": invitation.status,
        "created": previous is None,
    }


@workflow
def resolve_invitation(
    session: Session, token: str, identity: Identity | None = None
) -> dict[str, Any]:
    resolution = resolver.resolve_invitation(session, token)
    invitation = resolution.invitation
    return {
        "invitation": serialize_invitation(
            invitation, include_event=True, include_links=True
        ),
        "matched_by": resolution.matched_by,
        "is_invited_user": bool(
            identity and emails_match(identity.email, invitation.email)
        ),
    }


@workflow
def respond_to_invitation(
    session: Session, token: str, response: str, identity: Identity | None
) -> dict[str, Any]:
    """Record a yes/no/maybe answer.

    The status is overwritten unconditionally and every call appends a log
    entry, even when the answer is unchanged.
    """
    normalized = (response or "").strip().lower()
    if normalized not in RESPONSE_STATUSES:
        raise InvalidInputError("Invalid response type")
    invitation = resolver.resolve_invitation(session, token).invitation
    identity = check_invitation_email(identity, invitation)

    previous = invitation.status
    crud.set_invitation_status(session, invitation=invitation, status=normalized)
    crud.log_activity(
        session,
        user_id=identity.id,
        event_id=invitation.event_id,
        action=f"responded_{normalized}",
        details={"invitation_id": invitation.id, "previous_status": previous},
    )
    logger.info(
        "Invitation %s answered %s (was %s)", invitation.id, normalized, previous
    )
    return {
        "message": f"You have {RESPONSE_VERBS[normalized]} the invitation.",
        "event_id": invitation.event_id,
        "invitation_id": invitation.id,
        "status": invitation.status,
    }


@workflow
def create_invitation(
    session: Session,
    event_id: str,
    email: str,
    name: str | None,
    identity: Identity | None,
) -> dict[str, Any]:
    identity = require_identity(identity, "You must be logged in to create invitations")
    normalized = normalize_email(email)
    if "@" not in normalized:
        raise InvalidInputError("A valid email address is required")
    event = _require_owned_event(session, event_id, identity, "invite to")
    if crud.find_invitation(session, event.id, normalized):
        raise ConflictError("This email has already been invited to this event")
    try:
        invitation = crud.create_invitation(
            session,
            event=event,
            email=normalized,
            name=(name or "").strip() or None,
            short_code=_new_short_code(session),
        )
    except IntegrityError as exc:
        raise ConflictError(
            "This email has already been invited to this event"
        ) from exc
    crud.log_activity(
        session,
        user_id=identity.id,
        event_id=event.id,
        action="created_invitation",
        details={"invitation_id": invitation.id, "email": normalized},
    )
    logger.info("Created invitation %s for event %s", invitation.id, event.id)
    return {
        "invitation_id": invitation.id,
        "short_code": invitation.short_code,
        "links": invitation_links(invitation),
        "message": f"Invitation sent to {normalized}",
    }


@workflow
def resend_invitation(
    session: Session, invitation_id: str, identity: Identity | None
) -> dict[str, Any]:
    identity = require_identity(identity, "You must be logged in to resend invitations")
    invitation = session.get(Invitation, invitation_id) if invitation_id else None
    if invitation is None:
        raise NotFoundError("Invitation not found")
    _require_owned_event(session, invitation.event_id, identity, "resend invitations for")
    if not invitation.short_code:
        invitation.short_code = _new_short_code(session)
    crud.touch_invitation(session, invitation)
    crud.log_activity(
        session,
        user_id=identity.id,
        event_id=invitation.event_id,
        action="resent_invitation",
        details={"invitation_id": invitation.id, "email": invitation.email},
    )
    return {
        "invitation_id": invitation.id,
        "short_code": invitation.short_code,
        "email": invitation.email,
        "links": invitation_links(invitation),
        "message": f"Invitation resent to {invitation.email}",
    }


@workflow
def delete_event(
    session: Session, event_id: str, identity: Identity | None
) -> dict[str, Any]:
    identity = require_identity(identity, "You must be logged in to delete events")
    event = _require_owned_event(session, event_id, identity, "delete")
    title = event.title
    deleted = crud.delete_events_cascade(session, [event.id])
    # Written after the event row is gone, so the id only lives in details.
    crud.log_activity(
        session,
        user_id=identity.id,
        action="deleted_event",
        details={"event_id": event_id, "event_title": title},
    )
    logger.info("Deleted event %s (%s)", event_id, deleted)
    return {"message": "Event deleted successfully", "deleted": deleted}


@workflow
def delete_events(
    session: Session, event_ids: Iterable[str], identity: Identity | None
) -> dict[str, Any]:
    """Delete several owned events at once, or none of them."""
    identity = require_identity(identity, "You must be logged in to delete events")
    requested = list(dict.fromkeys(event_id for event_id in event_ids if event_id))
    if not requested:
        raise InvalidInputError("No events selected")
    found = crud.get_owned_events(session, identity.id, requested)
    if len(found) != len(requested):
        logger.warning(
            "Identity %s requested deletion of %d events but owns %d of them",
            identity.id,
            len(requested),
            len(found),
        )
        raise ForbiddenError(
            "Some events were not found or you don't have permission to delete them"
        )
    deleted = crud.delete_events_cascade(session, requested)
    crud.log_activity(
        session,
        user_id=identity.id,
        action="deleted_multiple_events",
        details={"count": len(requested), "event_ids": requested},
    )
    logger.info("Deleted %d events for identity %s", len(requested), identity.id)
    return {
        "message": f"{len(requested)} events deleted successfully",
        "deleted": deleted,
    }


@workflow
def create_event(
    session: Session,
    identity: Identity | None,
    *,
    title: str,
    event_date: datetime,
    description: str | None = None,
    location: str | None = None,
) -> dict[str, Any]:
    identity = require_identity(identity, "You must be logged in to create events")
    cleaned_title = (title or "").strip()
    if not cleaned_title:
        raise InvalidInputError("Title is required")
    event = crud.create_event(
        session,
        owner_id=identity.id,
        title=cleaned_title,
        description=description,
        event_date=event_date,
        location=location,
    )
    crud.log_activity(
        session,
        user_id=identity.id,
        event_id=event.id,
        action="created_event",
        details={"title": event.title},
    )
    logger.info("Created event %s for identity %s", event.id, identity.id)
    return {"event": serialize_event(event), "message": "Event created successfully"}


@workflow
def update_event(
    session: Session,
    event_id: str,
    identity: Identity | None,
    **changes: Any,
) -> dict[str, Any]:
    identity = require_identity(identity, "You must be logged in to edit events")
    unknown = set(changes) - set(EVENT_FIELDS)
    if unknown:
        raise InvalidInputError(f"Unknown event fields: {', '.join(sorted(unknown))}")
    event = _require_owned_event(session, event_id, identity)
    title = changes.get("title", event.title)
    if not (title or "").strip():
        raise InvalidInputError("Title is required")
    crud.update_event(
        session,
        event,
        title=title.strip(),
        description=changes.get("description", event.description),
        event_date=changes.get("event_date") or event.event_date,
        location=changes.get("location", event.location),
    )
    crud.log_activity(
        session,
        user_id=identity.id,
        event_id=event.id,
        action="updated_event",
        details={"fields": sorted(changes)},
    )
    return {"event": serialize_event(event), "message": "Event updated successfully"}


@workflow
def list_owned_events(
    session: Session, identity: Identity | None, *, limit: int | None = None
) -> dict[str, Any]:
    identity = require_identity(identity)
    events = crud.list_owned_events(session, identity.id, limit=limit)
    return {"events": [serialize_event(event) for event in events]}


@workflow
def list_event_invitations(
    session: Session, event_id: str, identity: Identity | None
) -> dict[str, Any]:
    """Guest list for an owned event."""
    identity = require_identity(identity)
    event = _require_owned_event(session, event_id, identity, "view guests of")
    invitations = list(event.invitations)
    counts = {status: 0 for status in INVITATION_STATUSES}
    for invitation in invitations:
        counts[invitation.status] = counts.get(invitation.status, 0) + 1
    return {
        "event": serialize_event(event),
        "invitations": [
            serialize_invitation(invitation, include_links=True)
            for invitation in invitations
        ],
        "counts": counts,
    }


@workflow
def list_invitations_for_identity(
    session: Session, identity: Identity | None
) -> dict[str, Any]:
    identity = require_identity(identity)
    invitations = crud.list_invitations_for_email(session, identity.email)
    return {
        "invitations": [
            serialize_invitation(invitation, include_event=True)
            for invitation in invitations
        ]
    }


@workflow
def list_activity(
    session: Session, identity: Identity | None, *, limit: int = 50
) -> dict[str, Any]:
    identity = require_identity(identity)
    entries = crud.list_activity_for_user(session, identity.id, limit=limit)
    return {"activity": [serialize_activity(entry) for entry in entries]}
