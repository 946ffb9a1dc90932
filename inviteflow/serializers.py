"""JSON-ready views of the ORM models."""

from __future__ import annotations

from datetime import datetime

from .links import event_join_url, event_response_urls, invitation_links
from .models import ActivityLog, Event, Invitation, Profile


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


def serialize_profile_public(profile: Profile | None):
    if profile is None:
        return None
    return {
        "id": profile.id,
        "full_name": profile.full_name,
        "avatar_url": profile.avatar_url,
    }


def serialize_event(
    event: Event,
    *,
    include_owner: bool = False,
    include_invite_code: bool = True,
):
    data = {
        "id": event.id,
        "owner_id": event.owner_id,
        "title": event.title,
        "description": event.description,
        "event_date": _iso(event.event_date),
        "location": event.location,
        "created_at": _iso(event.created_at),
        "updated_at": _iso(event.updated_at),
    }
    if include_invite_code:
        data["invite_code"] = event.invite_code
        data["join_url"] = event_join_url(event)
        data["response_urls"] = event_response_urls(event)
    if include_owner:
        data["owner"] = serialize_profile_public(event.owner)
    return data


def serialize_invitation(
    invitation: Invitation,
    *,
    include_event: bool = False,
    include_links: bool = False,
):
    data = {
        "id": invitation.id,
        "event_id": invitation.event_id,
        "email": invitation.email,
        "name": invitation.name,
        "status": invitation.status,
        "short_code": invitation.short_code,
        "created_at": _iso(invitation.created_at),
        "updated_at": _iso(invitation.updated_at),
    }
    if include_event and invitation.event is not None:
        data["event"] = serialize_event(
            invitation.event, include_owner=True, include_invite_code=False
        )
    if include_links:
        data["links"] = invitation_links(invitation)
    return data


def serialize_activity(entry: ActivityLog):
    return {
        "id": entry.id,
        "user_id": entry.user_id,
        "event_id": entry.event_id,
        "action": entry.action,
        "details": entry.details,
        "created_at": _iso(entry.created_at),
    }
