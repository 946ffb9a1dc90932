"""Shareable URLs for invitations and events."""

from __future__ import annotations

from urllib.parse import urlencode

from .config import settings
from .models import RESPONSE_STATUSES, Event, Invitation


def _base(base_url: str | None) -> str:
    return (base_url or settings.base_url).rstrip("/")


def invitation_token(invitation: Invitation) -> str:
    """Prefer the short code in links; it is easier to type than an id."""
    return invitation.short_code or invitation.id


def invitation_links(invitation: Invitation, base_url: str | None = None) -> dict:
    base = _base(base_url)
    token = invitation_token(invitation)
    return {
        "invite_url": f"{base}/invites/{token}",
        "quick_response_urls": {
            response: f"{base}/i/{token}/respond/{response}"
            for response in RESPONSE_STATUSES
        },
    }


def event_token(event: Event) -> str:
    return event.invite_code or event.id


def event_response_urls(event: Event, base_url: str | None = None) -> dict:
    """Answer links for the event as a whole; these are what QR codes encode."""
    base = _base(base_url)
    token = event_token(event)
    return {
        response: f"{base}/e/{token}/respond/{response}"
        for response in RESPONSE_STATUSES
    }


def event_join_url(event: Event, base_url: str | None = None) -> str | None:
    if not event.invite_code:
        return None
    return f"{_base(base_url)}/j/{event.invite_code}"


def signin_redirect_url(next_path: str, **intended: str) -> str:
    """Sign-in URL that carries the action to replay after authentication."""
    params = {"next": next_path, **{k: v for k, v in intended.items() if v}}
    return f"{settings.signin_path}?{urlencode(params)}"
