"""Caller identity passed explicitly into every workflow."""

from __future__ import annotations

from dataclasses import dataclass

from sqlalchemy import select
from sqlalchemy.orm import Session

from .errors import AuthenticationRequiredError
from .models import Profile


@dataclass(frozen=True)
class Identity:
    id: str
    email: str
    full_name: str | None = None

    @classmethod
    def from_profile(cls, profile: Profile) -> Identity:
        return cls(id=profile.id, email=profile.email, full_name=profile.full_name)


def identity_for_token(session: Session, token: str | None) -> Identity | None:
    """Resolve a bearer token to an identity, or ``None`` when it is unknown."""
    if not token:
        return None
    stmt = select(Profile).where(Profile.api_token == token)
    profile = session.scalars(stmt).first()
    return Identity.from_profile(profile) if profile else None


def require_identity(identity: Identity | None, message: str | None = None) -> Identity:
    if identity is None or not identity.id:
        if message:
            raise AuthenticationRequiredError(message)
        raise AuthenticationRequiredError()
    return identity
