"""Utility helpers for InviteFlow."""

from __future__ import annotations

from datetime import UTC, datetime


def utcnow() -> datetime:
    """Return a naive UTC datetime."""

    return datetime.now(UTC).replace(tzinfo=None)


def to_naive_utc(value: datetime | None) -> datetime | None:
    """Convert an aware datetime to naive UTC; naive values pass through."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value
    return value.astimezone(UTC).replace(tzinfo=None)


def normalize_email(value: str | None) -> str:
    """Return the canonical (trimmed, lower-cased) form of an email address."""
    return (value or "").strip().lower()


def emails_match(left: str | None, right: str | None) -> bool:
    left_normalized = normalize_email(left)
    return bool(left_normalized) and left_normalized == normalize_email(right)
