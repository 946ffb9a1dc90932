"""Human-friendly invite and short code generation."""

from __future__ import annotations

import logging
import re
import secrets
from typing import Callable

from .config import settings
from .errors import ConflictError

logger = logging.getLogger("uvicorn.error")

# Uppercase letters and digits minus I, O, 0 and 1.
CODE_ALPHABET = "ABCDEFGHJKLMNPQRSTUVWXYZ23456789"

_code_pattern = re.compile(f"^[{CODE_ALPHABET}]+$")


def generate_code(length: int) -> str:
    """Return ``length`` characters drawn uniformly from ``CODE_ALPHABET``."""
    if length < 1:
        raise ValueError("length must be >= 1")
    return "".join(secrets.choice(CODE_ALPHABET) for _ in range(length))


def generate_invite_code() -> str:
    return generate_code(settings.invite_code_length)


def generate_short_code() -> str:
    return generate_code(settings.short_code_length)


def normalize_code(raw: str | None) -> str:
    return (raw or "").strip().upper()


def is_valid_code_format(code: str | None, length: int | None = None) -> bool:
    """Check a code only uses the restricted alphabet (and length, if given)."""
    if not code:
        return False
    if length is not None and len(code) != length:
        return False
    return bool(_code_pattern.match(code))


def unique_code(
    exists: Callable[[str], bool],
    generator: Callable[[], str],
    *,
    max_attempts: int | None = None,
) -> str:
    """Generate codes until ``exists`` reports one as free.

    Raises ``ConflictError`` once ``max_attempts`` candidates have all collided.
    """
    attempts = max_attempts if max_attempts is not None else settings.code_max_attempts
    for attempt in range(1, attempts + 1):
        candidate = generator()
        if not exists(candidate):
            return candidate
        logger.info("Generated code collided (attempt %d of %d)", attempt, attempts)
    logger.warning("Could not generate a unique code after %d attempts", attempts)
    raise ConflictError("Could not generate a unique code. Please try again.")
