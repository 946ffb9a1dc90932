"""Error taxonomy and the uniform result shape returned by workflows."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class ErrorKind(str, Enum):
    AUTHENTICATION_REQUIRED = "AuthenticationRequired"
    NOT_FOUND = "NotFound"
    FORBIDDEN = "Forbidden"
    WRONG_EMAIL = "WrongEmail"
    SELF_JOIN_FORBIDDEN = "SelfJoinForbidden"
    CONFLICT = "Conflict"
    INVALID_INPUT = "InvalidInput"
    PERSISTENCE = "PersistenceError"


class WorkflowError(Exception):
    """Base class for failures a workflow reports back to its caller."""

    kind = ErrorKind.PERSISTENCE
    status_code = 500

    def __init__(self, message: str, **extra: Any) -> None:
        super().__init__(message)
        self.message = message
        self.extra = extra

    def to_dict(self) -> dict[str, Any]:
        return {"error": self.message, "error_kind": self.kind.value, **self.extra}


class AuthenticationRequiredError(WorkflowError):
    """Raised when an operation needs a signed-in identity and has none."""

    kind = ErrorKind.AUTHENTICATION_REQUIRED
    status_code = 401

    def __init__(self, message: str = "Authentication required", **extra: Any) -> None:
        super().__init__(message, requires_auth=True, **extra)


class NotFoundError(WorkflowError):
    kind = ErrorKind.NOT_FOUND
    status_code = 404


class ForbiddenError(WorkflowError):
    """Raised when the identity does not own the targeted event."""

    kind = ErrorKind.FORBIDDEN
    status_code = 403


class WrongEmailError(WorkflowError):
    """Raised when the signed-in email differs from the invitation's email."""

    kind = ErrorKind.WRONG_EMAIL
    status_code = 403

    def __init__(self, invitation_email: str) -> None:
        super().__init__(
            "This invitation was sent to a different email address",
            wrong_email=True,
            invitation_email=invitation_email,
        )
        self.invitation_email = invitation_email


class SelfJoinForbiddenError(WorkflowError):
    kind = ErrorKind.SELF_JOIN_FORBIDDEN
    status_code = 400

    def __init__(
        self,
        message: str = "You are the owner of this event and cannot join it as a guest.",
    ) -> None:
        super().__init__(message)


class ConflictError(WorkflowError):
    kind = ErrorKind.CONFLICT
    status_code = 409


class InvalidInputError(WorkflowError):
    kind = ErrorKind.INVALID_INPUT
    status_code = 400


class PersistenceError(WorkflowError):
    kind = ErrorKind.PERSISTENCE
    status_code = 500


@dataclass
class Result:
    """Outcome of a workflow: a payload on success, a ``WorkflowError`` otherwise."""

    success: bool
    data: dict[str, Any] = field(default_factory=dict)
    error: WorkflowError | None = None

    @classmethod
    def ok(cls, data: dict[str, Any] | None = None) -> Result:
        return cls(success=True, data=data or {})

    @classmethod
    def fail(cls, error: WorkflowError) -> Result:
        return cls(success=False, error=error)

    @property
    def kind(self) -> ErrorKind | None:
        return self.error.kind if self.error else None

    @property
    def status_code(self) -> int:
        return self.error.status_code if self.error else 200

    def unwrap(self) -> dict[str, Any]:
        """Return the payload or raise the stored error."""
        if self.error is not None:
            raise self.error
        return self.data

    def to_dict(self) -> dict[str, Any]:
        if self.error is not None:
            return {"success": False, **self.error.to_dict()}
        return {"success": True, **self.data}
