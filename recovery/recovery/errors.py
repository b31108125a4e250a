"""Exception types raised while driving a recovery flow."""
from __future__ import annotations

from typing import Mapping, Optional, Sequence

__all__ = [
    "CeremonyError",
    "FlowError",
    "IdentityMismatchError",
    "MatchError",
    "PolicyError",
    "ProtocolError",
    "ValidationError",
]


class FlowError(Exception):
    """Base class for every error surfaced by a submission attempt."""

    #: Whether the user may retry the submission after this error.
    recoverable = True


class ValidationError(FlowError):
    """Raised when one or more form fields fail schema validation."""

    def __init__(self, field_errors: Mapping[str, str], message: Optional[str] = None) -> None:
        super().__init__(message or "Please correct the highlighted fields.")
        self.field_errors = dict(field_errors)


class PolicyError(FlowError):
    """Raised when a password violates the active password policy."""

    def __init__(self, violations: Sequence[object]) -> None:
        self.violations = list(violations)
        messages = [getattr(violation, "message", str(violation)) for violation in self.violations]
        super().__init__(" ".join(messages) or "Password does not satisfy the policy.")

    @property
    def field_errors(self) -> dict:
        return {"password": str(self)}


class MatchError(FlowError):
    """Raised when the password and its confirmation differ."""

    field_errors = {"password_confirm": "Passwords do not match."}

    def __init__(self) -> None:
        super().__init__("Passwords do not match.")


class CeremonyError(FlowError):
    """Raised when the authenticator rejects, cancels or times out a ceremony."""


class IdentityMismatchError(FlowError):
    """Raised when an MFA assertion reports an identity other than the session's."""

    recoverable = False

    def __init__(self, expected: str, actual: Optional[str]) -> None:
        super().__init__("Identity mismatch, this should never happen. Please start over.")
        self.expected = expected
        self.actual = actual


class ProtocolError(FlowError):
    """Raised for non-2xx responses and transport failures."""

    def __init__(
        self,
        message: str,
        *,
        status: Optional[int] = None,
        error: Optional[str] = None,
    ) -> None:
        super().__init__(message)
        self.status = status
        self.error = error
