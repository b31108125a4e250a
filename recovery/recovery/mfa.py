"""Step-up MFA gate for sensitive actions."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Optional

from .ceremony import ChallengeEnvelope, CredentialCeremonyAdapter
from .config import SessionContext
from .errors import CeremonyError, IdentityMismatchError, ProtocolError

__all__ = ["MfaAssertionRequest", "MfaAssertionResult", "MfaStepUpGate", "PURPOSE_PASSWORD_RESET"]

LOGGER = logging.getLogger("recovery.mfa")

PURPOSE_PASSWORD_RESET = "PasswordReset"


@dataclass(frozen=True)
class MfaAssertionRequest:
    purpose: str
    identity_id: str


class MfaAssertionResult:
    """A verified assertion holding a one-time code for the gated action."""

    def __init__(self, identity_id: str, code: str) -> None:
        self.identity_id = identity_id
        self._code: Optional[str] = code

    @property
    def consumed(self) -> bool:
        return self._code is None

    def take_code(self) -> str:
        if self._code is None:
            raise ProtocolError("The MFA code was already used. Please authenticate again.")
        code, self._code = self._code, None
        return code


class MfaStepUpGate:
    def __init__(self, ceremonies: CredentialCeremonyAdapter, *, enabled: bool) -> None:
        self.ceremonies = ceremonies
        self.enabled = enabled
        self.pending: Optional[MfaAssertionRequest] = None

    def require_step_up(self, session: SessionContext, purpose: str) -> Optional[MfaAssertionRequest]:
        """Return an assertion request when ``purpose`` needs MFA, else ``None``."""

        if not self.enabled:
            return None
        return MfaAssertionRequest(purpose=purpose, identity_id=session.identity_id)

    def start_assertion(self, request: MfaAssertionRequest) -> ChallengeEnvelope:
        envelope = ChallengeEnvelope(self.ceremonies.api.auth_start(request.purpose))
        if envelope.user_id != request.identity_id:
            LOGGER.error(
                "MFA assertion identity %r does not match session identity %r",
                envelope.user_id,
                request.identity_id,
            )
            raise IdentityMismatchError(request.identity_id, envelope.user_id)
        return envelope

    def authorize(self, request: MfaAssertionRequest) -> MfaAssertionResult:
        """Run the assertion for ``request`` and return its one-time code.

        Any failure clears the pending request; the gated action must not run.
        """

        self.pending = request
        try:
            envelope = self.start_assertion(request)
            assertion = self.ceremonies.run_get_ceremony(envelope)
            payload: Any = self.ceremonies.api.auth_finish(envelope.code, assertion.to_wire())
        except CeremonyError:
            LOGGER.info("MFA ceremony for %s failed", request.purpose)
            raise
        finally:
            self.pending = None

        code = payload.get("code") if isinstance(payload, dict) else None
        if not isinstance(code, str) or not code:
            raise ProtocolError("The server did not return an MFA code.")
        LOGGER.info("MFA assertion for %s accepted", request.purpose)
        return MfaAssertionResult(request.identity_id, code)
