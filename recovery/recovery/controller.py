"""State machine driving one recovery or enrollment flow."""
from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, Optional

from . import policy, schema
from .ceremony import CredentialCeremonyAdapter
from .config import AccountType, FlowConfig, FlowVariant, RequestedFlow, resolve_variant
from .errors import FlowError, MatchError, PolicyError, ProtocolError, ValidationError
from .mfa import PURPOSE_PASSWORD_RESET, MfaStepUpGate
from .schema import FormState

__all__ = [
    "Failed",
    "FlowController",
    "FlowOutcome",
    "FlowState",
    "Pending",
    "Success",
    "threading_scheduler",
]

LOGGER = logging.getLogger("recovery.controller")


class FlowState(str, Enum):
    INITIALIZING = "initializing"
    READY = "ready"
    SUBMITTING = "submitting"
    AWAITING_MFA_ASSERTION = "awaiting_mfa_assertion"
    FINALIZING = "finalizing"
    SUCCESS = "success"
    FAILED = "failed"


class FlowOutcome:
    terminal = False


@dataclass(frozen=True)
class Pending(FlowOutcome):
    pass


@dataclass(frozen=True)
class Success(FlowOutcome):
    redirect_uri: Optional[str] = None
    terminal = True


@dataclass(frozen=True)
class Failed(FlowOutcome):
    message: str
    terminal = True


def threading_scheduler(delay_ms: int, callback: Callable[[], Any]) -> threading.Timer:
    timer = threading.Timer(delay_ms / 1000.0, callback)
    timer.daemon = True
    timer.start()
    return timer


def _log_navigation(target: str) -> None:
    LOGGER.info("Redirecting to %s", target)


class FlowController:
    """Owns the form, the session context and every transition of a flow.

    All network calls and ceremonies happen inside :meth:`submit`; the
    ``loading`` flag keeps a second submission from starting while one is
    outstanding.
    """

    def __init__(
        self,
        config: FlowConfig,
        api: Any,
        authenticator: Any,
        *,
        schedule: Callable[[int, Callable[[], Any]], Any] = threading_scheduler,
        navigate: Callable[[str], Any] = _log_navigation,
    ) -> None:
        self.state = FlowState.INITIALIZING
        self.config = config
        self.api = api
        self.ceremonies = CredentialCeremonyAdapter(api, authenticator)
        self.gate = MfaStepUpGate(self.ceremonies, enabled=config.mfa_enabled)
        self._schedule = schedule
        self._navigate = navigate

        self.form = FormState()
        self.account_type = AccountType.PASSKEY
        self.loading = False
        self.outcome: FlowOutcome = Pending()
        self.field_errors: Dict[str, str] = {}
        self.redirect_handle: Any = None
        self.redirect_target: Optional[str] = None

        self.state = FlowState.READY

    @property
    def session(self):
        return self.config.session

    @property
    def variant(self) -> FlowVariant:
        return resolve_variant(self.config.requested_flow, self.account_type)

    @property
    def error(self) -> Optional[str]:
        if isinstance(self.outcome, Failed):
            return self.outcome.message
        return None

    @property
    def can_submit(self) -> bool:
        return self.state is FlowState.READY and not self.loading

    @property
    def redirect_notice(self) -> Optional[str]:
        if self.redirect_target is None:
            return None
        seconds = self.config.redirect_delay_ms / 1000
        return f"Success. You will be redirected to {self.redirect_target} in {seconds:g} seconds."

    def set_account_type(self, account_type: AccountType) -> None:
        """Switch between passkey and password for a new account.

        The form is reset unconditionally.
        """

        if self.config.requested_flow is not RequestedFlow.NEW_ACCOUNT:
            raise ValueError("The account type can only be chosen for a new account")
        if self.state is not FlowState.READY:
            raise ValueError(f"Cannot change the account type while {self.state.value}")
        self.account_type = AccountType(account_type)
        self.form.clear()
        self.field_errors = {}

    def update_form(self, **fields: str) -> None:
        if self.state is not FlowState.READY:
            raise ValueError(f"Cannot edit the form while {self.state.value}")
        for name, value in fields.items():
            if not hasattr(self.form, name):
                raise AttributeError(f"Unknown form field {name!r}")
            setattr(self.form, name, value)

    def generate_password(self) -> str:
        generated = policy.generate(self.config.policy)
        self.update_form(password=generated, password_confirm=generated)
        return generated

    def submit(self) -> FlowOutcome:
        """Run one submission attempt and return its outcome."""

        if not self.can_submit:
            LOGGER.debug("Ignoring submit while %s", self.state.value)
            return self.outcome

        self.loading = True
        self.outcome = Pending()
        self.field_errors = {}
        self.state = FlowState.SUBMITTING
        try:
            if self.variant is FlowVariant.NEW_ACCOUNT_PASSKEY:
                redirect_uri = self._submit_passkey()
            else:
                redirect_uri = self._submit_password()
        except FlowError as exc:
            self._fail(exc)
        except Exception as exc:
            LOGGER.exception("Unexpected error while submitting %s", self.variant.value)
            self._fail(ProtocolError(f"Unexpected error: {exc}"))
        else:
            self._succeed(redirect_uri)
        finally:
            self.loading = False
        return self.outcome

    def _submit_passkey(self) -> Optional[str]:
        errors = schema.validate(self.form, FlowVariant.NEW_ACCOUNT_PASSKEY)
        if errors:
            raise ValidationError(errors)

        name = self.form.passkey_name.strip()
        envelope = self.ceremonies.start_enrollment(self.session, name)
        result = self.ceremonies.run_create_ceremony(envelope)
        self.state = FlowState.FINALIZING
        self.ceremonies.finish_enrollment(self.session, name, result)
        return None

    def _submit_password(self) -> Optional[str]:
        errors = schema.validate(self.form, self.variant)
        if errors:
            raise ValidationError(errors)
        if self.form.password != self.form.password_confirm:
            raise MatchError()
        violations = policy.validate(self.form.password, self.config.policy)
        if violations:
            raise PolicyError(violations)

        mfa_code = None
        request = self.gate.require_step_up(self.session, PURPOSE_PASSWORD_RESET)
        if request is not None:
            self.state = FlowState.AWAITING_MFA_ASSERTION
            mfa_code = self.gate.authorize(request).take_code()

        self.state = FlowState.FINALIZING
        response = self.api.reset_password(self.form.password, mfa_code)
        return response.header("Location")

    def _fail(self, exc: FlowError) -> None:
        self.outcome = Failed(str(exc))
        self.field_errors = dict(getattr(exc, "field_errors", {}) or {})
        if exc.recoverable:
            self.state = FlowState.READY
            LOGGER.info("Submission failed: %s", exc)
        else:
            self.state = FlowState.FAILED
            LOGGER.error("Flow aborted: %s", exc)

    def _succeed(self, redirect_uri: Optional[str]) -> None:
        self.form.clear()
        self.outcome = Success(redirect_uri)
        self.state = FlowState.SUCCESS
        self.redirect_target = redirect_uri or self.config.default_redirect
        LOGGER.info("Flow %s succeeded for user %s", self.variant.value, self.session.identity_id)
        target = self.redirect_target
        self.redirect_handle = self._schedule(
            self.config.redirect_delay_ms, lambda: self._navigate(target)
        )
