"""Configuration snapshot and settings for the recovery flow."""
from __future__ import annotations

import os
from dataclasses import dataclass
from enum import Enum
from typing import Any, Mapping, Optional

from .policy import PasswordPolicy

__all__ = [
    "AccountType",
    "CSRF_HEADER",
    "DEFAULT_REDIRECT",
    "FlowConfig",
    "FlowVariant",
    "MagicLinkUsage",
    "PASSWORD_HARD_CAP",
    "REDIRECT_DELAY_MS",
    "RequestedFlow",
    "SessionContext",
    "env_base_url",
    "env_flag",
    "env_http_timeout",
    "resolve_variant",
]

PASSWORD_HARD_CAP = 256
REDIRECT_DELAY_MS = 5000
CSRF_HEADER = "pwd-csrf-token"
DEFAULT_REDIRECT = os.environ.get("RECOVERY_DEFAULT_REDIRECT", "/auth/v1/account")


def env_flag(name: str) -> Optional[bool]:
    """Return ``True`` or ``False`` when the named env var is explicitly set."""

    raw_value = os.environ.get(name)
    if raw_value is None:
        return None

    normalised = raw_value.strip().lower()
    if normalised in {"", "0", "false", "off", "no"}:
        return False
    return True


def env_base_url() -> str:
    return os.environ.get("RECOVERY_BASE_URL", "http://localhost:8080").rstrip("/")


def env_http_timeout() -> Optional[float]:
    raw_value = os.environ.get("RECOVERY_HTTP_TIMEOUT")
    if raw_value is None or not raw_value.strip():
        return None
    return float(raw_value)


class RequestedFlow(str, Enum):
    NEW_ACCOUNT = "new_user"
    PASSWORD_RESET = "password_reset"


class AccountType(str, Enum):
    PASSKEY = "passkey"
    PASSWORD = "password"


class FlowVariant(str, Enum):
    NEW_ACCOUNT_PASSKEY = "new_account_passkey"
    NEW_ACCOUNT_PASSWORD = "new_account_password"
    PASSWORD_RESET = "password_reset"

    @property
    def uses_password(self) -> bool:
        return self is not FlowVariant.NEW_ACCOUNT_PASSKEY


def resolve_variant(requested: RequestedFlow, account_type: AccountType) -> FlowVariant:
    """Derive the active variant from the requested flow and the account choice."""

    if requested is RequestedFlow.PASSWORD_RESET:
        return FlowVariant.PASSWORD_RESET
    if account_type is AccountType.PASSWORD:
        return FlowVariant.NEW_ACCOUNT_PASSWORD
    return FlowVariant.NEW_ACCOUNT_PASSKEY


@dataclass(frozen=True)
class MagicLinkUsage:
    """What a magic link was issued for.

    The textual form is ``<kind>`` or ``<kind>$<value>``; ``$`` is URL safe
    which keeps the usage usable as a query parameter.
    """

    kind: str
    value: Optional[str] = None

    EMAIL_CHANGE = "email_change"
    NEW_USER = "new_user"
    PASSWORD_RESET = "password_reset"

    @classmethod
    def parse(cls, text: str) -> "MagicLinkUsage":
        kind, _, value = text.partition("$")
        if kind == cls.EMAIL_CHANGE:
            return cls(kind, value)
        if kind in (cls.NEW_USER, cls.PASSWORD_RESET):
            return cls(kind, value or None)
        raise ValueError(f"Invalid string for magic link usage: {text!r}")

    @property
    def redirect_uri(self) -> Optional[str]:
        if self.kind == self.EMAIL_CHANGE:
            return None
        return self.value

    def requested_flow(self) -> RequestedFlow:
        if self.kind == self.EMAIL_CHANGE:
            raise ValueError("An email change link cannot start a recovery flow")
        return RequestedFlow(self.kind)

    def __str__(self) -> str:
        if self.kind == self.EMAIL_CHANGE:
            return f"{self.kind}${self.value or ''}"
        if self.value:
            return f"{self.kind}${self.value}"
        return self.kind


@dataclass(frozen=True)
class SessionContext:
    identity_id: str
    correlation_token: str
    anti_forgery_token: str


def _coerce_bool(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in {"1", "true", "yes", "on"}
    return bool(value)


def _require_text(page: Mapping[str, Any], *keys: str) -> str:
    for key in keys:
        value = page.get(key)
        if isinstance(value, str) and value.strip():
            return value.strip()
    raise ValueError(f"Page configuration is missing {keys[0]!r}")


@dataclass(frozen=True)
class FlowConfig:
    """Immutable snapshot of the values embedded in the recovery page."""

    policy: PasswordPolicy
    session: SessionContext
    requested_flow: RequestedFlow
    mfa_enabled: bool = False
    default_redirect: str = DEFAULT_REDIRECT
    redirect_delay_ms: int = REDIRECT_DELAY_MS

    @classmethod
    def from_page(
        cls,
        page: Mapping[str, Any],
        query: Optional[Mapping[str, Any]] = None,
    ) -> "FlowConfig":
        """Build the configuration from page values and the query string.

        ``query["type"]`` takes precedence over ``page["type"]``; both accept
        a magic link usage string such as ``password_reset$/next``.
        """

        raw_type = (query or {}).get("type") or page.get("type") or MagicLinkUsage.PASSWORD_RESET
        usage = MagicLinkUsage.parse(str(raw_type))

        session = SessionContext(
            identity_id=_require_text(page, "userId", "user_id"),
            correlation_token=_require_text(page, "magicLinkId", "magic_link_id"),
            anti_forgery_token=_require_text(page, "csrfToken", "csrf_token"),
        )

        return cls(
            policy=PasswordPolicy.from_fields(page.get("policy", "")),
            session=session,
            requested_flow=usage.requested_flow(),
            mfa_enabled=_coerce_bool(page.get("mfa", False)),
        )
