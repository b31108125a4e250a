"""In-memory users, magic links and pending ceremonies for the dev backend."""
from __future__ import annotations

import hashlib
import hmac
import secrets
import time
from dataclasses import dataclass, field
from threading import Lock
from typing import Any, Dict, List, Optional, Tuple

from ..config import MagicLinkUsage
from ..policy import PasswordPolicy

__all__ = [
    "DevUser",
    "LinkError",
    "MagicLink",
    "StoredCredential",
    "create_magic_link",
    "create_user",
    "find_magic_link",
    "find_user",
    "issue_mfa_code",
    "links_for_user",
    "pop_auth_state",
    "pop_registration_state",
    "redeem_mfa_code",
    "reset_storage",
    "save_auth_state",
    "save_registration_state",
]

_PBKDF2_ROUNDS = 100_000


class LinkError(Exception):
    """Raised when a magic link cannot be used for the current request."""

    def __init__(self, message: str, *, status: int = 400, error: str = "BadRequest") -> None:
        super().__init__(message)
        self.status = status
        self.error = error


@dataclass
class StoredCredential:
    credential_data: Any
    name: str
    registered_at: float = field(default_factory=time.time)


@dataclass
class DevUser:
    id: str
    email: str
    mfa: bool = False
    policy: PasswordPolicy = field(default_factory=PasswordPolicy)
    credentials: List[StoredCredential] = field(default_factory=list)
    password_hashes: List[str] = field(default_factory=list)

    def credential_data(self) -> List[Any]:
        return [stored.credential_data for stored in self.credentials]

    def set_password(self, password: str) -> None:
        self.password_hashes.append(_hash_password(password))

    def recently_used(self, password: str) -> bool:
        window = self.policy.not_recently_used
        if window <= 0:
            return False
        return any(_verify_password(password, stored) for stored in self.password_hashes[-window:])


@dataclass
class MagicLink:
    id: str
    user_id: str
    csrf_token: str
    exp: float
    usage: str
    used: bool = False
    cookie: Optional[str] = None

    def validate(
        self,
        user_id: str,
        csrf_token: Optional[str],
        cookie: Optional[str],
        *,
        cookie_binding: bool = True,
    ) -> None:
        if self.cookie is not None and cookie_binding and cookie != self.cookie:
            raise LinkError(
                "The requested password reset link is already tied to another session",
                status=403,
                error="Forbidden",
            )
        if csrf_token is None:
            raise LinkError("CSRF Token is missing", status=401, error="Unauthorized")
        if not hmac.compare_digest(self.csrf_token.encode("utf-8"), csrf_token.encode("utf-8")):
            raise LinkError("Invalid CSRF Token", status=401, error="Unauthorized")
        if self.user_id != user_id:
            raise LinkError("The user id is invalid")
        if self.exp < time.time():
            raise LinkError("This link has expired already")
        if self.used:
            raise LinkError("The requested password reset link was already used")

    @property
    def parsed_usage(self) -> MagicLinkUsage:
        return MagicLinkUsage.parse(self.usage)


_lock = Lock()
_users: Dict[str, DevUser] = {}
_links: Dict[str, MagicLink] = {}
_registration_states: Dict[Tuple[str, str], Tuple[str, Dict[str, Any]]] = {}
_auth_states: Dict[str, Tuple[str, str, Dict[str, Any]]] = {}
_mfa_codes: Dict[str, Tuple[str, str, float]] = {}


def _hash_password(password: str) -> str:
    salt = secrets.token_bytes(16)
    digest = hashlib.pbkdf2_hmac("sha256", password.encode("utf-8"), salt, _PBKDF2_ROUNDS)
    return f"{salt.hex()}${digest.hex()}"


def _verify_password(password: str, stored: str) -> bool:
    salt_hex, _, digest_hex = stored.partition("$")
    digest = hashlib.pbkdf2_hmac(
        "sha256", password.encode("utf-8"), bytes.fromhex(salt_hex), _PBKDF2_ROUNDS
    )
    return hmac.compare_digest(digest.hex(), digest_hex)


def reset_storage() -> None:
    with _lock:
        _users.clear()
        _links.clear()
        _registration_states.clear()
        _auth_states.clear()
        _mfa_codes.clear()


def create_user(
    email: str,
    *,
    user_id: Optional[str] = None,
    mfa: bool = False,
    policy: Optional[PasswordPolicy] = None,
) -> DevUser:
    user = DevUser(
        id=user_id or secrets.token_hex(12),
        email=email,
        mfa=mfa,
        policy=policy or PasswordPolicy(),
    )
    with _lock:
        _users[user.id] = user
    return user


def find_user(user_id: str) -> Optional[DevUser]:
    with _lock:
        return _users.get(user_id)


def create_magic_link(user_id: str, usage: MagicLinkUsage, lifetime_minutes: int = 30) -> MagicLink:
    link = MagicLink(
        id=secrets.token_urlsafe(48),
        user_id=user_id,
        csrf_token=secrets.token_urlsafe(36),
        exp=time.time() + lifetime_minutes * 60,
        usage=str(usage),
    )
    with _lock:
        _links[link.id] = link
    return link


def find_magic_link(link_id: str) -> Optional[MagicLink]:
    with _lock:
        return _links.get(link_id)


def links_for_user(user_id: str) -> List[MagicLink]:
    with _lock:
        return [link for link in _links.values() if link.user_id == user_id]


def save_registration_state(user_id: str, link_id: str, passkey_name: str, state: Dict[str, Any]) -> None:
    with _lock:
        _registration_states[(user_id, link_id)] = (passkey_name, state)


def pop_registration_state(user_id: str, link_id: str) -> Optional[Tuple[str, Dict[str, Any]]]:
    with _lock:
        return _registration_states.pop((user_id, link_id), None)


def save_auth_state(user_id: str, purpose: str, state: Dict[str, Any]) -> str:
    code = secrets.token_urlsafe(24)
    with _lock:
        _auth_states[code] = (user_id, purpose, state)
    return code


def pop_auth_state(code: str) -> Optional[Tuple[str, str, Dict[str, Any]]]:
    with _lock:
        return _auth_states.pop(code, None)


def issue_mfa_code(user_id: str, purpose: str, lifetime_seconds: int) -> str:
    code = secrets.token_urlsafe(32)
    with _lock:
        _mfa_codes[code] = (user_id, purpose, time.time() + lifetime_seconds)
    return code


def redeem_mfa_code(code: Optional[str], user_id: str, purpose: str) -> bool:
    """Consume ``code``; it is valid once, for one user and one purpose."""

    if not code:
        return False
    with _lock:
        entry = _mfa_codes.pop(code, None)
    if entry is None:
        return False
    owner, code_purpose, exp = entry
    return owner == user_id and code_purpose == purpose and exp >= time.time()
