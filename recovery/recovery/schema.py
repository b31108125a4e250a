"""Field level validation for the enrollment forms."""
from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Dict

from .config import PASSWORD_HARD_CAP, FlowVariant

__all__ = ["FormState", "PASSKEY_NAME_PATTERN", "validate"]

PASSKEY_NAME_MIN = 2
PASSKEY_NAME_MAX = 32
PASSKEY_NAME_PATTERN = re.compile(r"^[\w \-.'@(),]+$")


@dataclass
class FormState:
    passkey_name: str = ""
    password: str = ""
    password_confirm: str = ""

    def clear(self) -> None:
        self.passkey_name = ""
        self.password = ""
        self.password_confirm = ""

    def is_empty(self) -> bool:
        return not (self.passkey_name or self.password or self.password_confirm)


def _validate_passkey_name(name: str) -> Dict[str, str]:
    stripped = name.strip()
    if not stripped:
        return {"passkey_name": "Passkey name is required."}
    if len(stripped) < PASSKEY_NAME_MIN:
        return {"passkey_name": f"Passkey name needs at least {PASSKEY_NAME_MIN} characters."}
    if len(stripped) > PASSKEY_NAME_MAX:
        return {"passkey_name": f"Passkey name allows at most {PASSKEY_NAME_MAX} characters."}
    if not PASSKEY_NAME_PATTERN.match(stripped):
        return {"passkey_name": "Passkey name contains invalid characters."}
    return {}


def _validate_password_pair(form: FormState) -> Dict[str, str]:
    errors: Dict[str, str] = {}
    if not form.password:
        errors["password"] = "Password is required."
    elif len(form.password) > PASSWORD_HARD_CAP:
        errors["password"] = f"Password allows at most {PASSWORD_HARD_CAP} characters."
    if not form.password_confirm:
        errors["password_confirm"] = "Password confirmation is required."
    return errors


def validate(form: FormState, variant: FlowVariant) -> Dict[str, str]:
    """Return ``{field: message}`` for every invalid field of ``variant``.

    Password policy rules are not checked here.
    """

    if variant is FlowVariant.NEW_ACCOUNT_PASSKEY:
        return _validate_passkey_name(form.passkey_name)
    return _validate_password_pair(form)
