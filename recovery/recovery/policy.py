"""Password policy validation and generation."""
from __future__ import annotations

import secrets
import string
from dataclasses import dataclass
from enum import Enum
from typing import Any, Iterable, List, Sequence, Tuple

__all__ = [
    "LOWER",
    "UPPER",
    "DIGITS",
    "SPECIAL",
    "PasswordPolicy",
    "PolicyViolation",
    "generate",
    "validate",
]

LOWER = string.ascii_lowercase
UPPER = string.ascii_uppercase
DIGITS = string.digits
SPECIAL = string.punctuation
_ALPHABET = LOWER + UPPER + DIGITS + SPECIAL

GENERATED_LENGTH = 24


@dataclass(frozen=True)
class PasswordPolicy:
    length_min: int = 14
    length_max: int = 128
    include_lower_case: int = 0
    include_upper_case: int = 0
    include_digits: int = 0
    include_special: int = 0
    not_recently_used: int = 0

    FIELD_ORDER = (
        "length_min",
        "length_max",
        "include_lower_case",
        "include_upper_case",
        "include_digits",
        "include_special",
        "not_recently_used",
    )

    @classmethod
    def from_fields(cls, raw: Any) -> "PasswordPolicy":
        """Parse the seven ordered policy fields.

        ``raw`` is either a comma separated string (``"14,128,1,1,1,1,3"``) or
        a sequence. Empty fields count as zero.
        """

        if isinstance(raw, PasswordPolicy):
            return raw
        if isinstance(raw, str):
            parts: Sequence[Any] = raw.split(",") if raw.strip() else []
        elif isinstance(raw, Iterable):
            parts = list(raw)
        else:
            raise ValueError("Password policy must be a string or a sequence")

        if len(parts) != len(cls.FIELD_ORDER):
            raise ValueError(
                f"Password policy needs {len(cls.FIELD_ORDER)} fields, got {len(parts)}"
            )

        values = []
        for part in parts:
            if part is None or (isinstance(part, str) and not part.strip()):
                values.append(0)
            else:
                values.append(int(part))
        return cls(**dict(zip(cls.FIELD_ORDER, values)))

    def as_fields(self) -> str:
        return ",".join(str(getattr(self, name)) for name in self.FIELD_ORDER)

    def required_classes(self) -> List[Tuple[str, int]]:
        """Return ``(alphabet, count)`` pairs for every enabled character class."""

        pairs = (
            (LOWER, self.include_lower_case),
            (UPPER, self.include_upper_case),
            (DIGITS, self.include_digits),
            (SPECIAL, self.include_special),
        )
        return [(alphabet, count) for alphabet, count in pairs if count > 0]


class PolicyViolation(str, Enum):
    TOO_SHORT = "too_short"
    TOO_LONG = "too_long"
    MISSING_LOWER = "missing_lower"
    MISSING_UPPER = "missing_upper"
    MISSING_DIGIT = "missing_digit"
    MISSING_SPECIAL = "missing_special"

    @property
    def message(self) -> str:
        return _VIOLATION_MESSAGES[self]


_VIOLATION_MESSAGES = {
    PolicyViolation.TOO_SHORT: "Password is too short.",
    PolicyViolation.TOO_LONG: "Password is too long.",
    PolicyViolation.MISSING_LOWER: "Password needs a lowercase letter.",
    PolicyViolation.MISSING_UPPER: "Password needs an uppercase letter.",
    PolicyViolation.MISSING_DIGIT: "Password needs a digit.",
    PolicyViolation.MISSING_SPECIAL: "Password needs a special character.",
}


def _is_special(char: str) -> bool:
    return not (char in LOWER or char in UPPER or char in DIGITS)


def validate(password: str, policy: PasswordPolicy) -> List[PolicyViolation]:
    """Return the list of rules ``password`` violates, empty when it is valid.

    Reuse of recent passwords cannot be checked here; the backend enforces
    ``not_recently_used``.
    """

    violations: List[PolicyViolation] = []

    if len(password) < policy.length_min:
        violations.append(PolicyViolation.TOO_SHORT)
    if policy.length_max > 0 and len(password) > policy.length_max:
        violations.append(PolicyViolation.TOO_LONG)

    if policy.include_lower_case > 0 and not any(c in LOWER for c in password):
        violations.append(PolicyViolation.MISSING_LOWER)
    if policy.include_upper_case > 0 and not any(c in UPPER for c in password):
        violations.append(PolicyViolation.MISSING_UPPER)
    if policy.include_digits > 0 and not any(c in DIGITS for c in password):
        violations.append(PolicyViolation.MISSING_DIGIT)
    if policy.include_special > 0 and not any(_is_special(c) for c in password):
        violations.append(PolicyViolation.MISSING_SPECIAL)

    return violations


def _class_draws(policy: PasswordPolicy, length: int) -> List[Tuple[str, int]]:
    """Per-class draw counts that fit within ``length`` when a maximum is set.

    Every enabled class keeps at least one character.
    """

    classes = policy.required_classes()
    if policy.length_max <= 0 or sum(count for _, count in classes) <= length:
        return classes

    budget = max(length - len(classes), 0)
    draws = []
    for alphabet, count in classes:
        extra = min(count - 1, budget)
        budget -= extra
        draws.append((alphabet, 1 + extra))
    return draws


def generate(policy: PasswordPolicy) -> str:
    """Generate a random password that satisfies ``policy``.

    Characters for each required class are drawn first and the rest is
    filled from the full alphabet before shuffling, so the result is not
    perfectly uniform but always satisfies the class requirements.
    """

    length = max(policy.length_min, GENERATED_LENGTH)
    if policy.length_max > 0:
        length = min(length, policy.length_max)

    chars: List[str] = []
    for alphabet, count in _class_draws(policy, length):
        chars.extend(secrets.choice(alphabet) for _ in range(count))

    length = max(length, len(chars))
    chars.extend(secrets.choice(_ALPHABET) for _ in range(length - len(chars)))

    secrets.SystemRandom().shuffle(chars)
    return "".join(chars)
