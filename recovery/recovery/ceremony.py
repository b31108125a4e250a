"""Authenticator ceremonies and their wire encoding."""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional

from fido2.client import ClientError
from fido2.ctap import CtapError
from fido2.webauthn import (
    AuthenticatorSelectionCriteria,
    PublicKeyCredentialCreationOptions,
    PublicKeyCredentialDescriptor,
    PublicKeyCredentialParameters,
    PublicKeyCredentialRequestOptions,
    PublicKeyCredentialRpEntity,
    PublicKeyCredentialUserEntity,
    UserVerificationRequirement,
)

from .config import SessionContext
from .encoding import decode_binary_value, encode_binary_value
from .errors import CeremonyError, ProtocolError

__all__ = [
    "AssertionResult",
    "ChallengeEnvelope",
    "CredentialCeremonyAdapter",
    "CredentialResult",
    "decode_creation_options",
    "decode_request_options",
]

LOGGER = logging.getLogger("recovery.ceremony")

# Errors an authenticator raises when the user declines, the platform times
# out or the device goes away mid-ceremony.
CEREMONY_FAILURES = (ClientError, CtapError, OSError)


class ChallengeEnvelope:
    """A server issued challenge that may back exactly one ceremony."""

    def __init__(self, payload: Mapping[str, Any]) -> None:
        self.payload = dict(payload)
        self._consumed = False

    @property
    def consumed(self) -> bool:
        return self._consumed

    @property
    def code(self) -> Optional[str]:
        value = self.payload.get("code")
        return value if isinstance(value, str) else None

    @property
    def user_id(self) -> Optional[str]:
        value = self.payload.get("userId", self.payload.get("user_id"))
        return value if isinstance(value, str) else None

    def public_key(self) -> Mapping[str, Any]:
        for container in (self.payload, self.payload.get("ccr"), self.payload.get("rcr")):
            if isinstance(container, Mapping) and isinstance(container.get("publicKey"), Mapping):
                return container["publicKey"]
        raise ProtocolError("The server sent a challenge without public key options.")

    def consume(self) -> Mapping[str, Any]:
        if self._consumed:
            raise CeremonyError("This challenge was already used. Please try again.")
        self._consumed = True
        return self.public_key()


def _entries(raw: Any) -> List[Mapping[str, Any]]:
    if not raw:
        return []
    if not isinstance(raw, list) or not all(isinstance(entry, Mapping) for entry in raw):
        raise ValueError("expected a list of objects")
    return raw


def _descriptors(raw: Any) -> Optional[List[PublicKeyCredentialDescriptor]]:
    if not raw:
        return None
    return [
        PublicKeyCredentialDescriptor(
            type=entry.get("type", "public-key"),
            id=decode_binary_value(entry.get("id")),
            transports=entry.get("transports"),
        )
        for entry in _entries(raw)
    ]


def decode_creation_options(public_key: Mapping[str, Any]) -> PublicKeyCredentialCreationOptions:
    """Turn wire creation options into the structure an authenticator consumes.

    User verification is always raised to ``required``.
    """

    try:
        rp = public_key["rp"]
        user = public_key["user"]
        selection = dict(public_key.get("authenticatorSelection") or {})
        return PublicKeyCredentialCreationOptions(
            rp=PublicKeyCredentialRpEntity(name=rp["name"], id=rp.get("id")),
            user=PublicKeyCredentialUserEntity(
                name=user["name"],
                id=decode_binary_value(user["id"]),
                display_name=user.get("displayName"),
            ),
            challenge=decode_binary_value(public_key["challenge"]),
            pub_key_cred_params=[
                PublicKeyCredentialParameters(type=param.get("type", "public-key"), alg=param["alg"])
                for param in _entries(public_key.get("pubKeyCredParams"))
            ],
            timeout=public_key.get("timeout"),
            exclude_credentials=_descriptors(public_key.get("excludeCredentials")),
            authenticator_selection=AuthenticatorSelectionCriteria(
                authenticator_attachment=selection.get("authenticatorAttachment"),
                resident_key=selection.get("residentKey"),
                user_verification=UserVerificationRequirement.REQUIRED,
                require_resident_key=selection.get("requireResidentKey"),
            ),
            attestation=public_key.get("attestation"),
            extensions=public_key.get("extensions"),
        )
    except (AttributeError, KeyError, TypeError, ValueError) as exc:
        raise ProtocolError("The server sent a malformed registration challenge.") from exc


def decode_request_options(public_key: Mapping[str, Any]) -> PublicKeyCredentialRequestOptions:
    try:
        return PublicKeyCredentialRequestOptions(
            challenge=decode_binary_value(public_key["challenge"]),
            timeout=public_key.get("timeout"),
            rp_id=public_key.get("rpId"),
            allow_credentials=_descriptors(public_key.get("allowCredentials")),
            user_verification=UserVerificationRequirement.REQUIRED,
            extensions=public_key.get("extensions"),
        )
    except (AttributeError, KeyError, TypeError, ValueError) as exc:
        raise ProtocolError("The server sent a malformed authentication challenge.") from exc


@dataclass(frozen=True)
class CredentialResult:
    """Outcome of a create ceremony, binary fields still raw."""

    credential_id: bytes
    attestation_object: bytes
    client_data_json: bytes
    authenticator_attachment: Optional[str] = None
    extension_results: Dict[str, Any] = field(default_factory=dict)

    def to_wire(self) -> Dict[str, Any]:
        encoded_id = encode_binary_value(self.credential_id)
        payload: Dict[str, Any] = {
            "id": encoded_id,
            "rawId": encoded_id,
            "type": "public-key",
            "response": {
                "attestationObject": encode_binary_value(self.attestation_object),
                "clientDataJSON": encode_binary_value(self.client_data_json),
            },
            "clientExtensionResults": dict(self.extension_results),
        }
        if self.authenticator_attachment:
            payload["authenticatorAttachment"] = self.authenticator_attachment
        return payload


@dataclass(frozen=True)
class AssertionResult:
    """Outcome of a get ceremony, binary fields still raw."""

    credential_id: bytes
    authenticator_data: bytes
    client_data_json: bytes
    signature: bytes
    user_handle: Optional[bytes] = None
    extension_results: Dict[str, Any] = field(default_factory=dict)

    def to_wire(self) -> Dict[str, Any]:
        encoded_id = encode_binary_value(self.credential_id)
        return {
            "id": encoded_id,
            "rawId": encoded_id,
            "type": "public-key",
            "response": {
                "authenticatorData": encode_binary_value(self.authenticator_data),
                "clientDataJSON": encode_binary_value(self.client_data_json),
                "signature": encode_binary_value(self.signature),
                "userHandle": (
                    encode_binary_value(self.user_handle) if self.user_handle else None
                ),
            },
            "clientExtensionResults": dict(self.extension_results),
        }


class CredentialCeremonyAdapter:
    """Run create and get ceremonies on an authenticator.

    ``authenticator`` exposes ``make_credential(options) -> CredentialResult``
    and ``get_assertion(options) -> AssertionResult``. A ceremony is never
    retried; a cancelled one needs a fresh user-initiated attempt.
    """

    def __init__(self, api: Any, authenticator: Any) -> None:
        self.api = api
        self.authenticator = authenticator

    def start_enrollment(self, session: SessionContext, passkey_name: str) -> ChallengeEnvelope:
        LOGGER.info("Starting passkey enrollment for user %s", session.identity_id)
        return ChallengeEnvelope(self.api.register_start(passkey_name))

    def run_create_ceremony(self, envelope: ChallengeEnvelope) -> CredentialResult:
        options = decode_creation_options(envelope.consume())
        try:
            return self.authenticator.make_credential(options)
        except CEREMONY_FAILURES as exc:
            LOGGER.info("Create ceremony failed: %s", exc)
            raise CeremonyError("Registration error. Please try again.") from exc

    def finish_enrollment(
        self, session: SessionContext, passkey_name: str, result: CredentialResult
    ) -> None:
        self.api.register_finish(passkey_name, result.to_wire())
        LOGGER.info("Passkey %r enrolled for user %s", passkey_name, session.identity_id)

    def run_get_ceremony(self, envelope: ChallengeEnvelope) -> AssertionResult:
        options = decode_request_options(envelope.consume())
        try:
            return self.authenticator.get_assertion(options)
        except CEREMONY_FAILURES as exc:
            LOGGER.info("Get ceremony failed: %s", exc)
            raise CeremonyError("Authentication error. Please try again.") from exc
