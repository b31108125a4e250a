"""Platform authenticators backed by python-fido2 CTAP devices."""
from __future__ import annotations

import logging
from getpass import getpass
from typing import Any, Callable, Optional

from fido2.client import Fido2Client, UserInteraction
from fido2.hid import CtapHidDevice
from fido2.webauthn import PublicKeyCredentialCreationOptions, PublicKeyCredentialRequestOptions

from .ceremony import AssertionResult, CredentialResult
from .errors import CeremonyError

__all__ = ["CliInteraction", "Fido2ClientAuthenticator"]

LOGGER = logging.getLogger("recovery.authenticators")


class CliInteraction(UserInteraction):
    """Prompt for touch and PIN on the terminal."""

    def __init__(self, output: Callable[[str], Any] = print) -> None:
        self._output = output

    def prompt_up(self) -> None:
        self._output("Touch your authenticator device now...")

    def request_pin(self, permissions, rp_id) -> Optional[str]:
        return getpass("Enter the PIN of your authenticator: ")

    def request_uv(self, permissions, rp_id) -> bool:
        self._output("User verification required.")
        return True


class Fido2ClientAuthenticator:
    """Run WebAuthn ceremonies against a USB security key."""

    def __init__(self, client: Fido2Client) -> None:
        self.client = client

    @classmethod
    def discover(
        cls,
        origin: str,
        user_interaction: Optional[UserInteraction] = None,
    ) -> "Fido2ClientAuthenticator":
        device = next(CtapHidDevice.list_devices(), None)
        if device is None:
            raise CeremonyError("No FIDO authenticator found. Connect a security key and retry.")
        LOGGER.info("Using authenticator %s", getattr(device, "descriptor", device))
        client = Fido2Client(device, origin, user_interaction=user_interaction or CliInteraction())
        return cls(client)

    def make_credential(self, options: PublicKeyCredentialCreationOptions) -> CredentialResult:
        result = self.client.make_credential(options)
        response = getattr(result, "response", result)
        attestation_object = response.attestation_object
        credential_data = attestation_object.auth_data.credential_data
        return CredentialResult(
            credential_id=bytes(credential_data.credential_id),
            attestation_object=bytes(attestation_object),
            client_data_json=bytes(response.client_data),
            authenticator_attachment="cross-platform",
            extension_results=dict(getattr(response, "extension_results", None) or {}),
        )

    def get_assertion(self, options: PublicKeyCredentialRequestOptions) -> AssertionResult:
        selection = self.client.get_assertion(options)
        result = selection.get_response(0)
        response = getattr(result, "response", result)
        credential_id = getattr(result, "raw_id", None) or response.credential_id
        return AssertionResult(
            credential_id=bytes(credential_id),
            authenticator_data=bytes(response.authenticator_data),
            client_data_json=bytes(response.client_data),
            signature=bytes(response.signature),
            user_handle=bytes(response.user_handle) if response.user_handle else None,
            extension_results=dict(getattr(response, "extension_results", None) or {}),
        )
