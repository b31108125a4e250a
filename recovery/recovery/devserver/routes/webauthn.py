"""Passkey registration and step-up authentication routes."""
from __future__ import annotations

from typing import Any, Dict, List, Optional

from flask import jsonify, request
from fido2.utils import websafe_encode
from fido2.webauthn import (
    AttestationObject,
    AuthenticatorData,
    CollectedClientData,
    PublicKeyCredentialCreationOptions,
    PublicKeyCredentialDescriptor,
    PublicKeyCredentialRequestOptions,
    PublicKeyCredentialUserEntity,
    UserVerificationRequirement,
)

from ...config import CSRF_HEADER, MagicLinkUsage
from ...encoding import decode_binary_value
from ..config import app, create_fido_server
from ..storage import (
    LinkError,
    StoredCredential,
    issue_mfa_code,
    links_for_user,
    pop_auth_state,
    pop_registration_state,
    save_auth_state,
    save_registration_state,
)
from .common import enum_value, json_body, json_error, load_link, load_user


def _descriptors_json(descriptors: Optional[List[PublicKeyCredentialDescriptor]]) -> List[Dict[str, Any]]:
    return [
        {"type": enum_value(descriptor.type), "id": websafe_encode(descriptor.id)}
        for descriptor in descriptors or []
    ]


def _creation_options_json(options: PublicKeyCredentialCreationOptions) -> Dict[str, Any]:
    public_key: Dict[str, Any] = {
        "rp": {"id": options.rp.id, "name": options.rp.name},
        "user": {
            "id": websafe_encode(options.user.id),
            "name": options.user.name,
            "displayName": options.user.display_name,
        },
        "challenge": websafe_encode(options.challenge),
        "pubKeyCredParams": [
            {"type": enum_value(param.type), "alg": param.alg}
            for param in options.pub_key_cred_params
        ],
        "excludeCredentials": _descriptors_json(options.exclude_credentials),
    }
    if options.timeout is not None:
        public_key["timeout"] = options.timeout
    if options.attestation is not None:
        public_key["attestation"] = enum_value(options.attestation)

    selection = options.authenticator_selection
    if selection is not None:
        public_key["authenticatorSelection"] = {
            key: enum_value(value)
            for key, value in (
                ("authenticatorAttachment", selection.authenticator_attachment),
                ("residentKey", selection.resident_key),
                ("userVerification", selection.user_verification),
                ("requireResidentKey", selection.require_resident_key),
            )
            if value is not None
        }
    return {"publicKey": public_key}


def _request_options_json(options: PublicKeyCredentialRequestOptions) -> Dict[str, Any]:
    public_key: Dict[str, Any] = {
        "challenge": websafe_encode(options.challenge),
        "rpId": options.rp_id,
        "allowCredentials": _descriptors_json(options.allow_credentials),
    }
    if options.timeout is not None:
        public_key["timeout"] = options.timeout
    if options.user_verification is not None:
        public_key["userVerification"] = enum_value(options.user_verification)
    return public_key


def _credential_field(data: Any, *path: str) -> bytes:
    value = data
    for key in path:
        if not isinstance(value, dict) or key not in value:
            raise ValueError(f"missing {'.'.join(path)}")
        value = value[key]
    return decode_binary_value(value)


@app.route("/users/<user_id>/webauthn/register/start", methods=["POST"])
def webauthn_register_start(user_id: str):
    payload = json_body()
    user, link = load_link(user_id, payload.get("magicLinkId"))
    if link.parsed_usage.kind != MagicLinkUsage.NEW_USER:
        return json_error("Passkeys can only be registered for a new account")

    passkey_name = payload.get("passkeyName")
    if not isinstance(passkey_name, str) or not passkey_name.strip():
        return json_error("A passkey name is required")

    server = create_fido_server()
    options, state = server.register_begin(
        PublicKeyCredentialUserEntity(
            name=user.email,
            id=user.id.encode("utf-8"),
            display_name=user.email,
        ),
        user.credential_data(),
        user_verification=UserVerificationRequirement.PREFERRED,
    )
    save_registration_state(user.id, link.id, passkey_name.strip(), state)
    app.logger.info("Passkey registration started for user %s", user.id)
    return jsonify(_creation_options_json(options.public_key))


@app.route("/users/<user_id>/webauthn/register/finish", methods=["POST"])
def webauthn_register_finish(user_id: str):
    payload = json_body()
    user, link = load_link(user_id, payload.get("magicLinkId"))

    pending = pop_registration_state(user.id, link.id)
    if pending is None:
        return json_error("No registration in progress for this link")
    passkey_name, state = pending
    if payload.get("passkeyName") not in (None, passkey_name):
        return json_error("The passkey name does not match the registration request")

    data = payload.get("data")
    try:
        client_data = CollectedClientData(_credential_field(data, "response", "clientDataJSON"))
        attestation_object = AttestationObject(
            _credential_field(data, "response", "attestationObject")
        )
        auth_data = create_fido_server().register_complete(state, client_data, attestation_object)
    except ValueError as exc:
        app.logger.warning("Passkey registration for user %s rejected: %s", user.id, exc)
        return json_error(f"Invalid passkey registration: {exc}")

    user.credentials.append(StoredCredential(auth_data.credential_data, passkey_name))
    link.used = True
    app.logger.info("Registered passkey %r for user %s", passkey_name, user.id)
    return "", 201


def _authorize_mfa_request(user_id: str):
    user = load_user(user_id)
    csrf_token = request.headers.get(CSRF_HEADER)
    for link in links_for_user(user.id):
        if not link.used and link.csrf_token == csrf_token:
            load_link(user.id, link.id)
            return user
    raise LinkError("Invalid CSRF Token", status=401, error="Unauthorized")


@app.route("/users/<user_id>/webauthn/auth/start", methods=["POST"])
def webauthn_auth_start(user_id: str):
    user = _authorize_mfa_request(user_id)
    purpose = json_body().get("purpose")
    if not isinstance(purpose, str) or not purpose:
        return json_error("An MFA purpose is required")
    if not user.credentials:
        return json_error("No passkey is registered for this user")

    options, state = create_fido_server().authenticate_begin(
        user.credential_data(),
        user_verification=UserVerificationRequirement.PREFERRED,
    )
    code = save_auth_state(user.id, purpose, state)
    app.logger.info("MFA request %s started for user %s", purpose, user.id)
    return jsonify(
        {
            "userId": user.id,
            "code": code,
            "publicKey": _request_options_json(options.public_key),
        }
    )


@app.route("/users/<user_id>/webauthn/auth/finish", methods=["POST"])
def webauthn_auth_finish(user_id: str):
    user = _authorize_mfa_request(user_id)
    payload = json_body()
    pending = pop_auth_state(payload.get("code") or "")
    if pending is None or pending[0] != user.id:
        return json_error("Unknown or expired MFA request")
    _, purpose, state = pending

    data = payload.get("data")
    try:
        credential_id = _credential_field(data, "rawId")
        client_data = CollectedClientData(_credential_field(data, "response", "clientDataJSON"))
        auth_data = AuthenticatorData(_credential_field(data, "response", "authenticatorData"))
        signature = _credential_field(data, "response", "signature")
        create_fido_server().authenticate_complete(
            state,
            user.credential_data(),
            credential_id,
            client_data,
            auth_data,
            signature,
        )
    except ValueError as exc:
        app.logger.warning("MFA assertion for user %s rejected: %s", user.id, exc)
        return json_error(f"Invalid MFA assertion: {exc}")

    code = issue_mfa_code(user.id, purpose, int(app.config["MFA_CODE_LIFETIME_SECONDS"]))
    app.logger.info("MFA request %s verified for user %s", purpose, user.id)
    response = jsonify({"code": code})
    response.status_code = 202
    return response
