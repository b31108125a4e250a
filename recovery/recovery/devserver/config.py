"""Configuration and application setup for the development backend."""
from __future__ import annotations

import os
from typing import Optional

from flask import Flask
from fido2.server import Fido2Server
from fido2.webauthn import AttestationConveyancePreference, PublicKeyCredentialRpEntity

from ..config import env_flag

app = Flask(__name__)
app.secret_key = os.urandom(32)

app.config.setdefault("RECOVERY_DEVSERVER_RP_NAME", os.environ.get("RECOVERY_DEVSERVER_RP_NAME", "Recovery dev server"))
app.config.setdefault("RECOVERY_DEVSERVER_RP_ID", os.environ.get("RECOVERY_DEVSERVER_RP_ID", "localhost"))
app.config.setdefault("MAGIC_LINK_LIFETIME_MINUTES", 30)
app.config.setdefault("MFA_CODE_LIFETIME_SECONDS", 300)

_cookie_binding_flag = env_flag("RECOVERY_DEVSERVER_COOKIE_BINDING")
app.config.setdefault(
    "PASSWORD_RESET_COOKIE_BINDING",
    True if _cookie_binding_flag is None else _cookie_binding_flag,
)

PWD_RESET_COOKIE = "recovery-pwd-reset"


def build_rp_entity(rp_id: Optional[str] = None) -> PublicKeyCredentialRpEntity:
    rp_id_value = rp_id or app.config.get("RECOVERY_DEVSERVER_RP_ID") or "localhost"
    rp_name_value = app.config.get("RECOVERY_DEVSERVER_RP_NAME") or "Recovery dev server"
    return PublicKeyCredentialRpEntity(name=rp_name_value, id=rp_id_value)


def create_fido_server(rp_id: Optional[str] = None) -> Fido2Server:
    """Instantiate a :class:`Fido2Server` bound to the configured RP ID."""

    return Fido2Server(
        build_rp_entity(rp_id),
        attestation=AttestationConveyancePreference.NONE,
    )


__all__ = [
    "PWD_RESET_COOKIE",
    "app",
    "build_rp_entity",
    "create_fido_server",
]
