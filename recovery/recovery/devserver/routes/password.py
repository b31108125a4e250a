"""Password set / reset route."""
from __future__ import annotations

from flask import Response, jsonify

from ...config import PASSWORD_HARD_CAP
from ...mfa import PURPOSE_PASSWORD_RESET
from ... import policy as password_policy
from ..config import app
from ..storage import redeem_mfa_code
from .common import json_body, json_error, load_link


@app.route("/users/<user_id>/password/reset", methods=["POST"])
def password_reset(user_id: str):
    payload = json_body()
    user, link = load_link(user_id, payload.get("magicLinkId"))

    password = payload.get("password")
    if not isinstance(password, str) or not password:
        return json_error("A password is required")
    if len(password) > PASSWORD_HARD_CAP:
        return json_error(f"The password must not exceed {PASSWORD_HARD_CAP} characters")

    violations = password_policy.validate(password, user.policy)
    if violations:
        return json_error(" ".join(violation.message for violation in violations))

    if user.mfa and user.credentials:
        if not redeem_mfa_code(payload.get("mfaCode"), user.id, PURPOSE_PASSWORD_RESET):
            return json_error("MFA verification is required", status=403, error="Forbidden")

    if user.recently_used(password):
        return json_error("The new password must not match a recently used one")

    user.set_password(password)
    link.used = True
    app.logger.info("Password updated for user %s", user.id)

    response: Response = jsonify({})
    response.status_code = 202
    redirect_uri = link.parsed_usage.redirect_uri
    if redirect_uri:
        response.headers["Location"] = redirect_uri
    return response
