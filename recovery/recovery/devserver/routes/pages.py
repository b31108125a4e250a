"""The reset page, served as the configuration snapshot a client reads once."""
from __future__ import annotations

import secrets

from flask import jsonify, request

from ..config import PWD_RESET_COOKIE, app
from ..storage import LinkError, find_magic_link
from .common import load_user


@app.route("/users/<user_id>/reset/<link_id>", methods=["GET"])
def reset_page(user_id: str, link_id: str):
    user = load_user(user_id)
    link = find_magic_link(link_id)
    if link is None or link.user_id != user.id:
        raise LinkError("Magic link not found", status=404, error="NotFound")
    if link.used:
        raise LinkError("The requested password reset link was already used")

    # The first visit binds the link to this browser session.
    new_cookie = None
    if link.cookie is None:
        new_cookie = secrets.token_urlsafe(32)
        link.cookie = new_cookie
    elif app.config.get("PASSWORD_RESET_COOKIE_BINDING") and request.cookies.get(PWD_RESET_COOKIE) != link.cookie:
        raise LinkError(
            "The requested password reset link is already tied to another session",
            status=403,
            error="Forbidden",
        )

    response = jsonify(
        {
            "policy": user.policy.as_fields(),
            "mfa": bool(user.mfa and user.credentials),
            "csrfToken": link.csrf_token,
            "userId": user.id,
            "magicLinkId": link.id,
            "type": request.args.get("type") or link.usage,
        }
    )
    if new_cookie is not None:
        response.set_cookie(PWD_RESET_COOKIE, new_cookie, httponly=True, samesite="Lax")
    return response
