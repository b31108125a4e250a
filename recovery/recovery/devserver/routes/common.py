"""Helpers shared by the development backend routes."""
from __future__ import annotations

from typing import Any, Mapping, Optional, Tuple

from flask import jsonify, request

from ...config import CSRF_HEADER
from ..config import PWD_RESET_COOKIE, app
from ..storage import DevUser, LinkError, MagicLink, find_magic_link, find_user

__all__ = ["enum_value", "json_error", "json_body", "load_link", "load_user"]


def enum_value(value: Any) -> Any:
    return getattr(value, "value", value)


def json_error(message: str, status: int = 400, error: str = "BadRequest"):
    response = jsonify({"error": error, "message": message})
    response.status_code = status
    return response


def json_body() -> Mapping[str, Any]:
    payload = request.get_json(silent=True)
    return payload if isinstance(payload, Mapping) else {}


def load_user(user_id: str) -> DevUser:
    user = find_user(user_id)
    if user is None:
        raise LinkError("User not found", status=404, error="NotFound")
    return user


def load_link(user_id: str, link_id: Optional[str]) -> Tuple[DevUser, MagicLink]:
    """Resolve and validate the magic link the current request acts on."""

    user = load_user(user_id)
    link = find_magic_link(link_id) if isinstance(link_id, str) else None
    if link is None:
        raise LinkError("Magic link not found", status=404, error="NotFound")
    link.validate(
        user_id,
        request.headers.get(CSRF_HEADER),
        request.cookies.get(PWD_RESET_COOKIE),
        cookie_binding=bool(app.config.get("PASSWORD_RESET_COOKIE_BINDING")),
    )
    return user, link


@app.errorhandler(LinkError)
def _handle_link_error(exc: LinkError):
    app.logger.warning("Rejected magic link request to %s: %s", request.path, exc)
    return json_error(str(exc), exc.status, exc.error)
