"""HTTP boundary between the recovery flow and the identity backend."""
from __future__ import annotations

import http.cookiejar
import json
import logging
import ssl
import urllib.error
import urllib.parse
import urllib.request
from dataclasses import dataclass, field
from typing import Any, Dict, Mapping, Optional

import certifi

from .config import CSRF_HEADER, SessionContext
from .errors import ProtocolError

__all__ = ["HttpResponse", "RecoveryApi", "UrllibTransport", "default_ssl_context"]

LOGGER = logging.getLogger("recovery.transport")


def default_ssl_context() -> ssl.SSLContext:
    """System trust store extended with the certifi bundle."""

    context = ssl.create_default_context()
    context.load_verify_locations(cafile=certifi.where())
    return context


@dataclass
class HttpResponse:
    status: int
    headers: Dict[str, str] = field(default_factory=dict)
    body: bytes = b""

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300

    def header(self, name: str) -> Optional[str]:
        lowered = name.lower()
        for key, value in self.headers.items():
            if key.lower() == lowered:
                return value
        return None

    def json(self) -> Any:
        if not self.body:
            return None
        try:
            return json.loads(self.body.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError) as exc:
            raise ProtocolError(
                "The server sent an invalid response.", status=self.status
            ) from exc


class UrllibTransport:
    """Blocking JSON transport built on :mod:`urllib.request`.

    Cookies are kept for the lifetime of the transport because the backend
    binds a magic link to the session that first opened it.
    """

    def __init__(
        self,
        base_url: str,
        *,
        timeout: Optional[float] = None,
        context: Optional[ssl.SSLContext] = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.cookies = http.cookiejar.CookieJar()
        self.opener = urllib.request.build_opener(
            urllib.request.HTTPCookieProcessor(self.cookies),
            urllib.request.HTTPSHandler(context=context or default_ssl_context()),
        )

    def request(
        self,
        method: str,
        path: str,
        *,
        json_body: Any = None,
        headers: Optional[Mapping[str, str]] = None,
    ) -> HttpResponse:
        data = None
        request_headers = {"Accept": "application/json"}
        request_headers.update(headers or {})
        if json_body is not None:
            data = json.dumps(json_body).encode("utf-8")
            request_headers["Content-Type"] = "application/json"

        request = urllib.request.Request(
            self.base_url + path, data=data, headers=request_headers, method=method
        )
        try:
            with self.opener.open(request, timeout=self.timeout) as response:
                status = getattr(response, "status", None) or response.getcode()
                return HttpResponse(
                    status=status,
                    headers=dict(response.headers.items()),
                    body=response.read(),
                )
        except urllib.error.HTTPError as exc:
            body = exc.read() if exc.fp is not None else b""
            headers = dict(exc.headers.items()) if exc.headers is not None else {}
            return HttpResponse(status=exc.code, headers=headers, body=body)
        except (urllib.error.URLError, OSError) as exc:
            LOGGER.warning("%s %s failed: %s", method, path, exc)
            raise ProtocolError(f"Unable to reach the server: {exc}") from exc


def _error_from_response(response: HttpResponse, fallback: str) -> ProtocolError:
    message = fallback
    error = None
    try:
        payload = response.json()
    except ProtocolError:
        payload = None
    if isinstance(payload, Mapping):
        if isinstance(payload.get("message"), str) and payload["message"]:
            message = payload["message"]
        if isinstance(payload.get("error"), str):
            error = payload["error"]
    return ProtocolError(message, status=response.status, error=error)


class RecoveryApi:
    """Typed client for the magic link endpoints of one session."""

    def __init__(self, transport: Any, session: SessionContext) -> None:
        self.transport = transport
        self.session = session

    def _user_path(self, suffix: str) -> str:
        identity = urllib.parse.quote(self.session.identity_id, safe="")
        return f"/users/{identity}{suffix}"

    def _post(self, suffix: str, payload: Mapping[str, Any], fallback: str) -> HttpResponse:
        path = self._user_path(suffix)
        response = self.transport.request(
            "POST",
            path,
            json_body=dict(payload),
            headers={CSRF_HEADER: self.session.anti_forgery_token},
        )
        LOGGER.debug("POST %s -> %s", path, response.status)
        if not response.ok:
            raise _error_from_response(response, fallback)
        return response

    def _json_object(self, response: HttpResponse) -> Dict[str, Any]:
        payload = response.json()
        if not isinstance(payload, Mapping):
            raise ProtocolError("The server sent an unexpected response.", status=response.status)
        return dict(payload)

    def fetch_page_config(self, query_type: Optional[str] = None) -> Dict[str, Any]:
        path = self._user_path(
            f"/reset/{urllib.parse.quote(self.session.correlation_token, safe='')}"
        )
        if query_type:
            path += "?" + urllib.parse.urlencode({"type": query_type})
        response = self.transport.request("GET", path)
        if not response.ok:
            raise _error_from_response(response, "Unable to load the reset page.")
        return self._json_object(response)

    def register_start(self, passkey_name: str) -> Dict[str, Any]:
        response = self._post(
            "/webauthn/register/start",
            {"passkeyName": passkey_name, "magicLinkId": self.session.correlation_token},
            "Unable to start the passkey registration.",
        )
        return self._json_object(response)

    def register_finish(self, passkey_name: str, data: Mapping[str, Any]) -> HttpResponse:
        return self._post(
            "/webauthn/register/finish",
            {
                "passkeyName": passkey_name,
                "data": dict(data),
                "magicLinkId": self.session.correlation_token,
            },
            "The passkey registration was rejected.",
        )

    def auth_start(self, purpose: str) -> Dict[str, Any]:
        response = self._post(
            "/webauthn/auth/start",
            {"purpose": purpose},
            "Unable to start the MFA request.",
        )
        return self._json_object(response)

    def auth_finish(self, code: Optional[str], data: Mapping[str, Any]) -> Dict[str, Any]:
        response = self._post(
            "/webauthn/auth/finish",
            {"code": code, "data": dict(data)},
            "The MFA request was rejected.",
        )
        return self._json_object(response)

    def reset_password(self, password: str, mfa_code: Optional[str] = None) -> HttpResponse:
        payload: Dict[str, Any] = {
            "password": password,
            "magicLinkId": self.session.correlation_token,
        }
        if mfa_code is not None:
            payload["mfaCode"] = mfa_code
        return self._post("/password/reset", payload, "The password could not be set.")
