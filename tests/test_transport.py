import io
import json
import urllib.error
from email.message import Message
from unittest import mock

import pytest

from recovery.errors import ProtocolError
from recovery.transport import HttpResponse, RecoveryApi, UrllibTransport


class _FakeResponse(io.BytesIO):
    def __init__(self, status, body=b"", headers=None):
        super().__init__(body)
        self.status = status
        self.headers = Message()
        for key, value in (headers or {}).items():
            self.headers[key] = value

    def getcode(self):
        return self.status


def _http_error(url, status, payload):
    headers = Message()
    headers["Content-Type"] = "application/json"
    return urllib.error.HTTPError(
        url, status, "error", headers, io.BytesIO(json.dumps(payload).encode("utf-8"))
    )


def test_request_sends_json_and_csrf_header(session):
    transport = UrllibTransport("https://id.example.com/")
    api = RecoveryApi(transport, session)
    captured = {}

    def _open(request, timeout=None):
        captured["request"] = request
        return _FakeResponse(202, b"", {"Location": "/auth/v1/account?x=1"})

    with mock.patch.object(transport.opener, "open", side_effect=_open):
        response = api.reset_password("Abcdefg123!")

    request = captured["request"]
    assert request.get_method() == "POST"
    assert request.full_url == "https://id.example.com/users/user-1/password/reset"
    assert request.get_header("Pwd-csrf-token") == "csrf-1"
    assert json.loads(request.data) == {"password": "Abcdefg123!", "magicLinkId": "link-1"}
    assert response.status == 202
    assert response.header("location") == "/auth/v1/account?x=1"


def test_reset_password_includes_mfa_code(session):
    transport = mock.Mock()
    transport.request.return_value = HttpResponse(202)
    RecoveryApi(transport, session).reset_password("pw", "mfa-code")

    payload = transport.request.call_args.kwargs["json_body"]
    assert payload["mfaCode"] == "mfa-code"


def test_error_status_raises_protocol_error_with_server_message(session):
    transport = UrllibTransport("https://id.example.com")
    api = RecoveryApi(transport, session)
    error = _http_error(
        "https://id.example.com/users/user-1/webauthn/auth/start",
        401,
        {"error": "Unauthorized", "message": "Invalid CSRF Token"},
    )

    with mock.patch.object(transport.opener, "open", side_effect=error):
        with pytest.raises(ProtocolError) as excinfo:
            api.auth_start("PasswordReset")

    assert str(excinfo.value) == "Invalid CSRF Token"
    assert excinfo.value.status == 401
    assert excinfo.value.error == "Unauthorized"


def test_unreachable_server_raises_protocol_error(session):
    transport = UrllibTransport("https://id.example.com")
    api = RecoveryApi(transport, session)

    with mock.patch.object(transport.opener, "open", side_effect=urllib.error.URLError("refused")):
        with pytest.raises(ProtocolError, match="Unable to reach the server"):
            api.fetch_page_config()


def test_fetch_page_config_passes_query_type(session):
    transport = mock.Mock()
    transport.request.return_value = HttpResponse(200, body=b'{"userId": "user-1"}')

    page = RecoveryApi(transport, session).fetch_page_config("new_user")

    assert page == {"userId": "user-1"}
    transport.request.assert_called_once_with("GET", "/users/user-1/reset/link-1?type=new_user")


def test_non_object_json_is_rejected(session):
    transport = mock.Mock()
    transport.request.return_value = HttpResponse(200, body=b"[1, 2]")

    with pytest.raises(ProtocolError):
        RecoveryApi(transport, session).register_start("Laptop")
