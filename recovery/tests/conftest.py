import pathlib
import sys

import pytest

PROJECT_ROOT = pathlib.Path(__file__).resolve().parents[2]
RECOVERY_SRC = PROJECT_ROOT / "recovery"
TESTS_DIR = pathlib.Path(__file__).resolve().parent
for path in (RECOVERY_SRC, TESTS_DIR):
    if str(path) not in sys.path:
        sys.path.insert(0, str(path))

from recovery.devserver import storage  # noqa: E402
from recovery.devserver.app import app  # noqa: E402
from recovery.transport import HttpResponse  # noqa: E402


class FlaskTestTransport:
    """Route :class:`recovery.transport.RecoveryApi` calls into the Flask test client."""

    def __init__(self, client):
        self.client = client
        self.calls = []

    def request(self, method, path, *, json_body=None, headers=None):
        self.calls.append((method, path))
        response = self.client.open(path, method=method, json=json_body, headers=dict(headers or {}))
        return HttpResponse(
            status=response.status_code,
            headers=dict(response.headers.items()),
            body=response.get_data(),
        )


@pytest.fixture
def devserver_client():
    storage.reset_storage()
    app.config.update(
        TESTING=True,
        RECOVERY_DEVSERVER_RP_ID="example.com",
        PASSWORD_RESET_COOKIE_BINDING=True,
    )

    with app.test_client() as test_client:
        yield test_client

    storage.reset_storage()


@pytest.fixture
def transport(devserver_client):
    return FlaskTestTransport(devserver_client)
