import pathlib
import sys

import pytest

PROJECT_ROOT = pathlib.Path(__file__).resolve().parents[1]
RECOVERY_SRC = PROJECT_ROOT / "recovery"
if str(RECOVERY_SRC) not in sys.path:
    sys.path.insert(0, str(RECOVERY_SRC))

from recovery.config import FlowConfig, RequestedFlow, SessionContext  # noqa: E402
from recovery.policy import PasswordPolicy  # noqa: E402


@pytest.fixture
def session():
    return SessionContext(
        identity_id="user-1",
        correlation_token="link-1",
        anti_forgery_token="csrf-1",
    )


@pytest.fixture
def make_config(session):
    def _make(requested_flow=RequestedFlow.PASSWORD_RESET, mfa_enabled=False, policy=None):
        return FlowConfig(
            policy=policy or PasswordPolicy(8, 128, 1, 1, 1, 1, 0),
            session=session,
            requested_flow=requested_flow,
            mfa_enabled=mfa_enabled,
        )

    return _make
