import pytest

from recovery.config import AccountType, FlowConfig, MagicLinkUsage, SessionContext
from recovery.controller import Failed, FlowController, FlowState, Success
from recovery.devserver import storage
from recovery.devserver.app import app
from recovery.policy import PasswordPolicy
from recovery.transport import RecoveryApi

from soft_authenticator import SoftAuthenticator

POLICY = PasswordPolicy(10, 128, 1, 1, 1, 1, 1)


def _open_flow(transport, link, authenticator=None):
    bootstrap = RecoveryApi(transport, SessionContext(link.user_id, link.id, ""))
    config = FlowConfig.from_page(bootstrap.fetch_page_config())
    scheduled = []
    controller = FlowController(
        config,
        RecoveryApi(transport, config.session),
        authenticator,
        schedule=lambda delay, callback: scheduled.append((delay, callback)),
    )
    return controller, scheduled


def test_reset_page_exposes_flow_configuration(devserver_client):
    user = storage.create_user("user@example.com", policy=POLICY)
    link = storage.create_magic_link(user.id, MagicLinkUsage(MagicLinkUsage.PASSWORD_RESET))

    response = devserver_client.get(f"/users/{user.id}/reset/{link.id}")

    assert response.status_code == 200
    assert response.get_json() == {
        "policy": "10,128,1,1,1,1,1",
        "mfa": False,
        "csrfToken": link.csrf_token,
        "userId": user.id,
        "magicLinkId": link.id,
        "type": "password_reset",
    }


def test_magic_link_is_bound_to_the_first_session(devserver_client):
    user = storage.create_user("user@example.com")
    link = storage.create_magic_link(user.id, MagicLinkUsage(MagicLinkUsage.PASSWORD_RESET))
    assert devserver_client.get(f"/users/{user.id}/reset/{link.id}").status_code == 200

    with app.test_client() as other_client:
        response = other_client.get(f"/users/{user.id}/reset/{link.id}")

    assert response.status_code == 403
    assert response.get_json()["error"] == "Forbidden"


def test_reset_requires_csrf_token(devserver_client):
    user = storage.create_user("user@example.com")
    link = storage.create_magic_link(user.id, MagicLinkUsage(MagicLinkUsage.PASSWORD_RESET))
    devserver_client.get(f"/users/{user.id}/reset/{link.id}")

    response = devserver_client.post(
        f"/users/{user.id}/password/reset",
        json={"password": "Abcdefg123!", "magicLinkId": link.id},
    )

    assert response.status_code == 401
    assert response.get_json()["message"] == "CSRF Token is missing"


def test_password_reset_redirects_to_link_target(transport):
    user = storage.create_user("user@example.com", policy=POLICY)
    link = storage.create_magic_link(
        user.id, MagicLinkUsage(MagicLinkUsage.PASSWORD_RESET, "/auth/v1/account?x=1")
    )
    controller, scheduled = _open_flow(transport, link)
    controller.update_form(password="Abcdefg123!", password_confirm="Abcdefg123!")

    assert controller.submit() == Success("/auth/v1/account?x=1")
    assert controller.redirect_target == "/auth/v1/account?x=1"
    assert scheduled[0][0] == 5000
    assert storage.find_magic_link(link.id).used
    assert len(user.password_hashes) == 1


def test_policy_failure_is_reported_before_any_request(transport):
    user = storage.create_user("user@example.com", policy=POLICY)
    link = storage.create_magic_link(user.id, MagicLinkUsage(MagicLinkUsage.PASSWORD_RESET))
    controller, _ = _open_flow(transport, link)
    calls_before = len(transport.calls)
    controller.update_form(password="short", password_confirm="short")

    assert isinstance(controller.submit(), Failed)
    assert len(transport.calls) == calls_before
    assert user.password_hashes == []


def test_used_link_cannot_reset_twice(transport, devserver_client):
    user = storage.create_user("user@example.com", policy=POLICY)
    link = storage.create_magic_link(user.id, MagicLinkUsage(MagicLinkUsage.PASSWORD_RESET))
    controller, _ = _open_flow(transport, link)
    controller.update_form(password="Abcdefg123!", password_confirm="Abcdefg123!")
    assert isinstance(controller.submit(), Success)

    response = devserver_client.post(
        f"/users/{user.id}/password/reset",
        json={"password": "Hijklmn456?", "magicLinkId": link.id},
        headers={"pwd-csrf-token": link.csrf_token},
    )

    assert response.status_code == 400
    assert "already used" in response.get_json()["message"]


def test_recently_used_password_is_rejected(transport):
    user = storage.create_user("user@example.com", policy=POLICY)
    user.set_password("Abcdefg123!")
    link = storage.create_magic_link(user.id, MagicLinkUsage(MagicLinkUsage.PASSWORD_RESET))
    controller, _ = _open_flow(transport, link)
    controller.update_form(password="Abcdefg123!", password_confirm="Abcdefg123!")

    outcome = controller.submit()

    assert outcome == Failed("The new password must not match a recently used one")
    assert controller.state is FlowState.READY
    assert controller.form.password == "Abcdefg123!"


def test_new_account_with_password(transport):
    user = storage.create_user("new@example.com", policy=POLICY)
    link = storage.create_magic_link(user.id, MagicLinkUsage(MagicLinkUsage.NEW_USER))
    controller, _ = _open_flow(transport, link)
    controller.set_account_type(AccountType.PASSWORD)
    controller.generate_password()

    assert controller.submit() == Success(None)
    assert controller.redirect_target == "/auth/v1/account"
    assert len(user.password_hashes) == 1


def test_passkey_enrollment_then_mfa_protected_reset(transport, devserver_client):
    user = storage.create_user("new@example.com", mfa=True, policy=POLICY)
    authenticator = SoftAuthenticator()

    enroll_link = storage.create_magic_link(user.id, MagicLinkUsage(MagicLinkUsage.NEW_USER))
    controller, _ = _open_flow(transport, enroll_link, authenticator)
    assert controller.config.mfa_enabled is False
    controller.update_form(passkey_name="Work Laptop")

    assert controller.submit() == Success(None)
    assert [stored.name for stored in user.credentials] == ["Work Laptop"]
    assert authenticator.last_creation_options.user.id == user.id.encode()

    reset_link = storage.create_magic_link(user.id, MagicLinkUsage(MagicLinkUsage.PASSWORD_RESET))
    controller, _ = _open_flow(transport, reset_link, authenticator)
    assert controller.config.mfa_enabled is True
    controller.update_form(password="Abcdefg123!", password_confirm="Abcdefg123!")

    assert controller.submit() == Success(None)
    assert len(user.password_hashes) == 1
    paths = [path for _, path in transport.calls]
    assert paths[-3:] == [
        f"/users/{user.id}/webauthn/auth/start",
        f"/users/{user.id}/webauthn/auth/finish",
        f"/users/{user.id}/password/reset",
    ]


def test_mfa_user_cannot_reset_without_code(devserver_client):
    user = storage.create_user("user@example.com", mfa=True, policy=POLICY)
    user.credentials.append(storage.StoredCredential(credential_data=object(), name="Key"))
    link = storage.create_magic_link(user.id, MagicLinkUsage(MagicLinkUsage.PASSWORD_RESET))
    devserver_client.get(f"/users/{user.id}/reset/{link.id}")

    response = devserver_client.post(
        f"/users/{user.id}/password/reset",
        json={"password": "Abcdefg123!", "magicLinkId": link.id, "mfaCode": "forged"},
        headers={"pwd-csrf-token": link.csrf_token},
    )

    assert response.status_code == 403
    assert not storage.find_magic_link(link.id).used


@pytest.mark.parametrize("usage", ["password_reset", "email_change$new@example.com"])
def test_passkey_registration_requires_new_user_link(devserver_client, usage):
    user = storage.create_user("user@example.com")
    link = storage.create_magic_link(user.id, MagicLinkUsage.parse(usage))
    devserver_client.get(f"/users/{user.id}/reset/{link.id}")

    response = devserver_client.post(
        f"/users/{user.id}/webauthn/register/start",
        json={"passkeyName": "Laptop", "magicLinkId": link.id},
        headers={"pwd-csrf-token": link.csrf_token},
    )

    assert response.status_code == 400
