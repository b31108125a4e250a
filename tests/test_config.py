import pytest

from recovery.config import (
    AccountType,
    FlowConfig,
    FlowVariant,
    MagicLinkUsage,
    RequestedFlow,
    resolve_variant,
)

PAGE = {
    "policy": "10,128,1,1,1,1,1",
    "mfa": True,
    "csrfToken": "csrf-1",
    "userId": "user-1",
    "magicLinkId": "link-1",
}


def test_magic_link_usage_parsing():
    assert MagicLinkUsage.parse("new_user") == MagicLinkUsage("new_user")
    assert MagicLinkUsage.parse("password_reset$/next?a=1").redirect_uri == "/next?a=1"
    assert MagicLinkUsage.parse("email_change$a@example.com").redirect_uri is None
    assert str(MagicLinkUsage("password_reset", "/next")) == "password_reset$/next"

    with pytest.raises(ValueError):
        MagicLinkUsage.parse("unknown")
    with pytest.raises(ValueError):
        MagicLinkUsage.parse("email_change$x").requested_flow()


def test_from_page_defaults_to_password_reset():
    config = FlowConfig.from_page(PAGE)
    assert config.requested_flow is RequestedFlow.PASSWORD_RESET
    assert config.mfa_enabled is True
    assert config.policy.length_min == 10
    assert config.session.identity_id == "user-1"
    assert config.session.correlation_token == "link-1"
    assert config.session.anti_forgery_token == "csrf-1"
    assert config.redirect_delay_ms == 5000


def test_query_type_takes_precedence():
    page = dict(PAGE, type="password_reset")
    config = FlowConfig.from_page(page, {"type": "new_user"})
    assert config.requested_flow is RequestedFlow.NEW_ACCOUNT


def test_from_page_requires_session_values():
    page = dict(PAGE)
    del page["csrfToken"]
    with pytest.raises(ValueError):
        FlowConfig.from_page(page)


def test_resolve_variant():
    assert resolve_variant(RequestedFlow.PASSWORD_RESET, AccountType.PASSKEY) is FlowVariant.PASSWORD_RESET
    assert resolve_variant(RequestedFlow.NEW_ACCOUNT, AccountType.PASSKEY) is FlowVariant.NEW_ACCOUNT_PASSKEY
    assert resolve_variant(RequestedFlow.NEW_ACCOUNT, AccountType.PASSWORD) is FlowVariant.NEW_ACCOUNT_PASSWORD
    assert not FlowVariant.NEW_ACCOUNT_PASSKEY.uses_password
