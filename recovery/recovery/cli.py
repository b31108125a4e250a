"""Command line entry point running one recovery flow with a security key."""
from __future__ import annotations

import argparse
import logging
import sys
import urllib.parse
from getpass import getpass
from typing import List, NoReturn, Optional

from .authenticators import Fido2ClientAuthenticator
from .config import (
    AccountType,
    FlowConfig,
    FlowVariant,
    RequestedFlow,
    SessionContext,
    env_base_url,
    env_flag,
    env_http_timeout,
)
from .controller import Failed, FlowController, Success
from .errors import FlowError
from .transport import RecoveryApi, UrllibTransport


def _configure_logging(verbose: bool) -> logging.Logger:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    return logging.getLogger("recovery.cli")


def _parse_args(argv: Optional[List[str]]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("user_id", help="Identity the magic link was issued for.")
    parser.add_argument("magic_link_id", help="Magic link id from the email.")
    parser.add_argument("--base-url", default=env_base_url())
    parser.add_argument("--type", dest="flow_type", help="Magic link usage, e.g. new_user.")
    parser.add_argument("--origin", help="WebAuthn origin, defaults to the base URL origin.")
    parser.add_argument(
        "--account-type",
        choices=[choice.value for choice in AccountType],
        default=AccountType.PASSKEY.value,
    )
    parser.add_argument("--passkey-name", default="Security Key")
    parser.add_argument("--generate", action="store_true", help="Use a generated password.")
    parser.add_argument("-v", "--verbose", action="store_true")
    return parser.parse_args(argv)


def _origin_of(base_url: str) -> str:
    parsed = urllib.parse.urlsplit(base_url)
    return f"{parsed.scheme}://{parsed.netloc}"


def main(argv: Optional[List[str]] = None) -> int:
    args = _parse_args(argv)
    logger = _configure_logging(args.verbose)

    if not args.base_url.startswith("https://") and not env_flag("RECOVERY_INSECURE_HTTP"):
        logger.error("Refusing to send credentials over %s; set RECOVERY_INSECURE_HTTP=1", args.base_url)
        return 2

    transport = UrllibTransport(args.base_url, timeout=env_http_timeout())
    bootstrap = RecoveryApi(transport, SessionContext(args.user_id, args.magic_link_id, ""))

    try:
        page = bootstrap.fetch_page_config(args.flow_type)
        config = FlowConfig.from_page(page, {"type": args.flow_type} if args.flow_type else None)
    except (FlowError, ValueError) as exc:
        logger.error("Unable to load the flow configuration: %s", exc)
        return 1

    api = RecoveryApi(transport, config.session)
    needs_authenticator = config.mfa_enabled or (
        config.requested_flow is RequestedFlow.NEW_ACCOUNT
        and args.account_type == AccountType.PASSKEY.value
    )
    authenticator = None
    if needs_authenticator:
        try:
            authenticator = Fido2ClientAuthenticator.discover(
                args.origin or _origin_of(args.base_url)
            )
        except FlowError as exc:
            logger.error("%s", exc)
            return 1

    controller = FlowController(config, api, authenticator, navigate=lambda target: print(
        f"Continue at {urllib.parse.urljoin(args.base_url, target)}"
    ))
    if config.requested_flow is RequestedFlow.NEW_ACCOUNT:
        controller.set_account_type(AccountType(args.account_type))

    if controller.variant is FlowVariant.NEW_ACCOUNT_PASSKEY:
        controller.update_form(passkey_name=args.passkey_name)
    elif args.generate:
        generated = controller.generate_password()
        print(f"Generated password: {generated}")
    else:
        controller.update_form(
            password=getpass("New password: "),
            password_confirm=getpass("Repeat the new password: "),
        )

    outcome = controller.submit()
    if isinstance(outcome, Success):
        print(controller.redirect_notice)
        if controller.redirect_handle is not None:
            controller.redirect_handle.join()
        return 0

    if isinstance(outcome, Failed):
        logger.error("%s", outcome.message)
        for field_name, message in controller.field_errors.items():
            logger.error("  %s: %s", field_name, message)
    return 1


def run() -> NoReturn:
    sys.exit(main())


if __name__ == "__main__":  # pragma: no cover - CLI execution
    run()
