"""Application entry point for the recovery development backend."""
from __future__ import annotations

import os
from typing import Optional

from ..config import MagicLinkUsage, env_flag
from ..policy import PasswordPolicy
from .config import app
from .storage import MagicLink, create_magic_link, create_user

# Import the route modules so their decorators register endpoints with Flask.
from .routes import common, pages, password, webauthn  # noqa: F401,E402


def seed_demo_link(
    email: str = "dev@example.com",
    *,
    usage: Optional[MagicLinkUsage] = None,
    mfa: bool = False,
    policy: Optional[PasswordPolicy] = None,
) -> MagicLink:
    """Create a user together with a fresh magic link for manual testing."""

    user = create_user(email, mfa=mfa, policy=policy)
    link = create_magic_link(
        user.id,
        usage or MagicLinkUsage(MagicLinkUsage.PASSWORD_RESET),
        int(app.config["MAGIC_LINK_LIFETIME_MINUTES"]),
    )
    app.logger.info("Seeded %s link for %s: /users/%s/reset/%s", link.usage, email, user.id, link.id)
    return link


def main() -> None:
    host = os.environ.get("RECOVERY_DEVSERVER_HOST", "localhost")
    port = int(os.environ.get("RECOVERY_DEVSERVER_PORT", "8080"))
    usage = MagicLinkUsage.parse(os.environ.get("RECOVERY_DEVSERVER_LINK_TYPE", "password_reset"))
    link = seed_demo_link(
        os.environ.get("RECOVERY_DEVSERVER_EMAIL", "dev@example.com"),
        usage=usage,
        mfa=bool(env_flag("RECOVERY_DEVSERVER_MFA")),
    )
    print(f"recovery-flow --base-url http://{host}:{port} {link.user_id} {link.id}")
    app.run(host=host, port=port, debug=bool(env_flag("RECOVERY_DEVSERVER_DEBUG")))


__all__ = ["app", "main", "seed_demo_link"]


if __name__ == "__main__":  # pragma: no cover - convenience script entry point.
    main()
