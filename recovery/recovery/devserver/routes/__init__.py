"""Route registrations for the development backend."""

# Import submodules to register routes via decorators.
from . import common  # noqa: F401
from . import pages  # noqa: F401
from . import password  # noqa: F401
from . import webauthn  # noqa: F401

__all__ = ["common", "pages", "password", "webauthn"]
