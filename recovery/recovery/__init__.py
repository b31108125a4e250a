"""Magic link recovery and passkey enrollment flow."""
from __future__ import annotations

from importlib import import_module
from typing import Any, TYPE_CHECKING

__all__ = ["FlowConfig", "FlowController", "RecoveryApi", "UrllibTransport"]

_EXPORTS = {
    "FlowConfig": ".config",
    "FlowController": ".controller",
    "RecoveryApi": ".transport",
    "UrllibTransport": ".transport",
}


if TYPE_CHECKING:  # pragma: no cover - import only for static analysis.
    from .config import FlowConfig  # noqa: F401
    from .controller import FlowController  # noqa: F401
    from .transport import RecoveryApi, UrllibTransport  # noqa: F401


def __getattr__(name: str) -> Any:
    """Lazily import the public classes.

    Importing the package must not pull in the fido2 device stack, which
    the development backend never needs.
    """

    if name in _EXPORTS:
        module = import_module(_EXPORTS[name], __name__)
        return getattr(module, name)

    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")


def __dir__() -> list[str]:
    return sorted(set(globals()) | set(__all__))
