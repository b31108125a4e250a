"""Development backend implementing the recovery endpoints over Flask."""
from __future__ import annotations

from importlib import import_module
from typing import Any, TYPE_CHECKING

__all__ = ["app", "main", "seed_demo_link"]


if TYPE_CHECKING:  # pragma: no cover - import only for static analysis.
    from .app import app, main, seed_demo_link  # noqa: F401


def __getattr__(name: str) -> Any:
    """Import ``.app`` on first use so the Flask routes load only when needed."""

    if name in __all__:
        module = import_module(".app", __name__)
        return getattr(module, name)

    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")


def __dir__() -> list[str]:
    return sorted(set(globals()) | set(__all__))
