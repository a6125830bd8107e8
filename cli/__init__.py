"""CLI package for triggering and inspecting sensor rollups."""

from importlib import import_module
from types import ModuleType


def __getattr__(name: str) -> ModuleType:
    if name == "app":
        return import_module("cli.app")
    raise AttributeError(name)

# The Typer application lives in ``cli.app``.  It is not re-exported here so
# that ``cli.app`` keeps resolving to the module, which tests patch.

__all__ = []
