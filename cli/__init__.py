"""``energy-exporter`` command line: serve metrics, read the meter once, or query a server."""

from importlib import import_module
from types import ModuleType

__all__ = []


def __getattr__(name: str) -> ModuleType:
    # resolve lazily so ``cli.app`` is always the module, not the Typer instance
    if name == "app":
        return import_module("cli.app")
    raise AttributeError(name)
