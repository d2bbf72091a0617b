"""Subcommands of the ``notegraph`` CLI.

Each public module in this package defines one Click command named
``cli``; :func:`discover_commands` collects them for registration on the
root group.
"""

from __future__ import annotations

import importlib
import pkgutil

import click


def discover_commands() -> list[click.Command]:
    """Import every public submodule and return its ``cli`` command, by name."""
    found: dict[str, click.Command] = {}
    for module_info in pkgutil.iter_modules(__path__):
        if module_info.name.startswith("_"):
            continue
        module = importlib.import_module(f"{__name__}.{module_info.name}")
        command = getattr(module, "cli", None)
        if isinstance(command, click.Command) and command.name:
            found[command.name] = command
    return [found[name] for name in sorted(found)]
