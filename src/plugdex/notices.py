"""Notices printed after a plugin is installed or upgraded."""

from __future__ import annotations

from typing import Optional

from rich.console import Console

SELF_PLUGIN_NAME = "plugdex"

_SECURITY_NOTICE = (
    '\nYou installed plugin "{name}" from the plugdex plugin index.\n'
    "   These plugins are not audited for security by the plugdex maintainers.\n"
    "   Run them at your own risk."
)


def print_security_notice(name: str, console: Optional[Console] = None) -> None:
    """Warn that a plugin from the index has not been audited."""
    if name == SELF_PLUGIN_NAME:
        return  # do not warn about plugdex managing itself
    console = console or Console(stderr=True)
    console.print(_SECURITY_NOTICE.format(name=name), markup=False, highlight=False, emoji=False)
