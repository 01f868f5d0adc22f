"""Progress and outcome lines for batch plugin operations.

All lines go to stderr as plain text so they can be grepped by scripts;
plugin names and error messages are never interpreted as rich markup.
"""

from __future__ import annotations

from typing import Optional

from rich.console import Console


class Reporter:
    """Writes one line per plugin outcome plus an optional summary."""

    def __init__(self, console: Optional[Console] = None):
        self.console = console or Console(stderr=True)

    def _line(self, text: str) -> None:
        self.console.print(text, markup=False, highlight=False, emoji=False, soft_wrap=True)

    def upgrading(self, name: str) -> None:
        self._line(f"Upgrading plugin: {name}")

    def upgraded(self, name: str) -> None:
        self._line(f"Upgraded plugin: {name}")

    def already_current(self, name: str) -> None:
        self._line(f"Skipping plugin {name}, it is already on the newest version")

    def skipped_failure(self, name: str, error: object) -> None:
        self._line(f'WARNING: failed to upgrade plugin "{name}", skipping (error: {error})')

    def summary(self, failures: int) -> None:
        if failures > 0:
            self._line("WARNING: Some plugins failed to upgrade, check logs above.")
