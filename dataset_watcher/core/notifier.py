"""
Best-effort user notifications.

A notification is a side effect nobody waits on: delivery failures are logged at
debug level and never reach the caller.
"""

import logging
from typing import Protocol

from rich.console import Console
from rich.markup import escape
from rich.panel import Panel

log = logging.getLogger(__name__)


class Notifier(Protocol):
    def notify(self, title: str, message: str) -> None: ...


class ConsoleNotifier:
    """Shows notifications as Rich panels on the console."""

    def __init__(self, console: Console | None = None, enabled: bool = True):
        self.console = console or Console()
        self.enabled = enabled

    def notify(self, title: str, message: str) -> None:
        if not self.enabled:
            log.debug(f"Notification suppressed: {title}: {message}")
            return
        try:
            self.console.print(
                Panel(
                    escape(message),
                    title=f"[bold]{escape(title)}[/bold]",
                    border_style="cyan",
                    expand=False,
                )
            )
        except Exception as e:
            log.debug(f"Could not deliver notification '{title}': {e}")
