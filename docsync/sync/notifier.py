"""
Outcome notifications shown to the user.

The editor decides how events are presented; ConsoleNotifier renders them
with rich for the CLI.
"""

from enum import Enum
from typing import Any, Optional, Protocol

from rich.console import Console


class NotificationEvent(str, Enum):
    SAVE = "save"
    SWITCH = "switch"
    DELETE = "delete"
    NEW = "new"
    DUPLICATE = "duplicate"
    CORRECT = "correct"
    IMPORT = "import"
    RESTORE = "restore"
    ERROR = "error"
    SYNC_SUCCESS = "syncSuccess"


class Notifier(Protocol):
    """Fire-and-forget outcome sink."""

    def notify(self, event: NotificationEvent, **context: Any) -> None:
        ...


class NullNotifier:
    """Discards all events."""

    def notify(self, event: NotificationEvent, **context: Any) -> None:
        pass


_MESSAGES = {
    NotificationEvent.SAVE: ("green", "✓ Saved"),
    NotificationEvent.SWITCH: ("cyan", "Switched to {name}"),
    NotificationEvent.DELETE: ("red", "Deleted {name}"),
    NotificationEvent.NEW: ("green", "✓ New document created"),
    NotificationEvent.DUPLICATE: ("green", "✓ Duplicated {name} as {name} Copy"),
    NotificationEvent.RESTORE: ("green", "✓ Version restored"),
    NotificationEvent.SYNC_SUCCESS: ("green", "✓ Synced to GitHub"),
}


class ConsoleNotifier:
    """
    Render notifications on a rich console.
    """

    def __init__(self, console: Optional[Console] = None):
        self.console = console or Console()

    def notify(self, event: NotificationEvent, **context: Any) -> None:
        """
        Print a notification.

        Args:
            event: Event type
            **context: Event details (name, ok, count, error)
        """
        event = NotificationEvent(event)

        if event == NotificationEvent.IMPORT:
            if context.get("ok", True):
                self.console.print("[green]✓ Documents imported[/green]")
            else:
                self.console.print("[red]✗ Import failed: invalid document data[/red]")
            return

        if event == NotificationEvent.CORRECT:
            count = context.get("count")
            if count:
                self.console.print(f"[green]✓ Corrected {count} issue(s)[/green]")
            else:
                self.console.print("[cyan]Nothing to correct[/cyan]")
            return

        if event == NotificationEvent.ERROR:
            error = context.get("error")
            suffix = f": {error}" if error else ""
            self.console.print(f"[red]✗ Error{suffix}[/red]")
            return

        color, template = _MESSAGES[event]
        message = template.format(name=context.get("name", ""))
        self.console.print(f"[{color}]{message}[/{color}]")
