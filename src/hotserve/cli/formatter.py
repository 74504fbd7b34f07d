import threading
from contextlib import contextmanager
from typing import Iterator

from rich.console import Console
from rich.markup import escape
from rich.text import Text

# System messages go to stderr; server output goes to stdout.
error_console = Console(stderr=True)
output_console = Console()

# Watcher, reader and controller threads all print; keep lines whole.
_print_lock = threading.RLock()


class OutputFormatter:
    """
    Handles operator-facing output for the CLI and the development session.
    Ensures separation of concerns between System Logs (stderr) and server output (stdout).
    """

    @staticmethod
    def log(message: str, severity: str = "info") -> None:
        """
        Print system messages to stderr with color coding.
        """
        style = "white"
        prefix = "[HOTSERVE]"

        if severity == "warning":
            style = "yellow"
        elif severity == "error":
            style = "red"
        elif severity == "critical":
            style = "bold red"
        elif severity == "success":
            style = "green"

        with _print_lock:
            error_console.print(f"[{style}]{escape(prefix)} {escape(message)}[/{style}]", soft_wrap=True)

    @staticmethod
    def print_process_line(line: str) -> None:
        """
        Print one line of managed-server output with the `| ` prefix.

        Rich renders prints above any live status display, so a spinner that is
        mid-render is suspended rather than corrupted.
        """
        text = Text("| ", style="bold")
        text.append(line.strip())
        with _print_lock:
            output_console.print(text, soft_wrap=True)

    @staticmethod
    @contextmanager
    def status(message: str) -> Iterator[None]:
        """Show a spinner on stderr for the duration of a long-running step."""
        with error_console.status(escape(message)):
            yield
