"""Output formatting for the packsync CLI."""

import json
from typing import Any, Optional

from rich.console import Console
from rich.table import Table

from .utils import format_size


class OutputFormatter:
    """Formats CLI output as rich text or JSON.

    In JSON mode only :meth:`output_json` writes to stdout so the output
    stays machine-readable. Quiet mode suppresses informational messages
    but never errors.
    """

    def __init__(
        self,
        json_output: bool = False,
        quiet: bool = False,
        console: Optional[Console] = None,
        err_console: Optional[Console] = None,
    ):
        self.json_output = json_output
        self.quiet = quiet
        self.console = console or Console()
        self.err_console = err_console or Console(stderr=True)

    def _show_messages(self) -> bool:
        return not self.quiet and not self.json_output

    def info(self, message: str) -> None:
        """Print an informational message."""
        if self._show_messages():
            self.console.print(message, highlight=False)

    def success(self, message: str) -> None:
        if self._show_messages():
            self.console.print(f"[green]{message}[/green]", highlight=False)

    def warning(self, message: str) -> None:
        if not self.json_output:
            self.err_console.print(f"[yellow]Warning:[/yellow] {message}", highlight=False)

    def error(self, message: str) -> None:
        """Print an error message to stderr. Shown even in quiet mode."""
        self.err_console.print(f"[red]Error:[/red] {message}", highlight=False)

    def print(self, renderable: Any) -> None:
        """Print any rich renderable unless in quiet or JSON mode."""
        if self._show_messages():
            self.console.print(renderable)

    def output_json(self, data: Any) -> None:
        """Write data as JSON to stdout."""
        self.console.print_json(json.dumps(data, ensure_ascii=False))

    def print_summary(self, title: str, items: list[tuple[str, str]]) -> None:
        """Print a two-column summary table.

        Args:
            title: Table title
            items: (label, value) rows
        """
        if self.json_output:
            self.output_json({label: value for label, value in items})
            return
        if self.quiet:
            return
        table = Table(title=title, show_header=False)
        table.add_column("Field", style="bold")
        table.add_column("Value")
        for label, value in items:
            table.add_row(label, value)
        self.console.print(table)

    @staticmethod
    def format_size(size_bytes: int) -> str:
        return format_size(size_bytes)
