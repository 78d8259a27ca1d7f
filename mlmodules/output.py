"""Console output helpers for the mlmodules CLI."""

import json
from typing import Any, Optional

from rich.console import Console
from rich.table import Table

from .utils import format_size


class OutputFormatter:
    """Formats command output for humans (rich) or machines (JSON)."""

    def __init__(
        self,
        json_output: bool = False,
        quiet: bool = False,
        console: Optional[Console] = None,
    ):
        """Initialize output formatter.

        Args:
            json_output: Emit JSON instead of human-readable text
            quiet: Suppress informational messages
            console: Rich console for stdout (created if not provided)
        """
        self.json_output = json_output
        self.quiet = quiet
        self.console = console or Console()
        self.err_console = Console(stderr=True)

    def print(self, message: str = "") -> None:
        if not self.quiet and not self.json_output:
            self.console.print(message)

    def info(self, message: str) -> None:
        if not self.quiet and not self.json_output:
            self.console.print(message, highlight=False)

    def success(self, message: str) -> None:
        if not self.quiet and not self.json_output:
            self.console.print(f"[green]✓[/green] {message}", highlight=False)

    def warning(self, message: str) -> None:
        if not self.json_output:
            self.err_console.print(f"[yellow]Warning:[/yellow] {message}")

    def error(self, message: str) -> None:
        self.err_console.print(f"[red]Error:[/red] {message}")

    def format_size(self, size_bytes: int) -> str:
        return format_size(size_bytes)

    def output_json(self, data: Any) -> None:
        """Print data as JSON on stdout (always, even when quiet)."""
        self.console.print_json(json.dumps(data, default=str))

    def print_summary(self, title: str, items: list[tuple[str, str]]) -> None:
        """Print a two-column summary table.

        Args:
            title: Table title
            items: (label, value) rows
        """
        if self.quiet or self.json_output:
            return

        table = Table(title=title, show_header=False)
        table.add_column("Field", style="bold")
        table.add_column("Value")
        for label, value in items:
            table.add_row(label, value)
        self.console.print(table)
