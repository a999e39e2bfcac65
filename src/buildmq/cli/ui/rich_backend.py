"""Rich backend for interactive terminals."""

from __future__ import annotations

from typing import Sequence

from rich.console import Console
from rich.panel import Panel
from rich.table import Table


class RichBackend:
    """Rich renderer for interactive terminals."""

    _STATUS_STYLES = {
        "ok": "bold green",
        "enabled": "green",
        "failed": "bold red",
        "error": "bold red",
        "dry-run": "bold cyan",
        "disabled": "dim",
    }

    def __init__(self):
        self.console = Console()

    def heading(self, text: str) -> None:
        self.console.print(Panel.fit(text, border_style="cyan"))

    def table(
        self,
        title: str,
        headers: Sequence[str],
        rows: Sequence[Sequence[str]],
        status_columns: Sequence[int] = (),
        empty_message: str = "  (no rows)",
    ) -> None:
        self.console.print()
        self.console.print(f"[bold]{title}[/bold]")
        if not rows:
            self.console.print(empty_message)
            return

        table = Table(header_style="bold cyan")
        for header in headers:
            table.add_column(header, overflow="fold")
        for row in rows:
            table.add_row(
                *[
                    self.style_status(value) if idx in status_columns else value
                    for idx, value in enumerate(row)
                ]
            )
        self.console.print(table)

    def notes(self, lines: Sequence[str], title: str = "Notes:") -> None:
        if not lines:
            return
        self.console.print()
        self.console.print(f"[bold]{title}[/bold]")
        for line in lines:
            self.console.print(f"  [dim]-[/dim] {line}")

    def style_status(self, value: str) -> str:
        style = self._STATUS_STYLES.get(value.strip().lower())
        if not style:
            return value
        return f"[{style}]{value}[/{style}]"
