"""Plain-text backend with optional ANSI status coloring."""

from __future__ import annotations

from typing import Sequence

from tabulate import tabulate


class PlainBackend:
    """Plain text renderer."""

    _STATUS_STYLES = {
        "ok": "\033[32m",
        "enabled": "\033[32m",
        "failed": "\033[31m",
        "error": "\033[31m",
        "dry-run": "\033[36m",
        "disabled": "\033[90m",
    }
    _RESET = "\033[0m"

    def __init__(self, enable_color: bool = False, width: int = 80):
        self.enable_color = enable_color
        self.width = width

    def heading(self, text: str) -> None:
        print(text)
        print("-" * self.width)

    def table(
        self,
        title: str,
        headers: Sequence[str],
        rows: Sequence[Sequence[str]],
        status_columns: Sequence[int] = (),
        empty_message: str = "  (no rows)",
    ) -> None:
        print()
        print(title)
        if not rows:
            print(empty_message)
            return

        rendered_rows = []
        for row in rows:
            rendered = list(row)
            for idx in status_columns:
                if 0 <= idx < len(rendered):
                    rendered[idx] = self.style_status(rendered[idx])
            rendered_rows.append(rendered)
        print(tabulate(rendered_rows, headers=headers, tablefmt="simple"))

    def notes(self, lines: Sequence[str], title: str = "Notes:") -> None:
        if not lines:
            return
        print()
        print(title)
        for line in lines:
            print(f"  - {line}")

    def style_status(self, value: str) -> str:
        if not self.enable_color:
            return value
        style = self._STATUS_STYLES.get(value.strip().lower())
        if not style:
            return value
        return f"{style}{value}{self._RESET}"
