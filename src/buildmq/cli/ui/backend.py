"""Output backend selection for CLI tables."""

from __future__ import annotations

from typing import Protocol, Sequence

from buildmq.cli.ui.context import UI_MODE_RICH, UIContext


class UIBackend(Protocol):
    """Rendering calls shared by the plain and rich backends."""

    def heading(self, text: str) -> None: ...

    def table(
        self,
        title: str,
        headers: Sequence[str],
        rows: Sequence[Sequence[str]],
        status_columns: Sequence[int] = (),
        empty_message: str = "  (no rows)",
    ) -> None: ...

    def notes(self, lines: Sequence[str], title: str = "Notes:") -> None: ...


def create_ui_backend(ctx: UIContext) -> UIBackend:
    """Instantiate the backend for a resolved context."""
    if ctx.effective_mode == UI_MODE_RICH:
        from buildmq.cli.ui.rich_backend import RichBackend

        return RichBackend()

    from buildmq.cli.ui.plain import PlainBackend

    return PlainBackend(enable_color=ctx.plain_color_enabled)
