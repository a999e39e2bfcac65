"""Choice between plain and rich output for the CLI."""

from __future__ import annotations

import importlib.util
import os
import sys
from dataclasses import dataclass
from typing import Any

from buildmq.config import Config


UI_MODE_PLAIN = "plain"
UI_MODE_RICH = "rich"
UI_MODE_AUTO = "auto"


class UIResolutionError(RuntimeError):
    """Raised when the requested output mode cannot be honoured."""


@dataclass(frozen=True)
class UIContext:
    """Output mode the CLI renders with."""

    requested_mode: str
    effective_mode: str
    plain_color_enabled: bool


def _is_rich_available() -> bool:
    return importlib.util.find_spec("rich") is not None


def _stdout_isatty() -> bool:
    return bool(getattr(sys.stdout, "isatty", lambda: False)())


def resolve_ui_context(args: Any, config: Config) -> UIContext:
    """Pick the output mode: `--ui` first, then `ui.mode`, then plain."""
    requested = (getattr(args, "ui", None) or config.get("ui.mode") or UI_MODE_PLAIN).strip().lower()
    if requested not in (UI_MODE_PLAIN, UI_MODE_RICH, UI_MODE_AUTO):
        requested = UI_MODE_PLAIN

    tty = _stdout_isatty()
    if requested == UI_MODE_RICH and not _is_rich_available():
        raise UIResolutionError(
            "Rich UI requested but rich is not installed. Install with: pip install buildmq[ui]"
        )

    use_rich = requested == UI_MODE_RICH or (requested == UI_MODE_AUTO and tty and _is_rich_available())
    color = tty and "NO_COLOR" not in os.environ and os.environ.get("TERM", "").lower() != "dumb"
    return UIContext(
        requested_mode=requested,
        effective_mode=UI_MODE_RICH if use_rich else UI_MODE_PLAIN,
        plain_color_enabled=color,
    )
