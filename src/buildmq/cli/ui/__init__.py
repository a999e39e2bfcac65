"""CLI UI helpers for human-facing output."""

from buildmq.cli.ui.backend import UIBackend, create_ui_backend
from buildmq.cli.ui.context import UIContext, UIResolutionError, resolve_ui_context

__all__ = [
    "UIBackend",
    "UIContext",
    "UIResolutionError",
    "create_ui_backend",
    "resolve_ui_context",
]
