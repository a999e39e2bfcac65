"""
Error types raised by the buildmq core.

Configuration errors (unknown destination, malformed template, invalid
destination record) are never retried. Publish errors are reported per
destination and never abort a fan-out.
"""

from __future__ import annotations

from typing import Optional


class BuildMQError(Exception):
    """Base class for all buildmq errors."""


class ConfigurationError(BuildMQError, ValueError):
    """Raised when configuration or user-supplied data is invalid."""


class UnknownDestination(ConfigurationError):
    """Raised when a destination name is not present in the registry."""

    def __init__(self, name: str):
        super().__init__(f"Unknown destination : {name}")
        self.name = name


class InvalidTemplate(ConfigurationError):
    """
    Raised when a `key=value` template fails the line grammar.

    Attributes:
        kind: One of "EmptySpec", "MalformedLine", "EmptyKey".
        line: The offending line, if any.
    """

    def __init__(self, kind: str, message: str, line: Optional[str] = None):
        super().__init__(message)
        self.kind = kind
        self.line = line


class PublishError(BuildMQError):
    """Raised when a message could not be delivered to a broker."""

    def __init__(self, reason: str):
        super().__init__(reason)
        self.reason = reason


class UnsupportedMode(ConfigurationError):
    """Raised when a message mode is neither "json" nor "raw"."""

    def __init__(self, mode: str):
        super().__init__(f"Unsupported message mode '{mode}'.")
        self.mode = mode
