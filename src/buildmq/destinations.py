"""
Broker destinations and the registry that resolves them.

This module provides:
- The immutable Destination record
- DestinationRegistry, an immutable snapshot of configured destinations
- DestinationStore, which swaps registry snapshots on reconfiguration
- Parsing of destination records from configuration, with secret decoding
"""

from __future__ import annotations

import logging
import os
import re
import threading
from dataclasses import dataclass
from typing import Any, Dict, Iterable, Iterator, List, Mapping, Optional, Protocol, Tuple

from buildmq.config import Config
from buildmq.errors import ConfigurationError, UnknownDestination


LOGGER = logging.getLogger(__name__)

EVENT_QUEUE = "queue"
EVENT_FINISH = "finish"
EVENT_KINDS = {EVENT_QUEUE, EVENT_FINISH}

DEFAULT_PORT = 5672
DEFAULT_VIRTUAL_HOST = "/"
DEFAULT_TIMEOUT_SECONDS = 10.0

_ENV_PATTERN = re.compile(r"\$\{([A-Za-z_][A-Za-z0-9_]*)\}")


@dataclass(frozen=True)
class Destination:
    """A named broker target."""

    name: str
    host: str
    port: int = DEFAULT_PORT
    use_tls: bool = False
    username: str = "guest"
    password: str = "guest"
    virtual_host: str = DEFAULT_VIRTUAL_HOST
    exchange: str = ""
    routing_key: str = ""
    enable_on_queue_event: bool = False
    enable_on_finish_event: bool = False
    timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS

    def enabled_for(self, event_kind: str) -> bool:
        if event_kind == EVENT_QUEUE:
            return self.enable_on_queue_event
        if event_kind == EVENT_FINISH:
            return self.enable_on_finish_event
        raise ValueError(f"Unknown event kind '{event_kind}'.")

    def __repr__(self) -> str:
        return (
            f"Destination(name={self.name!r}, host={self.host!r}, port={self.port}, "
            f"virtual_host={self.virtual_host!r}, exchange={self.exchange!r})"
        )


class _EnabledDestinations:
    """Lazy, restartable view over the destinations enabled for an event kind."""

    def __init__(self, destinations: Tuple[Destination, ...], event_kind: str):
        self._destinations = destinations
        self._event_kind = event_kind

    def __iter__(self) -> Iterator[Destination]:
        for destination in self._destinations:
            if destination.enabled_for(self._event_kind):
                yield destination


class DestinationRegistry:
    """
    Immutable snapshot of configured destinations.

    Names are unique. Reconfiguration builds a new registry instead of
    mutating an existing one.
    """

    def __init__(self, destinations: Iterable[Destination] = ()):
        ordered = tuple(destinations)
        by_name: Dict[str, Destination] = {}
        for destination in ordered:
            if destination.name in by_name:
                raise ConfigurationError(f"Duplicate destination name '{destination.name}'.")
            by_name[destination.name] = destination
        self._destinations = ordered
        self._by_name = by_name

    def __iter__(self) -> Iterator[Destination]:
        return iter(self._destinations)

    def __len__(self) -> int:
        return len(self._destinations)

    def names(self) -> List[str]:
        return [destination.name for destination in self._destinations]

    def resolve(self, name: str) -> Optional[Destination]:
        """Return the destination with this name, or None."""
        return self._by_name.get(name)

    def require(self, name: str) -> Destination:
        """Return the destination with this name or raise UnknownDestination."""
        destination = self.resolve(name)
        if destination is None:
            raise UnknownDestination(name)
        return destination

    def enabled_for(self, event_kind: str) -> Iterable[Destination]:
        """Destinations whose flag for `event_kind` is set, in configured order."""
        if event_kind not in EVENT_KINDS:
            raise ValueError(f"Unknown event kind '{event_kind}'.")
        return _EnabledDestinations(self._destinations, event_kind)


class DestinationStore:
    """Holds the current registry snapshot and replaces it atomically."""

    def __init__(self, registry: Optional[DestinationRegistry] = None):
        self._lock = threading.Lock()
        self._registry = registry or DestinationRegistry()

    def snapshot(self) -> DestinationRegistry:
        with self._lock:
            return self._registry

    def replace(self, registry: DestinationRegistry) -> None:
        with self._lock:
            self._registry = registry
        LOGGER.info("Installed destination snapshot: %s", ", ".join(registry.names()) or "(none)")


# =============================================================================
# Loading from configuration
# =============================================================================

class SecretDecoder(Protocol):
    """Turns a stored secret into a usable plaintext credential."""

    def __call__(self, secret: str) -> str:
        ...


def plain_secret(secret: str) -> str:
    """Decoder used when credentials are stored in plain text."""
    return secret


@dataclass
class DestinationLoad:
    """Result of loading destinations from configuration."""

    registry: DestinationRegistry
    errors: List[str]


def _interpolate_env(value: str) -> str:
    """Resolve ${VAR} placeholders from environment variables."""

    def replace(match: re.Match) -> str:
        var_name = match.group(1)
        var_value = os.environ.get(var_name)
        if var_value is None:
            raise ConfigurationError(
                f"Missing environment variable '{var_name}' required by destination config."
            )
        return var_value

    return _ENV_PATTERN.sub(replace, value)


def _to_bool(value: Any, default: bool) -> bool:
    """Convert common scalar values to bool with default fallback."""
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return bool(value)
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in {"1", "true", "yes", "y", "on"}:
            return True
        if lowered in {"0", "false", "no", "n", "off"}:
            return False
    return default


def _to_port(name: str, value: Any) -> int:
    try:
        port = int(str(value).strip())
    except (TypeError, ValueError):
        raise ConfigurationError(f"Destination '{name}' field 'port' is not a number.")
    if not 0 < port < 65536:
        raise ConfigurationError(f"Destination '{name}' field 'port' is out of range.")
    return port


def _to_positive_float(value: Any, default: float) -> float:
    try:
        parsed = float(value)
    except (TypeError, ValueError):
        return default
    return parsed if parsed > 0 else default


def parse_destination(
    raw: Mapping[str, Any],
    defaults: Optional[Mapping[str, Any]] = None,
    decode: SecretDecoder = plain_secret,
) -> Destination:
    """
    Validate and normalize a single destination record.

    Args:
        raw: Record as read from configuration.
        defaults: Broker defaults (port, virtual_host, use_tls, timeout_seconds).
        decode: Secret decoder applied to the password.

    Raises:
        ConfigurationError: If a required field is missing or invalid.
    """
    defaults = defaults or {}

    name = str(raw.get("name", "") or "").strip()
    if not name:
        raise ConfigurationError("Destination is missing required field 'name'.")

    def text(field_name: str, default: Optional[str] = None, required: bool = False) -> str:
        value = raw.get(field_name)
        if value is None or str(value).strip() == "":
            if required:
                raise ConfigurationError(
                    f"Destination '{name}' is missing required field '{field_name}'."
                )
            return default or ""
        return _interpolate_env(str(value))

    host = text("host", required=True).strip()
    port = _to_port(name, raw.get("port", defaults.get("port", DEFAULT_PORT)))
    username = text("username", required=True)
    password = decode(text("password", default=""))
    virtual_host = text("virtual_host", default=str(defaults.get("virtual_host", DEFAULT_VIRTUAL_HOST)))
    exchange = text("exchange", default="")
    routing_key = text("routing_key", default="")

    return Destination(
        name=name,
        host=host,
        port=port,
        use_tls=_to_bool(raw.get("use_tls"), _to_bool(defaults.get("use_tls"), False)),
        username=username,
        password=password,
        virtual_host=virtual_host,
        exchange=exchange,
        routing_key=routing_key,
        enable_on_queue_event=_to_bool(raw.get("on_queue"), False),
        enable_on_finish_event=_to_bool(raw.get("on_finish"), False),
        timeout_seconds=_to_positive_float(
            raw.get("timeout_seconds"),
            _to_positive_float(defaults.get("timeout_seconds"), DEFAULT_TIMEOUT_SECONDS),
        ),
    )


def load_destinations(config: Config, decode: SecretDecoder = plain_secret) -> DestinationLoad:
    """
    Build a registry from the `destinations` configuration key.

    A single mapping is accepted in place of a list. Invalid records are
    reported in `errors` and left out; valid records are kept.
    """
    defaults = config.get("broker.defaults", {}) or {}
    raw_destinations = config.get("destinations", []) or []
    if isinstance(raw_destinations, dict):
        raw_destinations = [raw_destinations]
    if not isinstance(raw_destinations, list):
        return DestinationLoad(
            registry=DestinationRegistry(),
            errors=["Configuration key 'destinations' must be a list."],
        )

    destinations: List[Destination] = []
    seen: set = set()
    errors: List[str] = []

    for idx, raw in enumerate(raw_destinations):
        if not isinstance(raw, dict):
            errors.append(f"Destination entry at index {idx} must be a mapping.")
            continue
        try:
            destination = parse_destination(raw, defaults=defaults, decode=decode)
        except ConfigurationError as exc:
            errors.append(str(exc))
            continue
        if destination.name in seen:
            errors.append(f"Duplicate destination name '{destination.name}'.")
            continue
        seen.add(destination.name)
        destinations.append(destination)

    for error in errors:
        LOGGER.warning("Destination config error: %s", error)

    return DestinationLoad(registry=DestinationRegistry(destinations), errors=errors)
