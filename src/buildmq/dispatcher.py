"""
Dispatch of messages to broker destinations.

Two modes are supported:
- explicit publish: one named destination, one templated message
- fan-out: every destination enabled for a lifecycle event, one JSON message each

Each call is stateless. Per-destination failures are returned as
PublishResult values and never stop the remaining destinations.
"""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional

from buildmq.destinations import Destination, DestinationRegistry, DestinationStore
from buildmq.errors import InvalidTemplate, PublishError, UnsupportedMode
from buildmq.formatter import DEFAULT_CHARSET, MODE_JSON, format_message, render_event_message
from buildmq.publisher import ENCODING_RAW, ENCODING_TEMPLATED, Publisher


LOGGER = logging.getLogger(__name__)


@dataclass
class PublishRequest:
    """An explicit publish to one named destination."""

    destination: str
    template: str
    parameters: Dict[str, Any] = field(default_factory=dict)
    mode: str = MODE_JSON
    exchange: Optional[str] = None
    routing_key: Optional[str] = None
    conversion: bool = True
    fields: Optional[Dict[str, Any]] = None


@dataclass
class PublishResult:
    """Outcome of publishing to a single destination."""

    destination: str
    success: bool
    error: Optional[str] = None
    exchange: Optional[str] = None
    routing_key: Optional[str] = None
    dry_run: bool = False


class Dispatcher:
    """Formats and publishes messages to configured destinations."""

    def __init__(
        self,
        store: DestinationStore,
        publisher: Optional[Publisher] = None,
        max_workers: int = 1,
        dry_run: bool = False,
    ):
        self.store = store
        self.publisher = publisher or Publisher()
        self.max_workers = max(1, int(max_workers))
        self.dry_run = dry_run

    def _send(
        self,
        destination: Destination,
        exchange: str,
        routing_key: str,
        body: bytes,
        encoding: str,
    ) -> PublishResult:
        if self.dry_run:
            LOGGER.info("Dry run: skipping send to %s", destination.name)
            return PublishResult(
                destination=destination.name,
                success=True,
                exchange=exchange,
                routing_key=routing_key,
                dry_run=True,
            )
        try:
            self.publisher.publish(destination, exchange, routing_key, body, encoding)
        except PublishError as exc:
            return PublishResult(
                destination=destination.name,
                success=False,
                error=exc.reason,
                exchange=exchange,
                routing_key=routing_key,
            )
        except Exception as exc:
            LOGGER.exception("Unexpected error while sending to %s", destination.name)
            return PublishResult(
                destination=destination.name,
                success=False,
                error=f"{type(exc).__name__}: {exc}",
                exchange=exchange,
                routing_key=routing_key,
            )
        return PublishResult(
            destination=destination.name,
            success=True,
            exchange=exchange,
            routing_key=routing_key,
        )

    def publish(self, request: PublishRequest) -> PublishResult:
        """
        Publish one message to one named destination.

        Raises:
            UnknownDestination: If the destination is not configured. No
                connection is attempted in that case.
        """
        registry = self.store.snapshot()
        destination = registry.require(request.destination)

        exchange = request.exchange if request.exchange is not None else destination.exchange
        routing_key = request.routing_key if request.routing_key is not None else destination.routing_key

        LOGGER.info("Building message for %s", destination.name)
        try:
            body = format_message(
                request.template,
                request.parameters,
                request.mode,
                fields=request.fields,
            )
        except (InvalidTemplate, UnsupportedMode) as exc:
            LOGGER.error("Error while building message for %s: %s", destination.name, exc)
            return PublishResult(
                destination=destination.name,
                success=False,
                error=f"{type(exc).__name__}: {exc}",
                exchange=exchange,
                routing_key=routing_key,
            )

        if request.mode == MODE_JSON:
            LOGGER.info("Sending message as JSON:\n%s", body.decode(DEFAULT_CHARSET))
        else:
            LOGGER.info("Sending raw message:\n%s", body.decode(DEFAULT_CHARSET))

        encoding = ENCODING_TEMPLATED if request.conversion else ENCODING_RAW
        return self._send(destination, exchange, routing_key, body, encoding)

    def _send_event(self, destination: Destination, body: bytes) -> PublishResult:
        return self._send(
            destination,
            destination.exchange,
            destination.routing_key,
            body,
            ENCODING_RAW,
        )

    def fan_out(
        self,
        event_kind: str,
        params: Mapping[str, Any],
        registry: Optional[DestinationRegistry] = None,
    ) -> List[PublishResult]:
        """
        Publish an event message to every destination enabled for `event_kind`.

        Results are returned in destination order, one per destination.
        """
        if registry is None:
            registry = self.store.snapshot()
        destinations = list(registry.enabled_for(event_kind))
        if not destinations:
            LOGGER.debug("No destinations enabled for '%s' events", event_kind)
            return []

        body = render_event_message(params)
        LOGGER.info(
            "Dispatching %s event to %d destination(s): %s",
            event_kind,
            len(destinations),
            body.decode(DEFAULT_CHARSET),
        )

        if self.max_workers > 1 and len(destinations) > 1:
            workers = min(self.max_workers, len(destinations))
            with ThreadPoolExecutor(max_workers=workers) as pool:
                return list(pool.map(lambda d: self._send_event(d, body), destinations))

        return [self._send_event(destination, body) for destination in destinations]
