"""Single-message publishing to a RabbitMQ destination."""

from __future__ import annotations

import logging
import socket
import ssl
from typing import Any, Callable, Optional, Tuple

import pika
import pika.exceptions

from buildmq.destinations import Destination
from buildmq.errors import PublishError


LOGGER = logging.getLogger(__name__)

ENCODING_TEMPLATED = "templated"
ENCODING_RAW = "raw"
ENCODING_MODES = {ENCODING_TEMPLATED, ENCODING_RAW}

TEXT_CONTENT_TYPE = "text/plain"
RAW_CONTENT_TYPE = "application/octet-stream"
TIMEOUT_REASON = "Timeout"


def connection_parameters(destination: Destination) -> pika.ConnectionParameters:
    """Build pika connection parameters for a destination."""
    ssl_options = None
    if destination.use_tls:
        context = ssl.create_default_context()
        ssl_options = pika.SSLOptions(context, server_hostname=destination.host)

    return pika.ConnectionParameters(
        host=destination.host,
        port=destination.port,
        virtual_host=destination.virtual_host,
        credentials=pika.PlainCredentials(destination.username, destination.password),
        ssl_options=ssl_options,
        connection_attempts=1,
        socket_timeout=destination.timeout_seconds,
        stack_timeout=destination.timeout_seconds,
        blocked_connection_timeout=destination.timeout_seconds,
    )


def message_properties(encoding: str) -> pika.BasicProperties:
    """Message properties for an encoding mode."""
    if encoding == ENCODING_TEMPLATED:
        return pika.BasicProperties(
            content_type=TEXT_CONTENT_TYPE,
            content_encoding="utf-8",
            delivery_mode=2,
        )
    return pika.BasicProperties(content_type=RAW_CONTENT_TYPE, delivery_mode=2)


def _is_timeout(exc: BaseException) -> bool:
    if isinstance(exc, (socket.timeout, TimeoutError)):
        return True
    if isinstance(exc, pika.exceptions.AMQPConnectionError):
        return "timeout" in repr(exc).lower() or "timed out" in repr(exc).lower()
    return False


def _describe(exc: BaseException) -> str:
    if _is_timeout(exc):
        return TIMEOUT_REASON
    if isinstance(exc, pika.exceptions.ProbableAuthenticationError):
        return f"Authentication failed: {exc}"
    if isinstance(exc, pika.exceptions.NackError):
        return "Message rejected by broker (nack)"
    if isinstance(exc, pika.exceptions.UnroutableError):
        return "Message returned by broker as unroutable"
    if isinstance(exc, pika.exceptions.AMQPChannelError):
        return f"Channel error: {exc!r}"
    if isinstance(exc, pika.exceptions.AMQPConnectionError):
        return f"Connection failed: {exc!r}"
    if isinstance(exc, ssl.SSLError):
        return f"TLS error: {exc}"
    return f"{type(exc).__name__}: {exc}"


class Publisher:
    """
    Publishes one message per call, on a connection opened for that call.

    Connections are not pooled: the connection is closed when the call
    returns, whether the publish succeeded or not.
    """

    def __init__(self, connection_factory: Optional[Callable[[Any], Any]] = None):
        self._connection_factory = connection_factory

    def _connect(self, destination: Destination) -> Any:
        factory = self._connection_factory or pika.BlockingConnection
        return factory(connection_parameters(destination))

    def publish(
        self,
        destination: Destination,
        exchange: str,
        routing_key: str,
        body: bytes,
        encoding: str = ENCODING_RAW,
    ) -> None:
        """
        Publish `body` to `exchange` with `routing_key` on `destination`.

        Raises:
            PublishError: On connection, authentication, TLS, channel or
                broker-level failure, or on timeout.
        """
        if encoding not in ENCODING_MODES:
            raise ValueError(f"Unsupported encoding mode '{encoding}'.")

        connection = None
        try:
            connection = self._connect(destination)
            channel = connection.channel()
            channel.confirm_delivery()
            channel.basic_publish(
                exchange=exchange,
                routing_key=routing_key,
                body=body,
                properties=message_properties(encoding),
                mandatory=True,
            )
            LOGGER.info(
                "Published %d byte(s) to %s (exchange=%r, routing_key=%r)",
                len(body),
                destination.name,
                exchange,
                routing_key,
            )
        except (pika.exceptions.AMQPError, ssl.SSLError, OSError) as exc:
            LOGGER.error("Error while sending to %s: %s", destination.name, _describe(exc))
            raise PublishError(_describe(exc)) from exc
        finally:
            if connection is not None and connection.is_open:
                try:
                    connection.close()
                except pika.exceptions.AMQPError as exc:
                    LOGGER.debug("Error closing connection to %s: %r", destination.name, exc)
            LOGGER.debug("Connection to %s released", destination.name)

    def check_connection(self, destination: Destination) -> Tuple[bool, str]:
        """Open and close a connection to check host, credentials and TLS."""
        connection = None
        try:
            connection = self._connect(destination)
            if connection.is_open:
                return True, "Connection success"
            return False, "Connection failed"
        except (pika.exceptions.AMQPError, ssl.SSLError, OSError) as exc:
            LOGGER.error("Connection error for %s: %s", destination.name, _describe(exc))
            return False, f"Client error : {_describe(exc)}"
        finally:
            if connection is not None and connection.is_open:
                try:
                    connection.close()
                except pika.exceptions.AMQPError as exc:
                    LOGGER.debug("Error closing connection to %s: %r", destination.name, exc)
