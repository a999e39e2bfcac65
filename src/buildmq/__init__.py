"""
buildmq - publish build lifecycle notifications to RabbitMQ.

A toolkit for build hosts that need to notify a message broker:
- Event parameters collected for queued and failed jobs
- Templated messages rendered as JSON or raw text
- Fan-out to every destination enabled for an event
- Explicit publishes from build steps to a named destination
"""

from buildmq._version import __version__

from buildmq.config import Config, get_config
from buildmq.destinations import (
    Destination,
    DestinationRegistry,
    DestinationStore,
    load_destinations,
)
from buildmq.dispatcher import Dispatcher, PublishRequest, PublishResult
from buildmq.errors import (
    ConfigurationError,
    InvalidTemplate,
    PublishError,
    UnknownDestination,
)
from buildmq.formatter import format_message
from buildmq.hooks import EventHooks
from buildmq.publisher import Publisher
from buildmq.validation import validate_parameter_spec

__all__ = [
    # Version
    "__version__",
    # Config
    "Config",
    "get_config",
    # Destinations
    "Destination",
    "DestinationRegistry",
    "DestinationStore",
    "load_destinations",
    # Dispatch
    "Dispatcher",
    "EventHooks",
    "PublishRequest",
    "PublishResult",
    "Publisher",
    # Messages
    "format_message",
    "validate_parameter_spec",
    # Errors
    "ConfigurationError",
    "InvalidTemplate",
    "PublishError",
    "UnknownDestination",
]
