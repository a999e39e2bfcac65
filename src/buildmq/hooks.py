"""
Entry points called by the build host on lifecycle events.

The host hands over explicit context; nothing here looks up global state.
Every entry point returns result values and never raises into the host.
"""

from __future__ import annotations

import logging
from typing import Any, Callable, List, Mapping, Optional

from buildmq.config import Config
from buildmq.destinations import (
    EVENT_FINISH,
    EVENT_QUEUE,
    DestinationStore,
    SecretDecoder,
    load_destinations,
    plain_secret,
)
from buildmq.dispatcher import Dispatcher, PublishRequest, PublishResult
from buildmq.errors import ConfigurationError
from buildmq.failure_causes import fetch_failure_cause
from buildmq.formatter import MODE_JSON
from buildmq.parameters import (
    STATUS_FAILURE,
    UserIdentity,
    collect_explicit,
    collect_finished,
    collect_queued,
    explicit_fields,
    queue_item_url,
)


LOGGER = logging.getLogger(__name__)


def _max_workers(config: Config) -> int:
    raw = config.get("dispatch.max_workers", 1)
    try:
        return int(raw or 1)
    except (TypeError, ValueError):
        raise ConfigurationError(f"dispatch.max_workers must be an integer, got {raw!r}.")


class EventHooks:
    """Lifecycle hooks wired to a dispatcher."""

    def __init__(
        self,
        dispatcher: Dispatcher,
        root_url: str = "",
        job_prefix: str = "",
        failure_causes: bool = False,
        failure_cause_lookup: Callable[[str], str] = fetch_failure_cause,
    ):
        self.dispatcher = dispatcher
        self.root_url = root_url
        self.job_prefix = job_prefix or ""
        self.failure_causes = failure_causes
        self.failure_cause_lookup = failure_cause_lookup
        self.config_errors: List[str] = []

    @classmethod
    def from_config(
        cls,
        config: Config,
        decode: SecretDecoder = plain_secret,
        dispatcher: Optional[Dispatcher] = None,
    ) -> "EventHooks":
        """Build hooks, store and dispatcher from configuration."""
        load = load_destinations(config, decode=decode)
        if dispatcher is None:
            dispatcher = Dispatcher(
                store=DestinationStore(load.registry),
                max_workers=_max_workers(config),
                dry_run=bool(config.get("dry_run", False)),
            )
        else:
            dispatcher.store.replace(load.registry)

        hooks = cls(
            dispatcher=dispatcher,
            root_url=str(config.get("root_url", "") or ""),
            job_prefix=str(config.get("events.job_prefix", "") or ""),
            failure_causes=bool(config.get("events.failure_causes", False)),
        )
        hooks.config_errors = list(load.errors)
        return hooks

    def reload(self, config: Config, decode: SecretDecoder = plain_secret) -> List[str]:
        """Install a new destination snapshot from configuration."""
        load = load_destinations(config, decode=decode)
        self.dispatcher.store.replace(load.registry)
        self.config_errors = list(load.errors)
        return self.config_errors

    def _accepts(self, job_name: Any) -> bool:
        if not isinstance(job_name, str) or not job_name:
            LOGGER.warning("Ignoring event without a job name: %r", job_name)
            return False
        return job_name.startswith(self.job_prefix)

    def on_job_finished(
        self,
        job_name: str,
        run_id: str,
        run_url: str,
        result: str,
        parameters: Optional[Mapping[str, Any]] = None,
    ) -> List[PublishResult]:
        """Notify enabled destinations of a failed run; other results are ignored."""
        if not self._accepts(job_name):
            LOGGER.debug("Ignoring finished job %s: prefix %r not matched", job_name, self.job_prefix)
            return []
        if str(result).upper() != STATUS_FAILURE:
            LOGGER.debug("Ignoring finished job %s with result %s", job_name, result)
            return []

        failure_cause = ""
        if self.failure_causes:
            try:
                failure_cause = self.failure_cause_lookup(run_url) or ""
            except Exception:
                LOGGER.exception("Failure cause lookup failed for %s", run_url)

        params = collect_finished(job_name, run_id, run_url, parameters, failure_cause=failure_cause)
        return self._fan_out(EVENT_FINISH, params)

    def on_job_queued(
        self,
        queue_id: int,
        job_name: str,
        queue_url: Optional[str] = None,
        parameters: Optional[Mapping[str, Any]] = None,
    ) -> List[PublishResult]:
        """Notify enabled destinations that a job entered the wait queue."""
        if not self._accepts(job_name):
            LOGGER.debug("Ignoring queued job %s: prefix %r not matched", job_name, self.job_prefix)
            return []

        try:
            queue_number = int(queue_id)
        except (TypeError, ValueError):
            LOGGER.warning("Ignoring queued job %s: queue id %r is not a number", job_name, queue_id)
            return []

        url = queue_url or self._queue_url(queue_number)
        params = collect_queued(queue_number, job_name, url, parameters)
        return self._fan_out(EVENT_QUEUE, params)

    def _queue_url(self, queue_id: int) -> str:
        if not self.root_url:
            LOGGER.warning("root_url is not configured; queue item %s is sent without a url", queue_id)
            return ""
        return queue_item_url(self.root_url, queue_id)

    def _fan_out(self, event_kind: str, params: Mapping[str, Any]) -> List[PublishResult]:
        results = self.dispatcher.fan_out(event_kind, params)
        for result in results:
            if not result.success:
                LOGGER.error(
                    "Error while sending %s event to %s: %s",
                    event_kind,
                    result.destination,
                    result.error,
                )
        return results

    def on_explicit_publish(
        self,
        destination_name: str,
        exchange: Optional[str],
        routing_key: Optional[str],
        template: str,
        mode: str = MODE_JSON,
        build_parameters: Optional[Mapping[str, Any]] = None,
        environment: Optional[Mapping[str, Any]] = None,
        user: Optional[UserIdentity] = None,
        conversion: bool = True,
    ) -> PublishResult:
        """Publish a templated message from a build step to one destination."""
        params = collect_explicit(build_parameters, environment, user)
        fields = explicit_fields(build_parameters, user)
        LOGGER.debug("Parameters retrieved : %s", sorted(fields))

        request = PublishRequest(
            destination=destination_name,
            template=template,
            parameters=params,
            mode=mode,
            exchange=exchange,
            routing_key=routing_key,
            conversion=conversion,
            fields=fields,
        )
        try:
            result = self.dispatcher.publish(request)
        except ConfigurationError as exc:
            LOGGER.error("Error while sending to %s: %s", destination_name, exc)
            return PublishResult(
                destination=destination_name,
                success=False,
                error=f"{type(exc).__name__}: {exc}",
            )

        if not result.success:
            LOGGER.error("Error while sending to %s: %s", destination_name, result.error)
        return result
