"""
Command handlers for buildmq CLI.

This module contains the implementation of each CLI command.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any, Dict, List, Optional

from buildmq.cli.ui import UIResolutionError, create_ui_backend, resolve_ui_context
from buildmq.config import Config, get_config, init_config
from buildmq.destinations import load_destinations
from buildmq.dispatcher import PublishResult
from buildmq.errors import InvalidTemplate, UnsupportedMode
from buildmq.formatter import DEFAULT_CHARSET, MODE_JSON, MODE_RAW, format_message
from buildmq.hooks import EventHooks
from buildmq.parameters import UserIdentity, collect_explicit, explicit_fields
from buildmq.publisher import Publisher
from buildmq.validation import validate_parameter_spec


LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"

SAMPLE_DESTINATION = {
    "name": "rabbit-default",
    "host": "localhost",
    "port": 5672,
    "username": "guest",
    "password": "${BUILDMQ_RABBIT_PASSWORD}",
    "use_tls": False,
    "virtual_host": "/",
    "exchange": "builds",
    "routing_key": "builds.status",
    "on_queue": False,
    "on_finish": True,
}


# =============================================================================
# Helper Functions
# =============================================================================

def _configure_logging(verbosity: int, configured_level: Any) -> None:
    """Configure root logging from -v flags, falling back to config."""
    if verbosity >= 2:
        level = logging.DEBUG
    elif verbosity == 1:
        level = logging.INFO
    else:
        level = logging.getLevelName(str(configured_level or "WARNING").upper())
        if not isinstance(level, int):
            level = logging.WARNING
    logging.basicConfig(level=level, format=LOG_FORMAT)


def get_configured_config(args: Any) -> Config:
    """Get Config instance with CLI overrides and set up logging."""
    config_path = getattr(args, "config", None)
    config = get_config(config_path=config_path, reload=True)
    _configure_logging(int(getattr(args, "verbose", 0) or 0), config.get("logging.level"))
    return config


def _parse_params(raw: Optional[List[str]]) -> Dict[str, str]:
    """Parse repeated KEY=VALUE options."""
    parsed: Dict[str, str] = {}
    for item in raw or []:
        if "=" not in item:
            print(f"[param-warning] Ignoring '{item}': expected KEY=VALUE")
            continue
        key, value = item.split("=", 1)
        key = key.strip()
        if key:
            parsed[key] = value
    return parsed


def _read_text(path: str) -> str:
    return Path(path).read_text(encoding=DEFAULT_CHARSET)


def _compute_notification_exit_code(
    success_count: int,
    attempted_count: int,
    strict: bool,
) -> int:
    """Compute command exit code from per-destination outcomes."""
    if attempted_count == 0:
        return 0
    if strict:
        return 0 if success_count == attempted_count else 1
    return 0 if success_count > 0 else 1


def _print_publish_results(results: List[PublishResult], config_errors: List[str]) -> None:
    """Print human-readable publish summary."""
    for error in config_errors:
        print(f"[config-error] {error}")

    for result in results:
        target = f"exchange={result.exchange!r}, routing_key={result.routing_key!r}"
        if result.success:
            mode = "dry-run, nothing sent" if result.dry_run else "sent"
            print(f"[ok] {result.destination} - {mode} ({target})")
        else:
            print(f"[failed] {result.destination} - {result.error or 'unknown error'}")


# =============================================================================
# init Command
# =============================================================================

def cmd_init(args: Any) -> int:
    """Initialize project configuration."""
    try:
        config_path = init_config(
            overwrite=args.force,
            root_url=args.root_url,
            destinations=[dict(SAMPLE_DESTINATION)],
        )
    except FileExistsError as exc:
        print(str(exc))
        print("Pass --force to overwrite.")
        return 1

    print(f"Configuration written to {config_path}")
    print("Edit the 'destinations' list, then run: buildmq destinations test")
    return 0


# =============================================================================
# destinations Commands
# =============================================================================

def _yes_no(flag: bool) -> str:
    return "enabled" if flag else "disabled"


def cmd_destinations_list(args: Any) -> int:
    """List configured destinations."""
    config = get_configured_config(args)
    try:
        ui = create_ui_backend(resolve_ui_context(args, config))
    except UIResolutionError as exc:
        print(f"Error: {exc}")
        return 1

    load = load_destinations(config)
    rows = [
        [
            destination.name,
            f"{destination.host}:{destination.port}",
            destination.virtual_host,
            destination.exchange,
            destination.routing_key,
            "yes" if destination.use_tls else "no",
            _yes_no(destination.enable_on_queue_event),
            _yes_no(destination.enable_on_finish_event),
        ]
        for destination in load.registry
    ]

    ui.heading(f"Destinations ({config.config_path})")
    ui.table(
        "Configured destinations",
        ["Name", "Address", "VHost", "Exchange", "Routing key", "TLS", "Queue", "Finish"],
        rows,
        status_columns=(6, 7),
        empty_message="  (no destinations configured)",
    )
    ui.notes(load.errors, title="Configuration errors:")
    return 1 if load.errors else 0


def cmd_destinations_test(args: Any) -> int:
    """Check the connection to each selected destination."""
    config = get_configured_config(args)
    try:
        ui = create_ui_backend(resolve_ui_context(args, config))
    except UIResolutionError as exc:
        print(f"Error: {exc}")
        return 1

    load = load_destinations(config)
    selected = set(args.name or [])
    errors = list(load.errors)
    destinations = [d for d in load.registry if not selected or d.name in selected]
    for name in sorted(selected - set(load.registry.names())):
        errors.append(f"Unknown destination '{name}'.")

    publisher = Publisher()
    rows = []
    failures = 0
    for destination in destinations:
        ok, message = publisher.check_connection(destination)
        if not ok:
            failures += 1
        rows.append([destination.name, "ok" if ok else "failed", message])

    ui.table("Connection test", ["Name", "Status", "Details"], rows, status_columns=(1,))
    ui.notes(errors, title="Configuration errors:")
    return 1 if failures or errors else 0


# =============================================================================
# validate Command
# =============================================================================

def cmd_validate(args: Any) -> int:
    """Validate key=value data."""
    spec = _read_text(args.file) if args.file else args.spec
    validation = validate_parameter_spec(spec)
    if validation.ok:
        print("OK")
        return 0
    print(f"Error ({validation.kind}): {validation.message}")
    return 1


# =============================================================================
# publish Command
# =============================================================================

def cmd_publish(args: Any) -> int:
    """Publish a templated message to one destination."""
    config = get_configured_config(args)
    hooks = EventHooks.from_config(config)
    hooks.dispatcher.dry_run = hooks.dispatcher.dry_run or args.dry_run

    template = _read_text(args.data_file) if args.data_file else args.data
    mode = MODE_JSON if args.json else MODE_RAW
    build_parameters = _parse_params(args.param)
    user = UserIdentity(args.user_id, args.user_name) if args.user_id else None

    if args.dry_run:
        print("Dry run enabled. Message preview:")
        try:
            params = collect_explicit(build_parameters, os.environ, user)
            fields = explicit_fields(build_parameters, user)
            print(format_message(template, params, mode, fields=fields).decode(DEFAULT_CHARSET))
        except (InvalidTemplate, UnsupportedMode) as exc:
            print(f"[template-error] {exc}")

    result = hooks.on_explicit_publish(
        destination_name=args.destination,
        exchange=args.exchange,
        routing_key=args.routing_key,
        template=template,
        mode=mode,
        build_parameters=build_parameters,
        environment=dict(os.environ),
        user=user,
        conversion=not args.no_conversion,
    )
    _print_publish_results([result], [])
    return 0 if result.success else 1


# =============================================================================
# notify Commands
# =============================================================================

def _finish_notify(args: Any, hooks: EventHooks, results: List[PublishResult]) -> int:
    if not results and not hooks.config_errors:
        print("No destinations matched this event.")
        return 0

    _print_publish_results(results, hooks.config_errors)
    success_count = sum(1 for result in results if result.success)
    attempted_count = len(results) + len(hooks.config_errors)
    return _compute_notification_exit_code(
        success_count=success_count,
        attempted_count=attempted_count,
        strict=args.strict,
    )


def cmd_notify_finished(args: Any) -> int:
    """Fan out a finished-run notification."""
    config = get_configured_config(args)
    hooks = EventHooks.from_config(config)
    hooks.dispatcher.dry_run = hooks.dispatcher.dry_run or args.dry_run

    results = hooks.on_job_finished(
        job_name=args.job_name,
        run_id=args.run_id,
        run_url=args.url,
        result=args.result,
        parameters=_parse_params(args.param),
    )
    return _finish_notify(args, hooks, results)


def cmd_notify_queued(args: Any) -> int:
    """Fan out a queued-job notification."""
    config = get_configured_config(args)
    hooks = EventHooks.from_config(config)
    hooks.dispatcher.dry_run = hooks.dispatcher.dry_run or args.dry_run

    results = hooks.on_job_queued(
        queue_id=args.queue_id,
        job_name=args.job_name,
        queue_url=args.url,
        parameters=_parse_params(args.param),
    )
    return _finish_notify(args, hooks, results)
