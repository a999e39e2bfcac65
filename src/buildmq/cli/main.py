"""
Main CLI entry point for buildmq.

This module provides the main command-line interface with subcommands
for validating templates, inspecting destinations, and publishing messages.
"""

from __future__ import annotations

import argparse
import sys
from typing import List, Optional

from buildmq import __version__
from buildmq.errors import ConfigurationError


def _add_param_argument(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--param",
        action="append",
        metavar="KEY=VALUE",
        help="Build parameter (repeatable)",
    )


def create_parser() -> argparse.ArgumentParser:
    """
    Create the main argument parser with all subcommands.

    Returns:
        Configured ArgumentParser.
    """
    parser = argparse.ArgumentParser(
        prog="buildmq",
        description="Publish build lifecycle notifications to RabbitMQ.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  buildmq init                                  Initialize project configuration
  buildmq destinations list                     Show configured destinations
  buildmq destinations test --name rabbit-1     Test broker connection
  buildmq validate 'key_1=value_1'              Validate key=value data
  buildmq publish --destination rabbit-1 --json --data 'status=${STATUS}'
  buildmq notify queued --queue-id 42 --job-name JJB_build

For more information on a command, run: buildmq <command> --help
""",
    )

    parser.add_argument(
        "-V", "--version",
        action="version",
        version=f"buildmq {__version__}",
    )

    # Global options
    parser.add_argument(
        "--config",
        metavar="PATH",
        help="Path to config file (default: .buildmq/config.yaml)",
    )
    parser.add_argument(
        "--ui",
        choices=["plain", "rich", "auto"],
        default=None,
        help="UI mode override (plain, rich, auto). Defaults to config ui.mode or plain.",
    )
    parser.add_argument(
        "-v", "--verbose",
        action="count",
        default=0,
        help="Increase log verbosity (-v for INFO, -vv for DEBUG)",
    )

    subparsers = parser.add_subparsers(
        dest="command",
        title="commands",
        metavar="<command>",
    )

    # init
    init_parser = subparsers.add_parser(
        "init",
        help="Initialize project configuration",
        description="Create the project configuration file.",
    )
    init_parser.add_argument(
        "--force",
        action="store_true",
        help="Overwrite existing configuration",
    )
    init_parser.add_argument(
        "--root-url",
        metavar="URL",
        default="",
        help="Root URL of the build host",
    )

    # destinations
    destinations_parser = subparsers.add_parser(
        "destinations",
        help="Inspect configured broker destinations",
    )
    destinations_subparsers = destinations_parser.add_subparsers(
        dest="destinations_action",
        title="actions",
        metavar="<action>",
    )
    destinations_subparsers.add_parser(
        "list",
        help="List configured destinations",
    )
    destinations_test_parser = destinations_subparsers.add_parser(
        "test",
        help="Open and close a connection to each destination",
    )
    destinations_test_parser.add_argument(
        "--name",
        action="append",
        metavar="NAME",
        help="Destination name filter (repeatable)",
    )

    # validate
    validate_parser = subparsers.add_parser(
        "validate",
        help="Validate key=value data",
        description="Check that every line of the data has the form key=value.",
    )
    validate_source = validate_parser.add_mutually_exclusive_group(required=True)
    validate_source.add_argument(
        "spec",
        nargs="?",
        help="Data to validate",
    )
    validate_source.add_argument(
        "--file",
        metavar="PATH",
        help="Read data from file",
    )

    # publish
    publish_parser = subparsers.add_parser(
        "publish",
        help="Publish a templated message to one destination",
    )
    publish_parser.add_argument(
        "--destination",
        required=True,
        metavar="NAME",
        help="Destination name",
    )
    publish_parser.add_argument(
        "--exchange",
        metavar="NAME",
        help="Exchange override (defaults to the destination's)",
    )
    publish_parser.add_argument(
        "--routing-key",
        metavar="KEY",
        help="Routing key override (defaults to the destination's)",
    )
    data_source = publish_parser.add_mutually_exclusive_group(required=True)
    data_source.add_argument(
        "--data",
        metavar="TEMPLATE",
        help="Message template",
    )
    data_source.add_argument(
        "--data-file",
        metavar="PATH",
        help="Read message template from file",
    )
    publish_parser.add_argument(
        "--json",
        action="store_true",
        help="Render key=value lines as a JSON object (default: raw text)",
    )
    publish_parser.add_argument(
        "--no-conversion",
        action="store_true",
        help="Send the exact bytes without text content properties",
    )
    publish_parser.add_argument(
        "--user-id",
        metavar="ID",
        help="Triggering user id (sets BUILD_USER_ID / BUILD_USER_NAME)",
    )
    publish_parser.add_argument(
        "--user-name",
        metavar="NAME",
        help="Triggering user display name",
    )
    _add_param_argument(publish_parser)
    publish_parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Show the message without sending it",
    )

    # notify
    notify_parser = subparsers.add_parser(
        "notify",
        help="Send job lifecycle notifications",
        description="Fan out a lifecycle event to every enabled destination.",
    )
    notify_subparsers = notify_parser.add_subparsers(
        dest="notify_action",
        title="actions",
        metavar="<action>",
    )

    # notify finished
    notify_finished_parser = notify_subparsers.add_parser(
        "finished",
        help="Notify that a job run finished",
    )
    notify_finished_parser.add_argument(
        "--job-name",
        required=True,
        metavar="NAME",
        help="Job name",
    )
    notify_finished_parser.add_argument(
        "--run-id",
        required=True,
        metavar="ID",
        help="Run identifier",
    )
    notify_finished_parser.add_argument(
        "--url",
        required=True,
        metavar="URL",
        help="Absolute URL of the run",
    )
    notify_finished_parser.add_argument(
        "--result",
        default="FAILURE",
        metavar="RESULT",
        help="Run result; only FAILURE is notified (default: FAILURE)",
    )
    _add_param_argument(notify_finished_parser)
    notify_finished_parser.add_argument(
        "--strict",
        action="store_true",
        help="Require all destinations to succeed",
    )
    notify_finished_parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Show resolved destinations without sending",
    )

    # notify queued
    notify_queued_parser = notify_subparsers.add_parser(
        "queued",
        help="Notify that a job entered the wait queue",
    )
    notify_queued_parser.add_argument(
        "--queue-id",
        required=True,
        type=int,
        metavar="N",
        help="Queue item id",
    )
    notify_queued_parser.add_argument(
        "--job-name",
        required=True,
        metavar="NAME",
        help="Job name",
    )
    notify_queued_parser.add_argument(
        "--url",
        metavar="URL",
        help="Queue item URL (defaults to one built from root_url)",
    )
    _add_param_argument(notify_queued_parser)
    notify_queued_parser.add_argument(
        "--strict",
        action="store_true",
        help="Require all destinations to succeed",
    )
    notify_queued_parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Show resolved destinations without sending",
    )

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """
    Main CLI entry point.

    Args:
        argv: Command-line arguments. If None, uses sys.argv.

    Returns:
        Exit code (0 for success).
    """
    parser = create_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        return 0

    from buildmq.cli import commands

    try:
        if args.command == "init":
            return commands.cmd_init(args)

        elif args.command == "destinations":
            if args.destinations_action == "list":
                return commands.cmd_destinations_list(args)
            elif args.destinations_action == "test":
                return commands.cmd_destinations_test(args)
            else:
                parser.parse_args([args.command, "--help"])
                return 1

        elif args.command == "validate":
            return commands.cmd_validate(args)

        elif args.command == "publish":
            return commands.cmd_publish(args)

        elif args.command == "notify":
            if args.notify_action == "finished":
                return commands.cmd_notify_finished(args)
            elif args.notify_action == "queued":
                return commands.cmd_notify_queued(args)
            else:
                parser.parse_args([args.command, "--help"])
                return 1

        else:
            parser.print_help()
            return 1

    except ConfigurationError as exc:
        print(f"Error: {exc}")
        return 1

    except KeyboardInterrupt:
        print("\nAborted.")
        return 130


if __name__ == "__main__":
    sys.exit(main())
