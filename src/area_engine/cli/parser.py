"""CLI argument parser."""

from __future__ import annotations

import argparse

from .. import __version__


def _add_config_argument(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "-c",
        "--config",
        default=None,
        help="Path to configuration file (default: environment variables only)",
    )
    parser.add_argument(
        "-d",
        "--debug",
        action="store_true",
        help="Enable debug logging",
    )


def build_parser() -> argparse.ArgumentParser:
    """Build the argument parser.

    Returns:
        ArgumentParser instance
    """
    parser = argparse.ArgumentParser(
        prog="area-engine",
        description="AREA workflow engine - poll triggers and run reactions",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Create the database tables
  area-engine init-db -c config.yaml

  # Run the polling loops until interrupted
  area-engine run -c config.yaml

  # Run a single cycle of the timer loop
  area-engine poll-once --loop timer

  # Close the circuit breaker of workflow 42
  area-engine reset-breaker 42
        """,
    )

    parser.add_argument(
        "-v",
        "--version",
        action="version",
        version=f"%(prog)s v{__version__}",
        help="Show program's version number and exit",
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    run_parser = subparsers.add_parser("run", help="Run the polling loops until interrupted")
    _add_config_argument(run_parser)

    poll_parser = subparsers.add_parser("poll-once", help="Run one polling cycle and exit")
    _add_config_argument(poll_parser)
    poll_parser.add_argument(
        "--loop",
        choices=["workflow", "timer", "all"],
        default="all",
        help="Which polling loop to run (default: all)",
    )

    status_parser = subparsers.add_parser("status", help="Show trigger state of every workflow")
    _add_config_argument(status_parser)

    reset_parser = subparsers.add_parser(
        "reset-breaker", help="Reset the failure counter of a workflow"
    )
    reset_parser.add_argument("workflow_id", type=int, help="Workflow ID")
    _add_config_argument(reset_parser)

    logs_parser = subparsers.add_parser("logs", help="Show recent execution log entries")
    _add_config_argument(logs_parser)
    logs_parser.add_argument("-w", "--workflow", type=int, default=None, help="Workflow ID")
    logs_parser.add_argument(
        "-n", "--limit", type=int, default=20, help="Number of entries (default: 20)"
    )

    init_db_parser = subparsers.add_parser("init-db", help="Create the database tables")
    _add_config_argument(init_db_parser)

    init_parser = subparsers.add_parser("init", help="Generate default configuration")
    init_parser.add_argument(
        "-o",
        "--output",
        default="config.yaml",
        help="Output config file path (default: config.yaml)",
    )
    init_parser.add_argument(
        "-f", "--force", action="store_true", help="Overwrite an existing file"
    )

    return parser
