"""Command-line interface for the AREA workflow engine."""

from __future__ import annotations

from collections.abc import Sequence

from .commands import (
    cmd_init,
    cmd_init_db,
    cmd_logs,
    cmd_poll_once,
    cmd_reset_breaker,
    cmd_run,
    cmd_status,
    load_config,
)
from .parser import build_parser


def main(argv: Sequence[str] | None = None) -> int:
    """CLI entry point.

    Args:
        argv: Optional sequence of CLI arguments (without the program name).

    Returns:
        Process exit code. 0 for success.
    """
    parser = build_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        raise SystemExit(0)

    handlers = {
        "run": cmd_run,
        "poll-once": cmd_poll_once,
        "status": cmd_status,
        "reset-breaker": cmd_reset_breaker,
        "logs": cmd_logs,
        "init-db": cmd_init_db,
        "init": cmd_init,
    }
    return handlers[args.command](args)


__all__ = [
    "build_parser",
    "cmd_init",
    "cmd_init_db",
    "cmd_logs",
    "cmd_poll_once",
    "cmd_reset_breaker",
    "cmd_run",
    "cmd_status",
    "load_config",
    "main",
]


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
