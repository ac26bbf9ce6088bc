"""CLI command handlers: run, poll-once, status, reset-breaker, logs, init-db, init."""

from __future__ import annotations

import argparse
from pathlib import Path

import yaml
from rich.console import Console
from rich.table import Table

from ..core import EngineConfig, get_logger, setup_logging
from ..engine import TIMER_LOOP, WORKFLOW_LOOP, AreaEngine
from ..storage import ExecutionLogRepository, init_database

logger = get_logger("cli")

OUTCOME_STYLES = {"SUCCESS": "green", "FAILURE": "red", "SKIPPED": "yellow"}


def load_config(args: argparse.Namespace) -> EngineConfig:
    """Load the configuration named by ``--config`` and set up logging.

    Raises:
        FileNotFoundError: If ``--config`` names a missing file
    """
    if getattr(args, "config", None):
        config = EngineConfig.from_yaml(Path(args.config))
    else:
        config = EngineConfig()
    if getattr(args, "debug", False):
        config.logging.level = "DEBUG"
    setup_logging(config.logging)
    return config


def _styled(status: str) -> str:
    style = OUTCOME_STYLES.get(status, "white")
    return f"[{style}]{status}[/]"


def _format_time(value) -> str:
    return value.strftime("%Y-%m-%d %H:%M:%S") if value else "-"


def cmd_run(args: argparse.Namespace) -> int:
    """Handle run command.

    Args:
        args: Parsed arguments

    Returns:
        Exit code
    """
    console = Console()
    try:
        engine = AreaEngine(load_config(args))
        console.print("[bold]AREA engine running.[/] Press Ctrl+C to stop.")
        engine.run_forever()
        return 0
    except KeyboardInterrupt:
        logger.info("Engine interrupted by user")
        return 0
    except FileNotFoundError as e:
        console.print(f"[red]Error:[/] {e}")
        console.print("Run 'area-engine init' to create a default configuration.")
        return 1
    except Exception as e:
        logger.error("Error running engine: %s", e, exc_info=True)
        return 1


def cmd_poll_once(args: argparse.Namespace) -> int:
    """Handle poll-once command."""
    console = Console()
    loops = [WORKFLOW_LOOP, TIMER_LOOP] if args.loop == "all" else [args.loop]
    try:
        engine = AreaEngine(load_config(args))
    except Exception as e:
        console.print(f"[red]Error loading engine:[/] {e}")
        return 1

    try:
        reports = engine.poll_once(loops)
    except Exception as e:
        console.print(f"[red]Polling failed:[/] {e}")
        return 1
    finally:
        engine.db.dispose()

    for report in reports:
        table = Table(title=f"{report.loop.capitalize()} cycle: {report.summary()}")
        table.add_column("Workflow", style="cyan")
        table.add_column("Outcome", style="magenta")
        table.add_column("Status")
        table.add_column("Actions")
        table.add_column("Message")
        for result in report.results:
            table.add_row(
                str(result.workflow_id),
                result.outcome.value,
                _styled(result.status.value),
                str(result.actions_executed),
                result.message or "",
            )
        console.print(table)
    return 0


def cmd_status(args: argparse.Namespace) -> int:
    """Handle status command."""
    console = Console()
    try:
        engine = AreaEngine(load_config(args))
        rows = engine.workflow_status()
        engine.db.dispose()
    except Exception as e:
        console.print(f"[red]Error reading workflow state:[/] {e}")
        return 1

    if not rows:
        console.print("[yellow]No workflows found.[/]")
        return 0

    table = Table(title="Workflows")
    table.add_column("ID", style="cyan")
    table.add_column("Name", style="magenta")
    table.add_column("Trigger")
    table.add_column("Active")
    table.add_column("Cursor")
    table.add_column("Failures")
    table.add_column("Breaker")
    table.add_column("Last fired")
    for row in rows:
        breaker = "[red]open[/]" if row["breaker"] == "open" else "[green]closed[/]"
        table.add_row(
            str(row["id"]),
            row["name"],
            row["trigger"] or "[red]invalid[/]",
            "[green]Yes[/]" if row["active"] else "[dim]No[/]",
            row["cursor"] or "-",
            str(row["failures"]),
            breaker,
            _format_time(row["last_triggered_at"]),
        )
    console.print(table)
    return 0


def cmd_reset_breaker(args: argparse.Namespace) -> int:
    """Handle reset-breaker command."""
    console = Console()
    try:
        engine = AreaEngine(load_config(args))
        found = engine.reset_breaker(args.workflow_id)
        engine.db.dispose()
    except Exception as e:
        console.print(f"[red]Error resetting breaker:[/] {e}")
        return 1

    if not found:
        console.print(f"[red]Workflow not found:[/] {args.workflow_id}")
        return 1
    console.print(f"[green]Failure count reset for workflow {args.workflow_id}[/]")
    return 0


def cmd_logs(args: argparse.Namespace) -> int:
    """Handle logs command."""
    console = Console()
    try:
        config = load_config(args)
        db = init_database(config.database.url, echo=config.database.echo)
        entries = ExecutionLogRepository(db).recent(args.workflow, args.limit)
        db.dispose()
    except Exception as e:
        console.print(f"[red]Error reading execution log:[/] {e}")
        return 1

    if not entries:
        console.print("[yellow]No execution log entries.[/]")
        return 0

    table = Table(title="Execution log")
    table.add_column("Time", style="cyan")
    table.add_column("Workflow")
    table.add_column("Status")
    table.add_column("Trigger")
    table.add_column("Actions")
    table.add_column("ms")
    table.add_column("Details")
    for entry in entries:
        trigger = ".".join(part for part in (entry.trigger_service, entry.trigger_action) if part)
        table.add_row(
            _format_time(entry.executed_at),
            str(entry.workflow_id),
            _styled(entry.status),
            trigger or "-",
            str(entry.actions_executed),
            str(entry.execution_time_ms),
            entry.error_message or entry.execution_details or "",
        )
    console.print(table)
    return 0


def cmd_init_db(args: argparse.Namespace) -> int:
    """Handle init-db command."""
    console = Console()
    try:
        config = load_config(args)
        db = init_database(config.database.url, echo=config.database.echo)
        db.dispose()
    except Exception as e:
        console.print(f"[red]Error creating tables:[/] {e}")
        return 1
    console.print(f"[green]Database initialized:[/] {config.database.url}")
    return 0


def cmd_init(args: argparse.Namespace) -> int:
    """Handle init command: write the default configuration as YAML."""
    console = Console()
    output_path = Path(args.output)

    if output_path.exists() and not args.force:
        console.print(f"[yellow]{output_path} already exists.[/] Use --force to overwrite.")
        return 1

    default_config = EngineConfig().model_dump(mode="json")
    output_path.parent.mkdir(parents=True, exist_ok=True)
    with open(output_path, "w", encoding="utf-8") as f:
        yaml.dump(default_config, f, default_flow_style=False, allow_unicode=True)

    console.print(f"[green]Configuration file created:[/] {output_path}")
    console.print("\nNext steps:")
    console.print(f"1. Edit {output_path} and set database.url")
    console.print(f"2. Create the tables: area-engine init-db -c {output_path}")
    console.print(f"3. Start polling: area-engine run -c {output_path}")
    return 0
