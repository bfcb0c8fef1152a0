"""CLI module for schema snapshots and migrations.

Provides commands to capture schema snapshots, inspect the migration
history, and apply or roll back migrations against a database profile.

Usage:
    db-migrator init
    db-migrator snapshot --name add_orders
    DB_PROFILE=local db-migrator snapshot --from-db --name adopt_hotfix
    db-migrator status
    db-migrator plan add_orders
    APP_DB_PROFILE=local db-migrator --env-prefix APP_ apply add_orders --confirm
    DB_PROFILE=local db-migrator rollback add_orders --confirm
    DB_PROFILE=local db-migrator up --confirm
    DB_PROFILE=local db-migrator down --steps 2 --confirm
    DB_PROFILE=local db-migrator validate
    db-migrator show migrations/snapshots/0001_initial.json

Commands:
    init      - Create migrations.toml and the history directory
    snapshot  - Persist the code schema (or with --from-db, the live schema)
    status    - Show applied and pending migrations
    plan      - Print the statements a migration would run
    apply     - Apply the next pending migration
    rollback  - Roll back the applied head
    up        - Apply pending migrations in order
    down      - Roll back applied migrations from the head
    validate  - Compare the live database against the applied head
    show      - Print the contents of a history entry file
"""

import argparse
import asyncio
import logging
import sys
from pathlib import Path

from rich.console import Console
from rich.table import Table

from db_migrator.config.loader import DEFAULT_CONFIG_FILE, load_config
from db_migrator.errors import MigrationError
from db_migrator.factory import build_manager
from db_migrator.migrations.history import HistoryEntry, MigrationHistory
from db_migrator.migrations.manager import MigrationManager, MigrationResult
from db_migrator.schema.sequencer import Statement

console = Console()

CONFIG_TEMPLATE = """\
[profiles.local]
url = "ws://localhost:8000/rpc"
namespace = "app"
database = "app"
username = "root"
# db_password = "" (or set DB_PASSWORD)
description = "Local database"

[migrations]
dir = "migrations"
# schema_source = "myapp.schema:registry"
verify_after_apply = true
"""

# Expected failures are reported as a red line and exit code 1
CLI_ERRORS = (MigrationError, FileNotFoundError, ValueError, ImportError)


def _config_path(args: argparse.Namespace) -> Path:
    return Path(args.config) if args.config else Path.cwd() / DEFAULT_CONFIG_FILE


def _manager(args: argparse.Namespace, offline: bool = False) -> MigrationManager:
    return build_manager(
        profile_name=getattr(args, "profile", None),
        env_prefix=getattr(args, "env_prefix", ""),
        config_path=_config_path(args),
        offline=offline,
    )


def _print_plan(statements: list[Statement], title: str) -> None:
    if not statements:
        console.print("[dim]No statements.[/dim]")
        return

    table = Table(title=title, show_header=True, header_style="bold")
    table.add_column("#", justify="right", style="dim")
    table.add_column("Kind")
    table.add_column("Statement")
    for i, statement in enumerate(statements, start=1):
        style = "red" if statement.action == "remove" else "green"
        table.add_row(str(i), f"[{style}]{statement.kind}[/{style}]", statement.sql)
    console.print(table)


def _print_result(result: MigrationResult) -> None:
    if result.success:
        console.print(f"[bold green]v[/bold green] {result.format_report()}")
    else:
        console.print(f"[bold red]x[/bold red] {result.format_report()}")


# ============================================================================
# Async command implementations
# ============================================================================


async def _async_run(args: argparse.Namespace, direction: str) -> int:
    """Async implementation for apply and rollback.

    Without ``--confirm`` only the plan is printed.

    Args:
        args: Parsed arguments with name, force and confirm.
        direction: ``"apply"`` or ``"rollback"``.

    Returns:
        0 on success, 1 on failure.
    """
    reverse = direction == "rollback"

    if not args.confirm:
        manager = _manager(args, offline=True)
        _print_plan(manager.plan(args.name, reverse=reverse), f"{direction} {args.name}")
        console.print()
        console.print(
            f"[dim]To {direction}, add[/dim] [cyan]--confirm[/cyan] [dim]flag.[/dim]"
        )
        return 0

    manager = _manager(args)
    try:
        if reverse:
            result = await manager.rollback(args.name, force=args.force)
        else:
            result = await manager.apply(args.name, force=args.force)
    finally:
        await manager.client.close()

    console.print()
    _print_result(result)
    return 0 if result.success else 1


async def _async_step(args: argparse.Namespace, direction: str) -> int:
    """Async implementation for up and down.

    Without ``--confirm`` the plan of every migration in range is printed.

    Args:
        args: Parsed arguments with steps, force and confirm.
        direction: ``"up"`` or ``"down"``.

    Returns:
        0 when every run succeeded (or there was nothing to do), 1 otherwise.
    """
    if not args.confirm:
        manager = _manager(args, offline=True)
        if direction == "up":
            names = [e.name for e in manager.history.pending()]
            steps = args.steps
        else:
            names = list(reversed(manager.history.applied()))
            steps = args.steps or 1
        if steps is not None:
            names = names[:steps]
        if not names:
            console.print("[dim]Nothing to run.[/dim]")
            return 0
        verb = "apply" if direction == "up" else "rollback"
        for name in names:
            _print_plan(manager.plan(name, reverse=direction == "down"), f"{verb} {name}")
        console.print()
        console.print("[dim]To run, add[/dim] [cyan]--confirm[/cyan] [dim]flag.[/dim]")
        return 0

    manager = _manager(args)
    try:
        if direction == "up":
            results = await manager.up(steps=args.steps, force=args.force)
        else:
            results = await manager.down(steps=args.steps or 1, force=args.force)
    finally:
        await manager.client.close()

    console.print()
    if not results:
        console.print("[dim]Nothing to run.[/dim]")
        return 0
    for result in results:
        _print_result(result)
    return 0 if results[-1].success else 1


async def _async_snapshot_from_db(args: argparse.Namespace) -> int:
    """Async implementation for ``snapshot --from-db``."""
    manager = _manager(args)
    try:
        result = await manager.snapshot_from_db(args.name)
    finally:
        await manager.client.close()

    if not result.written:
        console.print("[dim]Database matches the last snapshot.[/dim]")
        return 0

    console.print(
        f"[bold green]v[/bold green] Recorded database as "
        f"[bold cyan]{result.sequence:04d}_{result.entry_name}[/bold cyan] (applied)"
    )
    console.print(f"  Changed entities: {result.change_count}")
    return 0


async def _async_validate(args: argparse.Namespace) -> int:
    """Async implementation for validate command.

    Returns:
        0 when the live database matches the applied head, 1 otherwise.
    """
    manager = _manager(args)
    try:
        report = await manager.validate()
    finally:
        await manager.client.close()

    console.print()
    if not report.has_issues():
        console.print("[bold green]v[/bold green] No drift detected")
        return 0

    console.print("[bold red]x[/bold red] Schema has drifted")
    console.print(report.format_report())
    return 1


# ============================================================================
# Command wrappers
# ============================================================================


def cmd_init(args: argparse.Namespace) -> int:
    """Create migrations.toml (if missing) and the history directory.

    Returns:
        0 always.
    """
    config_path = _config_path(args)
    if config_path.exists():
        console.print(f"[dim]Config exists:[/dim] {config_path}")
    else:
        config_path.write_text(CONFIG_TEMPLATE)
        console.print(f"[bold green]v[/bold green] Wrote {config_path}")

    config = load_config(config_path)
    history = MigrationHistory(config.migrations.dir)
    if history.init():
        console.print(f"[bold green]v[/bold green] Initialized history in {history.directory}")
    else:
        console.print(f"[dim]History exists:[/dim] {history.directory}")
    return 0


def cmd_snapshot(args: argparse.Namespace) -> int:
    """Persist the code schema as a new history entry if it changed.

    With ``--from-db`` the live database structure is recorded instead
    and marked applied.

    Returns:
        0 on success (including "no changes").
    """
    if args.from_db:
        return asyncio.run(_async_snapshot_from_db(args))

    manager = _manager(args, offline=True)
    result = manager.snapshot(args.name)

    if not result.written:
        console.print("[dim]No schema changes since the last snapshot.[/dim]")
        return 0

    console.print(
        f"[bold green]v[/bold green] Wrote snapshot "
        f"[bold cyan]{result.sequence:04d}_{result.entry_name}[/bold cyan]"
    )
    console.print(f"  Changed entities: {result.change_count}")
    console.print(f"  Statements: {result.statement_count}")
    return 0


def cmd_status(args: argparse.Namespace) -> int:
    """Show applied and pending migrations.

    Reads only local files and the code schema; no database calls.

    Returns:
        0 always (informational command).
    """
    manager = _manager(args, offline=True)
    status = manager.status()
    applied = set(status.applied)

    table = Table(title="Migrations", show_header=True, header_style="bold")
    table.add_column("", width=2)
    table.add_column("#", justify="right", style="dim")
    table.add_column("Name")
    table.add_column("Statements", justify="right")
    table.add_column("Created")

    for entry in manager.history.entries():
        if entry.name == status.applied_head:
            marker = "[bold green]*[/bold green]"
        elif entry.name in applied:
            marker = "[green]v[/green]"
        else:
            marker = " "
        table.add_row(
            marker,
            f"{entry.sequence:04d}",
            entry.name,
            str(entry.statement_count),
            entry.created_at.strftime("%Y-%m-%d %H:%M"),
        )

    console.print(table)
    console.print(f"\nState: [bold]{status.state.value}[/bold]")
    console.print(f"Applied head: [bold cyan]{status.applied_head or '-'}[/bold cyan]")
    if status.pending:
        console.print(f"Pending: [yellow]{', '.join(status.pending)}[/yellow]")
    if status.code_changed:
        console.print(
            "[yellow]Code schema changed since the last snapshot.[/yellow] "
            "[dim]Run[/dim] [cyan]db-migrator snapshot[/cyan]"
        )
    return 0


def cmd_plan(args: argparse.Namespace) -> int:
    """Print the statements a migration (or its rollback) would run."""
    manager = _manager(args, offline=True)
    title = f"{'rollback' if args.reverse else 'apply'} {args.name}"
    _print_plan(manager.plan(args.name, reverse=args.reverse), title)
    return 0


def cmd_apply(args: argparse.Namespace) -> int:
    """Apply the next pending migration.

    Wraps the async implementation with ``asyncio.run()``.
    """
    return asyncio.run(_async_run(args, "apply"))


def cmd_rollback(args: argparse.Namespace) -> int:
    """Roll back the applied head.

    Wraps the async implementation with ``asyncio.run()``.
    """
    return asyncio.run(_async_run(args, "rollback"))


def cmd_up(args: argparse.Namespace) -> int:
    """Apply pending migrations in order.

    Wraps the async implementation with ``asyncio.run()``.
    """
    return asyncio.run(_async_step(args, "up"))


def cmd_down(args: argparse.Namespace) -> int:
    """Roll back applied migrations from the head.

    Wraps the async implementation with ``asyncio.run()``.
    """
    return asyncio.run(_async_step(args, "down"))


def cmd_validate(args: argparse.Namespace) -> int:
    """Compare the live database against the applied head.

    Wraps the async implementation with ``asyncio.run()``.
    """
    return asyncio.run(_async_validate(args))


def cmd_show(args: argparse.Namespace) -> int:
    """Print the contents of a history entry file."""
    path = Path(args.path)
    if not path.exists():
        raise FileNotFoundError(f"History entry not found: {path}")

    entry = HistoryEntry.model_validate_json(path.read_text(encoding="utf-8"))
    snapshot = entry.snapshot

    console.print(f"[bold cyan]{entry.filename}[/bold cyan]")
    console.print(f"  Created: {entry.created_at.isoformat()}")
    console.print(f"  Checksum: {entry.checksum}")
    if snapshot.checksum() != entry.checksum:
        console.print("  [bold red]Checksum does not match contents[/bold red]")

    table = Table(show_header=True, header_style="bold")
    table.add_column("Kind", style="dim")
    table.add_column("Name")
    table.add_column("Fields", justify="right")
    table.add_column("Indexes", justify="right")
    table.add_column("Events", justify="right")
    for kind, entities in (("table", snapshot.tables), ("edge", snapshot.edges)):
        for name, entity in entities.items():
            table.add_row(
                kind,
                name,
                str(len(entity.columns)),
                str(len(entity.indexes)),
                str(len(entity.events)),
            )
    console.print(table)
    return 0


# ============================================================================
# Main entry point
# ============================================================================


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="db-migrator",
        description="Schema snapshots and migrations",
    )

    # Global options
    parser.add_argument(
        "--config",
        default=None,
        help=f"Path to config file (default: ./{DEFAULT_CONFIG_FILE})",
    )
    parser.add_argument(
        "--env-prefix",
        default="",
        help=(
            "Prefix for environment variable lookup "
            "(e.g., --env-prefix APP_ reads APP_DB_PROFILE)"
        ),
    )
    parser.add_argument(
        "--profile",
        default=None,
        help="Database profile (default: from {prefix}DB_PROFILE)",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")

    subparsers = parser.add_subparsers(dest="command", required=True)

    p_init = subparsers.add_parser("init", help="Create config and history directory")
    p_init.set_defaults(func=cmd_init)

    p_snapshot = subparsers.add_parser("snapshot", help="Persist the code schema if it changed")
    p_snapshot.add_argument("--name", default=None, help="Name of the new entry")
    p_snapshot.add_argument(
        "--from-db",
        action="store_true",
        help="Record the live database structure as an applied entry",
    )
    p_snapshot.set_defaults(func=cmd_snapshot)

    p_status = subparsers.add_parser("status", help="Show applied and pending migrations")
    p_status.set_defaults(func=cmd_status)

    p_plan = subparsers.add_parser("plan", help="Print the statements of a migration")
    p_plan.add_argument("name", help="Migration name")
    p_plan.add_argument("--reverse", action="store_true", help="Show the rollback statements")
    p_plan.set_defaults(func=cmd_plan)

    for command, help_text, func in (
        ("apply", "Apply the next pending migration", cmd_apply),
        ("rollback", "Roll back the applied head", cmd_rollback),
    ):
        p_run = subparsers.add_parser(command, help=help_text)
        p_run.add_argument("name", help="Migration name")
        p_run.add_argument(
            "--force",
            action="store_true",
            help="Proceed even if the live database has drifted",
        )
        p_run.add_argument(
            "--confirm",
            action="store_true",
            help=f"Actually {command} (otherwise only print the plan)",
        )
        p_run.set_defaults(func=func)

    for command, help_text, func in (
        ("up", "Apply pending migrations in order", cmd_up),
        ("down", "Roll back applied migrations from the head", cmd_down),
    ):
        p_step = subparsers.add_parser(command, help=help_text)
        p_step.add_argument(
            "--steps",
            type=int,
            default=None,
            help="Number of migrations (default: all for up, 1 for down)",
        )
        p_step.add_argument(
            "--force",
            action="store_true",
            help="Proceed even if the live database has drifted",
        )
        p_step.add_argument(
            "--confirm",
            action="store_true",
            help="Actually run (otherwise only print the plans)",
        )
        p_step.set_defaults(func=func)

    p_validate = subparsers.add_parser("validate", help="Check the live database for drift")
    p_validate.set_defaults(func=cmd_validate)

    p_show = subparsers.add_parser("show", help="Print a history entry file")
    p_show.add_argument("path", help="Path to a snapshots/NNNN_<name>.json file")
    p_show.set_defaults(func=cmd_show)

    return parser


def main(argv: list[str] | None = None) -> int:
    """Main CLI entry point.

    Parses command line arguments and dispatches to appropriate handler.

    Returns:
        Exit code (0 for success, non-zero for errors).
    """
    args = _build_parser().parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )

    try:
        return args.func(args)
    except CLI_ERRORS as e:
        console.print(f"[bold red]Error:[/bold red] {e}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
