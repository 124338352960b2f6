"""``db-sync``: profile selection, schema sync and backup listing.

Usage:
    DB_PROFILE=local db-sync connect
    db-sync status
    db-sync profiles
    db-sync sync --models myapp.schemas:registry
    db-sync sync --models myapp.schemas:registry --dangerous --no
    db-sync backups --table users

Commands:
    connect   - Check a profile and remember it
    status    - Show the remembered profile
    profiles  - List profiles in db.toml
    sync      - Apply declarations to the database
    backups   - List orphan-table backups
"""

import argparse
import asyncio
import importlib
import logging
import os
import sys
from datetime import datetime, timezone
from pathlib import Path

from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from db_sync.backup.orphans import RestoreOutcome
from db_sync.backup.store import BackupState, BackupStore
from db_sync.config.loader import load_db_config
from db_sync.errors import DbSyncError
from db_sync.factory import (
    ProfileNotFoundError,
    connect,
    get_active_profile_name,
    get_adapter,
    read_profile_lock,
)
from db_sync.prompts import ConsolePrompt, DecisionProvider, FixedAnswer
from db_sync.schema.registry import SchemaRegistry
from db_sync.schema.sync import SyncResult, sync_schemas

console = Console()


# ============================================================================
# CLI-internal helpers
# ============================================================================


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, show_path=False)],
    )


def _config_path(args: argparse.Namespace) -> Path | None:
    config = getattr(args, "config", None)
    return Path(config) if config else None


def _load_registry(target: str) -> SchemaRegistry:
    """Import a ``module:attribute`` reference to a ``SchemaRegistry``.

    The attribute defaults to ``registry`` when omitted.  The working
    directory is put on ``sys.path`` first, so project modules resolve
    under the ``db-sync`` console script as they do under ``python -m``.

    Raises:
        ImportError: If the module cannot be imported.
        AttributeError: If the module has no such attribute.
        TypeError: If the attribute is not a ``SchemaRegistry``.

    Example:
        >>> _load_registry("myapp.schemas:registry")
        <db_sync.schema.registry.SchemaRegistry object at ...>
    """
    module_name, _, attr = target.partition(":")
    cwd = os.getcwd()
    if cwd not in sys.path:
        sys.path.insert(0, cwd)
    module = importlib.import_module(module_name)
    registry = getattr(module, attr or "registry")
    if not isinstance(registry, SchemaRegistry):
        raise TypeError(f"{target} is not a SchemaRegistry (got {type(registry).__name__})")
    return registry


def _decision_provider(args: argparse.Namespace) -> DecisionProvider:
    if args.yes:
        return FixedAnswer(True)
    if args.no:
        return FixedAnswer(False)
    return ConsolePrompt(console)


def _print_sync_result(result: SyncResult) -> None:
    table = Table(title="Schema Sync", show_header=True, header_style="bold")
    table.add_column("Table")
    table.add_column("Created")
    table.add_column("Renamed")
    table.add_column("Added")
    table.add_column("Modified")
    table.add_column("Dropped")
    table.add_column("Kept", style="yellow")
    table.add_column("Backup", style="dim")

    for report in result.tables:
        table.add_row(
            report.table,
            "[green]yes[/green]" if report.created else "",
            ", ".join(report.renamed),
            ", ".join(report.added),
            ", ".join(report.modified),
            ", ".join(report.dropped),
            ", ".join(report.suppressed_drops),
            "" if report.restore is RestoreOutcome.NO_BACKUP else report.restore.value,
        )

    console.print(table)

    if result.orphans_dropped:
        console.print(
            f"\n[bold]Orphan tables dropped:[/bold] "
            f"[red]{', '.join(result.orphans_dropped)}[/red]"
        )
        for path in result.backups_written:
            console.print(f"  backup: [cyan]{path}[/cyan]")

    if any(report.suppressed_drops for report in result.tables):
        console.print(
            "\n[dim]Columns under[/dim] [yellow]Kept[/yellow] [dim]have no declaration. "
            "Run with[/dim] [cyan]--dangerous[/cyan] [dim]to drop them.[/dim]"
        )


# ============================================================================
# Database commands
# ============================================================================


async def _connect(args: argparse.Namespace) -> int:
    before = read_profile_lock()
    console.print("Checking connection...", style="dim")

    result = await connect(env_prefix=args.env_prefix, config_path=_config_path(args))
    if not result.success:
        console.print(f"\n[bold red]x[/bold red] {result.error}")
        return 1

    console.print(f"\n[bold green]v[/bold green] Using profile [bold cyan]{result.profile_name}[/bold cyan]")
    if before not in (None, result.profile_name):
        console.print(f"[dim](previously {before})[/dim]")
    return 0


async def _sync(args: argparse.Namespace) -> int:
    config_path = _config_path(args)

    try:
        registry = _load_registry(args.models)
    except (ImportError, AttributeError, TypeError) as e:
        console.print(f"[red]Cannot load declarations: {e}[/red]")
        return 1

    try:
        profile = get_active_profile_name(env_prefix=args.env_prefix)
        config = load_db_config(config_path)
        adapter = await get_adapter(profile_name=profile, config_path=config_path)
    except (ProfileNotFoundError, FileNotFoundError) as e:
        console.print(f"[red]{e}[/red]")
        return 1

    dangerous = args.dangerous or config.dangerous_sync
    mode = " [bold red](dangerous)[/bold red]" if dangerous else ""
    console.print(f"Syncing [bold]{len(registry)}[/bold] tables into [bold cyan]{profile}[/bold cyan]{mode}")

    try:
        result = await sync_schemas(
            adapter,
            registry,
            dangerous_sync=dangerous,
            store=BackupStore(args.backup_dir or config.backup_dir),
            prompt=_decision_provider(args),
        )
    except DbSyncError as e:
        console.print(f"\n[bold red]x[/bold red] {e}")
        return 1
    finally:
        await adapter.close()

    console.print()
    _print_sync_result(result)
    console.print(f"\n[bold green]v[/bold green] Done, {result.change_count} column changes")
    return 0


def cmd_connect(args: argparse.Namespace) -> int:
    """Check the selected profile and remember it in ``.db-profile``."""
    return asyncio.run(_connect(args))


def cmd_sync(args: argparse.Namespace) -> int:
    """Bring the database in line with the declarations in ``--models``."""
    return asyncio.run(_sync(args))


# ============================================================================
# Local commands (no database access)
# ============================================================================


def cmd_status(args: argparse.Namespace) -> int:
    """Print the remembered profile and the ``[sync]`` settings."""
    current = read_profile_lock()
    if not current:
        console.print("[yellow]Not connected.[/yellow] [dim]Try[/dim] [cyan]DB_PROFILE=<name> db-sync connect[/cyan]")
        return 0

    table = Table(title="db-sync status", show_header=False)
    table.add_column("Setting", style="dim")
    table.add_column("Value")
    table.add_row("Profile", f"[bold cyan]{current}[/bold cyan]")
    try:
        config = load_db_config(_config_path(args))
    except FileNotFoundError:
        table.add_row("Config", "[yellow]missing db.toml[/yellow]")
    else:
        profile = config.profiles.get(current)
        if profile is None:
            table.add_row("Config", "[yellow]profile not in db.toml[/yellow]")
        else:
            table.add_row("Server", profile.provider)
            table.add_row("About", profile.description)
        table.add_row("Backup dir", config.backup_dir)
        table.add_row("Drop columns", "yes" if config.dangerous_sync else "no")
    console.print(table)
    return 0


def cmd_profiles(args: argparse.Namespace) -> int:
    """Table of the profiles in ``db.toml``; 1 when the file is missing."""
    try:
        config = load_db_config(_config_path(args))
    except FileNotFoundError as e:
        console.print(f"[red]{e}[/red]")
        return 1

    current = read_profile_lock()
    table = Table(title="Profiles in db.toml", header_style="bold")
    for column in ("Name", "Server", "About"):
        table.add_column(column)
    for name, profile in sorted(config.profiles.items()):
        label = f"[bold cyan]{name} *[/bold cyan]" if name == current else name
        table.add_row(label, profile.provider, profile.description)
    console.print(table)
    return 0


def cmd_backups(args: argparse.Namespace) -> int:
    """List orphan-table backup artifacts, newest first.

    Returns:
        0 always (informational command).
    """
    backup_dir = args.backup_dir
    if backup_dir is None:
        try:
            backup_dir = load_db_config(_config_path(args)).backup_dir
        except FileNotFoundError:
            backup_dir = "."

    records = BackupStore(backup_dir).list_records(args.table)
    if not records:
        console.print(f"[dim]No backups in {backup_dir}[/dim]")
        return 0

    table = Table(title="Backups", show_header=True, header_style="bold")
    table.add_column("Table")
    table.add_column("Taken (UTC)")
    table.add_column("State")
    table.add_column("File", style="dim")

    for record in records:
        taken = datetime.fromtimestamp(record.timestamp / 1000, tz=timezone.utc)
        state = (
            "[green]pending[/green]"
            if record.state is BackupState.PENDING
            else "[dim]ignored[/dim]"
        )
        table.add_row(record.table, taken.strftime("%Y-%m-%d %H:%M:%S"), state, record.path.name)

    console.print(table)
    return 0


# ============================================================================
# Main entry point
# ============================================================================


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="db-sync", description="Declarative MySQL schema synchronization")
    parser.add_argument("--config", help="db.toml to read instead of ./db.toml")
    parser.add_argument("--env-prefix", default="", help="Read <PREFIX>DB_PROFILE instead of DB_PROFILE")
    parser.add_argument("-v", "--verbose", action="store_true", help="Log every SQL statement")
    commands = parser.add_subparsers(dest="command", required=True)

    commands.add_parser("connect", help="Check a profile and remember it").set_defaults(func=cmd_connect)
    commands.add_parser("status", help="Show the remembered profile").set_defaults(func=cmd_status)
    commands.add_parser("profiles", help="List profiles in db.toml").set_defaults(func=cmd_profiles)

    sync = commands.add_parser("sync", help="Apply declarations to the database")
    sync.add_argument("--models", required=True, help="module[:attribute] holding a SchemaRegistry")
    sync.add_argument("--dangerous", action="store_true", help="Also drop undeclared columns")
    sync.add_argument("--backup-dir", help="Where orphan-table backups go")
    answer = sync.add_mutually_exclusive_group()
    answer.add_argument("--yes", action="store_true", help="Restore and delete backups without asking")
    answer.add_argument("--no", action="store_true", help="Decline every backup question")
    sync.set_defaults(func=cmd_sync)

    backups = commands.add_parser("backups", help="List orphan-table backups")
    backups.add_argument("--table", help="Only this table")
    backups.add_argument("--backup-dir", help="Directory to list")
    backups.set_defaults(func=cmd_backups)
    return parser


def main() -> int:
    """``db-sync`` entry point; returns the process exit code."""
    args = build_parser().parse_args()
    _configure_logging(args.verbose)
    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
