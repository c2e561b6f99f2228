"""CLI module for collection schema migrations.

Provides commands for store profile management, applying and reverting
migrations, and exporting, importing and validating snapshot files.

Usage:
    MIGRATE_PROFILE=local collection-migrate connect
    collection-migrate status
    collection-migrate profiles
    collection-migrate up
    collection-migrate down --count 1
    collection-migrate history
    collection-migrate export --output backups/collections.json
    collection-migrate import backups/collections.json --delete-missing --dry-run
    collection-migrate import backups/collections.json --delete-missing --confirm
    collection-migrate validate backups/collections.json
    collection-migrate snapshot pb_schema.json --name add_events_file

Commands:
    connect   - Connect to a store and remember the profile
    status    - Show current connection status
    profiles  - List available profiles
    up        - Apply every pending migration
    down      - Revert the last applied migration(s)
    history   - Show applied and pending migrations
    export    - Write the live schema to a JSON file
    import    - Import a JSON snapshot into the live schema
    validate  - Validate a JSON snapshot file
    snapshot  - Generate a snapshot migration from a JSON file
"""

import argparse
import asyncio
import logging
import sys
from pathlib import Path

from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from collection_migrate.backup.backup_restore import (
    backup_collections,
    load_snapshot_file,
    restore_collections,
    validate_backup,
)
from collection_migrate.config.loader import load_config
from collection_migrate.config.models import MigrateConfig
from collection_migrate.errors import MigrateError, ValidationError
from collection_migrate.factory import (
    ProfileNotFoundError,
    connect_and_check,
    get_active_profile_name,
    get_store,
    read_profile_lock,
)
from collection_migrate.migrations.loader import load_migrations
from collection_migrate.migrations.runner import MigrationRunner
from collection_migrate.migrations.templates import write_snapshot_migration
from collection_migrate.schema.importer import export_collections
from collection_migrate.schema.models import ImportResult

console = Console()


# ============================================================================
# Helpers
# ============================================================================


def _setup_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
        force=True,
    )


def _load_config(args: argparse.Namespace) -> MigrateConfig:
    return load_config(getattr(args, "config", None))


def _migrations_dir(args: argparse.Namespace, config: MigrateConfig) -> Path:
    override = getattr(args, "migrations_dir", None)
    return Path(override or config.migrations.dir)


def _print_error(e: Exception) -> None:
    if isinstance(e, ValidationError):
        console.print(f"[bold red]x[/bold red] {e}")
        for error in e.errors:
            console.print(f"    - {error.format()}")
    else:
        console.print(f"[bold red]x[/bold red] {e}")


def _print_import_result(result: ImportResult, title: str) -> None:
    table = Table(title=title, show_header=True, header_style="bold")
    table.add_column("Change", style="dim")
    table.add_column("Collections")

    table.add_row("[green]Create[/green]", ", ".join(result.created) or "-")
    table.add_row("[yellow]Update[/yellow]", ", ".join(result.updated) or "-")
    table.add_row("[red]Delete[/red]", ", ".join(result.deleted) or "-")
    table.add_row("Unchanged", ", ".join(result.unchanged) or "-")

    console.print(table)


# ============================================================================
# Async command implementations
# ============================================================================


async def _async_connect(args: argparse.Namespace) -> int:
    """Async implementation for connect command.

    Returns:
        0 on success, 1 on failure.
    """
    previous_profile = read_profile_lock()

    console.print("Connecting to store...", style="dim")

    result = await connect_and_check(
        profile_name=args.profile,
        env_prefix=args.env_prefix,
        config_path=args.config,
    )

    if not result.success:
        console.print()
        console.print(f"[bold red]x[/bold red] {result.error}")
        return 1

    console.print()
    console.print(
        f"[bold green]v[/bold green] Connected to profile: "
        f"[bold cyan]{result.profile_name}[/bold cyan]"
    )
    console.print(f"  Collections: {result.collection_count}")
    console.print(f"  Applied migrations: {result.applied_count}")

    if previous_profile and previous_profile != result.profile_name:
        console.print(
            f"\n[dim]Switched from[/dim] [bold]{previous_profile}[/bold] "
            f"[dim]to[/dim] [bold cyan]{result.profile_name}[/bold cyan]"
        )
    return 0


async def _async_up(args: argparse.Namespace) -> int:
    """Async implementation for up command."""
    config = _load_config(args)
    migrations = load_migrations(_migrations_dir(args, config))
    store = get_store(args.profile, args.env_prefix, config)
    try:
        runner = MigrationRunner(store, migrations)
        count = await runner.apply_pending()
    finally:
        await store.close()

    if count:
        console.print(f"[bold green]v[/bold green] Applied {count} migration(s)")
    else:
        console.print("[green]Up to date[/green] - no pending migrations")
    return 0


async def _async_down(args: argparse.Namespace) -> int:
    """Async implementation for down command."""
    config = _load_config(args)
    migrations = load_migrations(_migrations_dir(args, config))
    store = get_store(args.profile, args.env_prefix, config)
    try:
        runner = MigrationRunner(store, migrations)
        count = await runner.revert_last(args.count)
    finally:
        await store.close()

    if count:
        console.print(f"[bold green]v[/bold green] Reverted {count} migration(s)")
    else:
        console.print("[yellow]Nothing to revert[/yellow]")
    return 0


async def _async_history(args: argparse.Namespace) -> int:
    """Async implementation for history command."""
    config = _load_config(args)
    migrations = load_migrations(_migrations_dir(args, config))
    store = get_store(args.profile, args.env_prefix, config)
    try:
        statuses = await MigrationRunner(store, migrations).status()
    finally:
        await store.close()

    if not statuses:
        console.print("[yellow]No migrations found.[/yellow]")
        return 0

    table = Table(title="Migrations", show_header=True, header_style="bold")
    table.add_column("Sequence", justify="right", style="dim")
    table.add_column("Name")
    table.add_column("Status")
    table.add_column("Applied at", style="dim")

    for s in statuses:
        if not s.known:
            status = "[red]applied (file missing)[/red]"
        elif s.applied:
            status = "[green]applied[/green]"
        else:
            status = "[yellow]pending[/yellow]"
        table.add_row(str(s.sequence), s.name, status, s.applied_at or "")

    console.print(table)
    return 0


async def _async_export(args: argparse.Namespace) -> int:
    """Async implementation for export command."""
    config = _load_config(args)
    profile = args.profile or get_active_profile_name(args.env_prefix)
    store = get_store(profile, args.env_prefix, config)
    try:
        path = await backup_collections(
            store, output_path=args.output, metadata={"profile": profile}
        )
    finally:
        await store.close()

    console.print(f"[bold green]v[/bold green] Exported schema to [cyan]{path}[/cyan]")
    return 0


async def _async_import(args: argparse.Namespace) -> int:
    """Async implementation for import command.

    Always previews the changes first.  Applies them only with
    ``--confirm``.
    """
    config = _load_config(args)
    store = get_store(args.profile, args.env_prefix, config)
    try:
        preview = await restore_collections(
            store, args.file, delete_missing=args.delete_missing, dry_run=True
        )
        console.print()
        _print_import_result(preview, "Import Plan")

        if args.dry_run:
            console.print()
            console.print("[bold yellow]DRY RUN[/bold yellow] - No changes made.")
            return 0

        if not args.confirm:
            console.print()
            console.print(
                "[dim]To apply the import, add[/dim] [cyan]--confirm[/cyan] "
                "[dim]flag.[/dim]"
            )
            return 0

        result = await restore_collections(store, args.file, delete_missing=args.delete_missing)
    finally:
        await store.close()

    console.print(f"[bold green]v[/bold green] Import complete: {result.format_report()}")
    return 0


async def _async_snapshot(args: argparse.Namespace) -> int:
    """Async implementation for snapshot command.

    The generated migration's ``down`` restores the schema that is live
    when the file is generated.
    """
    config = _load_config(args)
    target = load_snapshot_file(args.file)

    store = get_store(args.profile, args.env_prefix, config)
    try:
        async with store.unit_of_work() as uow:
            previous = await export_collections(uow)
    finally:
        await store.close()

    path = write_snapshot_migration(
        _migrations_dir(args, config),
        target,
        previous=previous,
        sequence=args.sequence,
        name=args.name,
    )
    console.print(f"[bold green]v[/bold green] Created migration [cyan]{path}[/cyan]")
    return 0


def _run(coro_fn, args: argparse.Namespace) -> int:
    """Run an async command and turn library errors into exit code 1."""
    try:
        return asyncio.run(coro_fn(args))
    except (MigrateError, ProfileNotFoundError, FileNotFoundError, FileExistsError, ValueError) as e:
        _print_error(e)
        return 1


# ============================================================================
# Sync command wrappers (cmd_status, cmd_profiles, cmd_validate read local files only)
# ============================================================================


def cmd_connect(args: argparse.Namespace) -> int:
    """Connect to a store and remember the profile."""
    return asyncio.run(_async_connect(args))


def cmd_status(args: argparse.Namespace) -> int:
    """Show current connection status.

    Reads only local files (lock file and TOML config) -- no store calls.

    Returns:
        0 always (informational command).
    """
    profile = read_profile_lock()

    if profile:
        table = Table(title="Connection Status", show_header=False)
        table.add_column("Key", style="dim")
        table.add_column("Value")

        table.add_row("Current profile", f"[bold cyan]{profile}[/bold cyan]")
        table.add_row("Profile source", ".migrate-profile")

        try:
            config = _load_config(args)
            if profile in config.profiles:
                p = config.profiles[profile]
                table.add_row("Provider", p.provider)
                if p.description:
                    table.add_row("Description", p.description)
            table.add_row("Migrations", config.migrations.dir)
        except (FileNotFoundError, ValueError):
            table.add_row("Warning", "[yellow]migrate.toml not found or invalid[/yellow]")

        console.print(table)
    else:
        console.print("[yellow]No connected profile.[/yellow]")
        console.print(
            "[dim]Run:[/dim] [cyan]MIGRATE_PROFILE=<name> collection-migrate connect[/cyan]"
        )

    return 0


def cmd_profiles(args: argparse.Namespace) -> int:
    """List available profiles from migrate.toml.

    Returns:
        0 on success, 1 if migrate.toml not found.
    """
    try:
        config = _load_config(args)
    except (FileNotFoundError, ValueError) as e:
        console.print(f"[red]Error: {e}[/red]")
        return 1

    current = read_profile_lock()

    table = Table(title="Store Profiles", show_header=True, header_style="bold")
    table.add_column("", width=2)
    table.add_column("Profile")
    table.add_column("Provider")
    table.add_column("Description")

    for name, profile in config.profiles.items():
        marker = "[bold green]*[/bold green]" if name == current else " "
        name_style = "bold cyan" if name == current else ""
        table.add_row(
            marker,
            f"[{name_style}]{name}[/{name_style}]" if name_style else name,
            profile.provider,
            profile.description or "",
        )

    console.print(table)

    if current:
        console.print("\n[bold green]*[/bold green] = current profile")

    return 0


def cmd_up(args: argparse.Namespace) -> int:
    """Apply every pending migration."""
    return _run(_async_up, args)


def cmd_down(args: argparse.Namespace) -> int:
    """Revert the last applied migration(s)."""
    return _run(_async_down, args)


def cmd_history(args: argparse.Namespace) -> int:
    """Show applied and pending migrations."""
    return _run(_async_history, args)


def cmd_export(args: argparse.Namespace) -> int:
    """Write the live schema to a JSON file."""
    return _run(_async_export, args)


def cmd_import(args: argparse.Namespace) -> int:
    """Import a JSON snapshot into the live schema."""
    return _run(_async_import, args)


def cmd_validate(args: argparse.Namespace) -> int:
    """Validate a JSON snapshot file.

    Returns:
        0 on a valid file, 1 otherwise.
    """
    report = validate_backup(args.file)
    if report.valid:
        console.print(f"[bold green]v[/bold green] {report.format_report()}")
        for warning in report.warnings:
            console.print(f"  [yellow]{warning}[/yellow]")
        return 0

    console.print(f"[bold red]x[/bold red] {report.format_report()}")
    return 1


def cmd_snapshot(args: argparse.Namespace) -> int:
    """Generate a snapshot migration from a JSON file."""
    return _run(_async_snapshot, args)


# ============================================================================
# Main entry point
# ============================================================================


def build_parser() -> argparse.ArgumentParser:
    """Build the argument parser with every subcommand."""
    parser = argparse.ArgumentParser(
        prog="collection-migrate",
        description="Versioned collection schema migrations",
    )

    # Global options
    parser.add_argument(
        "--env-prefix",
        default="",
        help=(
            "Prefix for environment variable lookup "
            "(e.g., --env-prefix APP_ reads APP_MIGRATE_PROFILE)"
        ),
    )
    parser.add_argument(
        "--config",
        default=None,
        help="Path to migrate.toml (default: ./migrate.toml)",
    )
    parser.add_argument(
        "--profile",
        "-p",
        default=None,
        help="Profile to use (default: MIGRATE_PROFILE or the connected profile)",
    )
    parser.add_argument(
        "--migrations-dir",
        default=None,
        help="Migrations directory (default: [migrations] dir in migrate.toml)",
    )
    parser.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        help="Show debug logging",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    p_connect = subparsers.add_parser("connect", help="Connect to a store and remember the profile")
    p_connect.set_defaults(func=cmd_connect)

    p_status = subparsers.add_parser("status", help="Show current connection status")
    p_status.set_defaults(func=cmd_status)

    p_profiles = subparsers.add_parser("profiles", help="List available profiles")
    p_profiles.set_defaults(func=cmd_profiles)

    p_up = subparsers.add_parser("up", help="Apply every pending migration")
    p_up.set_defaults(func=cmd_up)

    p_down = subparsers.add_parser("down", help="Revert the last applied migration(s)")
    p_down.add_argument(
        "--count",
        "-n",
        type=int,
        default=1,
        help="Number of migrations to revert (default: 1)",
    )
    p_down.set_defaults(func=cmd_down)

    p_history = subparsers.add_parser("history", help="Show applied and pending migrations")
    p_history.set_defaults(func=cmd_history)

    p_export = subparsers.add_parser("export", help="Write the live schema to a JSON file")
    p_export.add_argument(
        "--output",
        "-o",
        default=None,
        help="Output path (default: ./backups/collections-<timestamp>.json)",
    )
    p_export.set_defaults(func=cmd_export)

    p_import = subparsers.add_parser("import", help="Import a JSON snapshot into the live schema")
    p_import.add_argument("file", help="Snapshot or backup JSON file")
    p_import.add_argument(
        "--delete-missing",
        action="store_true",
        help="Delete collections and fields that are not in the file",
    )
    mode = p_import.add_mutually_exclusive_group()
    mode.add_argument(
        "--dry-run",
        action="store_true",
        help="Show what would change without making changes",
    )
    mode.add_argument(
        "--confirm",
        action="store_true",
        help="Actually perform the import",
    )
    p_import.set_defaults(func=cmd_import)

    p_validate = subparsers.add_parser("validate", help="Validate a JSON snapshot file")
    p_validate.add_argument("file", help="Snapshot or backup JSON file")
    p_validate.set_defaults(func=cmd_validate)

    p_snapshot = subparsers.add_parser(
        "snapshot",
        help="Generate a snapshot migration from a JSON file",
    )
    p_snapshot.add_argument("file", help="Snapshot or backup JSON file")
    p_snapshot.add_argument(
        "--sequence",
        type=int,
        default=None,
        help="Migration sequence (default: current Unix time)",
    )
    p_snapshot.add_argument(
        "--name",
        default="collections_snapshot",
        help="File name suffix (default: collections_snapshot)",
    )
    p_snapshot.set_defaults(func=cmd_snapshot)

    return parser


def main(argv: list[str] | None = None) -> int:
    """Main CLI entry point.

    Parses command line arguments and dispatches to appropriate handler.

    Returns:
        Exit code (0 for success, non-zero for errors).
    """
    args = build_parser().parse_args(argv)
    _setup_logging(args.verbose)
    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
