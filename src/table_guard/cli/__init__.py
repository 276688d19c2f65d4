"""CLI for inspecting and repairing required authentication tables.

Usage:
    table-guard generate migration base otp --prefix user --dialect sqlite
    table-guard status base otp --database-url sqlite:///app.db
    table-guard check --mode raise
    table-guard create base otp --confirm

Commands:
    generate migration - Write an Alembic migration creating the feature tables
    status             - Show which required tables exist
    check              - Run the configured validation policy
    create             - Show (and with --confirm, execute) DDL for missing tables

Features default to the ``features`` list of table_guard.toml; the database
URL defaults to ``database_url`` there or ``{env-prefix}DATABASE_URL``.
"""

import argparse
import logging
import sys
from pathlib import Path

from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape
from rich.table import Table

from table_guard.config.loader import load_guard_config
from table_guard.config.models import TableGuardConfig
from table_guard.errors import ConfigurationError, ExecutionError
from table_guard.guard import TableGuard
from table_guard.schema.ddl import DDLGenerator
from table_guard.schema.migration import migration_label, write_migration
from table_guard.schema.models import DialectInfo, DriftEntry
from table_guard.schema.registry import default_registry

console = Console()


# ============================================================================
# Helpers
# ============================================================================


def _load_config(args: argparse.Namespace) -> TableGuardConfig:
    """Load config from --config / --env-prefix and apply command-line overrides."""
    config = load_guard_config(getattr(args, "config", None), getattr(args, "env_prefix", ""))
    updates = {}
    if getattr(args, "database_url", None):
        updates["database_url"] = args.database_url
    if getattr(args, "mode", None):
        updates["mode"] = args.mode
    if getattr(args, "prefix", None):
        updates["prefix"] = args.prefix
    return config.model_copy(update=updates) if updates else config


def _print_features() -> None:
    console.print("[dim]Available features:[/dim]")
    for feature in default_registry().features:
        console.print(f"  {feature}")


def _build_guard(args: argparse.Namespace) -> TableGuard:
    """Build a guard from config plus command-line features and URL.

    Raises:
        ConfigurationError: If no database URL is configured, or the
            configuration is invalid.
    """
    config = _load_config(args)
    if not config.database_url:
        raise ConfigurationError(
            "No database URL configured. "
            "Pass --database-url or set DATABASE_URL (with --env-prefix if used)."
        )
    features = args.features or config.features
    return TableGuard(features, config.database_url, config)


def _status_table(entries: list[DriftEntry]) -> Table:
    table = Table(title="Required Tables")
    table.add_column("Table", style="cyan")
    table.add_column("Feature")
    table.add_column("Method", style="dim")
    table.add_column("Status")
    for entry in entries:
        if entry.exists:
            status = "[green]present[/green]"
        elif entry.error:
            status = f"[red]unknown[/red] [dim]({entry.error})[/dim]"
        else:
            status = "[red]missing[/red]"
        table.add_row(entry.table_name, entry.feature, entry.method_name, status)
    return table


# ============================================================================
# Command implementations
# ============================================================================


def cmd_generate_migration(args: argparse.Namespace) -> int:
    """Write a migration creating every table of the given features.

    No database connection is needed; the target dialect comes from
    --dialect.

    Args:
        args: Parsed CLI arguments.

    Returns:
        0 on success, 1 when no or unknown features are given.
    """
    try:
        config = _load_config(args)
    except (FileNotFoundError, ConfigurationError) as e:
        console.print(f"[red]Error: {escape(str(e))}[/red]")
        return 1

    features = args.features or config.features
    if not features:
        console.print("[red]Error: No features specified[/red]")
        console.print(
            "Usage: table-guard generate migration FEATURE [FEATURE ...] "
            "[--prefix PREFIX] [--dialect DIALECT] [--output-dir DIR]"
        )
        _print_features()
        return 1

    try:
        specs = default_registry().resolve(features, config.prefix)
        dialect = DialectInfo.for_backend(args.dialect)
    except ConfigurationError as e:
        console.print(f"[red]Error: {escape(str(e))}[/red]")
        _print_features()
        return 1

    generator = DDLGenerator([DriftEntry(spec=spec, exists=False) for spec in specs], dialect)
    output_dir = args.output_dir or config.migration_path
    path = write_migration(
        generator.generate_migration(),
        output_dir,
        migration_label(features, config.prefix),
    )

    console.print(f"[green]Created migration:[/green] {path}")
    console.print(f"  Tables: {', '.join(spec.table_name for spec in specs)}", style="dim")
    return 0


def cmd_status(args: argparse.Namespace) -> int:
    """Show which required tables exist.

    Args:
        args: Parsed CLI arguments.

    Returns:
        0 on success, 1 on configuration or connection errors.
    """
    try:
        guard = _build_guard(args)
    except (FileNotFoundError, ConfigurationError) as e:
        console.print(f"[red]Error: {escape(str(e))}[/red]")
        return 1
    except Exception as e:
        console.print(f"[red]Failed to connect to database: {escape(str(e))}[/red]")
        return 1

    try:
        entries = guard.table_status()
    except Exception as e:
        console.print(f"[red]Failed to connect to database: {escape(str(e))}[/red]")
        return 1
    finally:
        guard.close()

    console.print(_status_table(entries))
    missing = [e for e in entries if not e.exists]
    if missing:
        console.print(f"[yellow]{len(missing)} of {len(entries)} required tables missing[/yellow]")
    else:
        console.print(f"[green]All {len(entries)} required tables exist[/green]")
    return 0


def cmd_check(args: argparse.Namespace) -> int:
    """Run the validation policy (and any configured remediation).

    Args:
        args: Parsed CLI arguments.

    Returns:
        0 when the policy lets boot continue, 1 when it fails.
    """
    try:
        guard = _build_guard(args)
    except (FileNotFoundError, ConfigurationError) as e:
        console.print(f"[red]Error: {escape(str(e))}[/red]")
        return 1
    except Exception as e:
        console.print(f"[red]Failed to connect to database: {escape(str(e))}[/red]")
        return 1

    try:
        outcome = guard.check_required_tables()
    except (ConfigurationError, ExecutionError) as e:
        console.print(f"[red]Error: {escape(str(e))}[/red]")
        return 1
    except Exception as e:
        console.print(f"[red]Failed to connect to database: {escape(str(e))}[/red]")
        return 1
    finally:
        guard.close()

    console.print(f"Outcome: [bold]{outcome.kind.value}[/bold]")
    return 0


def cmd_create(args: argparse.Namespace) -> int:
    """Show DDL for missing tables; execute it with --confirm.

    Args:
        args: Parsed CLI arguments.

    Returns:
        0 on success (or preview), 1 on failure.
    """
    try:
        guard = _build_guard(args)
    except (FileNotFoundError, ConfigurationError) as e:
        console.print(f"[red]Error: {escape(str(e))}[/red]")
        return 1
    except Exception as e:
        console.print(f"[red]Failed to connect to database: {escape(str(e))}[/red]")
        return 1

    try:
        return _create_missing(guard, args.confirm)
    finally:
        guard.close()


def _create_missing(guard: TableGuard, confirm: bool) -> int:
    try:
        missing = guard.missing_tables()
        generator = guard.generator(missing) if missing else None
    except Exception as e:
        console.print(f"[red]Failed to connect to database: {escape(str(e))}[/red]")
        return 1

    if generator is None:
        console.print("[green]All required tables exist. Nothing to create.[/green]")
        return 0

    console.print(f"[bold]{len(missing)} missing table(s):[/bold]")
    for entry in generator.ordered_entries:
        console.print(f"  - {entry.table_name} (feature: {entry.feature})")
    console.print()
    console.print(generator.generate_create_statements(), markup=False, highlight=False)
    console.print()

    if not confirm:
        console.print("[yellow]Dry run. Re-run with --confirm to create these tables.[/yellow]")
        return 0

    try:
        count = generator.execute_creates(guard.connection)
    except ExecutionError as e:
        console.print(f"[red]Error: {escape(str(e))}[/red]")
        return 1

    console.print(f"[green]Executed {count} statement(s)[/green]")
    return 0



# ============================================================================
# Entry point
# ============================================================================


def _add_connection_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("features", nargs="*", help="Features to check (default: from config)")
    parser.add_argument("--database-url", help="Database URL (default: from config/env)")


def main(argv: list[str] | None = None) -> int:
    """Main CLI entry point.

    Parses command line arguments and dispatches to appropriate handler.

    Returns:
        Exit code (0 for success, non-zero for errors).
    """
    parser = argparse.ArgumentParser(
        prog="table-guard",
        description="Detect and repair missing authentication tables",
    )

    # Global options
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="Path to table_guard.toml (default: ./table_guard.toml if present)",
    )
    parser.add_argument(
        "--env-prefix",
        default="",
        help=(
            "Prefix for environment variable lookup "
            "(e.g., --env-prefix APP_ reads APP_DATABASE_URL)"
        ),
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    # generate migration command
    p_generate = subparsers.add_parser("generate", help="Generate files")
    generate_sub = p_generate.add_subparsers(dest="target", required=True)
    p_migration = generate_sub.add_parser(
        "migration",
        help="Write an Alembic migration creating the feature tables",
    )
    p_migration.add_argument("features", nargs="*", help="Features to create tables for")
    p_migration.add_argument("--prefix", help="Table name prefix (default: account)")
    p_migration.add_argument(
        "--dialect",
        default="postgres",
        help="Target database: postgres, mysql, or sqlite (default: postgres)",
    )
    p_migration.add_argument(
        "--output-dir",
        help="Migration directory (default: migrations/versions)",
    )
    p_migration.set_defaults(func=cmd_generate_migration)

    # status command
    p_status = subparsers.add_parser("status", help="Show which required tables exist")
    _add_connection_arguments(p_status)
    p_status.set_defaults(func=cmd_status)

    # check command
    p_check = subparsers.add_parser("check", help="Run the validation policy")
    _add_connection_arguments(p_check)
    p_check.add_argument("--mode", help="Override the validation mode (silent, warn, error, raise)")
    p_check.set_defaults(func=cmd_check)

    # create command
    p_create = subparsers.add_parser("create", help="Create missing tables")
    _add_connection_arguments(p_create)
    p_create.add_argument(
        "--confirm",
        action="store_true",
        help="Execute the statements (default: show only)",
    )
    p_create.set_defaults(func=cmd_create)

    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.INFO,
        format="%(message)s",
        handlers=[RichHandler(console=console, show_path=False)],
    )
    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
