"""CLI entry point: python -m clubdb [command]"""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

console = Console()


def setup_logging(level: str = "INFO"):
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, rich_tracebacks=True, show_path=False)],
    )


def _exit_on_config_errors(errors: list[str]) -> None:
    if errors:
        for err in errors:
            console.print(f"[red]❌ Config error: {err}[/red]")
        console.print("\n[dim]Set DATABASE_URL in .env.local (and LOCAL_DATABASE_URL if not the default).[/dim]")
        sys.exit(1)


def _print_report(report) -> None:
    table = Table(title="Migration summary")
    table.add_column("Table", style="cyan")
    table.add_column("Status")
    table.add_column("Inserted", justify="right")
    table.add_column("Attempted", justify="right")
    table.add_column("Skipped", justify="right")
    table.add_column("Failed", justify="right")
    for outcome in report.tables:
        table.add_row(
            outcome.table,
            outcome.status.value,
            str(outcome.inserted),
            str(outcome.attempted),
            str(outcome.skipped),
            str(outcome.failed),
        )
    console.print(table)
    console.print(f"\n[green]✅ Migration completed![/green]  Total records migrated: {report.total_inserted}")

    if report.verification:
        console.print("\n[bold]📊 Destination statistics:[/bold]")
        for label, count in report.verification.items():
            console.print(f"   {label}: {count}")
    else:
        console.print("[yellow]⚠️  Could not verify (tables might not exist yet)[/yellow]")


def cmd_migrate(args):
    """Copy all club data from the source database into the destination."""
    from clubdb.config import load_settings
    from clubdb.pipeline import MigrationAborted, MigrationPipeline

    settings = load_settings()
    setup_logging(settings.log_level)
    if args.keep_nulls:
        settings.drop_nulls = False

    _exit_on_config_errors(settings.validate())

    tables = None
    if args.tables:
        from clubdb.ordering import TABLE_ORDER

        tables = [t.strip() for t in args.tables.split(",") if t.strip()]
        unknown = [t for t in tables if t not in TABLE_ORDER]
        if unknown:
            console.print(f"[red]❌ Unknown table(s): {', '.join(unknown)}[/red]")
            sys.exit(1)
        tables = [t for t in TABLE_ORDER if t in tables]

    console.print("\n[bold cyan]CLUBDB[/bold cyan] - Migrating data from source to destination")
    console.print("━" * 50)
    pipeline = MigrationPipeline(settings, tables=tables)
    try:
        report = pipeline.run()
    except MigrationAborted as e:
        console.print(f"[red]❌ {e}[/red]")
        sys.exit(1)
    finally:
        pipeline.close()
    console.print("━" * 50)
    _print_report(report)
    console.print("\n[green]🎉 Data migration completed successfully![/green]")


def cmd_bootstrap_schema(args):
    """Create the destination schema from the app's SQL migration files."""
    from clubdb.config import load_settings
    from clubdb.db import DatabaseConnectionError, open_database
    from clubdb.schema import bootstrap_schema

    settings = load_settings()
    setup_logging(settings.log_level)
    _exit_on_config_errors(settings.validate())

    migrations_dir = args.dir or settings.migrations_dir
    console.print("\n[bold cyan]CLUBDB[/bold cyan] - Creating schema from migration files")
    try:
        db = open_database(settings.database_url, settings)
    except DatabaseConnectionError as e:
        console.print(f"[red]❌ Failed to connect to destination: {e}[/red]")
        sys.exit(1)

    try:
        results = bootstrap_schema(db, migrations_dir)
    except FileNotFoundError as e:
        console.print(f"[red]❌ {e}[/red]")
        sys.exit(1)
    finally:
        db.close()

    failed = sum(r.failed for r in results)
    if failed:
        console.print(f"[yellow]⚠️  {failed} statement(s) failed; see warnings above[/yellow]")
    console.print("\n[green]🎉 Schema creation completed![/green]")
    console.print("[dim]Next step: python -m clubdb migrate[/dim]")


def cmd_check(args):
    """Test connections and list tables with row counts."""
    from clubdb.config import load_settings
    from clubdb.healthcheck import run_all_checks

    settings = load_settings()
    setup_logging(settings.log_level)

    results = run_all_checks(settings, include_source=args.source)
    all_ok = True
    for r in results:
        icon = "[green]✅[/green]" if r.ok else "[red]❌[/red]"
        console.print(f"  {icon} {r.name}: {r.message}")
        if r.tables:
            table = Table(show_header=True, box=None, padding=(0, 2))
            table.add_column("Table", style="cyan")
            table.add_column("Rows", justify="right")
            for name, count in r.tables.items():
                table.add_row(name, str(count) if count >= 0 else "?")
            console.print(table)
        if not r.ok:
            all_ok = False

    if not all_ok:
        sys.exit(1)


def main(argv: list[str] | None = None):
    parser = argparse.ArgumentParser(
        prog="clubdb",
        description="clubdb - data migration tooling for the club management platform",
    )
    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # migrate
    migrate_parser = subparsers.add_parser("migrate", help="Copy data from LOCAL_DATABASE_URL to DATABASE_URL")
    migrate_parser.add_argument("--tables", type=str, help="Comma-separated subset of tables to migrate")
    migrate_parser.add_argument(
        "--keep-nulls", action="store_true", help="Insert explicit NULLs instead of letting defaults apply"
    )
    migrate_parser.set_defaults(func=cmd_migrate)

    # bootstrap-schema
    schema_parser = subparsers.add_parser("bootstrap-schema", help="Create the destination schema from SQL migrations")
    schema_parser.add_argument("--dir", type=Path, help="Migrations directory (default: from config)")
    schema_parser.set_defaults(func=cmd_bootstrap_schema)

    # check
    check_parser = subparsers.add_parser("check", help="Test database connections and list tables")
    check_parser.add_argument("--source", action="store_true", help="Also check the source database")
    check_parser.set_defaults(func=cmd_check)

    args = parser.parse_args(argv)
    if not args.command:
        parser.print_help()
        sys.exit(1)

    args.func(args)


if __name__ == "__main__":
    main()
