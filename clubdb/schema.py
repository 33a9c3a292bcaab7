"""Schema bootstrap: apply the app's SQL migration files to an empty database."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import TYPE_CHECKING

from clubdb.models import MigrationFileResult
from clubdb.replicator import snippet

if TYPE_CHECKING:
    from clubdb.db import Database

logger = logging.getLogger("clubdb.schema")

MIGRATION_FILE = "migration.sql"
_ALREADY_APPLIED = ("already exists", "duplicate key")


def split_statements(sql: str) -> list[str]:
    """Split a migration file into statements.

    ``--`` comment lines are dropped, a statement ends on a line ending with
    ``;`` and fragments shorter than 10 characters are ignored.
    """
    statements = []
    current = ""
    for line in sql.splitlines():
        stripped = line.strip()
        if stripped.startswith("--"):
            continue
        current += line + "\n"
        if stripped.endswith(";"):
            statements.append(current.strip())
            current = ""
    if current.strip():
        statements.append(current.strip())
    return [s for s in statements if len(s) >= 10]


def list_migrations(migrations_dir: Path) -> list[Path]:
    return sorted(p for p in migrations_dir.iterdir() if p.is_dir())


def apply_migration(db: Database, migration: Path) -> MigrationFileResult:
    result = MigrationFileResult(name=migration.name)
    sql_path = migration / MIGRATION_FILE
    if not sql_path.exists():
        logger.info(f"   ⏭️  No SQL file found in {migration.name} (skipping)")
        result.missing = True
        return result

    for statement in split_statements(sql_path.read_text(encoding="utf-8")):
        try:
            db.execute(statement, commit=True)
            result.executed += 1
        except Exception as e:
            err = str(e).lower()
            if any(marker in err for marker in _ALREADY_APPLIED):
                result.already_applied += 1
            else:
                result.failed += 1
                logger.warning(f"   ⚠️  Error: {snippet(e, 150)}")
                logger.warning(f"   Statement: {statement[:100]}...")
    return result


def bootstrap_schema(db: Database, migrations_dir: Path) -> list[MigrationFileResult]:
    """Apply every migration under *migrations_dir* in name order."""
    if not migrations_dir.is_dir():
        raise FileNotFoundError(f"Migrations directory not found: {migrations_dir}")

    migrations = list_migrations(migrations_dir)
    logger.info(f"📦 Found {len(migrations)} migration(s) in {migrations_dir}")

    results = []
    for migration in migrations:
        logger.info(f"🔄 Applying migration: {migration.name}...")
        result = apply_migration(db, migration)
        if not result.missing:
            logger.info(
                f"   ✅ Executed {result.executed} statement(s)"
                + (f", {result.already_applied} already applied" if result.already_applied else "")
            )
        results.append(result)

    tables = db.list_tables()
    logger.info(f"✅ Found {len(tables)} table(s) after bootstrap: {', '.join(tables)}")
    return results
