"""Copy one table from the source database into the destination, row by row."""

from __future__ import annotations

import logging
from typing import Any

from clubdb.db import Database, quote_ident
from clubdb.models import TableOutcome, TableStatus
from clubdb.ordering import order_rows
from clubdb.values import ValueKind, column_kind, prepare_row

logger = logging.getLogger("clubdb.replicator")

# Errors expected when re-running into a populated destination.
BENIGN_ERROR_MARKERS = (
    "duplicate",
    "already exists",
    "violates foreign key",
    "foreign key constraint failed",
)
FOREIGN_KEY_MARKERS = ("violates foreign key", "foreign key constraint failed")
MISSING_TABLE_MARKERS = ("does not exist", "no such table")


def _matches(error: BaseException | str, markers: tuple[str, ...]) -> bool:
    message = str(error).lower()
    return any(marker in message for marker in markers)


def is_benign_error(error: BaseException | str) -> bool:
    return _matches(error, BENIGN_ERROR_MARKERS)


def is_foreign_key_error(error: BaseException | str) -> bool:
    return _matches(error, FOREIGN_KEY_MARKERS)


def is_missing_table_error(error: BaseException | str) -> bool:
    return _matches(error, MISSING_TABLE_MARKERS)


def snippet(error: BaseException | str, length: int = 80) -> str:
    return str(error).strip().replace("\n", " ")[:length]


def build_insert(table: str, columns: list[str], placeholders: list[str]) -> str:
    """INSERT ... ON CONFLICT DO NOTHING with bound parameters only."""
    column_sql = ", ".join(quote_ident(c) for c in columns)
    return (
        f"INSERT INTO {quote_ident(table)} ({column_sql}) "  # noqa: S608
        f"VALUES ({', '.join(placeholders)}) ON CONFLICT DO NOTHING"
    )


def column_kinds(destination: Database, table: str) -> dict[str, ValueKind]:
    """Destination column kinds for *table*, or {} when the catalog cannot be read."""
    try:
        columns = destination.column_types(table)
    except Exception as e:
        logger.warning(f"   ⚠️  Could not read column types for {table}: {snippet(e)}")
        return {}

    kinds = {}
    for name, (data_type, udt_name) in columns.items():
        kind = column_kind(data_type, udt_name)
        if kind is not None:
            kinds[name] = kind
    return kinds


def insert_row(
    destination: Database,
    table: str,
    row: dict[str, Any],
    *,
    drop_nulls: bool = True,
    column_kinds: dict[str, ValueKind] | None = None,
) -> bool:
    """Insert one row. Returns False when nothing was written (conflict or no columns)."""
    prepared = prepare_row(row, drop_nulls=drop_nulls, column_kinds=column_kinds)
    if not prepared:
        return False

    backend = destination.backend
    columns = list(prepared)
    query = build_insert(table, columns, [prepared[c].placeholder(backend) for c in columns])
    params = [prepared[c].as_param(backend) for c in columns]
    return destination.execute(query, params, commit=True) > 0


def _record_failure(outcome: TableOutcome, row: dict[str, Any], error: Exception, snippet_length: int) -> None:
    outcome.failed += 1
    if is_foreign_key_error(error):
        outcome.deferred.append(row)
    if is_benign_error(error):
        logger.debug(f"{outcome.table}: suppressed {snippet(error, snippet_length)}")
    else:
        logger.warning(f"   ⚠️  Error: {snippet(error, snippet_length)}")


def export_table(
    source: Database,
    table: str,
    *,
    snippet_length: int = 80,
    self_refs: list[tuple[str, str]] | None = None,
) -> tuple[TableOutcome, list[dict[str, Any]]]:
    """Probe and read *table* from the source.

    Returns the outcome and the rows to load.  A missing, empty or unreadable
    table comes back with its final status and no rows.
    """
    outcome = TableOutcome(table=table)

    try:
        count = source.count_rows(table)
    except Exception as e:
        if is_missing_table_error(e):
            logger.info(f"⏭️  Skipping {table} (table doesn't exist in source)")
            outcome.status = TableStatus.MISSING
        else:
            logger.warning(f"⚠️  Error reading {table}: {snippet(e, snippet_length)}")
            outcome.status = TableStatus.FAILED
            outcome.error = str(e)
        return outcome, []

    if count == 0:
        logger.info(f"⏭️  Skipping {table} (empty)")
        outcome.status = TableStatus.EMPTY
        return outcome, []

    try:
        records = source.select_all(table)
    except Exception as e:
        logger.warning(f"⚠️  Error exporting {table}: {snippet(e, snippet_length)}")
        outcome.status = TableStatus.FAILED
        outcome.error = str(e)
        return outcome, []

    if not records:
        logger.info(f"   ⚠️  No data to migrate for {table}")
        outcome.status = TableStatus.EMPTY
        return outcome, []

    if self_refs:
        records = order_rows(records, self_refs)
    logger.debug(f"{table}: exported {len(records)} rows")
    return outcome, records


def clear_table(destination: Database, outcome: TableOutcome, *, snippet_length: int = 80) -> None:
    """Empty the destination table. A failure is logged and the load goes ahead."""
    try:
        destination.truncate(outcome.table)
        outcome.truncated = True
    except Exception as e:
        logger.warning(f"   ⚠️  Could not truncate {outcome.table}: {snippet(e, snippet_length)}")


def load_table(
    destination: Database,
    outcome: TableOutcome,
    records: list[dict[str, Any]],
    *,
    batch_size: int = 10,
    drop_nulls: bool = True,
    snippet_length: int = 80,
) -> TableOutcome:
    """Insert *records* one row at a time, recording every row in *outcome*."""
    table = outcome.table
    logger.info(f"📦 Migrating {table} ({len(records)} records)...")
    outcome.column_kinds = column_kinds(destination, table)
    outcome.attempted = len(records)
    for start in range(0, len(records), batch_size):
        for row in records[start : start + batch_size]:
            try:
                if insert_row(destination, table, row, drop_nulls=drop_nulls, column_kinds=outcome.column_kinds):
                    outcome.inserted += 1
                else:
                    outcome.skipped += 1
            except Exception as e:
                _record_failure(outcome, row, e, snippet_length)
        logger.debug(f"{table}: {min(start + batch_size, len(records))}/{len(records)} rows processed")

    logger.info(f"   ✅ Migrated {outcome.inserted}/{outcome.attempted} records")
    return outcome


def replicate_table(
    source: Database,
    destination: Database,
    table: str,
    *,
    batch_size: int = 10,
    drop_nulls: bool = True,
    snippet_length: int = 80,
    self_refs: list[tuple[str, str]] | None = None,
) -> TableOutcome:
    """Probe, export, clear and re-insert a single table.

    Never raises for table- or row-level problems; they are reported in the
    returned outcome.
    """
    outcome, records = export_table(source, table, snippet_length=snippet_length, self_refs=self_refs)
    if not records:
        return outcome
    clear_table(destination, outcome, snippet_length=snippet_length)
    return load_table(
        destination,
        outcome,
        records,
        batch_size=batch_size,
        drop_nulls=drop_nulls,
        snippet_length=snippet_length,
    )


def retry_deferred(
    destination: Database,
    outcome: TableOutcome,
    *,
    drop_nulls: bool = True,
    snippet_length: int = 80,
) -> int:
    """Retry rows that failed on a foreign key once their parents may exist.

    Returns the number of rows recovered; the outcome counts are updated.
    """
    if not outcome.deferred:
        return 0

    rows, outcome.deferred = outcome.deferred, []
    recovered = 0
    for row in rows:
        try:
            written = insert_row(
                destination, outcome.table, row, drop_nulls=drop_nulls, column_kinds=outcome.column_kinds
            )
        except Exception as e:
            logger.debug(f"{outcome.table}: retry failed: {snippet(e, snippet_length)}")
            continue
        outcome.failed -= 1
        if written:
            outcome.inserted += 1
            recovered += 1
        else:
            outcome.skipped += 1

    if recovered:
        logger.info(f"   🔁 {outcome.table}: recovered {recovered} deferred record(s)")
    return recovered
