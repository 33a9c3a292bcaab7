"""Table and row ordering so foreign keys always point at rows already inserted."""

from __future__ import annotations

import logging
from collections.abc import Iterable
from typing import Any

from clubdb.db import ForeignKey

logger = logging.getLogger("clubdb.ordering")

# Parents before children: organizations own teams, teams own players, players
# own contracts/invoices, and so on down to the calendar tables.
TABLE_ORDER = [
    "organizations",
    "teams",
    "users",
    "players",
    "contracts",
    "invoices",
    "payments",
    "transactions",
    "league_stats",
    "training_progress",
    "posts",
    "calendar_events",
    "calendar_sync",
]


class DependencyCycleError(Exception):
    """Raised when the foreign-key graph between the listed tables has a cycle."""


def dependency_order(tables: list[str], foreign_keys: Iterable[ForeignKey]) -> list[str]:
    """Topologically sort *tables* by their foreign keys.

    Only edges between listed tables count; self references are ignored.  When
    several tables are ready the one listed first wins, so a list that is
    already correct comes back unchanged.
    """
    deps: dict[str, set[str]] = {t: set() for t in tables}
    for fk in foreign_keys:
        if fk.table in deps and fk.ref_table in deps and fk.table != fk.ref_table:
            deps[fk.table].add(fk.ref_table)

    ordered: list[str] = []
    done: set[str] = set()
    remaining = list(tables)
    while remaining:
        ready = next((t for t in remaining if deps[t] <= done), None)
        if ready is None:
            raise DependencyCycleError(f"Foreign-key cycle between: {', '.join(remaining)}")
        ordered.append(ready)
        done.add(ready)
        remaining.remove(ready)
    return ordered


def self_references(table: str, foreign_keys: Iterable[ForeignKey]) -> list[tuple[str, str]]:
    """(column, referenced column) pairs where *table* references itself."""
    return [(fk.column, fk.ref_column) for fk in foreign_keys if fk.table == table and fk.ref_table == table]


def order_rows(rows: list[dict[str, Any]], references: list[tuple[str, str]]) -> list[dict[str, Any]]:
    """Reorder rows of a self-referencing table so parents come first.

    A row is ready once every self reference it holds is NULL, points at
    itself, points outside the table, or points at a row already emitted.
    Rows stuck in a reference cycle are appended in their original order.
    """
    if not references or len(rows) < 2:
        return rows

    present = {ref: {row.get(ref) for row in rows} for _, ref in references}
    emitted: dict[str, set[Any]] = {ref: set() for _, ref in references}

    def ready(row: dict[str, Any]) -> bool:
        for column, ref in references:
            target = row.get(column)
            if target is None or target == row.get(ref):
                continue
            if target in present[ref] and target not in emitted[ref]:
                return False
        return True

    ordered: list[dict[str, Any]] = []
    pending = list(rows)
    while pending:
        batch = [row for row in pending if ready(row)]
        if not batch:
            logger.warning(f"{len(pending)} row(s) form a self-reference cycle; keeping source order")
            ordered.extend(pending)
            break
        for row in batch:
            ordered.append(row)
            for _, ref in references:
                emitted[ref].add(row.get(ref))
        taken = {id(row) for row in batch}
        pending = [row for row in pending if id(row) not in taken]
    return ordered
