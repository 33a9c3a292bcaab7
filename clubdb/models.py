"""Pydantic data models - the results reported by the migration tooling."""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field

from clubdb.values import ValueKind

# --- Enums ---


class TableStatus(str, Enum):
    MIGRATED = "migrated"
    EMPTY = "empty"
    MISSING = "missing"
    FAILED = "failed"


# --- Replication ---


class TableOutcome(BaseModel):
    """Counts for one replicated table.

    ``attempted`` is the number of rows read from the source.  Every attempted
    row ends up in exactly one of ``inserted``, ``skipped`` (conflict no-op or
    nothing to insert) or ``failed``.
    """

    table: str
    status: TableStatus = TableStatus.MIGRATED
    attempted: int = 0
    inserted: int = 0
    skipped: int = 0
    failed: int = 0
    truncated: bool = False
    error: str | None = None
    # Rows that hit a foreign-key violation, kept for one retry pass.
    deferred: list[dict[str, Any]] = Field(default_factory=list, exclude=True, repr=False)
    # Destination column kinds, read once per table and reused by the retry pass.
    column_kinds: dict[str, ValueKind] = Field(default_factory=dict, exclude=True, repr=False)


class MigrationReport(BaseModel):
    """Everything a migration run produced, folded from the per-table outcomes."""

    source: str
    destination: str
    table_order: list[str] = Field(default_factory=list)
    tables: list[TableOutcome] = Field(default_factory=list)
    verification: dict[str, int] = Field(default_factory=dict)
    started_at: datetime = Field(default_factory=datetime.utcnow)
    completed_at: datetime | None = None

    @property
    def total_attempted(self) -> int:
        return sum(t.attempted for t in self.tables)

    @property
    def total_inserted(self) -> int:
        return sum(t.inserted for t in self.tables)

    @property
    def total_skipped(self) -> int:
        return sum(t.skipped for t in self.tables)

    @property
    def total_failed(self) -> int:
        return sum(t.failed for t in self.tables)

    def outcome(self, table: str) -> TableOutcome | None:
        for t in self.tables:
            if t.table == table:
                return t
        return None


# --- Schema bootstrap ---


class MigrationFileResult(BaseModel):
    name: str
    executed: int = 0
    already_applied: int = 0
    failed: int = 0
    missing: bool = False
