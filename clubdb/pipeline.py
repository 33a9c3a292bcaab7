"""Migration pipeline - copies the club data from the local database to the managed one.

Stages run strictly in order: source connection, destination connection,
schema guard, table replication (plus one deferred foreign-key retry pass) and
verification.  The first three are fatal on failure; nothing after them is.
"""

from __future__ import annotations

import logging
from datetime import datetime

from clubdb.config import Settings
from clubdb.db import Database, DatabaseConnectionError, open_database, redact_url
from clubdb.models import MigrationReport, TableOutcome
from clubdb.ordering import TABLE_ORDER, DependencyCycleError, dependency_order, self_references
from clubdb.replicator import clear_table, export_table, load_table, retry_deferred

logger = logging.getLogger("clubdb.pipeline")

# Counted on the destination after the run, with their display labels.
VERIFY_TABLES = {
    "organizations": "Organizations",
    "players": "Players",
    "contracts": "Contracts",
    "invoices": "Invoices",
}


class MigrationAborted(Exception):
    """A fatal precondition failed before any data was touched."""


class MigrationPipeline:
    def __init__(self, settings: Settings, tables: list[str] | None = None):
        self.settings = settings
        self.tables = list(tables) if tables else list(TABLE_ORDER)
        self.source: Database | None = None
        self.destination: Database | None = None
        self._foreign_keys = []

    # ------------------------------------------------------------------
    # Stage 1 + 2: connections
    # ------------------------------------------------------------------

    def connect_source(self) -> Database:
        url = self.settings.local_database_url
        logger.info("📦 Step 1: Connecting to source database...")
        try:
            self.source = open_database(url, self.settings)
        except DatabaseConnectionError as e:
            raise MigrationAborted(
                f"Failed to connect to source database: {e}\n"
                f"Make sure your local PostgreSQL is running.\n"
                f"Connection string: {redact_url(url)}"
            ) from e
        logger.info(f"✅ Connected to source ({self.source.redacted_url})")
        return self.source

    def connect_destination(self) -> Database:
        url = self.settings.database_url
        logger.info("☁️  Step 2: Connecting to destination database...")
        try:
            self.destination = open_database(url, self.settings)
        except DatabaseConnectionError as e:
            raise MigrationAborted(f"Failed to connect to destination database: {e}") from e
        logger.info(f"✅ Connected to destination ({self.destination.redacted_url})")
        return self.destination

    # ------------------------------------------------------------------
    # Stage 3: schema guard
    # ------------------------------------------------------------------

    def guard_schema(self) -> list[str]:
        """Refuse to continue if the destination has no tables."""
        assert self.destination is not None
        logger.info("🔍 Step 3: Checking destination schema...")
        try:
            tables = self.destination.list_tables()
        except Exception as e:
            raise MigrationAborted(f"Failed to check destination schema: {e}") from e

        if not tables:
            raise MigrationAborted(
                "No tables found in the destination database.\n"
                "Create the schema first with: python -m clubdb bootstrap-schema"
            )

        logger.info(f"✅ Found {len(tables)} table(s) in destination: {', '.join(tables)}")
        return tables

    def resolve_order(self) -> list[str]:
        """The table order, rederived from destination foreign keys when possible."""
        assert self.destination is not None
        try:
            self._foreign_keys = self.destination.foreign_keys()
        except Exception as e:
            logger.warning(f"⚠️  Could not read foreign keys, using built-in table order: {e}")
            self._foreign_keys = []
            return list(self.tables)

        if not self.settings.derive_table_order:
            return list(self.tables)

        try:
            order = dependency_order(self.tables, self._foreign_keys)
        except DependencyCycleError as e:
            logger.warning(f"⚠️  {e}; using built-in table order")
            return list(self.tables)

        if order != self.tables:
            logger.info(f"Table order adjusted from foreign keys: {', '.join(order)}")
        return order

    # ------------------------------------------------------------------
    # Stage 4: replication
    # ------------------------------------------------------------------

    def replicate(self, order: list[str]) -> list[TableOutcome]:
        """Export every table, clear the destination children first, then load parents first."""
        assert self.source is not None and self.destination is not None
        logger.info("📤 Step 4: Migrating data...")
        snippet_length = self.settings.error_snippet_length

        exports = [
            export_table(
                self.source,
                table,
                snippet_length=snippet_length,
                self_refs=self_references(table, self._foreign_keys),
            )
            for table in order
        ]

        # Children are cleared before parents, and every table before any load.
        to_load = [(outcome, records) for outcome, records in exports if records]
        for outcome, _ in reversed(to_load):
            clear_table(self.destination, outcome, snippet_length=snippet_length)

        for outcome, records in to_load:
            load_table(
                self.destination,
                outcome,
                records,
                batch_size=self.settings.batch_size,
                drop_nulls=self.settings.drop_nulls,
                snippet_length=snippet_length,
            )
        outcomes = [outcome for outcome, _ in exports]

        deferred = [o for o in outcomes if o.deferred]
        if deferred:
            logger.info(f"🔁 Retrying foreign-key failures in {len(deferred)} table(s)...")
            for outcome in deferred:
                retry_deferred(
                    self.destination,
                    outcome,
                    drop_nulls=self.settings.drop_nulls,
                    snippet_length=snippet_length,
                )
        return outcomes

    # ------------------------------------------------------------------
    # Stage 5: verification
    # ------------------------------------------------------------------

    def verify(self) -> dict[str, int]:
        """Count the core tables on the destination. Never raises."""
        logger.info("🔍 Step 5: Verifying migration...")
        counts: dict[str, int] = {}
        if self.destination is None:
            logger.warning("⚠️  Could not verify (no destination connection)")
            return counts
        for table, label in VERIFY_TABLES.items():
            try:
                counts[label] = self.destination.count_rows(table)
            except Exception as e:
                logger.warning(f"⚠️  Could not verify {table} (table might not exist yet): {e}")
        return counts

    # ------------------------------------------------------------------

    def run(self) -> MigrationReport:
        """Run every stage. Raises MigrationAborted on a fatal precondition."""
        if not self.settings.database_url:
            raise MigrationAborted("DATABASE_URL (destination) is not set")

        report = MigrationReport(
            source=redact_url(self.settings.local_database_url),
            destination=redact_url(self.settings.database_url),
        )
        self.connect_source()
        self.connect_destination()
        self.guard_schema()

        report.table_order = self.resolve_order()
        report.tables = self.replicate(report.table_order)
        logger.info(f"✅ Migration completed! Total records migrated: {report.total_inserted}")

        report.verification = self.verify()
        report.completed_at = datetime.utcnow()
        return report

    def close(self) -> None:
        for db in (self.source, self.destination):
            if db is not None:
                db.close()
        self.source = None
        self.destination = None
