"""Connection and inventory checks for the source and destination databases."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from clubdb.config import Settings
from clubdb.db import Database, DatabaseConnectionError, open_database

logger = logging.getLogger("clubdb.healthcheck")


@dataclass
class HealthResult:
    name: str
    ok: bool
    message: str
    tables: dict[str, int] = field(default_factory=dict)


def check_config(settings: Settings, require_destination: bool = True) -> HealthResult:
    """Validate all configuration values."""
    errors = settings.validate(require_destination=require_destination)
    if errors:
        return HealthResult("config", False, "; ".join(errors))
    return HealthResult("config", True, "All config values valid")


def table_inventory(db: Database) -> dict[str, int]:
    """Row count per table. Tables that cannot be counted report -1."""
    counts = {}
    for table in db.list_tables():
        try:
            counts[table] = db.count_rows(table)
        except Exception as e:
            logger.warning(f"Could not count {table}: {e}")
            counts[table] = -1
    return counts


def check_connection(name: str, url: str, settings: Settings | None = None) -> HealthResult:
    """Open *url*, ping it and take a table inventory."""
    if not url:
        return HealthResult(name, False, "Connection URL not set")
    try:
        db = open_database(url, settings)
    except DatabaseConnectionError as e:
        return HealthResult(name, False, str(e))

    try:
        version = db.server_version()
        tables = table_inventory(db)
        return HealthResult(name, True, f"{version} at {db.redacted_url}, {len(tables)} table(s)", tables)
    except Exception as e:
        return HealthResult(name, False, f"Query failed on {db.redacted_url}: {e}")
    finally:
        db.close()


def run_all_checks(settings: Settings, include_source: bool = True) -> list[HealthResult]:
    """Run all health checks and return results."""
    results = [check_config(settings, require_destination=False)]
    if include_source:
        results.append(check_connection("source", settings.local_database_url, settings))
    results.append(check_connection("destination", settings.database_url, settings))
    return results
