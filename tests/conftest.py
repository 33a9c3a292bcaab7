"""Shared test fixtures: throwaway SQLite source and destination databases."""

from __future__ import annotations

import sqlite3

import pytest

from clubdb.config import Settings
from clubdb.db import Database

CLUB_SCHEMA = """
CREATE TABLE organizations (
    id TEXT PRIMARY KEY,
    name TEXT NOT NULL,
    plan TEXT DEFAULT 'free',
    settings TEXT,
    created_at TEXT
);
CREATE TABLE teams (
    id TEXT PRIMARY KEY,
    organization_id TEXT NOT NULL REFERENCES organizations(id),
    name TEXT NOT NULL
);
CREATE TABLE users (
    id TEXT PRIMARY KEY,
    organization_id TEXT REFERENCES organizations(id),
    email TEXT NOT NULL UNIQUE,
    role TEXT NOT NULL DEFAULT 'member'
);
CREATE TABLE players (
    id TEXT PRIMARY KEY,
    organization_id TEXT NOT NULL REFERENCES organizations(id),
    team_id TEXT REFERENCES teams(id),
    mentor_id TEXT REFERENCES players(id),
    name TEXT NOT NULL,
    position TEXT
);
CREATE TABLE contracts (
    id TEXT PRIMARY KEY,
    player_id TEXT NOT NULL REFERENCES players(id),
    organization_id TEXT NOT NULL REFERENCES organizations(id),
    start_date TEXT,
    salary REAL
);
CREATE TABLE invoices (
    id TEXT PRIMARY KEY,
    organization_id TEXT NOT NULL REFERENCES organizations(id),
    player_id TEXT REFERENCES players(id),
    amount REAL NOT NULL,
    status TEXT NOT NULL DEFAULT 'pending',
    notes TEXT
);
CREATE TABLE payments (
    id TEXT PRIMARY KEY,
    invoice_id TEXT NOT NULL REFERENCES invoices(id),
    amount REAL NOT NULL
);
"""

# Tables the app has but the local database never got.
EXTRA_DESTINATION_SCHEMA = """
CREATE TABLE transactions (id TEXT PRIMARY KEY, organization_id TEXT REFERENCES organizations(id), amount REAL);
CREATE TABLE league_stats (id TEXT PRIMARY KEY, player_id TEXT REFERENCES players(id), goals INTEGER);
CREATE TABLE training_progress (id TEXT PRIMARY KEY, player_id TEXT REFERENCES players(id), score REAL);
CREATE TABLE posts (id TEXT PRIMARY KEY, organization_id TEXT REFERENCES organizations(id), body TEXT);
CREATE TABLE calendar_events (id TEXT PRIMARY KEY, organization_id TEXT REFERENCES organizations(id), title TEXT);
CREATE TABLE calendar_sync (id TEXT PRIMARY KEY, event_id TEXT REFERENCES calendar_events(id), provider TEXT);
"""

SEED_ROWS = {
    "organizations": [
        {"id": "org-1", "name": "Riverside FC", "plan": "pro", "settings": '{"colors": ["blue"]}'},
        {"id": "org-2", "name": "Hilltop United", "plan": None, "settings": None},
        {"id": "org-3", "name": "O'Malley's Athletic", "plan": "free", "settings": None},
    ],
    "teams": [
        {"id": "team-1", "organization_id": "org-1", "name": "U17"},
        {"id": "team-2", "organization_id": "org-2", "name": "First team"},
    ],
    "users": [
        {"id": "user-1", "organization_id": "org-1", "email": "coach@riverside.test", "role": "admin"},
        {"id": "user-2", "organization_id": "org-2", "email": "sec@hilltop.test", "role": "member"},
    ],
    # ply-1 is mentored by ply-2, which comes later in rowid order.
    "players": [
        {"id": "ply-1", "organization_id": "org-1", "team_id": "team-1", "mentor_id": "ply-2", "name": "Sam"},
        {"id": "ply-2", "organization_id": "org-1", "team_id": "team-1", "mentor_id": None, "name": "Alex"},
        {"id": "ply-3", "organization_id": "org-2", "team_id": "team-2", "mentor_id": None, "name": "Jo"},
        {"id": "ply-4", "organization_id": "org-2", "team_id": None, "mentor_id": None, "name": "Kim"},
    ],
    "contracts": [
        {"id": "ctr-1", "player_id": "ply-1", "organization_id": "org-1", "start_date": "2024-07-01", "salary": 1200.5},
        {"id": "ctr-2", "player_id": "ply-3", "organization_id": "org-2", "start_date": "2024-08-15", "salary": 900},
    ],
    "invoices": [
        {"id": "inv-1", "organization_id": "org-1", "player_id": "ply-1", "amount": 50, "status": "paid", "notes": None},
        {
            "id": "inv-2",
            "organization_id": "org-2",
            "player_id": "ply-3",
            "amount": 75.25,
            "status": "pending",
            "notes": "Kit fee for O'Brien's squad",
        },
    ],
    "payments": [
        {"id": "pay-1", "invoice_id": "inv-1", "amount": 50},
    ],
}


def sqlite_url(path) -> str:
    return f"sqlite:///{path}"


def create_sqlite_db(path, schema: str = "", rows: dict[str, list[dict]] | None = None) -> str:
    """Create a SQLite file with *schema* and *rows*; returns its URL.

    Foreign keys are not enforced while seeding so rows can go in any order.
    """
    conn = sqlite3.connect(str(path))
    try:
        if schema:
            conn.executescript(schema)
        for table, table_rows in (rows or {}).items():
            for row in table_rows:
                cols = ", ".join(row)
                marks = ", ".join("?" for _ in row)
                conn.execute(f"INSERT INTO {table} ({cols}) VALUES ({marks})", tuple(row.values()))
        conn.commit()
    finally:
        conn.close()
    return sqlite_url(path)


@pytest.fixture
def source_url(tmp_path):
    """Local database with the core club tables and a small fixture dataset."""
    return create_sqlite_db(tmp_path / "source.db", CLUB_SCHEMA, SEED_ROWS)


@pytest.fixture
def destination_url(tmp_path):
    """Bootstrapped but empty destination with every app table."""
    return create_sqlite_db(tmp_path / "destination.db", CLUB_SCHEMA + EXTRA_DESTINATION_SCHEMA)


@pytest.fixture
def empty_destination_url(tmp_path):
    """Destination whose schema was never created."""
    return create_sqlite_db(tmp_path / "blank.db")


@pytest.fixture
def migration_settings(source_url, destination_url):
    return Settings(local_database_url=source_url, database_url=destination_url)


@pytest.fixture
def source_db(source_url):
    db = Database(source_url)
    yield db
    db.close()


@pytest.fixture
def destination_db(destination_url):
    db = Database(destination_url)
    yield db
    db.close()


@pytest.fixture
def make_db(tmp_path):
    """Factory: make_db(name, schema=CLUB_SCHEMA, rows=None) -> sqlite URL."""

    def _make(name: str, schema: str = CLUB_SCHEMA, rows: dict[str, list[dict]] | None = None) -> str:
        return create_sqlite_db(tmp_path / name, schema, rows)

    return _make
