"""Database connections and catalog queries: supports PostgreSQL and SQLite backends."""

from __future__ import annotations

import contextlib
import logging
import re
import sqlite3
from collections.abc import Generator
from dataclasses import dataclass
from typing import Any
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

logger = logging.getLogger("clubdb.db")

_SQLITE_PREFIX = "sqlite:///"
# user:password@ in the authority part; the password may contain '/' or ':'.
_PASSWORD_RE = re.compile(r"(//[^:@/]*:)[^@]+@")

class DatabaseConnectionError(Exception):
    """Raised when a database cannot be opened or does not answer a ping."""

@dataclass(frozen=True)
class ForeignKey:
    table: str
    column: str
    ref_table: str
    ref_column: str

def redact_url(url: str) -> str:
    """Mask the password part of a connection URL."""
    return _PASSWORD_RE.sub(r"\1****@", url, count=1)

def quote_ident(name: str) -> str:
    return '"' + name.replace('"', '""') + '"'

def parse_database_url(url: str) -> tuple[str, str, str]:
    """Split a connection URL into (backend, target, schema).

    ``sqlite:///path`` selects SQLite with *target* the file path.  Anything
    else is handed to libpq; a Prisma-style ``?schema=`` parameter is removed
    from the DSN (libpq rejects it) and returned as the catalog schema.
    """
    if url.startswith(_SQLITE_PREFIX):
        return "sqlite", url[len(_SQLITE_PREFIX) :], "main"

    parts = urlsplit(url)
    query = parse_qsl(parts.query, keep_blank_values=True)
    schema = "public"
    kept = []
    for key, value in query:
        if key == "schema":
            schema = value or schema
        else:
            kept.append((key, value))
    dsn = urlunsplit(parts._replace(query=urlencode(kept)))
    return "postgresql", dsn, schema

class Database:
    """A single source or destination database.

    Queries are written with ``?`` placeholders, converted to ``%s`` for
    PostgreSQL when parameters are bound.  Opening the database verifies liveness; failures raise
    ``DatabaseConnectionError`` with the credentials redacted.
    """

    def __init__(
        self,
        database_url: str,
        *,
        connect_timeout: int = 0,
        statement_timeout_ms: int = 0,
    ):
        self.url = database_url
        self.backend, target, self.schema = parse_database_url(database_url)
        self._pool: Any = None
        self._sqlite_conn: sqlite3.Connection | None = None

        try:
            if self.backend == "postgresql":
                import psycopg2.pool

                connect_kwargs: dict[str, Any] = {}
                if connect_timeout:
                    connect_kwargs["connect_timeout"] = connect_timeout
                if statement_timeout_ms:
                    connect_kwargs["options"] = f"-c statement_timeout={statement_timeout_ms}"
                # One connection: the tool never runs statements concurrently.
                self._pool = psycopg2.pool.SimpleConnectionPool(
                    minconn=1,
                    maxconn=1,
                    dsn=target,
                    **connect_kwargs,
                )
            else:
                self._sqlite_conn = sqlite3.connect(target, timeout=connect_timeout or 5.0)
                self._sqlite_conn.row_factory = sqlite3.Row
                self._sqlite_conn.execute("PRAGMA foreign_keys = ON")
            self.ping()
        except Exception as e:
            self.close()
            raise DatabaseConnectionError(f"Cannot connect to {redact_url(database_url)}: {e}") from e

    @property
    def redacted_url(self) -> str:
        return redact_url(self.url)

    # ------------------------------------------------------------------
    # Connection context manager (PostgreSQL checkout/return)
    # ------------------------------------------------------------------

    @contextlib.contextmanager
    def _pg_conn(self) -> Generator[Any, None, None]:
        """Checkout the PostgreSQL connection; roll back on error, always return it.

        psycopg2 discards a connection the server dropped when it is returned,
        so the next checkout opens a fresh one.
        """
        assert self._pool is not None
        conn = self._pool.getconn()
        try:
            yield conn
        except Exception:
            if not conn.closed:
                conn.rollback()
            raise
        finally:
            self._pool.putconn(conn)

    # ------------------------------------------------------------------
    # Low-level helpers (backend-agnostic)
    # ------------------------------------------------------------------

    def _convert_query(self, query: str, params: tuple | list) -> str:
        """Convert ? placeholders to %s for PostgreSQL.

        Statements without parameters are sent untouched, so a literal ``?`` or
        the jsonb ``?`` operators in migration SQL survive.
        """
        if self.backend == "postgresql" and params:
            return query.replace("?", "%s")
        return query

    def execute(self, query: str, params: tuple | list = (), *, commit: bool = False) -> int:
        """Execute a statement and return the number of affected rows."""
        query = self._convert_query(query, params)
        if self.backend == "postgresql":
            with self._pg_conn() as conn:
                with conn.cursor() as cur:
                    cur.execute(query, tuple(params) or None)
                    rowcount = cur.rowcount
                if commit:
                    conn.commit()
            return rowcount

        assert self._sqlite_conn is not None
        try:
            cur = self._sqlite_conn.execute(query, tuple(params))
        except Exception:
            self._sqlite_conn.rollback()
            raise
        if commit:
            self._sqlite_conn.commit()
        return cur.rowcount

    def fetchone(self, query: str, params: tuple | list = ()) -> dict | None:
        """Execute and return one row as dict, or None."""
        query = self._convert_query(query, params)
        if self.backend == "postgresql":
            import psycopg2.extras

            with self._pg_conn() as conn:
                with conn.cursor(cursor_factory=psycopg2.extras.RealDictCursor) as cur:
                    cur.execute(query, tuple(params) or None)
                    row = cur.fetchone()
                    return dict(row) if row else None

        assert self._sqlite_conn is not None
        row = self._sqlite_conn.execute(query, tuple(params)).fetchone()
        return dict(row) if row else None

    def fetchall(self, query: str, params: tuple | list = ()) -> list[dict]:
        """Execute and return all rows as list of dicts."""
        query = self._convert_query(query, params)
        if self.backend == "postgresql":
            import psycopg2.extras

            with self._pg_conn() as conn:
                with conn.cursor(cursor_factory=psycopg2.extras.RealDictCursor) as cur:
                    cur.execute(query, tuple(params) or None)
                    return [dict(r) for r in cur.fetchall()]

        assert self._sqlite_conn is not None
        return [dict(r) for r in self._sqlite_conn.execute(query, tuple(params)).fetchall()]

    def ping(self) -> None:
        """Run a trivial liveness probe; raises on failure."""
        self.fetchone("SELECT 1 AS ok")

    def server_version(self) -> str:
        if self.backend == "postgresql":
            row = self.fetchone("SHOW server_version")
            return f"PostgreSQL {row['server_version']}" if row else "PostgreSQL"
        return f"SQLite {sqlite3.sqlite_version}"

    # ------------------------------------------------------------------
    # Catalog
    # ------------------------------------------------------------------

    def list_tables(self) -> list[str]:
        """All base tables of the default schema, ordered by name."""
        if self.backend == "postgresql":
            rows = self.fetchall(
                """SELECT table_name
                   FROM information_schema.tables
                   WHERE table_schema = ? AND table_type = 'BASE TABLE'
                   ORDER BY table_name""",
                (self.schema,),
            )
            return [r["table_name"] for r in rows]
        rows = self.fetchall(
            "SELECT name FROM sqlite_master WHERE type = 'table' AND name NOT LIKE 'sqlite_%' ORDER BY name"
        )
        return [r["name"] for r in rows]

    def foreign_keys(self) -> list[ForeignKey]:
        """Foreign-key edges (child column -> parent column) of the default schema."""
        if self.backend == "postgresql":
            rows = self.fetchall(
                """SELECT kcu.table_name AS table_name,
                          kcu.column_name AS column_name,
                          ccu.table_name AS ref_table,
                          ccu.column_name AS ref_column
                   FROM information_schema.table_constraints tc
                   JOIN information_schema.key_column_usage kcu
                     ON tc.constraint_name = kcu.constraint_name
                    AND tc.table_schema = kcu.table_schema
                   JOIN information_schema.constraint_column_usage ccu
                     ON tc.constraint_name = ccu.constraint_name
                    AND tc.table_schema = ccu.table_schema
                   WHERE tc.constraint_type = 'FOREIGN KEY' AND tc.table_schema = ?
                   ORDER BY kcu.table_name, kcu.column_name""",
                (self.schema,),
            )
            return [ForeignKey(r["table_name"], r["column_name"], r["ref_table"], r["ref_column"]) for r in rows]

        keys = []
        for table in self.list_tables():
            for r in self.fetchall(f"PRAGMA foreign_key_list({quote_ident(table)})"):
                keys.append(ForeignKey(table, r["from"], r["table"], r["to"] or "id"))
        return keys

    def column_types(self, table: str) -> dict[str, tuple[str, str]]:
        """Column name -> (data_type, udt_name) for *table*, in column order.

        SQLite only has the declared type, which is reported for both.
        """
        if self.backend == "postgresql":
            rows = self.fetchall(
                """SELECT column_name, data_type, udt_name
                   FROM information_schema.columns
                   WHERE table_schema = ? AND table_name = ?
                   ORDER BY ordinal_position""",
                (self.schema, table),
            )
            return {r["column_name"]: (r["data_type"], r["udt_name"]) for r in rows}
        rows = self.fetchall(f"PRAGMA table_info({quote_ident(table)})")
        return {r["name"]: (r["type"], r["type"]) for r in rows}

    # ------------------------------------------------------------------
    # Table-level operations used by the replicator
    # ------------------------------------------------------------------

    def count_rows(self, table: str) -> int:
        row = self.fetchone(f"SELECT COUNT(*) AS count FROM {quote_ident(table)}")  # noqa: S608
        return int(row["count"]) if row else 0

    def select_all(self, table: str) -> list[dict]:
        return self.fetchall(f"SELECT * FROM {quote_ident(table)}")  # noqa: S608

    def truncate(self, table: str) -> None:
        if self.backend == "postgresql":
            self.execute(f"TRUNCATE TABLE {quote_ident(table)} CASCADE", commit=True)
        else:
            self.execute(f"DELETE FROM {quote_ident(table)}", commit=True)  # noqa: S608

    def close(self) -> None:
        """Close the database. For PostgreSQL this closes all pooled connections."""
        if self._pool is not None:
            self._pool.closeall()
            self._pool = None
        if self._sqlite_conn is not None:
            self._sqlite_conn.close()
            self._sqlite_conn = None

def open_database(url: str, settings: Any = None) -> Database:
    """Open a Database with the connection behaviour configured in *settings*."""
    return Database(
        url,
        connect_timeout=getattr(settings, "connect_timeout", 0),
        statement_timeout_ms=getattr(settings, "statement_timeout_ms", 0),
    )
