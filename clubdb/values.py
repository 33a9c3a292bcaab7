"""Tagged column values.

Rows come back from the source untyped.  Each value is turned into a
``ColumnValue`` once, before the insert.  The kind comes from the destination
column's catalog type (``column_kind``), so a list bound for a ``text[]``
column stays an array while the same list bound for ``jsonb`` becomes JSON
text.  Values whose destination type is unknown are classified from the
Python value itself.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from datetime import date, datetime, time
from decimal import Decimal
from enum import Enum
from typing import Any


class ValueKind(str, Enum):
    NULL = "null"
    BOOL = "bool"
    NUMBER = "number"
    TEXT = "text"
    TIMESTAMP = "timestamp"
    JSON = "json"
    ARRAY = "array"
    BINARY = "binary"


_NUMBER_TYPES = (
    "smallint",
    "integer",
    "int",
    "bigint",
    "numeric",
    "decimal",
    "real",
    "float",
    "double",
    "double precision",
)


def column_kind(data_type: str | None, udt_name: str | None = None) -> ValueKind | None:
    """Map a catalog column type to a value kind.

    *data_type* and *udt_name* are the ``information_schema.columns`` fields
    on PostgreSQL; SQLite passes its declared type for both.  Returns None when
    the type is not declared.
    """
    data_type = (data_type or "").lower().strip()
    udt = (udt_name or "").lower()
    if data_type == "array" or udt.startswith("_"):
        return ValueKind.ARRAY
    if data_type in ("json", "jsonb") or udt in ("json", "jsonb"):
        return ValueKind.JSON
    if data_type in ("boolean", "bool"):
        return ValueKind.BOOL
    if data_type.startswith("timestamp") or data_type in ("date", "datetime"):
        return ValueKind.TIMESTAMP
    if data_type in ("bytea", "blob"):
        return ValueKind.BINARY
    if data_type.split("(")[0].strip() in _NUMBER_TYPES:
        return ValueKind.NUMBER
    if data_type:
        return ValueKind.TEXT
    return None


@dataclass(frozen=True)
class ColumnValue:
    kind: ValueKind
    value: Any

    def placeholder(self, backend: str) -> str:
        if self.kind is ValueKind.JSON and backend == "postgresql":
            return "?::jsonb"
        return "?"

    def as_param(self, backend: str) -> Any:
        """The bound parameter for *backend*."""
        if backend == "postgresql":
            if self.kind is ValueKind.BINARY:
                import psycopg2

                return psycopg2.Binary(self.value)
            # psycopg2 adapts lists to ARRAY literals.
            return self.value
        if self.kind is ValueKind.ARRAY and isinstance(self.value, list):
            return json.dumps(self.value, default=str)
        if isinstance(self.value, Decimal):
            return str(self.value)
        if isinstance(self.value, bool):
            return int(self.value)
        return self.value


NULL = ColumnValue(ValueKind.NULL, None)


def classify(value: Any) -> ColumnValue:
    """Classify a raw driver value when the destination type is unknown.

    Dates become ISO-8601 text, dicts and lists become JSON text, everything
    unrecognised falls back to ``str()``.
    """
    if value is None:
        return NULL
    # bool before int: bool is an int subclass.
    if isinstance(value, bool):
        return ColumnValue(ValueKind.BOOL, value)
    if isinstance(value, (int, float, Decimal)):
        return ColumnValue(ValueKind.NUMBER, value)
    if isinstance(value, str):
        return ColumnValue(ValueKind.TEXT, value)
    if isinstance(value, (datetime, date)):
        return ColumnValue(ValueKind.TIMESTAMP, value.isoformat())
    if isinstance(value, time):
        return ColumnValue(ValueKind.TEXT, value.isoformat())
    if isinstance(value, (dict, list)):
        return ColumnValue(ValueKind.JSON, json.dumps(value, default=str))
    if isinstance(value, (bytes, bytearray, memoryview)):
        return ColumnValue(ValueKind.BINARY, bytes(value))
    return ColumnValue(ValueKind.TEXT, str(value))


def _json_text(value: Any) -> str:
    # Text that already parses as JSON is kept; psycopg2 hands back decoded
    # jsonb, so other strings are scalar JSON strings and need encoding.
    if isinstance(value, str):
        try:
            json.loads(value)
        except ValueError:
            return json.dumps(value)
        return value
    return json.dumps(value, default=str)


def typed_value(value: Any, kind: ValueKind) -> ColumnValue:
    """Build the value for a column whose destination kind is known."""
    if value is None:
        return NULL
    if kind is ValueKind.JSON:
        return ColumnValue(ValueKind.JSON, _json_text(value))
    if kind is ValueKind.ARRAY:
        return ColumnValue(ValueKind.ARRAY, list(value) if isinstance(value, (list, tuple)) else value)
    if kind is ValueKind.BOOL and isinstance(value, int):
        return ColumnValue(ValueKind.BOOL, bool(value))
    return ColumnValue(kind, classify(value).value)


def prepare_row(
    row: dict[str, Any],
    *,
    drop_nulls: bool = True,
    column_kinds: dict[str, ValueKind] | None = None,
) -> dict[str, ColumnValue]:
    """Turn every column of *row* into a ``ColumnValue``, optionally leaving out NULLs.

    *column_kinds* maps destination column names to their kinds; columns not in
    it are classified from the value.
    """
    kinds = column_kinds or {}
    prepared = {}
    for column, raw in row.items():
        kind = kinds.get(column)
        value = typed_value(raw, kind) if kind is not None else classify(raw)
        if drop_nulls and value.kind is ValueKind.NULL:
            continue
        prepared[column] = value
    return prepared
