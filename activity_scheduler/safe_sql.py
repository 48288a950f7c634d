"""
Centralized SQL construction with validated identifiers.

Table and column names are validated against _SAFE_IDENTIFIER_RE before
interpolation. Values are always passed as parameterized ? and never
interpolated.

SQLite does not support parameterized identifiers (? works only for values),
so every f-string here is a validated-identifier interpolation.
"""

# ruff: noqa: S608

from __future__ import annotations

import re

_SAFE_IDENTIFIER_RE = re.compile(r"^[a-zA-Z_][a-zA-Z0-9_]*$")


def _validate(name: str) -> str:
    """Return name unchanged if it is a safe SQL identifier; raise ValueError otherwise."""
    if not _SAFE_IDENTIFIER_RE.match(name):
        raise ValueError(f"Invalid SQL identifier: {name!r}")
    return name


def validate_identifier(name: str) -> str:
    return _validate(name)


def select(
    table: str,
    columns: str = "*",
    where: str | None = None,
    order_by: str | None = None,
) -> str:
    """Build SELECT with validated table name.

    *where* is a raw WHERE clause without the keyword (e.g. ``"id = ?"``)
    and must use ``?`` for all values.
    """
    sql = f"SELECT {columns} FROM {_validate(table)}"
    if where:
        sql += f" WHERE {where}"
    if order_by:
        sql += f" ORDER BY {order_by}"
    return sql


def insert_or_replace(table: str, columns: list[str]) -> str:
    """Build INSERT OR REPLACE with validated table+column names."""
    _validate(table)
    for col in columns:
        _validate(col)
    cols = ",".join(columns)
    placeholders = ",".join(["?" for _ in columns])
    return f"INSERT OR REPLACE INTO {table} ({cols}) VALUES ({placeholders})"


def update(table: str, set_columns: list[str], where: str = "id = ?") -> str:
    """Build UPDATE SET with validated table+column names."""
    _validate(table)
    for col in set_columns:
        _validate(col)
    sets = ",".join(f"{col} = ?" for col in set_columns)
    return f"UPDATE {table} SET {sets} WHERE {where}"


def in_placeholders(count: int) -> str:
    """Return ``?,?,?`` for use in ``IN (...)`` clauses."""
    if count <= 0:
        raise ValueError(f"IN clause needs at least 1 placeholder, got {count}")
    return ",".join("?" for _ in range(count))


def where_and(conditions: list[str]) -> str:
    """Join conditions with AND. Returns empty string if no conditions."""
    if not conditions:
        return ""
    return " AND ".join(conditions)
