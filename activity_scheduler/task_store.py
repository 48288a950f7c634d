"""
Task Store - Where tasks are read from and schedule changes are written to.

The engine only needs two operations from a store:
- list(filters) -> list[Task]
- update(id, partial) -> Task (raises TaskNotFound for unknown ids)

SqliteTaskStore is the bundled adapter.
"""

from __future__ import annotations

import json
import logging
import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Protocol

from activity_scheduler import paths, safe_sql
from activity_scheduler.models import Task, parse_allocation, parse_status
from activity_scheduler.workdays import to_key

logger = logging.getLogger(__name__)

TABLE = "tasks"

# stage has no declared type so ordinals stay integers and names stay text
_SCHEMA = f"""
CREATE TABLE IF NOT EXISTS {TABLE} (
    id TEXT PRIMARY KEY,
    resource TEXT,
    total_hours REAL NOT NULL DEFAULT 0,
    executed_hours REAL NOT NULL DEFAULT 0,
    allocation TEXT NOT NULL DEFAULT '{{}}',
    planned_start TEXT,
    planned_end TEXT,
    adjusted_start TEXT,
    adjusted_end TEXT,
    stage,
    project_id TEXT,
    document_id TEXT,
    status TEXT NOT NULL DEFAULT 'not_started',
    priority INTEGER NOT NULL DEFAULT 0,
    title TEXT NOT NULL DEFAULT ''
)
"""

COLUMNS = [
    "id",
    "resource",
    "total_hours",
    "executed_hours",
    "allocation",
    "planned_start",
    "planned_end",
    "adjusted_start",
    "adjusted_end",
    "stage",
    "project_id",
    "document_id",
    "status",
    "priority",
    "title",
]

# Fields callers may filter list() on
FILTERABLE = {"id", "resource", "project_id", "document_id", "status", "stage"}


class TaskNotFound(LookupError):
    """Raised when a task id does not exist in the store."""

    def __init__(self, task_id: str):
        super().__init__(f"Task not found: {task_id}")
        self.task_id = task_id


class TaskStore(Protocol):
    def list(self, filters: dict | None = None) -> list[Task]: ...

    def update(self, id: str, partial: dict) -> Task: ...


def _normalize_partial(partial: dict) -> dict:
    """Validate and normalize an update payload to column values."""
    values = {}
    for key, value in partial.items():
        if key == "id" or key not in COLUMNS:
            raise ValueError(f"Field cannot be updated: {key!r}")
        if key == "allocation":
            value = json.dumps(parse_allocation(value), sort_keys=True)
        elif key == "status":
            value = str(parse_status(value))
        elif key in ("planned_start", "planned_end", "adjusted_start", "adjusted_end"):
            value = to_key(value) if value else None
        values[key] = value
    return values


class SqliteTaskStore:
    """
    SQLite-backed task store.

    One connection per operation; commits on success.
    """

    def __init__(self, db_path: str | Path | None = None):
        self.db_path = str(db_path or paths.db_path())
        Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)
        logger.info("SqliteTaskStore initializing with DB: %s", self.db_path)
        with self._get_conn() as conn:
            conn.execute(_SCHEMA)

    @contextmanager
    def _get_conn(self):
        conn = sqlite3.connect(self.db_path)
        conn.row_factory = sqlite3.Row
        try:
            yield conn
            conn.commit()
        finally:
            conn.close()

    def _row_to_task(self, row: sqlite3.Row) -> Task:
        return Task.from_dict(dict(row))

    def insert(self, task: Task) -> str:
        """Insert or replace a task. Returns ID."""
        data = task.to_dict()
        values = [
            json.dumps(data[col], sort_keys=True) if isinstance(data[col], dict | list) else data[col]
            for col in COLUMNS
        ]
        with self._get_conn() as conn:
            conn.execute(safe_sql.insert_or_replace(TABLE, COLUMNS), values)
        return task.id

    def insert_many(self, tasks: list[Task]) -> int:
        """Insert multiple tasks. Returns count."""
        for task in tasks:
            self.insert(task)
        return len(tasks)

    def get(self, id: str) -> Task:
        """
        Get a single task by ID.

        Raises:
            TaskNotFound: If no task has this ID
        """
        with self._get_conn() as conn:
            row = conn.execute(safe_sql.select(TABLE, where="id = ?"), [id]).fetchone()
        if row is None:
            raise TaskNotFound(id)
        return self._row_to_task(row)

    def list(self, filters: dict | None = None) -> list[Task]:
        """
        List tasks, optionally filtered by exact field values.

        A list/tuple/set filter value matches any of its members.
        """
        conditions = []
        params: list[Any] = []
        for key, value in (filters or {}).items():
            if key not in FILTERABLE:
                raise ValueError(f"Cannot filter on field: {key!r}")
            safe_sql.validate_identifier(key)
            if isinstance(value, list | tuple | set):
                if not value:
                    return []
                conditions.append(f"{key} IN ({safe_sql.in_placeholders(len(value))})")
                params.extend(value)
            else:
                conditions.append(f"{key} = ?")
                params.append(value)

        sql = safe_sql.select(TABLE, where=safe_sql.where_and(conditions) or None, order_by="id")
        with self._get_conn() as conn:
            rows = conn.execute(sql, params).fetchall()
        return [self._row_to_task(row) for row in rows]

    def list_group(self, task: Task) -> list[Task]:
        """Tasks sharing task's document (or, without a document, its project)."""
        if task.document_id:
            return self.list({"document_id": task.document_id})
        if task.project_id is None:
            return [t for t in self.list() if not t.document_id and t.project_id is None]
        return [t for t in self.list({"project_id": task.project_id}) if not t.document_id]

    def update(self, id: str, partial: dict) -> Task:
        """
        Update fields of one task. Returns the updated task.

        Raises:
            TaskNotFound: If no task has this ID
            ValueError: If partial names an unknown field or carries bad values
        """
        values = _normalize_partial(partial)
        if not values:
            return self.get(id)

        with self._get_conn() as conn:
            sql = safe_sql.update(TABLE, list(values.keys()))
            result = conn.execute(sql, [*values.values(), id])
            if result.rowcount == 0:
                raise TaskNotFound(id)

        logger.debug("Task %s updated: %s", id, ", ".join(values))
        return self.get(id)

    def count(self) -> int:
        with self._get_conn() as conn:
            row = conn.execute(safe_sql.select(TABLE, columns="COUNT(*) as c")).fetchone()
        return row["c"] if row else 0


# Singleton accessor
_store: SqliteTaskStore | None = None


def get_store(db_path: str | Path | None = None) -> SqliteTaskStore:
    """Get the process-wide task store."""
    global _store
    if _store is None:
        _store = SqliteTaskStore(db_path)
    return _store


def reset_store() -> None:
    """Drop the cached store (next get_store() reopens)."""
    global _store
    _store = None
