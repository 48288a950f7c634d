"""
Tests for the SQLite task store.
"""

import json
import sqlite3

import pytest

from activity_scheduler import task_store as task_store_module
from activity_scheduler.models import TaskStatus
from activity_scheduler.task_store import SqliteTaskStore, TaskNotFound


class TestInsertAndGet:
    def test_round_trip(self, store, make_task):
        task = make_task(
            "a",
            allocation={"2024-06-11": 8, "2024-06-12": 4},
            stage="Concepção",
            document_id="d1",
            title="Survey",
            priority=2,
        )
        store.insert(task)
        loaded = store.get("a")
        assert loaded == task

    def test_integer_stage_survives(self, store, make_task):
        store.insert(make_task("a", stage=2))
        assert store.get("a").stage == 2

    def test_allocation_stored_as_json(self, store, make_task):
        store.insert(make_task("a", allocation={"2024-06-11": 8}))
        conn = sqlite3.connect(store.db_path)
        raw = conn.execute("SELECT allocation FROM tasks WHERE id = 'a'").fetchone()[0]
        conn.close()
        assert json.loads(raw) == {"2024-06-11": 8}

    def test_unknown_id_raises(self, store):
        with pytest.raises(TaskNotFound):
            store.get("missing")

    def test_legacy_status_is_normalized(self, store):
        conn = sqlite3.connect(store.db_path)
        conn.execute("INSERT INTO tasks (id, resource, status) VALUES ('x', 'alice', 'em_andamento')")
        conn.commit()
        conn.close()
        assert store.get("x").status == TaskStatus.IN_PROGRESS


class TestList:
    def test_filters(self, store, make_task):
        store.insert_many(
            [
                make_task("a", resource="alice"),
                make_task("b", resource="bob"),
                make_task("c", resource="carol"),
            ]
        )
        assert [t.id for t in store.list()] == ["a", "b", "c"]
        assert [t.id for t in store.list({"resource": "bob"})] == ["b"]
        assert [t.id for t in store.list({"resource": ["alice", "carol"]})] == ["a", "c"]
        assert store.list({"resource": []}) == []

    def test_rejects_unknown_filter(self, store):
        with pytest.raises(ValueError):
            store.list({"title; DROP TABLE tasks": "x"})

    def test_list_group(self, store, make_task):
        store.insert_many(
            [
                make_task("d1", document_id="doc", project_id="p1"),
                make_task("d2", document_id="doc", project_id="p1"),
                make_task("p", project_id="p1"),
                make_task("q", project_id="p1"),
                make_task("other", project_id="p2"),
            ]
        )
        assert [t.id for t in store.list_group(store.get("d1"))] == ["d1", "d2"]
        assert [t.id for t in store.list_group(store.get("p"))] == ["p", "q"]


class TestUpdate:
    def test_partial_update(self, store, make_task):
        store.insert(make_task("a", allocation={"2024-06-03": 8}))
        updated = store.update(
            "a",
            {"allocation": {"2024-06-11": 8}, "adjusted_start": "2024-06-11", "adjusted_end": "2024-06-11"},
        )
        assert updated.allocation == {"2024-06-11": 8}
        assert updated.adjusted_end == "2024-06-11"
        # Planned dates are untouched
        assert updated.planned_end == "2024-06-03"

    def test_update_unknown_id_raises(self, store):
        with pytest.raises(TaskNotFound):
            store.update("missing", {"status": "done"})

    def test_update_rejects_unknown_field(self, store, make_task):
        store.insert(make_task("a"))
        with pytest.raises(ValueError):
            store.update("a", {"colour": "red"})

    def test_update_rejects_bad_status(self, store, make_task):
        store.insert(make_task("a"))
        with pytest.raises(ValueError):
            store.update("a", {"status": "finished-ish"})


class TestGetStore:
    def test_uses_env_db_path(self, isolated_home):
        store = task_store_module.get_store()
        assert store.db_path == str((isolated_home / "tasks.db").resolve())
        assert task_store_module.get_store() is store

    def test_explicit_path(self, tmp_path):
        store = SqliteTaskStore(tmp_path / "other.db")
        assert store.count() == 0
