"""
Test configuration - ensures repo root is in sys.path + isolation guards.

This allows tests to import from top-level packages (activity_scheduler, api, cli).
Every test gets its own ACTIVITY_SCHEDULER_HOME so nothing touches the
user's real task store, and the built-in config so a local
config/scheduler.yaml edit cannot change test outcomes.
"""

import logging
import sys
from pathlib import Path

import pytest

# Add repo root to sys.path so tests can import activity_scheduler.*, api.*, cli.*
REPO_ROOT = Path(__file__).parent.parent
if str(REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(REPO_ROOT))

from activity_scheduler import task_store as task_store_module  # noqa: E402
from activity_scheduler.models import Task  # noqa: E402
from activity_scheduler.task_store import SqliteTaskStore  # noqa: E402


@pytest.fixture(autouse=True)
def isolated_home(tmp_path, monkeypatch):
    """Point the app home, DB and config at a temp dir for every test."""
    home = tmp_path / "home"
    monkeypatch.setenv("ACTIVITY_SCHEDULER_HOME", str(home))
    monkeypatch.setenv("ACTIVITY_SCHEDULER_DB", str(home / "tasks.db"))
    monkeypatch.setenv("ACTIVITY_SCHEDULER_CONFIG", str(tmp_path / "missing.yaml"))
    task_store_module.reset_store()
    yield home
    task_store_module.reset_store()


@pytest.fixture(autouse=True)
def restore_logging():
    """configure_logging() replaces root handlers; undo it after each test."""
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    yield
    root.handlers[:] = handlers
    root.setLevel(level)


@pytest.fixture
def make_task():
    """Factory for tasks with sensible defaults."""

    def _make(id: str = "t1", **kwargs) -> Task:
        kwargs.setdefault("resource", "alice")
        kwargs.setdefault("project_id", "p1")
        if "allocation" in kwargs and "total_hours" not in kwargs:
            kwargs["total_hours"] = sum(kwargs["allocation"].values())
        return Task(id=id, **kwargs)

    return _make


@pytest.fixture
def store(tmp_path):
    """Empty SQLite task store in a temp dir."""
    return SqliteTaskStore(tmp_path / "tasks.db")
