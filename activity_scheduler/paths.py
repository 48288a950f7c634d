"""
Filesystem locations for the scheduler.

Everything the scheduler reads or writes is resolved here:
- config/scheduler.yaml inside the project (ACTIVITY_SCHEDULER_CONFIG overrides)
- the SQLite task store under the app home (ACTIVITY_SCHEDULER_DB overrides)

The app home defaults to ~/.activity_scheduler (ACTIVITY_SCHEDULER_HOME overrides).
"""

from __future__ import annotations

import os
from pathlib import Path

APP_ENV_HOME = "ACTIVITY_SCHEDULER_HOME"
APP_ENV_DB = "ACTIVITY_SCHEDULER_DB"
APP_ENV_CONFIG = "ACTIVITY_SCHEDULER_CONFIG"


def project_root() -> Path:
    """
    Repository/project root directory.
    Contains activity_scheduler/, api/, cli/, config/.
    """
    return Path(__file__).parent.parent.resolve()


def app_home() -> Path:
    """
    User-writable home for the scheduler.
    Override with ACTIVITY_SCHEDULER_HOME.
    """
    if os.environ.get(APP_ENV_HOME):
        return Path(os.environ[APP_ENV_HOME]).expanduser().resolve()
    return (Path.home() / ".activity_scheduler").resolve()


def config_path() -> Path:
    """
    Scheduler config file.

    Resolution order:
    1. ACTIVITY_SCHEDULER_CONFIG env var (explicit override)
    2. <project_root>/config/scheduler.yaml (default)
    """
    if os.environ.get(APP_ENV_CONFIG):
        return Path(os.environ[APP_ENV_CONFIG]).expanduser().resolve()
    return project_root() / "config" / "scheduler.yaml"


def db_path() -> Path:
    """
    Canonical task store path.

    Resolution order:
    1. ACTIVITY_SCHEDULER_DB env var (explicit override)
    2. ~/.activity_scheduler/data/tasks.db (default)
    """
    if os.environ.get(APP_ENV_DB):
        return Path(os.environ[APP_ENV_DB]).expanduser().resolve()
    return app_home() / "data" / "tasks.db"
