"""
Activity Scheduler - Configuration Store

Scheduler configuration with all tunable fields:
- Daily capacity and allocation lookahead
- Consolidation thresholds
- Project stage order
- Weekend days

Defaults live in code. config/scheduler.yaml (or ACTIVITY_SCHEDULER_CONFIG)
overrides them key by key.
"""

import copy
import logging
from pathlib import Path
from typing import Any

import yaml

from activity_scheduler import paths

logger = logging.getLogger(__name__)

DEFAULT_STAGE_ORDER = [
    "Concepção",
    "Estudo Preliminar",
    "Ante-Projeto",
    "Projeto Básico",
    "Projeto Executivo",
    "Liberado para Obra",
]


def _default_config() -> dict:
    """Default configuration."""
    return {
        "version": 1,
        # ===== A) Allocation =====
        "scheduling": {
            "daily_capacity": 8.0,
            "max_day_steps": 365,
        },
        # ===== B) Consolidation =====
        "consolidation": {
            "utilization_threshold": 0.7,
            "min_entry_hours": 0.1,
        },
        # ===== C) Stage gate =====
        "stages": {
            "order": list(DEFAULT_STAGE_ORDER),
        },
        # ===== D) Calendar =====
        "calendar": {
            # date.weekday(): Monday=0 ... Sunday=6
            "weekend_days": [5, 6],
        },
    }


def _merge(base: dict, override: dict) -> dict:
    """Recursively merge override into a copy of base."""
    merged = copy.deepcopy(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def load_config(config_path: Path | None = None) -> dict:
    """Load configuration: defaults overlaid with the YAML file, if present."""
    if config_path is None:
        config_path = paths.config_path()

    config = _default_config()
    if not config_path.exists():
        logger.debug("Scheduler config not found at %s, using defaults", config_path)
        return config

    try:
        with open(config_path, encoding="utf-8") as f:
            override = yaml.safe_load(f) or {}
    except (yaml.YAMLError, OSError) as exc:
        logger.error("Failed to load scheduler config %s: %s", config_path, exc)
        return config

    if not isinstance(override, dict):
        logger.error("Scheduler config %s must be a mapping, got %s", config_path, type(override).__name__)
        return config

    return _merge(config, override)


def get(path: str, default: Any = None, config: dict | None = None) -> Any:
    """
    Get a config value by dot-separated path.

    Example: get("scheduling.daily_capacity")
    """
    value = config if config is not None else load_config()

    for part in path.split("."):
        if isinstance(value, dict) and part in value:
            value = value[part]
        else:
            return default

    return value


def get_daily_capacity() -> float:
    return float(get("scheduling.daily_capacity", 8.0))


def get_stage_order() -> list[str]:
    return list(get("stages.order", DEFAULT_STAGE_ORDER))


def validate_config(config: dict) -> tuple[bool, list[str]]:
    """Validate configuration structure and values."""
    errors = []

    for key in ["scheduling", "consolidation", "stages", "calendar"]:
        if key not in config:
            errors.append(f"Missing required key: {key}")

    capacity = get("scheduling.daily_capacity", config=config)
    if not isinstance(capacity, int | float) or capacity <= 0:
        errors.append(f"scheduling.daily_capacity must be > 0, got {capacity!r}")

    steps = get("scheduling.max_day_steps", config=config)
    if not isinstance(steps, int) or steps <= 0:
        errors.append(f"scheduling.max_day_steps must be a positive integer, got {steps!r}")

    threshold = get("consolidation.utilization_threshold", config=config)
    if not isinstance(threshold, int | float) or not (0 < threshold <= 1):
        errors.append(f"consolidation.utilization_threshold must be in (0, 1], got {threshold!r}")

    order = get("stages.order", config=config)
    if not isinstance(order, list) or not order:
        errors.append("stages.order must be a non-empty list")
    elif len(set(order)) != len(order):
        errors.append("stages.order contains duplicate stage names")

    weekend = get("calendar.weekend_days", config=config)
    if not isinstance(weekend, list) or any(d not in range(7) for d in weekend):
        errors.append(f"calendar.weekend_days must list weekdays 0-6, got {weekend!r}")

    return len(errors) == 0, errors
