"""Configuration loading from YAML and environment."""

from __future__ import annotations

import copy
import os
from pathlib import Path
from typing import Any

import yaml

_PROJECT_ROOT = Path(__file__).resolve().parent.parent.parent


def load_config(config_path: str | Path | None = None) -> dict[str, Any]:
    """
    Load host config from YAML file with optional env var overrides.

    Values missing from the file fall back to the defaults, section by section.

    Args:
        config_path: Path to scriptbar.yaml. Defaults to config/scriptbar.yaml.

    Returns:
        Nested config dict.

    Example:
        >>> cfg = load_config()
        >>> cfg["plugins"]["rescan_seconds"]
        5.0
    """
    path = get_config_path(config_path)
    config = _default_config()
    if path.exists():
        with open(path, encoding="utf-8") as f:
            loaded = yaml.safe_load(f) or {}
        _merge(config, loaded)
    # Env overrides
    if plugin_dir := os.getenv("SCRIPTBAR_PLUGIN_DIR"):
        config["plugins"]["directory"] = plugin_dir
    if shell := os.getenv("SCRIPTBAR_SHELL"):
        config["runner"]["shell"] = shell
    if max_workers := os.getenv("SCRIPTBAR_MAX_WORKERS"):
        config["queue"]["max_workers"] = int(max_workers)
    if level := os.getenv("LOG_LEVEL"):
        config["logging"]["level"] = level
    return config


def get_config_path(config_path: str | Path | None = None) -> Path:
    """Return the path to the config file used for load/save."""
    if config_path is None:
        config_path = os.getenv("SCRIPTBAR_CONFIG") or _PROJECT_ROOT / "config" / "scriptbar.yaml"
    return Path(config_path)


def save_config(config: dict[str, Any], config_path: str | Path | None = None) -> None:
    """Write config dict to YAML file."""
    path = get_config_path(config_path)
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w", encoding="utf-8") as f:
        yaml.safe_dump(config, f, default_flow_style=False, allow_unicode=True, sort_keys=False)


def _merge(base: dict[str, Any], override: dict[str, Any]) -> None:
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(base.get(key), dict):
            _merge(base[key], value)
        else:
            base[key] = value


_DEFAULTS: dict[str, Any] = {
    "plugins": {
        "directory": "./plugins",
        "rescan_seconds": 5.0,
        "cache_dir": "./data/cache",
        "data_dir": "./data/plugin_data",
    },
    "runner": {"shell": None, "timeout_seconds": None},
    "queue": {"max_workers": None},
    "debug": {"max_events": 100},
    "preferences": {"path": "./data/preferences.yaml"},
    "metrics": {"enabled": False, "port": 9090},
    "logging": {"level": "INFO", "json": False},
}


def _default_config() -> dict[str, Any]:
    """Default config when no file is present."""
    return copy.deepcopy(_DEFAULTS)
