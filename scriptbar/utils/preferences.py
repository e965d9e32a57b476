"""YAML-backed preferences: which plugins the user has disabled."""

from __future__ import annotations

from pathlib import Path
from threading import Lock

import yaml

from scriptbar.utils.logging import get_logger

logger = get_logger(__name__)


class PreferencesStore:
    """
    Disabled-plugin set, persisted to a YAML file when a path is given.

    Passed explicitly to the host and to every plugin; there is no module-level
    instance. With ``path=None`` the store lives in memory only (tests, `once`).

    Example:
        >>> prefs = PreferencesStore()
        >>> prefs.disable("cpu.5s.sh")
        >>> prefs.is_enabled("cpu.5s.sh")
        False
    """

    def __init__(self, path: str | Path | None = None) -> None:
        self.path = Path(path) if path is not None else None
        self._disabled: set[str] = set()
        self._lock = Lock()
        self._load()

    def _load(self) -> None:
        if self.path is None or not self.path.exists():
            return
        try:
            with open(self.path, encoding="utf-8") as f:
                data = yaml.safe_load(f) or {}
        except (OSError, yaml.YAMLError) as e:
            logger.warning("preferences_load_failed", path=str(self.path), error=str(e))
            return
        self._disabled = set(data.get("disabled_plugins") or [])

    def _save(self) -> None:
        if self.path is None:
            return
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with open(self.path, "w", encoding="utf-8") as f:
            yaml.safe_dump({"disabled_plugins": sorted(self._disabled)}, f, default_flow_style=False)

    @property
    def disabled_plugins(self) -> frozenset[str]:
        with self._lock:
            return frozenset(self._disabled)

    def is_enabled(self, plugin_id: str) -> bool:
        with self._lock:
            return plugin_id not in self._disabled

    def disable(self, plugin_id: str) -> None:
        with self._lock:
            if plugin_id in self._disabled:
                return
            self._disabled.add(plugin_id)
            self._save()

    def enable(self, plugin_id: str) -> None:
        with self._lock:
            if plugin_id not in self._disabled:
                return
            self._disabled.discard(plugin_id)
            self._save()
