"""Registry of loaded plugins, keyed by plugin id."""

from __future__ import annotations

from threading import Lock
from typing import TYPE_CHECKING, Iterator

from scriptbar.utils.logging import get_logger

if TYPE_CHECKING:
    from scriptbar.plugin.executable import ExecutablePlugin

logger = get_logger(__name__)


class PluginRegistry:
    """
    Thread-safe id -> plugin map.

    Invocation tasks look plugins up here by id instead of holding them, so a
    plugin removed from the registry is never invoked again.

    Example:
        >>> registry = PluginRegistry()
        >>> registry.register(plugin)
        >>> registry.get(plugin.id) is plugin
        True
    """

    def __init__(self) -> None:
        self._plugins: dict[str, "ExecutablePlugin"] = {}
        self._lock = Lock()

    def register(self, plugin: "ExecutablePlugin") -> None:
        """Add a plugin, replacing any plugin registered under the same id."""
        with self._lock:
            previous = self._plugins.get(plugin.id)
            self._plugins[plugin.id] = plugin
        if previous is not None and previous is not plugin:
            logger.warning("plugin_replaced", plugin_id=plugin.id)
            previous.terminate()

    def unregister(self, plugin_id: str) -> "ExecutablePlugin | None":
        """Remove a plugin by id. Returns the removed plugin, or None if unknown."""
        with self._lock:
            return self._plugins.pop(plugin_id, None)

    def get(self, plugin_id: str) -> "ExecutablePlugin | None":
        with self._lock:
            return self._plugins.get(plugin_id)

    def ids(self) -> list[str]:
        with self._lock:
            return sorted(self._plugins)

    def __contains__(self, plugin_id: object) -> bool:
        with self._lock:
            return plugin_id in self._plugins

    def __iter__(self) -> Iterator["ExecutablePlugin"]:
        with self._lock:
            plugins = [self._plugins[k] for k in sorted(self._plugins)]
        return iter(plugins)

    def __len__(self) -> int:
        with self._lock:
            return len(self._plugins)
