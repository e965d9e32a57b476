"""Plugin host: discovers plugins and owns the clock, queue and registry they share."""

from __future__ import annotations

from concurrent.futures import Executor
from pathlib import Path
from typing import Any, Callable

from scriptbar.plugin.base import PluginContext
from scriptbar.plugin.executable import ExecutablePlugin
from scriptbar.plugin.registry import PluginRegistry
from scriptbar.plugin.source import DirectorySource, PluginSource
from scriptbar.runner.process import ProcessRunner
from scriptbar.scheduler.clock import APSchedulerClock, Clock, TimerHandle
from scriptbar.scheduler.queue import InvocationQueue
from scriptbar.utils.config import load_config
from scriptbar.utils.logging import get_logger
from scriptbar.utils.preferences import PreferencesStore

logger = get_logger(__name__)

ContentListener = Callable[[ExecutablePlugin, "str | None"], None]


class PluginHost:
    """
    Owns every plugin of one plugin directory.

    Plugins are created when their file appears (on ``load_plugins()`` or a
    periodic rescan) and terminated when it disappears or the host shuts down.
    Content listeners receive ``(plugin, content)`` for every plugin.

    Example:
        >>> host = PluginHost(load_config())
        >>> host.add_listener(lambda plugin, content: print(plugin.name, content))
        >>> host.start()
    """

    def __init__(
        self,
        config: dict[str, Any] | None = None,
        *,
        clock: Clock | None = None,
        executor: Executor | None = None,
        runner: ProcessRunner | None = None,
        prefs: PreferencesStore | None = None,
    ) -> None:
        self.config = config or load_config()
        plugins_cfg = self.config.get("plugins", {})
        runner_cfg = self.config.get("runner", {})
        self.plugin_dir = Path(plugins_cfg.get("directory", "./plugins")).expanduser().resolve()
        self.rescan_seconds = float(plugins_cfg.get("rescan_seconds") or 0)

        self.clock = clock or APSchedulerClock()
        self.prefs = prefs or PreferencesStore(self.config.get("preferences", {}).get("path"))
        self.registry = PluginRegistry()
        self.queue = InvocationQueue(
            self.registry,
            executor=executor,
            max_workers=self.config.get("queue", {}).get("max_workers"),
        )
        self.runner = runner or ProcessRunner(
            shell=runner_cfg.get("shell"),
            timeout=runner_cfg.get("timeout_seconds"),
        )
        self.context = PluginContext(
            queue=self.queue,
            clock=self.clock,
            prefs=self.prefs,
            runner=self.runner,
            plugins_dir=self.plugin_dir,
            cache_dir=_optional_path(plugins_cfg.get("cache_dir")),
            data_dir=_optional_path(plugins_cfg.get("data_dir")),
            max_debug_events=int(self.config.get("debug", {}).get("max_events", 100)),
        )
        self.source = DirectorySource(
            self.plugin_dir,
            on_added=self._plugin_added,
            on_removed=self._plugin_removed,
        )
        self._listeners: list[ContentListener] = []
        self._unsubscribers: dict[str, Callable[[], None]] = {}
        self._rescan_timer: TimerHandle | None = None
        self._started = False

    @property
    def plugins(self) -> list[ExecutablePlugin]:
        return list(self.registry)

    def get(self, plugin_id: str) -> ExecutablePlugin | None:
        return self.registry.get(plugin_id)

    def add_listener(self, listener: ContentListener) -> None:
        """Receive content changes of all current and future plugins."""
        self._listeners.append(listener)
        for plugin in self.registry:
            self._attach(plugin, listener)

    def _attach(self, plugin: ExecutablePlugin, listener: ContentListener) -> None:
        unsubscribe = plugin.subscribe(lambda content: listener(plugin, content))
        previous = self._unsubscribers.get(plugin.id)

        def unsubscribe_all() -> None:
            unsubscribe()
            if previous is not None:
                previous()

        self._unsubscribers[plugin.id] = unsubscribe_all

    def load_plugins(self) -> list[ExecutablePlugin]:
        """Scan the plugin directory once; new plugins are started only if the host is running."""
        self.source.poll()
        return self.plugins

    def _plugin_added(self, src: PluginSource) -> None:
        plugin = ExecutablePlugin(src.path, self.context, schedule_token=src.schedule_token)
        self.registry.register(plugin)
        for listener in self._listeners:
            self._attach(plugin, listener)
        if self._started:
            plugin.start()

    def _plugin_removed(self, plugin_id: str) -> None:
        plugin = self.registry.unregister(plugin_id)
        if plugin is None:
            return
        unsubscribe = self._unsubscribers.pop(plugin_id, None)
        if unsubscribe is not None:
            unsubscribe()
        plugin.terminate()

    def start(self) -> None:
        """Start the clock, load plugins, run each once and begin rescanning."""
        if self._started:
            return
        self.clock.start()
        loaded_before = self.registry.ids()
        self._started = True
        self.load_plugins()
        for plugin_id in loaded_before:
            plugin = self.registry.get(plugin_id)
            if plugin is not None:
                plugin.start()
        if self.rescan_seconds > 0:
            self._rescan_timer = self.clock.call_every(self.rescan_seconds, self._rescan)
        logger.info("plugin_host_started", plugin_dir=str(self.plugin_dir), plugin_count=len(self.registry))

    def _rescan(self) -> None:
        try:
            self.source.poll()
        except OSError as e:
            logger.warning("plugin_rescan_failed", plugin_dir=str(self.plugin_dir), error=str(e))

    def refresh_all(self) -> None:
        for plugin in self.registry:
            plugin.refresh()

    def enable(self, plugin_id: str) -> bool:
        plugin = self.registry.get(plugin_id)
        if plugin is None:
            return False
        plugin.enable()
        return True

    def disable(self, plugin_id: str) -> bool:
        plugin = self.registry.get(plugin_id)
        if plugin is None:
            return False
        plugin.disable()
        return True

    def shutdown(self, wait: bool = True) -> None:
        """Cancel every timer and pending run; scripts already running finish on their own."""
        if self._rescan_timer is not None:
            self._rescan_timer.cancel()
            self._rescan_timer = None
        for plugin in self.registry:
            plugin.terminate()
        self.queue.shutdown(wait=wait)
        self.clock.shutdown()
        self._started = False
        logger.info("plugin_host_stopped")


def _optional_path(value: str | None) -> Path | None:
    if not value:
        return None
    return Path(value).expanduser().resolve()
