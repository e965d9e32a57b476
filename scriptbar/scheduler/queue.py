"""Per-host invocation queue: serialized per plugin, parallel across plugins."""

from __future__ import annotations

from concurrent.futures import Executor, ThreadPoolExecutor
from threading import Condition, Event, Lock
from typing import TYPE_CHECKING

from scriptbar.utils.logging import get_logger

if TYPE_CHECKING:
    from scriptbar.plugin.executable import ExecutablePlugin
    from scriptbar.plugin.registry import PluginRegistry

logger = get_logger(__name__)


class InvocationTask:
    """
    One requested invocation of a plugin.

    Holds the plugin id rather than the plugin; if the plugin has been removed
    from the registry by the time the task starts, the task does nothing.
    Cancellation is cooperative and only effective before the task starts.
    """

    def __init__(self, plugin_id: str, registry: "PluginRegistry") -> None:
        self.plugin_id = plugin_id
        self._registry = registry
        self._lock = Lock()
        self._cancelled = False
        self._started = False
        self._done = Event()

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    @property
    def started(self) -> bool:
        return self._started

    @property
    def done(self) -> bool:
        return self._done.is_set()

    def cancel(self) -> bool:
        """Mark the task cancelled. Returns True if it had not started yet."""
        with self._lock:
            self._cancelled = True
            return not self._started

    def wait(self, timeout: float | None = None) -> bool:
        return self._done.wait(timeout)

    def _begin(self) -> bool:
        with self._lock:
            if self._cancelled:
                return False
            self._started = True
            return True

    def main(self) -> None:
        try:
            if not self._begin():
                logger.debug("invocation_skipped_cancelled", plugin_id=self.plugin_id)
                return
            plugin = self._registry.get(self.plugin_id)
            if plugin is None:
                logger.debug("invocation_skipped_plugin_removed", plugin_id=self.plugin_id)
                return
            plugin.content = plugin.invoke()
            if self._registry.get(self.plugin_id) is plugin:
                plugin.enable_timer()
        finally:
            self._done.set()


class InvocationQueue:
    """
    Runs invocation tasks on an executor, at most one per plugin at a time.

    ``submit`` cancels the plugin's task that is still waiting to start (if any)
    and queues the new one behind the running task, so per plugin there is at
    most one task running and one waiting. Plugins never wait on each other
    beyond the executor's worker limit.

    Example:
        >>> queue = InvocationQueue(registry, max_workers=4)
        >>> task = queue.submit(plugin)
        >>> task.wait(10)
    """

    def __init__(
        self,
        registry: "PluginRegistry",
        executor: Executor | None = None,
        max_workers: int | None = None,
    ) -> None:
        self._registry = registry
        self._executor = executor or ThreadPoolExecutor(
            max_workers=max_workers, thread_name_prefix="plugin_invoke"
        )
        self._lock = Lock()
        self._idle = Condition(self._lock)
        self._running: dict[str, InvocationTask] = {}
        self._waiting: dict[str, InvocationTask] = {}
        self._closed = False

    def submit(self, plugin: "ExecutablePlugin") -> InvocationTask:
        """Replace any not-yet-started request for ``plugin`` with a fresh one."""
        task = InvocationTask(plugin.id, self._registry)
        with self._lock:
            if self._closed:
                task.cancel()
                logger.warning("invocation_rejected_queue_closed", plugin_id=plugin.id)
                return task
            waiting = self._waiting.pop(plugin.id, None)
            if waiting is not None:
                waiting.cancel()
            active = self._running.get(plugin.id)
            if active is None:
                self._running[plugin.id] = task
                dispatch = True
            else:
                # A dispatched task that has not started yet is superseded too
                active.cancel()
                self._waiting[plugin.id] = task
                dispatch = False
        if dispatch:
            self._dispatch(task)
        logger.debug("invocation_submitted", plugin_id=plugin.id, queued=not dispatch)
        return task

    def _dispatch(self, task: InvocationTask) -> None:
        self._executor.submit(self._run, task)

    def _run(self, task: InvocationTask) -> None:
        try:
            task.main()
        except Exception as e:
            logger.exception("invocation_task_error", plugin_id=task.plugin_id, error=str(e))
        finally:
            self._finish(task)

    def _finish(self, task: InvocationTask) -> None:
        with self._lock:
            if self._running.get(task.plugin_id) is task:
                del self._running[task.plugin_id]
            following = self._waiting.pop(task.plugin_id, None)
            if self._closed:
                following = None
            if following is not None:
                self._running[task.plugin_id] = following
            if not self._running and not self._waiting:
                self._idle.notify_all()
        if following is not None:
            self._dispatch(following)

    def is_busy(self, plugin_id: str) -> bool:
        with self._lock:
            return plugin_id in self._running or plugin_id in self._waiting

    def wait_idle(self, timeout: float | None = None) -> bool:
        """Block until no task is running or waiting. Returns False on timeout."""
        with self._idle:
            return self._idle.wait_for(lambda: not self._running and not self._waiting, timeout)

    def shutdown(self, wait: bool = True) -> None:
        """Cancel waiting tasks and stop the executor; running scripts are not killed."""
        with self._lock:
            self._closed = True
            for task in self._waiting.values():
                task.cancel()
            for task in self._running.values():
                task.cancel()
        self._executor.shutdown(wait=wait)
        logger.info("invocation_queue_stopped")
