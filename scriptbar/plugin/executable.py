"""Executable plugin: one script run on a schedule, with observable output."""

from __future__ import annotations

import os
import time
from datetime import datetime
from pathlib import Path
from threading import RLock
from typing import Callable

from scriptbar import __version__
from scriptbar.plugin.base import (
    LOADING_CONTENT,
    DebugEventKind,
    DebugInfo,
    PluginContext,
    PluginState,
    RefreshReason,
)
from scriptbar.plugin.metadata import PluginMetadata, read_plugin_metadata
from scriptbar.runner.errors import InvocationError
from scriptbar.scheduler.clock import TimerHandle
from scriptbar.scheduler.queue import InvocationTask
from scriptbar.scheduler.schedule import (
    NEVER_INTERVAL,
    ScheduleMode,
    compute_schedule,
    schedule_token_from_filename,
)
from scriptbar.utils.logging import get_logger
from scriptbar.utils.monitoring import record_invocation, record_refresh

logger = get_logger(__name__)

ContentCallback = Callable[["str | None"], None]


class ExecutablePlugin:
    """
    A script in the plugin directory, run on a timer or on demand.

    Scheduling: a repeating timer at ``update_interval`` seconds, unless the
    metadata supplies an absolute ``next_fire_time``, in which case a one-shot
    timer fires once at that time and the schedule is derived again afterwards.
    At most one timer is armed and at most one invocation is in flight.

    Output: ``content`` is what presentation layers display; subscribers are
    called whenever it changes to a different value. ``last_output`` keeps the
    last successful stdout, ``error`` the last failure.

    Example:
        >>> plugin = ExecutablePlugin("plugins/cpu.5s.sh", context)
        >>> unsubscribe = plugin.subscribe(print)
        >>> plugin.start()
    """

    def __init__(
        self,
        path: str | Path,
        context: PluginContext,
        schedule_token: str | None = None,
    ) -> None:
        if not str(path):
            raise ValueError("ExecutablePlugin requires a source path")
        self.file = Path(path)
        self.id = self.file.name
        self.name = self.id.split(".")[0]
        self.context = context
        self.schedule_token = schedule_token if schedule_token is not None else schedule_token_from_filename(self.id)

        self.update_interval: float = NEVER_INTERVAL
        self.next_fire_time: datetime | None = None
        self.metadata: PluginMetadata | None = None
        self.run_in_shell = True
        self.state = PluginState.LOADING if context.prefs.is_enabled(self.id) else PluginState.DISABLED
        self.last_output: str | None = None
        self.last_updated: datetime | None = None
        self.error: InvocationError | None = None
        self.debug_info = DebugInfo(context.max_debug_events)
        self.operation: InvocationTask | None = None

        self._content: str | None = LOADING_CONTENT
        self._subscribers: list[ContentCallback] = []
        self._timer: TimerHandle | None = None
        self._consumed_fire_time: datetime | None = None
        self._refresh_reason = RefreshReason.FIRST_LAUNCH
        self._terminated = False
        self._lock = RLock()

        self.refresh_metadata()
        self._create_support_dirs()
        logger.info("plugin_initialized", **self.describe())

    # -- observable output -------------------------------------------------

    @property
    def content(self) -> str | None:
        return self._content

    @content.setter
    def content(self, value: str | None) -> None:
        with self._lock:
            if value == self._content:
                return
            self._content = value
            subscribers = list(self._subscribers)
        for callback in subscribers:
            try:
                callback(value)
            except Exception as e:
                logger.exception("plugin_subscriber_error", plugin_id=self.id, error=str(e))

    def subscribe(self, callback: ContentCallback) -> Callable[[], None]:
        """Register a content-change callback. Returns a function that unregisters it."""
        with self._lock:
            self._subscribers.append(callback)

        def unsubscribe() -> None:
            with self._lock:
                if callback in self._subscribers:
                    self._subscribers.remove(callback)

        return unsubscribe

    # -- lifecycle ---------------------------------------------------------

    @property
    def enabled(self) -> bool:
        return self.context.prefs.is_enabled(self.id)

    @property
    def timer_armed(self) -> bool:
        with self._lock:
            return self._timer is not None and not self._timer.cancelled

    def start(self) -> None:
        self.refresh(reason=RefreshReason.FIRST_LAUNCH)

    def terminate(self) -> None:
        """Stop scheduling for good: the source was removed or the host is shutting down."""
        with self._lock:
            self._terminated = True
            self.disable_timer()
            if self.operation is not None:
                self.operation.cancel()
        logger.info("plugin_terminated", plugin_id=self.id)

    def disable(self) -> None:
        with self._lock:
            self.state = PluginState.DISABLED
            self.disable_timer()
            if self.operation is not None:
                self.operation.cancel()
        self.context.prefs.disable(self.id)
        logger.info("plugin_disabled", plugin_id=self.id)

    def enable(self) -> None:
        self.context.prefs.enable(self.id)
        logger.info("plugin_enabled", plugin_id=self.id)
        self.refresh(reason=RefreshReason.MANUAL)

    def refresh(self, reason: RefreshReason = RefreshReason.MANUAL) -> None:
        """Drop the pending run and timer, re-read metadata and queue a fresh run."""
        if not self.enabled:
            logger.info("plugin_refresh_skipped_disabled", plugin_id=self.id)
            return
        if self._terminated:
            logger.debug("plugin_refresh_skipped_terminated", plugin_id=self.id)
            return
        logger.info("plugin_refresh_requested", plugin_id=self.id, reason=reason.value)
        self.debug_info.add_event(DebugEventKind.REFRESH, f"Requesting refresh ({reason.value})")
        record_refresh(self.id, reason.value)
        with self._lock:
            self.disable_timer()
            if self.operation is not None:
                self.operation.cancel()
            self.refresh_metadata()
            self._refresh_reason = reason
            self.operation = self.context.queue.submit(self)

    def refresh_metadata(self) -> None:
        """Re-read metadata and derive the schedule from it and the filename token."""
        now = self.context.clock.now()
        reader = self.context.metadata_reader or read_plugin_metadata
        metadata = reader(self.file, now)
        next_fire_time = metadata.next_date
        # A fire time that has already been consumed must not be armed again
        if (
            next_fire_time is not None
            and self._consumed_fire_time is not None
            and next_fire_time <= self._consumed_fire_time
        ):
            next_fire_time = None
        schedule = compute_schedule(self.schedule_token, next_fire_time)
        with self._lock:
            self.metadata = metadata
            if metadata.run_in_shell is not None:
                self.run_in_shell = metadata.run_in_shell
            if schedule.mode == ScheduleMode.ABSOLUTE:
                self.next_fire_time = schedule.at
            else:
                self.next_fire_time = None
                self.update_interval = schedule.seconds

    # -- timers ------------------------------------------------------------

    def enable_timer(self) -> None:
        """Arm the plugin's timer unless one is already armed."""
        with self._lock:
            if self._terminated or not self.enabled:
                return
            if self.timer_armed:
                return
            if self.next_fire_time is not None:
                self._timer = self.context.clock.call_at(self.next_fire_time, self._scheduled_content_update)
                logger.debug("plugin_timer_armed", plugin_id=self.id, fire_at=self.next_fire_time.isoformat())
                return
            self._timer = self.context.clock.call_every(self.update_interval, self._timer_fired)
            logger.debug("plugin_timer_armed", plugin_id=self.id, interval=self.update_interval)

    def disable_timer(self) -> None:
        with self._lock:
            if self._timer is not None:
                self._timer.cancel()
                self._timer = None

    def _timer_fired(self) -> None:
        with self._lock:
            if self._terminated or not self.enabled:
                return
            self._refresh_reason = RefreshReason.SCHEDULE
            record_refresh(self.id, RefreshReason.SCHEDULE.value)
            self.operation = self.context.queue.submit(self)

    def _scheduled_content_update(self) -> None:
        with self._lock:
            self._timer = None
            self._consumed_fire_time = self.next_fire_time
            self.next_fire_time = None
        self.refresh(reason=RefreshReason.SCHEDULE)

    # -- invocation --------------------------------------------------------

    @property
    def cache_dir(self) -> Path | None:
        if self.context.cache_dir is None:
            return None
        return Path(self.context.cache_dir) / self.id

    @property
    def data_dir(self) -> Path | None:
        if self.context.data_dir is None:
            return None
        return Path(self.context.data_dir) / self.id

    def _create_support_dirs(self) -> None:
        for directory in (self.cache_dir, self.data_dir):
            if directory is None:
                continue
            try:
                directory.mkdir(parents=True, exist_ok=True)
            except OSError as e:
                logger.warning("plugin_support_dir_failed", plugin_id=self.id, path=str(directory), error=str(e))

    @property
    def environment(self) -> dict[str, str]:
        """Environment the script runs with: the base environment plus SCRIPTBAR_* variables."""
        base = self.context.base_env if self.context.base_env is not None else os.environ
        env = dict(base)
        env.update(
            {
                "SCRIPTBAR_VERSION": __version__,
                "SCRIPTBAR_PLUGINS_PATH": str(self.context.plugins_dir or self.file.parent),
                "SCRIPTBAR_PLUGIN_PATH": str(self.file),
                "SCRIPTBAR_PLUGIN_REFRESH_REASON": self._refresh_reason.value,
            }
        )
        if self.cache_dir is not None:
            env["SCRIPTBAR_PLUGIN_CACHE_PATH"] = str(self.cache_dir)
        if self.data_dir is not None:
            env["SCRIPTBAR_PLUGIN_DATA_PATH"] = str(self.data_dir)
        return env

    def invoke(self) -> str | None:
        """
        Run the script once, synchronously, and record the outcome.

        Returns stdout on success and None on failure. Invocation errors are
        captured into ``state`` and ``error``; they are never raised.
        """
        self.last_updated = self.context.clock.now()
        start = time.perf_counter()
        try:
            out = self.context.runner.run(self.file, env=self.environment, use_shell_wrapper=self.run_in_shell)
        except InvocationError as e:
            logger.error("plugin_invoke_failed", plugin_id=self.id, path=str(self.file), error=e.message)
            if e.raw_stderr and e.raw_stderr.strip() != e.message:
                logger.error("plugin_error_output", plugin_id=self.id, stderr=e.raw_stderr)
            with self._lock:
                self.error = e
                if self.enabled:
                    self.state = PluginState.FAILED
            self.debug_info.add_event(DebugEventKind.CONTENT_UPDATE_ERROR, e.message)
            record_invocation(self.id, "failure", time.perf_counter() - start)
            return None

        with self._lock:
            self.error = None
            self.last_output = out.stdout
            if self.enabled:
                self.state = PluginState.SUCCESS
        logger.info("plugin_invoke_succeeded", plugin_id=self.id, duration_seconds=round(out.duration_seconds, 3))
        self.debug_info.add_event(DebugEventKind.CONTENT_UPDATE, out.stdout)
        if out.stderr:
            self.debug_info.add_event(DebugEventKind.CONTENT_UPDATE_ERROR, out.stderr)
            logger.warning("plugin_stderr_output", plugin_id=self.id, stderr=out.stderr)
        record_invocation(self.id, "success", out.duration_seconds)
        return out.stdout

    # -- display -----------------------------------------------------------

    def describe(self) -> dict[str, object]:
        return {
            "plugin_id": self.id,
            "name": self.name,
            "file": str(self.file),
            "interval": self.update_interval,
            "next_fire_time": self.next_fire_time.isoformat() if self.next_fire_time else None,
            "run_in_shell": self.run_in_shell,
            "state": self.state.value,
        }

    def __repr__(self) -> str:
        return f"ExecutablePlugin(id={self.id!r}, state={self.state.value})"
