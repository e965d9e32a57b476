"""Plugin state, debug events and the shared context plugins are built with."""

from __future__ import annotations

from collections import deque
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from threading import Lock
from typing import TYPE_CHECKING, Callable, Mapping

from pydantic import BaseModel, Field

if TYPE_CHECKING:
    from scriptbar.plugin.metadata import PluginMetadata
    from scriptbar.runner.process import ProcessRunner
    from scriptbar.scheduler.clock import Clock
    from scriptbar.scheduler.queue import InvocationQueue
    from scriptbar.utils.preferences import PreferencesStore

# Content shown while a plugin has not produced output yet
LOADING_CONTENT = "..."


class PluginState(str, Enum):
    LOADING = "Loading"
    SUCCESS = "Success"
    FAILED = "Failed"
    DISABLED = "Disabled"


class RefreshReason(str, Enum):
    """Why a plugin is being run; exported to the script's environment."""

    FIRST_LAUNCH = "FirstLaunch"
    SCHEDULE = "Schedule"
    MANUAL = "Manual"


class DebugEventKind(str, Enum):
    REFRESH = "Refresh"
    CONTENT_UPDATE = "ContentUpdate"
    CONTENT_UPDATE_ERROR = "ContentUpdateError"


class DebugEvent(BaseModel):
    """One entry of a plugin's debug log."""

    kind: DebugEventKind
    value: str = ""
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class DebugInfo:
    """
    Append-only, bounded debug log for a plugin.

    Oldest events are dropped once ``max_events`` is reached.
    """

    def __init__(self, max_events: int = 100) -> None:
        self._events: deque[DebugEvent] = deque(maxlen=max_events)
        self._lock = Lock()

    def add_event(self, kind: DebugEventKind, value: str = "") -> DebugEvent:
        event = DebugEvent(kind=kind, value=value)
        with self._lock:
            self._events.append(event)
        return event

    @property
    def events(self) -> list[DebugEvent]:
        with self._lock:
            return list(self._events)

    def clear(self) -> None:
        with self._lock:
            self._events.clear()


@dataclass
class PluginContext:
    """
    Collaborators shared by every plugin of one host.

    Passed explicitly to each plugin so nothing is read from module-level state.
    ``base_env`` of None means the host process environment.
    """

    queue: "InvocationQueue"
    clock: "Clock"
    prefs: "PreferencesStore"
    runner: "ProcessRunner"
    metadata_reader: Callable[[Path, datetime], "PluginMetadata"] | None = None
    plugins_dir: Path | None = None
    cache_dir: Path | None = None
    data_dir: Path | None = None
    base_env: Mapping[str, str] | None = None
    max_debug_events: int = 100
