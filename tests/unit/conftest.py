"""Shared fixtures: a manual clock, deterministic executors and a scripted runner."""

from __future__ import annotations

import os
from concurrent.futures import Executor, Future
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable

import pytest

from scriptbar.plugin.base import PluginContext
from scriptbar.plugin.executable import ExecutablePlugin
from scriptbar.plugin.registry import PluginRegistry
from scriptbar.runner.process import RunOutput
from scriptbar.scheduler.clock import ManualClock
from scriptbar.scheduler.queue import InvocationQueue
from scriptbar.utils.preferences import PreferencesStore

CLOCK_START = datetime(2024, 1, 1, 0, 0, 30, tzinfo=timezone.utc)


class DeferredExecutor(Executor):
    """Collects submitted work; nothing runs until run_pending() is called."""

    def __init__(self) -> None:
        self.pending: list[tuple[Future, Callable[..., Any], tuple, dict]] = []

    def submit(self, fn, /, *args, **kwargs):
        future: Future = Future()
        self.pending.append((future, fn, args, kwargs))
        return future

    def run_pending(self) -> int:
        ran = 0
        while self.pending:
            future, fn, args, kwargs = self.pending.pop(0)
            try:
                future.set_result(fn(*args, **kwargs))
            except Exception as e:
                future.set_exception(e)
            ran += 1
        return ran

    def shutdown(self, wait: bool = True, *, cancel_futures: bool = False) -> None:
        pass


class InlineExecutor(Executor):
    """Runs submitted work immediately on the calling thread."""

    def submit(self, fn, /, *args, **kwargs):
        future: Future = Future()
        try:
            future.set_result(fn(*args, **kwargs))
        except Exception as e:
            future.set_exception(e)
        return future

    def shutdown(self, wait: bool = True, *, cancel_futures: bool = False) -> None:
        pass


class ScriptedRunner:
    """Stands in for ProcessRunner: returns (or raises) queued results in order."""

    def __init__(self) -> None:
        self.calls: list[dict[str, Any]] = []
        self.results: list[RunOutput | Exception] = []
        self.default = RunOutput(stdout="ok\n")

    def run(self, path, env=None, use_shell_wrapper=True) -> RunOutput:
        self.calls.append({"path": Path(path), "env": dict(env or {}), "use_shell_wrapper": use_shell_wrapper})
        result = self.results.pop(0) if self.results else self.default
        if isinstance(result, Exception):
            raise result
        return result


@pytest.fixture
def clock() -> ManualClock:
    return ManualClock(start=CLOCK_START)


@pytest.fixture
def registry() -> PluginRegistry:
    return PluginRegistry()


@pytest.fixture
def executor() -> DeferredExecutor:
    return DeferredExecutor()


@pytest.fixture
def inline_executor() -> InlineExecutor:
    return InlineExecutor()


@pytest.fixture
def queue(registry: PluginRegistry, executor: DeferredExecutor) -> InvocationQueue:
    return InvocationQueue(registry, executor=executor)


@pytest.fixture
def runner() -> ScriptedRunner:
    return ScriptedRunner()


@pytest.fixture
def prefs() -> PreferencesStore:
    return PreferencesStore()


@pytest.fixture
def plugin_dir(tmp_path: Path) -> Path:
    directory = tmp_path / "plugins"
    directory.mkdir()
    return directory


@pytest.fixture
def context(queue, clock, prefs, runner, tmp_path: Path) -> PluginContext:
    return PluginContext(
        queue=queue,
        clock=clock,
        prefs=prefs,
        runner=runner,
        cache_dir=tmp_path / "cache",
        data_dir=tmp_path / "data",
        base_env={"PATH": os.environ.get("PATH", "/usr/bin:/bin")},
        max_debug_events=20,
    )


@pytest.fixture
def make_plugin(plugin_dir: Path, context: PluginContext, registry: PluginRegistry):
    """Write a plugin file, build the plugin and register it."""

    def _make(filename: str = "cpu.5s.sh", source: str = "#!/bin/sh\necho ok\n") -> ExecutablePlugin:
        path = plugin_dir / filename
        path.write_text(source, encoding="utf-8")
        plugin = ExecutablePlugin(path, context)
        registry.register(plugin)
        return plugin

    return _make
