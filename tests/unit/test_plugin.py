"""Unit tests for ExecutablePlugin lifecycle, scheduling and output."""

from datetime import datetime, timedelta, timezone

import pytest

from scriptbar.plugin.base import LOADING_CONTENT, DebugEventKind, PluginState
from scriptbar.plugin.executable import ExecutablePlugin
from scriptbar.runner.errors import LaunchFailure, NonZeroExit
from scriptbar.runner.process import RunOutput
from scriptbar.scheduler.schedule import NEVER_INTERVAL

CRON_SOURCE = "#!/bin/sh\n# <scriptbar.schedule>0 * * * *</scriptbar.schedule>\necho tick\n"


def test_new_plugin_is_loading(make_plugin):
    plugin = make_plugin("cpu.5s.sh")
    assert plugin.id == "cpu.5s.sh"
    assert plugin.name == "cpu"
    assert plugin.state == PluginState.LOADING
    assert plugin.content == LOADING_CONTENT
    assert plugin.update_interval == 5.0
    assert plugin.last_updated is None


def test_plugin_without_token_never_fires_automatically(make_plugin):
    plugin = make_plugin("manual.sh")
    assert plugin.update_interval == NEVER_INTERVAL


def test_empty_path_is_rejected(context):
    with pytest.raises(ValueError):
        ExecutablePlugin("", context)


def test_start_invokes_and_arms_interval_timer(make_plugin, executor, runner, clock):
    plugin = make_plugin("cpu.5s.sh")
    plugin.start()
    assert runner.calls == []

    executor.run_pending()
    assert len(runner.calls) == 1
    assert plugin.state == PluginState.SUCCESS
    assert plugin.content == "ok\n"
    assert plugin.last_output == "ok\n"
    assert plugin.last_updated == clock.now()
    timers = clock.active_timers
    assert len(timers) == 1
    assert timers[0].repeating
    assert timers[0].interval == timedelta(seconds=5)


def test_repeating_timer_invokes_each_period(make_plugin, executor, runner, clock):
    plugin = make_plugin("cpu.5s.sh")
    plugin.start()
    executor.run_pending()

    clock.advance(5)
    executor.run_pending()
    clock.advance(5)
    executor.run_pending()
    assert len(runner.calls) == 3
    assert len(clock.active_timers) == 1


def test_enable_timer_twice_keeps_one_timer(make_plugin, clock):
    plugin = make_plugin("cpu.5s.sh")
    plugin.enable_timer()
    plugin.enable_timer()
    assert len(clock.active_timers) == 1
    assert plugin.timer_armed


def test_disable_timer_is_idempotent(make_plugin, clock):
    plugin = make_plugin("cpu.5s.sh")
    plugin.enable_timer()
    plugin.disable_timer()
    plugin.disable_timer()
    assert clock.active_timers == []
    assert not plugin.timer_armed


def test_refresh_replaces_timer_and_pending_invocation(make_plugin, executor, runner, clock):
    plugin = make_plugin("cpu.5s.sh")
    plugin.start()
    executor.run_pending()
    assert len(clock.active_timers) == 1

    plugin.refresh()
    assert clock.active_timers == []
    plugin.refresh()
    executor.run_pending()
    assert len(runner.calls) == 2
    assert len(clock.active_timers) == 1


def test_identical_output_notifies_once(make_plugin, executor):
    plugin = make_plugin("cpu.5s.sh")
    seen = []
    plugin.subscribe(seen.append)
    plugin.start()
    executor.run_pending()
    plugin.refresh()
    executor.run_pending()
    assert seen == ["ok\n"]


def test_changed_output_notifies_each_time(make_plugin, executor, runner):
    runner.results = [RunOutput(stdout="1\n"), RunOutput(stdout="2\n")]
    plugin = make_plugin("cpu.5s.sh")
    seen = []
    plugin.subscribe(seen.append)
    plugin.start()
    executor.run_pending()
    plugin.refresh()
    executor.run_pending()
    assert seen == ["1\n", "2\n"]


def test_unsubscribe_stops_notifications(make_plugin, executor):
    plugin = make_plugin("cpu.5s.sh")
    seen = []
    unsubscribe = plugin.subscribe(seen.append)
    unsubscribe()
    plugin.start()
    executor.run_pending()
    assert seen == []


def test_failing_subscriber_does_not_break_invocation(make_plugin, executor, clock):
    plugin = make_plugin("cpu.5s.sh")

    def broken(_content):
        raise RuntimeError("presenter crashed")

    plugin.subscribe(broken)
    plugin.start()
    executor.run_pending()
    assert plugin.state == PluginState.SUCCESS
    assert len(clock.active_timers) == 1


def test_launch_failure_keeps_previous_output(make_plugin, executor, runner):
    runner.results = [RunOutput(stdout="first\n"), LaunchFailure("No such file or directory: cpu.5s.sh")]
    plugin = make_plugin("cpu.5s.sh")
    plugin.start()
    executor.run_pending()
    plugin.refresh()
    executor.run_pending()

    assert plugin.state == PluginState.FAILED
    assert plugin.last_output == "first\n"
    assert plugin.content is None
    assert isinstance(plugin.error, LaunchFailure)
    assert plugin.error.message
    kinds = [e.kind for e in plugin.debug_info.events]
    assert kinds[-1] == DebugEventKind.CONTENT_UPDATE_ERROR


def test_failed_plugin_keeps_its_schedule(make_plugin, executor, runner, clock):
    runner.results = [NonZeroExit("boom", raw_stderr="boom\n", exit_status=2)]
    plugin = make_plugin("cpu.5s.sh")
    plugin.start()
    executor.run_pending()
    assert plugin.state == PluginState.FAILED
    assert len(clock.active_timers) == 1

    clock.advance(5)
    executor.run_pending()
    assert plugin.state == PluginState.SUCCESS
    assert plugin.error is None


def test_stderr_on_success_is_a_warning(make_plugin, executor, runner):
    runner.results = [RunOutput(stdout="fine\n", stderr="deprecated flag\n")]
    plugin = make_plugin("cpu.5s.sh")
    plugin.start()
    executor.run_pending()

    assert plugin.state == PluginState.SUCCESS
    assert plugin.error is None
    events = plugin.debug_info.events
    assert [e.kind for e in events] == [
        DebugEventKind.REFRESH,
        DebugEventKind.CONTENT_UPDATE,
        DebugEventKind.CONTENT_UPDATE_ERROR,
    ]
    assert events[-1].value == "deprecated flag\n"


def test_debug_log_is_bounded(make_plugin, executor):
    plugin = make_plugin("cpu.5s.sh")
    for _ in range(30):
        plugin.refresh()
        executor.run_pending()
    assert len(plugin.debug_info.events) == 20


def test_disable_cancels_timer_and_pending_invocation(make_plugin, executor, runner, clock, prefs):
    plugin = make_plugin("cpu.5s.sh")
    plugin.enable_timer()
    plugin.start()
    plugin.disable()
    executor.run_pending()

    assert runner.calls == []
    assert clock.active_timers == []
    assert plugin.state == PluginState.DISABLED
    assert "cpu.5s.sh" in prefs.disabled_plugins


def test_refresh_is_skipped_while_disabled(make_plugin, executor, runner):
    plugin = make_plugin("cpu.5s.sh")
    plugin.disable()
    plugin.refresh()
    executor.run_pending()
    assert runner.calls == []
    assert plugin.state == PluginState.DISABLED


def test_disable_then_enable_invokes_and_rearms(make_plugin, executor, runner, clock, prefs):
    plugin = make_plugin("cpu.5s.sh")
    plugin.start()
    executor.run_pending()
    plugin.disable()
    plugin.enable()
    executor.run_pending()

    assert len(runner.calls) == 2
    assert plugin.state == PluginState.SUCCESS
    assert len(clock.active_timers) == 1
    assert prefs.is_enabled("cpu.5s.sh")


def test_enable_keeps_disabled_state_until_run_completes(make_plugin, executor, runner):
    plugin = make_plugin("cpu.5s.sh")
    plugin.disable()
    plugin.enable()
    assert plugin.state == PluginState.DISABLED
    executor.run_pending()
    assert plugin.state == PluginState.SUCCESS
    assert len(runner.calls) == 1


def test_plugin_disabled_in_preferences_starts_disabled(make_plugin, prefs, executor, runner):
    prefs.disable("cpu.5s.sh")
    plugin = make_plugin("cpu.5s.sh")
    assert plugin.state == PluginState.DISABLED
    plugin.start()
    executor.run_pending()
    assert runner.calls == []


def test_terminate_stops_scheduling(make_plugin, executor, runner, clock):
    plugin = make_plugin("cpu.5s.sh")
    plugin.start()
    executor.run_pending()
    plugin.terminate()
    clock.advance(60)
    executor.run_pending()
    plugin.refresh()
    executor.run_pending()
    assert len(runner.calls) == 1
    assert clock.active_timers == []


def test_absolute_fire_time_preempts_interval(make_plugin, executor, clock):
    plugin = make_plugin("report.5m.sh", CRON_SOURCE)
    assert plugin.next_fire_time == datetime(2024, 1, 1, 1, 0, tzinfo=timezone.utc)

    plugin.start()
    executor.run_pending()
    timers = clock.active_timers
    assert len(timers) == 1
    assert not timers[0].repeating
    assert timers[0].due == datetime(2024, 1, 1, 1, 0, tzinfo=timezone.utc)


def test_absolute_fire_time_fires_once_then_rederives(make_plugin, executor, runner, clock):
    plugin = make_plugin("report.sh", CRON_SOURCE)
    plugin.start()
    executor.run_pending()
    assert len(runner.calls) == 1

    clock.advance(60 * 60)
    # Fired exactly once; no timer until the run it triggered has finished
    assert clock.active_timers == []
    executor.run_pending()
    assert len(runner.calls) == 2

    timers = clock.active_timers
    assert len(timers) == 1
    assert not timers[0].repeating
    assert timers[0].due == datetime(2024, 1, 1, 2, 0, tzinfo=timezone.utc)
    assert plugin.next_fire_time == datetime(2024, 1, 1, 2, 0, tzinfo=timezone.utc)

    clock.advance(60)
    executor.run_pending()
    assert len(runner.calls) == 2


def test_environment_describes_plugin(make_plugin, executor, runner, tmp_path):
    plugin = make_plugin("cpu.5s.sh")
    plugin.start()
    executor.run_pending()
    env = runner.calls[0]["env"]
    assert env["SCRIPTBAR_PLUGIN_PATH"] == str(plugin.file)
    assert env["SCRIPTBAR_PLUGIN_REFRESH_REASON"] == "FirstLaunch"
    assert env["SCRIPTBAR_PLUGIN_CACHE_PATH"] == str(tmp_path / "cache" / "cpu.5s.sh")
    assert env["SCRIPTBAR_PLUGIN_DATA_PATH"] == str(tmp_path / "data" / "cpu.5s.sh")
    assert (tmp_path / "cache" / "cpu.5s.sh").is_dir()
    assert "PATH" in env


def test_scheduled_run_reports_schedule_reason(make_plugin, executor, runner, clock):
    plugin = make_plugin("cpu.5s.sh")
    plugin.start()
    executor.run_pending()
    clock.advance(5)
    executor.run_pending()
    assert runner.calls[-1]["env"]["SCRIPTBAR_PLUGIN_REFRESH_REASON"] == "Schedule"


def test_run_in_shell_follows_metadata(make_plugin, executor, runner):
    source = "#!/bin/sh\n# <scriptbar.runInShell>false</scriptbar.runInShell>\necho hi\n"
    plugin = make_plugin("direct.sh", source)
    plugin.start()
    executor.run_pending()
    assert plugin.run_in_shell is False
    assert runner.calls[0]["use_shell_wrapper"] is False
