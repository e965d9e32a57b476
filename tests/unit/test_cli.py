"""Unit tests for the command-line interface."""

import logging
import os

import pytest
import structlog
import yaml

from scriptbar.interfaces import cli


@pytest.fixture(autouse=True)
def quiet_logging(monkeypatch):
    # Log lines would otherwise land in the captured stdout next to plugin output
    monkeypatch.setattr(cli, "setup_logging", lambda **kwargs: None)
    structlog.configure(wrapper_class=structlog.make_filtering_bound_logger(logging.CRITICAL))
    yield
    structlog.reset_defaults()


@pytest.fixture
def config_file(tmp_path, plugin_dir):
    path = tmp_path / "scriptbar.yaml"
    config = {
        "plugins": {
            "directory": str(plugin_dir),
            "cache_dir": str(tmp_path / "cache"),
            "data_dir": str(tmp_path / "data"),
        },
        "runner": {"shell": "/bin/sh"},
        "preferences": {"path": str(tmp_path / "preferences.yaml")},
    }
    path.write_text(yaml.safe_dump(config), encoding="utf-8")
    return path


def _write(plugin_dir, name, body):
    path = plugin_dir / name
    path.write_text("#!/bin/sh\n" + body, encoding="utf-8")
    os.chmod(path, 0o755)
    return path


def test_list_shows_schedules(config_file, plugin_dir, capsys):
    _write(plugin_dir, "cpu.5s.sh", "echo 1\n")
    _write(plugin_dir, "manual.sh", "echo 2\n")
    _write(plugin_dir, "daily.sh", "# <scriptbar.schedule>0 9 * * *</scriptbar.schedule>\necho 3\n")

    assert cli.main(["--config", str(config_file), "list"]) == 0
    out = capsys.readouterr().out
    assert "cpu.5s.sh" in out and "every 5s" in out
    assert "manual" in out
    assert "daily.sh" in out and "at " in out


def test_list_empty_directory(config_file, capsys):
    assert cli.main(["--config", str(config_file), "list"]) == 0
    assert "No plugins" in capsys.readouterr().out


def test_once_prints_output(config_file, plugin_dir, capsys):
    _write(plugin_dir, "hello.1m.sh", "echo hello\n")
    assert cli.main(["--config", str(config_file), "once", "hello.1m.sh"]) == 0
    assert capsys.readouterr().out == "hello\n"


def test_once_failure_exits_non_zero(config_file, plugin_dir, capsys):
    _write(plugin_dir, "bad.1m.sh", "echo broken >&2\nexit 4\n")
    assert cli.main(["--config", str(config_file), "once", "bad.1m.sh"]) == 1
    assert "broken" in capsys.readouterr().err


def test_once_unknown_plugin(config_file, capsys):
    assert cli.main(["--config", str(config_file), "once", "ghost.sh"]) == 2


def test_disable_and_enable_persist(config_file, plugin_dir, tmp_path, capsys):
    _write(plugin_dir, "cpu.5s.sh", "echo 1\n")
    prefs_path = tmp_path / "preferences.yaml"
    assert cli.main(["--config", str(config_file), "disable", "cpu.5s.sh"]) == 0
    assert yaml.safe_load(prefs_path.read_text())["disabled_plugins"] == ["cpu.5s.sh"]
    assert cli.main(["--config", str(config_file), "enable", "cpu.5s.sh"]) == 0
    assert yaml.safe_load(prefs_path.read_text())["disabled_plugins"] == []


def test_toggle_unknown_plugin_is_rejected(config_file, tmp_path, capsys):
    assert cli.main(["--config", str(config_file), "disable", "ghost.sh"]) == 2
    assert "Unknown plugin" in capsys.readouterr().err
    assert not (tmp_path / "preferences.yaml").exists()


def test_list_shuts_host_down(config_file, plugin_dir, monkeypatch, capsys):
    _write(plugin_dir, "cpu.5s.sh", "echo 1\n")
    shutdowns = []
    original = cli.PluginHost.shutdown

    def tracking_shutdown(self, wait=True):
        shutdowns.append(wait)
        original(self, wait=wait)

    monkeypatch.setattr(cli.PluginHost, "shutdown", tracking_shutdown)
    assert cli.main(["--config", str(config_file), "list"]) == 0
    assert shutdowns == [False]


def test_plugin_dir_flag_overrides_config(config_file, tmp_path, capsys):
    other = tmp_path / "other"
    other.mkdir()
    _write(other, "x.1m.sh", "echo x\n")
    assert cli.main(["--config", str(config_file), "--plugin-dir", str(other), "list"]) == 0
    assert "x.1m.sh" in capsys.readouterr().out


def test_print_content_formats_first_line(capsys, make_plugin):
    plugin = make_plugin("cpu.5s.sh")
    cli.print_content(plugin, "42%\n---\ndetails\n")
    assert capsys.readouterr().out == "[cpu] 42%\n"
