"""Command-line interface: run the plugin host or inspect and toggle plugins."""

from __future__ import annotations

import argparse
import asyncio
import sys
from pathlib import Path
from typing import Any

from dotenv import load_dotenv

from scriptbar.host import PluginHost
from scriptbar.plugin.executable import ExecutablePlugin
from scriptbar.plugin.source import DirectorySource
from scriptbar.scheduler.schedule import NEVER_INTERVAL
from scriptbar.utils.config import load_config
from scriptbar.utils.logging import get_logger, setup_logging
from scriptbar.utils.monitoring import start_metrics_server
from scriptbar.utils.preferences import PreferencesStore

logger = get_logger(__name__)


def print_content(plugin: ExecutablePlugin, content: str | None) -> None:
    """Console presenter: first line of the plugin output, or its error."""
    if content is None:
        message = plugin.error.message if plugin.error else "no output"
        print(f"[{plugin.name}] error: {message}", flush=True)
        return
    first_line = content.strip().splitlines()[0] if content.strip() else ""
    print(f"[{plugin.name}] {first_line}", flush=True)


async def serve(host: PluginHost, stop: asyncio.Event | None = None) -> None:
    """Run the host until ``stop`` is set (forever when not given)."""
    stop = stop or asyncio.Event()
    host.start()
    try:
        await stop.wait()
    finally:
        host.shutdown(wait=False)


def _schedule_text(plugin: ExecutablePlugin) -> str:
    if plugin.next_fire_time is not None:
        return f"at {plugin.next_fire_time.isoformat(timespec='seconds')}"
    if plugin.update_interval >= NEVER_INTERVAL:
        return "manual"
    return f"every {plugin.update_interval:g}s"


def cmd_run(config: dict[str, Any], args: argparse.Namespace) -> int:
    metrics_cfg = config.get("metrics", {})
    if metrics_cfg.get("enabled"):
        start_metrics_server(int(metrics_cfg.get("port", 9090)))
        logger.info("metrics_server_started", port=metrics_cfg.get("port", 9090))
    host = PluginHost(config)
    host.add_listener(print_content)
    try:
        asyncio.run(serve(host))
    except KeyboardInterrupt:
        pass
    return 0


def cmd_list(config: dict[str, Any], args: argparse.Namespace) -> int:
    host = PluginHost(config)
    try:
        plugins = host.load_plugins()
        if not plugins:
            print(f"No plugins in {host.plugin_dir}")
            return 0
        for plugin in plugins:
            flag = "enabled" if plugin.enabled else "disabled"
            print(f"{plugin.id:<32} {_schedule_text(plugin):<32} {flag}")
        return 0
    finally:
        host.shutdown(wait=False)


def cmd_once(config: dict[str, Any], args: argparse.Namespace) -> int:
    host = PluginHost(config)
    try:
        host.load_plugins()
        plugin = host.get(args.plugin_id)
        if plugin is None:
            print(f"Unknown plugin: {args.plugin_id}", file=sys.stderr)
            return 2
        output = plugin.invoke()
    finally:
        host.shutdown(wait=False)
    if output is None:
        print(plugin.error.message if plugin.error else "Invocation failed", file=sys.stderr)
        return 1
    sys.stdout.write(output)
    return 0


def cmd_toggle(config: dict[str, Any], args: argparse.Namespace) -> int:
    plugin_dir = config.get("plugins", {}).get("directory", "./plugins")
    known = {src.id for src in DirectorySource(plugin_dir).scan()}
    if args.plugin_id not in known:
        print(f"Unknown plugin: {args.plugin_id}", file=sys.stderr)
        return 2
    prefs = PreferencesStore(config.get("preferences", {}).get("path"))
    if args.command == "enable":
        prefs.enable(args.plugin_id)
    else:
        prefs.disable(args.plugin_id)
    print(f"{args.plugin_id}: {args.command}d")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="scriptbar", description="Run executable plugins on a schedule")
    parser.add_argument("--config", "-c", type=Path, default=None, help="Path to scriptbar.yaml")
    parser.add_argument("--plugin-dir", "-d", type=Path, default=None, help="Override plugins.directory")
    sub = parser.add_subparsers(dest="command", required=True)
    sub.add_parser("run", help="Run all plugins and print their output as it changes")
    sub.add_parser("list", help="List discovered plugins and their schedules")
    once = sub.add_parser("once", help="Run one plugin once and print its output")
    once.add_argument("plugin_id")
    enable = sub.add_parser("enable", help="Enable a plugin")
    enable.add_argument("plugin_id")
    disable = sub.add_parser("disable", help="Disable a plugin")
    disable.add_argument("plugin_id")
    return parser


_COMMANDS = {
    "run": cmd_run,
    "list": cmd_list,
    "once": cmd_once,
    "enable": cmd_toggle,
    "disable": cmd_toggle,
}


def main(argv: list[str] | None = None) -> int:
    """Entry point for the ``scriptbar`` command."""
    load_dotenv(Path.cwd() / ".env")
    args = build_parser().parse_args(argv)
    config = load_config(args.config)
    if args.plugin_dir is not None:
        config["plugins"]["directory"] = str(args.plugin_dir)
    log_cfg = config.get("logging", {})
    setup_logging(level=log_cfg.get("level", "INFO"), json_logs=bool(log_cfg.get("json")))
    return _COMMANDS[args.command](config, args)


if __name__ == "__main__":
    sys.exit(main())
