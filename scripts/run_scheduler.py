"""Run the plugin host. Configure it in config/scriptbar.yaml (plugins.directory etc.)."""

from __future__ import annotations

import asyncio
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from scriptbar.host import PluginHost
from scriptbar.interfaces.cli import print_content, serve
from scriptbar.utils.config import load_config
from scriptbar.utils.logging import setup_logging


async def main() -> None:
    config = load_config()
    setup_logging(level=config["logging"]["level"], json_logs=bool(config["logging"]["json"]))
    host = PluginHost(config)
    host.add_listener(print_content)
    await serve(host)


if __name__ == "__main__":
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        pass
