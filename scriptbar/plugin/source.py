"""Plugin discovery: scan the plugin directory and report additions and removals."""

from __future__ import annotations

from pathlib import Path
from typing import Callable

from pydantic import BaseModel

from scriptbar.scheduler.schedule import schedule_token_from_filename
from scriptbar.utils.logging import get_logger

logger = get_logger(__name__)


class PluginSource(BaseModel):
    """A discovered plugin file."""

    id: str
    path: Path
    schedule_token: str | None = None


class DirectorySource:
    """
    Lists regular, non-hidden files of one directory as plugins.

    ``poll()`` compares the directory with the previous poll and calls
    ``on_added`` / ``on_removed`` for the differences.

    Example:
        >>> source = DirectorySource("plugins", on_added=print)
        >>> source.poll()
    """

    def __init__(
        self,
        directory: str | Path,
        on_added: Callable[[PluginSource], None] | None = None,
        on_removed: Callable[[str], None] | None = None,
    ) -> None:
        self.directory = Path(directory).expanduser()
        self.on_added = on_added
        self.on_removed = on_removed
        self._known: dict[str, PluginSource] = {}

    def scan(self) -> list[PluginSource]:
        """Return the plugins currently in the directory, sorted by id."""
        if not self.directory.is_dir():
            logger.warning("plugin_directory_missing", directory=str(self.directory))
            return []
        found = []
        for entry in sorted(self.directory.iterdir()):
            if entry.name.startswith(".") or not entry.is_file():
                continue
            found.append(
                PluginSource(
                    id=entry.name,
                    path=entry.resolve(),
                    schedule_token=schedule_token_from_filename(entry.name),
                )
            )
        return found

    def poll(self) -> tuple[list[PluginSource], list[str]]:
        """Rescan and notify. Returns (added sources, removed ids)."""
        current = {src.id: src for src in self.scan()}
        added = [src for plugin_id, src in current.items() if plugin_id not in self._known]
        removed = [plugin_id for plugin_id in self._known if plugin_id not in current]
        self._known = current
        for plugin_id in removed:
            logger.info("plugin_source_removed", plugin_id=plugin_id)
            if self.on_removed:
                self.on_removed(plugin_id)
        for src in added:
            logger.info("plugin_source_added", plugin_id=src.id, schedule_token=src.schedule_token)
            if self.on_added:
                self.on_added(src)
        return added, removed
