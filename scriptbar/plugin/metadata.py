"""Metadata embedded in plugin sources as <scriptbar.key>value</scriptbar.key> tags."""

from __future__ import annotations

import re
from datetime import datetime, timezone, tzinfo
from pathlib import Path

from apscheduler.triggers.cron import CronTrigger
from pydantic import BaseModel
from tzlocal import get_localzone

from scriptbar.utils.logging import get_logger

logger = get_logger(__name__)

# xbar and SwiftBar tag prefixes are accepted so existing plugins work unchanged
_TAG_RE = re.compile(
    r"<(?P<prefix>scriptbar|swiftbar|xbar)\.(?P<key>\w+)>(?P<value>.*?)</(?P=prefix)\.(?P=key)>",
    re.DOTALL,
)

_KEY_ALIASES = {
    "runInBash": "runInShell",
}


class PluginMetadata(BaseModel):
    """
    Optional metadata of a plugin. Every field is None when the tag is absent.

    Attributes:
        title, version, author, desc: Descriptive fields.
        schedule: Raw cron expression(s), ``|``-separated.
        run_in_shell: Whether to run through the shell wrapper.
        next_date: Next fire time computed from ``schedule``.
    """

    title: str | None = None
    version: str | None = None
    author: str | None = None
    desc: str | None = None
    schedule: str | None = None
    run_in_shell: bool | None = None
    next_date: datetime | None = None


def _parse_bool(value: str) -> bool | None:
    lowered = value.strip().lower()
    if lowered in ("true", "yes", "1"):
        return True
    if lowered in ("false", "no", "0"):
        return False
    return None


def _cron_timezone(now: datetime) -> tzinfo:
    """
    Zone to evaluate crontab fields in. Fixed offsets such as those from
    ``datetime.astimezone()`` carry no DST rules, so they map to the local zone.
    """
    if now.tzinfo is None or (isinstance(now.tzinfo, timezone) and now.tzinfo != timezone.utc):
        return get_localzone()
    return now.tzinfo


def next_cron_fire_time(expression: str, now: datetime) -> datetime | None:
    """
    Earliest fire time strictly after ``now`` for one or more ``|``-separated crontab
    expressions. Invalid expressions are logged and skipped.
    """
    tz = _cron_timezone(now)
    if now.tzinfo is None:
        now = now.replace(tzinfo=tz)
    candidates: list[datetime] = []
    for expr in expression.split("|"):
        expr = expr.strip()
        if not expr:
            continue
        try:
            trigger = CronTrigger.from_crontab(expr, timezone=tz)
        except ValueError as e:
            logger.warning("cron_expression_invalid", expression=expr, error=str(e))
            continue
        # Passing now as the previous fire time makes the result strictly later than now
        fire_time = trigger.get_next_fire_time(now, now)
        if fire_time is not None:
            candidates.append(fire_time)
    return min(candidates) if candidates else None


def parse_metadata(source: str, now: datetime) -> PluginMetadata:
    """
    Extract metadata tags from a plugin's source text.

    Example:
        >>> meta = parse_metadata("# <scriptbar.runInShell>false</scriptbar.runInShell>", now)
        >>> meta.run_in_shell
        False
    """
    values: dict[str, str] = {}
    for match in _TAG_RE.finditer(source):
        key = _KEY_ALIASES.get(match.group("key"), match.group("key"))
        values.setdefault(key, match.group("value").strip())

    schedule = values.get("schedule") or None
    return PluginMetadata(
        title=values.get("title") or None,
        version=values.get("version") or None,
        author=values.get("author") or None,
        desc=values.get("desc") or None,
        schedule=schedule,
        run_in_shell=_parse_bool(values["runInShell"]) if "runInShell" in values else None,
        next_date=next_cron_fire_time(schedule, now) if schedule else None,
    )


def read_plugin_metadata(path: str | Path, now: datetime) -> PluginMetadata:
    """Read and parse metadata from the plugin file; unreadable files give empty metadata."""
    try:
        source = Path(path).read_text(encoding="utf-8", errors="replace")
    except OSError as e:
        logger.warning("plugin_metadata_unreadable", path=str(path), error=str(e))
        return PluginMetadata()
    return parse_metadata(source, now)
