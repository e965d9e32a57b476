"""Derive a plugin's schedule from its filename token and metadata."""

from __future__ import annotations

from datetime import datetime
from enum import Enum

from pydantic import BaseModel

from scriptbar.utils.logging import get_logger

logger = get_logger(__name__)

# 100 days: plugins without a refresh token only run on launch and manual refresh
NEVER_INTERVAL = 60.0 * 60 * 24 * 100

# Longest suffix first so "ms" is not read as "s"
_UNIT_SECONDS: tuple[tuple[str, float], ...] = (
    ("ms", 0.001),
    ("s", 1.0),
    ("m", 60.0),
    ("h", 60.0 * 60),
    ("d", 60.0 * 60 * 24),
)


class ScheduleMode(str, Enum):
    INTERVAL = "interval"
    ABSOLUTE = "absolute"


class Schedule(BaseModel):
    """Either a repeating interval in seconds or a single absolute fire time."""

    mode: ScheduleMode
    seconds: float | None = None
    at: datetime | None = None

    @classmethod
    def interval(cls, seconds: float) -> "Schedule":
        return cls(mode=ScheduleMode.INTERVAL, seconds=seconds)

    @classmethod
    def absolute(cls, at: datetime) -> "Schedule":
        return cls(mode=ScheduleMode.ABSOLUTE, at=at)


def schedule_token_from_filename(filename: str) -> str | None:
    """
    Return the refresh token embedded in a plugin filename.

    ``cpu.5s.sh`` gives ``"5s"``; names with fewer than three dot-separated parts
    carry no token.
    """
    parts = filename.split(".")
    if len(parts) > 2:
        return parts[1]
    return None


def parse_interval_token(token: str | None) -> float | None:
    """
    Convert a token such as ``"200ms"``, ``"5m"`` or ``"1.5h"`` to seconds.

    Returns None for missing or malformed tokens.
    """
    if not token:
        return None
    token = token.strip().lower()
    for suffix, factor in _UNIT_SECONDS:
        if token.endswith(suffix):
            number = "".join(ch for ch in token[: -len(suffix)] if ch in "0123456789.")
            try:
                value = float(number)
            except ValueError:
                return None
            if value <= 0:
                return None
            if suffix == "ms":
                return value / 1000
            return value * factor
    return None


def compute_schedule(token: str | None, next_fire_time: datetime | None = None) -> Schedule:
    """
    Pick the schedule for a plugin.

    An absolute fire time from metadata always wins. Otherwise a valid token gives
    its interval, and anything else falls back to NEVER_INTERVAL.

    Example:
        >>> compute_schedule("5m").seconds
        300.0
        >>> compute_schedule("abc").seconds == NEVER_INTERVAL
        True
    """
    if next_fire_time is not None:
        return Schedule.absolute(next_fire_time)
    seconds = parse_interval_token(token)
    if seconds is None:
        if token:
            logger.warning("schedule_token_malformed", token=token)
        return Schedule.interval(NEVER_INTERVAL)
    return Schedule.interval(seconds)
