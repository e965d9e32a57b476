"""Timer sources for plugin scheduling: APScheduler in production, a manual clock in tests."""

from __future__ import annotations

import uuid
from abc import ABC, abstractmethod
from datetime import datetime, timedelta, timezone
from threading import Lock
from typing import Callable

from apscheduler.jobstores.base import JobLookupError
from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.date import DateTrigger
from apscheduler.triggers.interval import IntervalTrigger
from tzlocal import get_localzone

from scriptbar.utils.logging import get_logger

logger = get_logger(__name__)


class TimerHandle(ABC):
    """Ownership token for one armed timer. cancel() is idempotent."""

    @abstractmethod
    def cancel(self) -> None: ...

    @property
    @abstractmethod
    def cancelled(self) -> bool: ...


class Clock(ABC):
    """Source of the current time and of repeating / one-shot timers."""

    @abstractmethod
    def now(self) -> datetime: ...

    @abstractmethod
    def call_every(self, seconds: float, callback: Callable[[], None]) -> TimerHandle:
        """Call ``callback`` every ``seconds`` until the handle is cancelled."""

    @abstractmethod
    def call_at(self, when: datetime, callback: Callable[[], None]) -> TimerHandle:
        """Call ``callback`` once at ``when`` (immediately if it has passed)."""

    def start(self) -> None:
        pass

    def shutdown(self) -> None:
        pass


class _JobHandle(TimerHandle):
    def __init__(self, scheduler: BackgroundScheduler, job_id: str) -> None:
        self._scheduler = scheduler
        self._job_id = job_id
        self._cancelled = False
        self._lock = Lock()

    def cancel(self) -> None:
        with self._lock:
            if self._cancelled:
                return
            self._cancelled = True
        try:
            self._scheduler.remove_job(self._job_id)
        except JobLookupError:
            # One-shot jobs are removed by APScheduler after they run
            pass

    @property
    def cancelled(self) -> bool:
        return self._cancelled


class APSchedulerClock(Clock):
    """
    Clock backed by an APScheduler BackgroundScheduler.

    Every timer is a job with ``max_instances=1`` and ``coalesce=True``, so a slow
    callback never overlaps itself and missed runs collapse into one. Callbacks
    should only enqueue work; they run on APScheduler's own worker threads.
    """

    def __init__(self, scheduler: BackgroundScheduler | None = None) -> None:
        self._scheduler = scheduler or BackgroundScheduler()

    def now(self) -> datetime:
        return datetime.now(get_localzone())

    def call_every(self, seconds: float, callback: Callable[[], None]) -> TimerHandle:
        job_id = f"every-{uuid.uuid4().hex}"
        self._scheduler.add_job(
            callback,
            trigger=IntervalTrigger(seconds=seconds),
            id=job_id,
            max_instances=1,
            coalesce=True,
            misfire_grace_time=None,
        )
        return _JobHandle(self._scheduler, job_id)

    def call_at(self, when: datetime, callback: Callable[[], None]) -> TimerHandle:
        job_id = f"at-{uuid.uuid4().hex}"
        self._scheduler.add_job(
            callback,
            trigger=DateTrigger(run_date=max(when, self.now())),
            id=job_id,
            misfire_grace_time=None,
        )
        return _JobHandle(self._scheduler, job_id)

    def start(self) -> None:
        if not self._scheduler.running:
            self._scheduler.start()
            logger.info("clock_started")

    def shutdown(self) -> None:
        if self._scheduler.running:
            self._scheduler.shutdown(wait=False)
            logger.info("clock_stopped")


class _ManualTimer(TimerHandle):
    def __init__(self, due: datetime, interval: timedelta | None, callback: Callable[[], None]) -> None:
        self.due = due
        self.interval = interval
        self.callback = callback
        self._cancelled = False

    def cancel(self) -> None:
        self._cancelled = True

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    @property
    def repeating(self) -> bool:
        return self.interval is not None


class ManualClock(Clock):
    """
    Deterministic clock: time only moves when advance() is called.

    Example:
        >>> clock = ManualClock()
        >>> fired = []
        >>> handle = clock.call_every(5, lambda: fired.append(clock.now()))
        >>> clock.advance(12)
        >>> len(fired)
        2
    """

    def __init__(self, start: datetime | None = None) -> None:
        self._now = start or datetime(2024, 1, 1, tzinfo=timezone.utc)
        self._timers: list[_ManualTimer] = []

    def now(self) -> datetime:
        return self._now

    def call_every(self, seconds: float, callback: Callable[[], None]) -> TimerHandle:
        interval = timedelta(seconds=seconds)
        timer = _ManualTimer(self._now + interval, interval, callback)
        self._timers.append(timer)
        return timer

    def call_at(self, when: datetime, callback: Callable[[], None]) -> TimerHandle:
        timer = _ManualTimer(max(when, self._now), None, callback)
        self._timers.append(timer)
        return timer

    @property
    def active_timers(self) -> list[_ManualTimer]:
        self._timers = [t for t in self._timers if not t.cancelled]
        return list(self._timers)

    def advance(self, seconds: float) -> None:
        """Move time forward, firing every timer that falls due on the way, in order."""
        target = self._now + timedelta(seconds=seconds)
        while True:
            due = [t for t in self.active_timers if t.due <= target]
            if not due:
                break
            timer = min(due, key=lambda t: t.due)
            self._now = timer.due
            if timer.repeating:
                timer.due = timer.due + timer.interval
            else:
                timer.cancel()
            timer.callback()
        self._now = target
