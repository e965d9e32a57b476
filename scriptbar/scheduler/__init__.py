"""Plugin scheduling: schedule derivation, clocks and the invocation queue."""

from scriptbar.scheduler.clock import APSchedulerClock, Clock, ManualClock, TimerHandle
from scriptbar.scheduler.queue import InvocationQueue, InvocationTask
from scriptbar.scheduler.schedule import NEVER_INTERVAL, Schedule, ScheduleMode, compute_schedule

__all__ = [
    "APSchedulerClock",
    "Clock",
    "InvocationQueue",
    "InvocationTask",
    "ManualClock",
    "NEVER_INTERVAL",
    "Schedule",
    "ScheduleMode",
    "TimerHandle",
    "compute_schedule",
]
