"""Scheduling package public API.

- SchedulerPort / APSchedulerAdapter: periodic timers keyed by job name.
- Clock / AsyncioClock: time source and delays.
- JobStateStore: persisted running flags, config and stats per job.
"""

from .clock import AsyncioClock, Clock
from .scheduler import APSchedulerAdapter, SchedulerPort
from .state_store import JobStateSnapshot, JobStateStore

__all__ = [
    "APSchedulerAdapter",
    "AsyncioClock",
    "Clock",
    "JobStateSnapshot",
    "JobStateStore",
    "SchedulerPort",
]
