from __future__ import annotations

import asyncio
from datetime import datetime
from typing import Optional

import pytest

from mhc_backend.jobs.base import RecurringJob
from mhc_backend.models.database import DatabaseManager
from mhc_backend.models.person import Person, ROLE_UNKNOWN
from mhc_backend.scheduling.clock import Clock
from mhc_backend.scheduling.scheduler import SchedulerPort
from mhc_backend.scheduling.state_store import JobStateStore


class FakeScheduler(SchedulerPort):
    """Records installed timers; ticks are fired by hand."""

    def __init__(self):
        self.timers: dict = {}
        self.history: list = []

    def install(self, job_id, func, interval_seconds):
        self.timers[job_id] = (func, interval_seconds)
        self.history.append(("install", job_id, interval_seconds))

    def remove(self, job_id):
        self.history.append(("remove", job_id))
        return self.timers.pop(job_id, None) is not None

    def is_installed(self, job_id):
        return job_id in self.timers

    def installed_jobs(self):
        return list(self.timers)

    def interval(self, job_id):
        return self.timers[job_id][1]

    async def fire(self, job_id):
        func, _ = self.timers[job_id]
        await func()


class FakeClock(Clock):
    """Virtual time: sleeps are recorded and advance the clock without blocking."""

    def __init__(self, start: Optional[datetime] = None):
        self.current = start or datetime(2025, 1, 1, 12, 0, 0)
        self.elapsed = 0.0
        self.sleeps: list[float] = []

    def now(self):
        return self.current

    def monotonic(self):
        return self.elapsed

    async def sleep(self, seconds):
        self.sleeps.append(seconds)
        self.elapsed += seconds
        await asyncio.sleep(0)


class RecordingJob(RecurringJob):
    name = "recording"
    supports_pause = True
    supports_run_now = True

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.cycles = 0
        self.gate: Optional[asyncio.Event] = None
        self.error: Optional[Exception] = None
        self.start_error: Optional[str] = None
        self.skip_reason: Optional[str] = None

    async def check_start_preconditions(self):
        return self.start_error

    async def precheck(self):
        return self.skip_reason

    async def execute_cycle(self):
        self.cycles += 1
        if self.gate is not None:
            await self.gate.wait()
        if self.error is not None:
            raise self.error


class BasicJob(RecordingJob):
    name = "basic"
    supports_pause = False
    supports_run_now = False


@pytest.fixture(name="db_manager")
def fixture_db_manager(tmp_path):
    """A DatabaseManager backed by a temporary SQLite file."""

    DatabaseManager.reset_instance()
    manager = DatabaseManager.get_instance(str(tmp_path / "mhc.db"), enable_wal=False)
    yield manager
    DatabaseManager.reset_instance()


@pytest.fixture(name="store")
def fixture_store(db_manager):
    return JobStateStore(db_manager)


@pytest.fixture(name="scheduler")
def fixture_scheduler():
    return FakeScheduler()


@pytest.fixture(name="clock")
def fixture_clock():
    return FakeClock()


@pytest.fixture(name="job")
def fixture_job(store, scheduler, clock):
    job = RecordingJob(store, scheduler, clock)
    job.ensure()
    return job


def add_person(db_manager, username, role=ROLE_UNKNOWN, **fields) -> Person:
    session = db_manager.get_session()
    try:
        person = Person(username=username, role=role, **fields)
        session.add(person)
        session.commit()
        return person
    finally:
        session.close()
