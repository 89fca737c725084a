from __future__ import annotations

import logging

from pydantic import Field

from ..services.stats_collection import StatsCollectionService
from .base import JobConfig, RecurringJob, RunStats
from .dispatcher import DispatchResult

logger = logging.getLogger("mhc.jobs.stats_collection")


class StatsCollectionConfig(JobConfig):
    interval_minutes: int = Field(default=60, ge=1)


class StatsCollectionStats(RunStats):
    total_snapshots: int = 0
    last_collection_duration_ms: int = 0


class StatsCollectionJob(RecurringJob):
    name = "stats-collection"
    config_model = StatsCollectionConfig
    stats_model = StatsCollectionStats
    supports_run_now = True

    stats: StatsCollectionStats

    def __init__(
        self,
        store,
        scheduler,
        clock=None,
        overrides=None,
        *,
        service: StatsCollectionService,
    ):
        super().__init__(store, scheduler, clock, overrides)
        self.service = service

    async def execute_cycle(self) -> None:
        started = self.clock.monotonic()
        stats = self.service.collect()
        duration_ms = int((self.clock.monotonic() - started) * 1000)
        self.service.save_snapshot(stats, duration_ms)

        self.stats.total_snapshots += 1
        self.stats.last_collection_duration_ms = duration_ms
        self.stats.record(DispatchResult(succeeded=1, batches_run=1))
        logger.info(
            "系统统计已保存 persons=%d duration_ms=%d",
            stats["persons"]["total"], duration_ms,
        )
