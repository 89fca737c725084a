from __future__ import annotations

import logging
from typing import Sequence

from pydantic import Field

from ..services.cbhours import MAX_USERNAMES_PER_REQUEST, CBHoursClient
from ..services.directory import PersonDirectory
from ..services.snapshots import SnapshotStore
from .base import JobConfig, RecurringJob, RunStats
from .dispatcher import BatchOutcome

logger = logging.getLogger("mhc.jobs.cbhours")


class CBHoursPollingConfig(JobConfig):
    interval_minutes: int = Field(default=30, ge=1)
    batch_size: int = Field(default=50, ge=1, le=MAX_USERNAMES_PER_REQUEST)
    target_following: bool = True
    delay_between_batches_seconds: float = Field(default=2.0, ge=0)


class CBHoursPollingStats(RunStats):
    total_online: int = 0
    last_run_online: int = 0
    current_batch: int = 0
    total_batches: int = 0

    def clear_progress(self) -> None:
        super().clear_progress()
        self.current_batch = 0
        self.total_batches = 0


class CBHoursPollingJob(RecurringJob):
    """CBHours 直播状态轮询，每批用户名一次请求"""

    name = "cbhours-polling"
    config_model = CBHoursPollingConfig
    stats_model = CBHoursPollingStats
    supports_pause = True

    config: CBHoursPollingConfig
    stats: CBHoursPollingStats

    def __init__(
        self,
        store,
        scheduler,
        clock=None,
        overrides=None,
        *,
        client: CBHoursClient,
        directory: PersonDirectory,
        snapshots: SnapshotStore,
    ):
        super().__init__(store, scheduler, clock, overrides)
        self.client = client
        self.directory = directory
        self.snapshots = snapshots

    def _usernames(self) -> list[str]:
        if self.config.target_following:
            return self.directory.following_usernames()
        return self.directory.model_usernames()

    async def execute_cycle(self) -> None:
        usernames = self._usernames()
        if not usernames:
            logger.info("没有需要轮询的用户")
            return

        self.stats.last_run_online = 0

        def on_batch(batch_no: int, total: int, _outcome: BatchOutcome) -> None:
            self.stats.current_batch = batch_no + 1
            self.stats.total_batches = total

        await self.dispatch_batches(
            usernames,
            self.poll_batch,
            batch_size=self.config.batch_size,
            delay_between_batches=self.config.delay_between_batches_seconds,
            on_batch=on_batch,
        )
        logger.info(
            "轮询完成 users=%d online=%d", len(usernames), self.stats.last_run_online
        )

    async def poll_batch(self, usernames: Sequence[str]) -> BatchOutcome:
        data = await self.client.get_live_stats(list(usernames))
        outcome = BatchOutcome()
        online: list[str] = []
        offline: list[str] = []
        now = self.clock.now()

        for username in usernames:
            model = data.get(username)
            person = self.directory.get_by_username(username) if model else None
            if person is None:
                outcome.failed += 1
                continue
            self.snapshots.add(
                person.id, "cbhours", raw_payload=model,
                normalized_metrics=_metrics(model), captured_at=now,
            )
            if model.get("room_status") == "Online":
                online.append(username)
            else:
                offline.append(username)
            outcome.succeeded += 1

        self.directory.set_live(online, True)
        self.directory.set_live(offline, False)
        self.stats.last_run_online += len(online)
        self.stats.total_online += len(online)
        return outcome


def _metrics(model: dict) -> dict:
    return {
        "online": model.get("room_status") == "Online",
        "rank": model.get("rank"),
        "grank": model.get("grank"),
        "viewers": model.get("viewers"),
        "followers": model.get("followers"),
    }
