from __future__ import annotations

import asyncio
import logging
from typing import Optional

from pydantic import Field

from ..models.person import MediaFile
from ..services.storage import LocalStorageProvider, StorageService, TransferService
from .base import JobConfig, RecurringJob, RunStats
from .dispatcher import ItemOutcome

logger = logging.getLogger("mhc.jobs.media_transfer")


class MediaTransferConfig(JobConfig):
    enabled: bool = False
    interval_minutes: int = Field(default=60, ge=1)
    destination: str = Field(default="auto", min_length=1)
    batch_size: int = Field(default=100, ge=1)


class MediaTransferStats(RunStats):
    total_bytes_transferred: int = 0


class MediaTransferJob(RecurringJob):
    """把媒体文件从主存储迁移到目标存储

    启动前必须能解析出可用的目标存储，否则启动失败。
    """

    name = "media-transfer"
    config_model = MediaTransferConfig
    stats_model = MediaTransferStats
    supports_run_now = True

    config: MediaTransferConfig
    stats: MediaTransferStats

    def __init__(
        self,
        store,
        scheduler,
        clock=None,
        overrides=None,
        *,
        storage: StorageService,
        transfer: TransferService,
    ):
        super().__init__(store, scheduler, clock, overrides)
        self.storage = storage
        self.transfer = transfer
        self._destination: Optional[LocalStorageProvider] = None

    async def check_start_preconditions(self) -> Optional[str]:
        if self.storage.resolve_destination(self.config.destination) is None:
            return f"没有可用的迁移目标 destination={self.config.destination}"
        return None

    async def execute_cycle(self) -> None:
        destination = self.storage.resolve_destination(self.config.destination)
        if destination is None:
            raise RuntimeError(
                f"no valid destination for media transfer: {self.config.destination}"
            )
        self._destination = destination

        pending = self.transfer.pending(destination.name, self.config.batch_size)
        if not pending:
            logger.info("没有待迁移的文件 destination=%s", destination.name)
            return

        logger.info("开始迁移 files=%d destination=%s", len(pending), destination.name)
        await self.dispatch(
            pending,
            self.transfer_one,
            batch_size=self.config.batch_size,
            label=lambda m: m.relative_path,
        )

    async def transfer_one(self, media: MediaFile) -> ItemOutcome:
        # 文件读写放到线程中，避免阻塞事件循环
        size = await asyncio.to_thread(self.transfer.transfer, media, self._destination)
        self.stats.total_bytes_transferred += size
        return ItemOutcome.SUCCEEDED
