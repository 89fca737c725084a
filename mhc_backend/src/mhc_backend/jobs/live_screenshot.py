from __future__ import annotations

import logging
from datetime import timedelta
from typing import Optional

from pydantic import Field

from ..models.database import DatabaseManager
from ..models.person import MediaFile
from ..services.directory import PersonDirectory
from ..services.feed_cache import FeedCache
from ..services.http import ApiClient
from ..services.storage import StorageService
from .base import JobConfig, RecurringJob, RunStats
from .dispatcher import ItemOutcome

logger = logging.getLogger("mhc.jobs.live_screenshot")

# 平台在房间无画面时返回的占位图约 5045 字节
PLACEHOLDER_SIZE = 5045
PLACEHOLDER_TOLERANCE = 100
SNAP_SOURCE = "following_snap"


def is_placeholder(data: bytes) -> bool:
    return abs(len(data) - PLACEHOLDER_SIZE) <= PLACEHOLDER_TOLERANCE


class LiveScreenshotConfig(JobConfig):
    interval_minutes: int = Field(default=30, ge=1)
    delay_between_captures_seconds: float = Field(default=0.5, ge=0)
    max_feed_age_minutes: int = Field(default=120, ge=1)


class LiveScreenshotStats(RunStats):
    total_bytes: int = 0


class LiveScreenshotJob(RecurringJob):
    """关注且在线的房间截取封面图"""

    name = "live-screenshot"
    config_model = LiveScreenshotConfig
    stats_model = LiveScreenshotStats
    supports_run_now = True

    config: LiveScreenshotConfig
    stats: LiveScreenshotStats

    def __init__(
        self,
        store,
        scheduler,
        clock=None,
        overrides=None,
        *,
        http: ApiClient,
        directory: PersonDirectory,
        feed_cache: FeedCache,
        storage: StorageService,
        db_manager: DatabaseManager,
    ):
        super().__init__(store, scheduler, clock, overrides)
        self.http = http
        self.directory = directory
        self.feed_cache = feed_cache
        self.storage = storage
        self.db_manager = db_manager

    async def precheck(self) -> Optional[str]:
        if self.feed_cache.is_stale(timedelta(minutes=self.config.max_feed_age_minutes)):
            return "在线房间缓存为空或已过期"
        return None

    async def execute_cycle(self) -> None:
        live = set(self.feed_cache.live_usernames())
        targets = [u for u in self.directory.following_usernames() if u.lower() in live]
        if not targets:
            logger.info("没有在线的关注对象")
            return

        await self.dispatch(
            targets,
            self.capture,
            batch_size=len(targets),
            delay_between_items=self.config.delay_between_captures_seconds,
        )

    async def capture(self, username: str) -> ItemOutcome:
        room = self.feed_cache.get(username)
        image_url = (room or {}).get("image_url")
        if not image_url:
            return ItemOutcome.SKIPPED

        data = await self.http.get_bytes(image_url)
        if not data:
            return ItemOutcome.FAILED
        if is_placeholder(data):
            logger.debug("占位图，跳过 username=%s size=%d", username, len(data))
            return ItemOutcome.SKIPPED

        now = self.clock.now()
        relative_path = f"{SNAP_SOURCE}/{username}/{now:%Y%m%d_%H%M%S}.jpg"
        provider, size = self.storage.write_primary(relative_path, data)

        person = self.directory.get_by_username(username)
        session = self.db_manager.get_session()
        try:
            session.add(
                MediaFile(
                    person_id=person.id if person else None,
                    username=username,
                    relative_path=relative_path,
                    storage_provider=provider,
                    size=size,
                    mime_type="image/jpeg",
                    source=SNAP_SOURCE,
                    captured_at=now,
                )
            )
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

        self.stats.total_bytes += size
        return ItemOutcome.SUCCEEDED
