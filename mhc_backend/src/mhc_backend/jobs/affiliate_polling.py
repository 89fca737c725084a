"""Affiliate 在线房间轮询

分页拉取在线房间，为每个房间补全人员记录与快照，并刷新在线房间缓存。
limit 为 0 表示拉取全部；只有完整扫描结束后才会把未出现的人员标记为离线。
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List

from pydantic import Field

from ..models.person import ROLE_MODEL
from ..services.affiliate import AffiliateClient
from ..services.directory import PersonDirectory
from ..services.feed_cache import FeedCache
from ..services.snapshots import SnapshotStore
from .base import JobConfig, RecurringJob, RunStats
from .dispatcher import ItemOutcome

logger = logging.getLogger("mhc.jobs.affiliate")

PAGE_SIZE = 500


class AffiliatePollingConfig(JobConfig):
    enabled: bool = False
    interval_minutes: int = Field(default=30, ge=1)
    # 逗号分隔，如 "m,f"
    gender: str = Field(default="m", pattern=r"^\s*[fmtc]\s*(,\s*[fmtc]\s*)*$")
    limit: int = Field(default=0, ge=0)
    delay_between_requests_seconds: float = Field(default=1.0, ge=0)

    @property
    def genders(self) -> List[str]:
        return [g.strip() for g in self.gender.split(",")]


class AffiliatePollingStats(RunStats):
    last_run_rooms: int = 0
    total_rooms_seen: int = 0


class AffiliatePollingJob(RecurringJob):
    name = "affiliate-polling"
    config_model = AffiliatePollingConfig
    stats_model = AffiliatePollingStats
    supports_pause = True

    config: AffiliatePollingConfig
    stats: AffiliatePollingStats

    def __init__(
        self,
        store,
        scheduler,
        clock=None,
        overrides=None,
        *,
        client: AffiliateClient,
        directory: PersonDirectory,
        snapshots: SnapshotStore,
        feed_cache: FeedCache,
    ):
        super().__init__(store, scheduler, clock, overrides)
        self.client = client
        self.directory = directory
        self.snapshots = snapshots
        self.feed_cache = feed_cache

    async def fetch_rooms(self) -> tuple[List[Dict[str, Any]], bool]:
        """分页拉取，返回 (房间列表, 是否完整扫描)"""
        rooms: List[Dict[str, Any]] = []
        offset = 0
        limit = self.config.limit

        while True:
            page_size = PAGE_SIZE if not limit else min(PAGE_SIZE, limit - len(rooms))
            body = await self.client.get_online_rooms(
                limit=page_size, offset=offset, genders=self.config.genders
            )
            results = body.get("results") or []
            rooms.extend(results)
            offset += len(results)
            total = int(body.get("count") or 0)

            if not results or offset >= total:
                return rooms, not limit
            if limit and len(rooms) >= limit:
                return rooms, False

            await self.clock.sleep(self.config.delay_between_requests_seconds)
            if not self.should_continue():
                logger.info("拉取中断 fetched=%d total=%d", len(rooms), total)
                return rooms, False

    async def execute_cycle(self) -> None:
        rooms, complete = await self.fetch_rooms()
        self.feed_cache.replace(rooms)
        self.stats.last_run_rooms = len(rooms)
        self.stats.total_rooms_seen += len(rooms)
        if not rooms:
            logger.info("没有在线房间")
            return

        await self.dispatch(
            rooms,
            self.process_room,
            batch_size=PAGE_SIZE,
            delay_between_items=self.config.delay_between_requests_seconds,
            label=lambda r: r.get("username", ""),
        )

        usernames = [r["username"] for r in rooms if r.get("username")]
        self.directory.set_live(usernames, True)
        if complete:
            cleared = self.directory.clear_live_except(usernames)
            logger.debug("标记离线 count=%d", cleared)

    async def process_room(self, room: Dict[str, Any]) -> ItemOutcome:
        username = room.get("username")
        if not username:
            return ItemOutcome.SKIPPED
        person = self.directory.get_or_create(username, ROLE_MODEL)
        self.snapshots.add(
            person.id,
            "affiliate_api",
            raw_payload=room,
            normalized_metrics={
                "num_users": room.get("num_users"),
                "num_followers": room.get("num_followers"),
                "seconds_online": room.get("seconds_online"),
                "current_show": room.get("current_show"),
                "is_hd": room.get("is_hd"),
            },
            captured_at=self.clock.now(),
        )
        return ItemOutcome.SUCCEEDED
