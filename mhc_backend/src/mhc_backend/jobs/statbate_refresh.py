"""Statbate 刷新任务

每个周期按优先级分组选出一批人员，逐个查询 Statbate 并写入快照。

数据源按已知角色选择：MODEL/UNKNOWN 先查主播接口，VIEWER 先查会员接口；
首选接口返回“未找到”时换另一个接口。两边都未找到记为失败，角色保持不变。
首选接口出现临时错误时不切换，直接记为失败。
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from pydantic import Field

from ..models.person import ROLE_MODEL, ROLE_VIEWER
from ..services.directory import PersonDirectory
from ..services.snapshots import SnapshotStore
from ..services.statbate import StatbateClient, extract_payload, normalize_member, normalize_model
from .base import JobConfig, RecurringJob, RunStats
from .dispatcher import ItemOutcome
from .targets import SEGMENT_ORDER, PriorityPolicy, TargetEntity, TargetSelector

logger = logging.getLogger("mhc.jobs.statbate")

SOURCE_MODEL = "model"
SOURCE_MEMBER = "member"


class StatbateRefreshConfig(JobConfig):
    interval_minutes: int = Field(default=360, ge=1)
    batch_size: int = Field(default=5, ge=1)
    delay_between_batches_seconds: float = Field(default=30.0, ge=0)
    delay_between_requests_seconds: float = Field(default=2.0, ge=0)
    max_persons_per_run: int = Field(default=1000, ge=1)

    prioritize_watchlist: bool = True
    prioritize_following: bool = True
    prioritize_followers: bool = False
    prioritize_banned: bool = False
    prioritize_live: bool = False
    prioritize_doms: bool = False
    prioritize_friends: bool = False
    prioritize_subs: bool = False
    prioritize_tipped_me: bool = False
    prioritize_tipped_by_me: bool = False

    def policy(self) -> PriorityPolicy:
        return PriorityPolicy(
            segments={s: getattr(self, f"prioritize_{s}") for s in SEGMENT_ORDER},
            max_per_run=self.max_persons_per_run,
            batch_size=self.batch_size,
        )


class StatbateRefreshStats(RunStats):
    total_not_found: int = 0
    total_role_changes: int = 0


class StatbateRefreshJob(RecurringJob):
    name = "statbate-refresh"
    config_model = StatbateRefreshConfig
    stats_model = StatbateRefreshStats
    supports_pause = True
    supports_run_now = True

    config: StatbateRefreshConfig
    stats: StatbateRefreshStats

    def __init__(
        self,
        store,
        scheduler,
        clock=None,
        overrides=None,
        *,
        selector: TargetSelector,
        client: StatbateClient,
        directory: PersonDirectory,
        snapshots: SnapshotStore,
    ):
        super().__init__(store, scheduler, clock, overrides)
        self.selector = selector
        self.client = client
        self.directory = directory
        self.snapshots = snapshots

    async def execute_cycle(self) -> None:
        targets = await self.selector.select(self.config.policy())
        if not targets:
            logger.info("没有需要刷新的人员")
            return

        logger.info(
            "开始刷新 persons=%d batch_size=%d", len(targets), self.config.batch_size
        )
        await self.dispatch(
            targets,
            self.refresh_one,
            batch_size=self.config.batch_size,
            delay_between_items=self.config.delay_between_requests_seconds,
            delay_between_batches=self.config.delay_between_batches_seconds,
            label=lambda t: t.username,
        )

    async def refresh_one(self, entity: TargetEntity) -> ItemOutcome:
        primary = SOURCE_MEMBER if entity.role == ROLE_VIEWER else SOURCE_MODEL
        fallback = SOURCE_MODEL if primary == SOURCE_MEMBER else SOURCE_MEMBER

        for source in (primary, fallback):
            response = await self._fetch(source, entity.username)
            if response is None:
                logger.debug("未找到 username=%s source=%s", entity.username, source)
                continue
            self._record(entity, source, response)
            return ItemOutcome.SUCCEEDED

        logger.info("两个数据源均未找到 username=%s", entity.username)
        self.stats.total_not_found += 1
        self.directory.mark_statbate_checked(entity.id, self.clock.now())
        return ItemOutcome.FAILED

    async def _fetch(self, source: str, username: str) -> Optional[Dict[str, Any]]:
        if source == SOURCE_MODEL:
            return await self.client.get_model_info(username)
        return await self.client.get_member_info(username)

    def _record(self, entity: TargetEntity, source: str, response: Dict[str, Any]) -> None:
        now = self.clock.now()
        if source == SOURCE_MODEL:
            role, metrics = ROLE_MODEL, normalize_model(response)
        else:
            role, metrics = ROLE_VIEWER, normalize_member(response)

        self.snapshots.add(
            entity.id,
            f"statbate_{source}",
            raw_payload=extract_payload(response),
            normalized_metrics=metrics,
            captured_at=now,
        )
        self.directory.record_statbate(
            entity.id,
            role=role,
            refreshed_at=now,
            rid=metrics.get("rid"),
            did=metrics.get("did"),
        )
        if role != entity.role:
            self.stats.total_role_changes += 1
            logger.info(
                "角色更新 username=%s %s -> %s", entity.username, entity.role, role
            )
