from __future__ import annotations

import logging
from datetime import timedelta
from typing import Optional

from pydantic import Field

from ..services.directory import PersonDirectory
from ..services.scrapers import ProfileScraper
from ..services.snapshots import SnapshotStore
from .base import JobConfig, RecurringJob
from .dispatcher import ItemOutcome
from .targets import TargetEntity

logger = logging.getLogger("mhc.jobs.profile_scrape")


class ProfileScrapeConfig(JobConfig):
    interval_minutes: int = Field(default=15, ge=1)
    max_profiles_per_run: int = Field(default=200, ge=1)
    delay_between_profiles_seconds: float = Field(default=2.0, ge=0)
    refresh_days: int = Field(default=30, ge=0)
    prioritize_following: bool = True
    prioritize_watchlist: bool = True


class ProfileScrapeJob(RecurringJob):
    """浏览器 cookies 抓取个人主页

    每个周期开始前检查 cookies，缺失时跳过本周期且不计入运行次数。
    """

    name = "profile-scrape"
    config_model = ProfileScrapeConfig
    supports_run_now = True

    config: ProfileScrapeConfig

    def __init__(
        self,
        store,
        scheduler,
        clock=None,
        overrides=None,
        *,
        scraper: ProfileScraper,
        directory: PersonDirectory,
        snapshots: SnapshotStore,
    ):
        super().__init__(store, scheduler, clock, overrides)
        self.scraper = scraper
        self.directory = directory
        self.snapshots = snapshots

    async def precheck(self) -> Optional[str]:
        if not self.scraper.has_cookies():
            return "未找到登录 cookies"
        return None

    async def execute_cycle(self) -> None:
        refresh_before = self.clock.now() - timedelta(days=self.config.refresh_days)
        candidates = self.directory.list_profile_candidates(
            limit=self.config.max_profiles_per_run,
            refresh_before=refresh_before,
            prioritize_watchlist=self.config.prioritize_watchlist,
            prioritize_following=self.config.prioritize_following,
        )
        if not candidates:
            logger.info("没有需要抓取的主页")
            return

        await self.dispatch(
            candidates,
            self.scrape_one,
            batch_size=len(candidates),
            delay_between_items=self.config.delay_between_profiles_seconds,
            label=lambda t: t.username,
        )

    async def scrape_one(self, entity: TargetEntity) -> ItemOutcome:
        profile = await self.scraper.scrape_profile(entity.username)
        now = self.clock.now()
        if profile is None:
            logger.info("主页不存在 username=%s", entity.username)
            self.directory.mark_profile_scraped(entity.id, now)
            return ItemOutcome.SKIPPED

        self.snapshots.add(
            entity.id, "profile_scrape", raw_payload=profile, captured_at=now
        )
        self.directory.mark_profile_scraped(entity.id, now)
        return ItemOutcome.SUCCEEDED
