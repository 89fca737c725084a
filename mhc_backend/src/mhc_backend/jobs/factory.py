from __future__ import annotations

from typing import Optional

from ..config.settings import Settings
from ..models.person import Person
from ..scheduling.clock import Clock
from ..scheduling.scheduler import SchedulerPort
from ..scheduling.state_store import JobStateStore
from ..services import ServiceContainer
from ..services.directory import build_segment_providers
from .affiliate_polling import AffiliatePollingJob
from .cbhours_polling import CBHoursPollingJob
from .live_screenshot import LiveScreenshotJob
from .media_transfer import MediaTransferJob
from .profile_scrape import ProfileScrapeJob
from .registry import JobRegistry
from .statbate_refresh import StatbateRefreshJob
from .stats_collection import StatsCollectionJob
from .targets import TargetSelector


def build_registry(
    settings: Settings,
    store: JobStateStore,
    scheduler: SchedulerPort,
    services: ServiceContainer,
    clock: Optional[Clock] = None,
) -> JobRegistry:
    """按固定顺序创建并注册全部后台任务"""
    providers, default_pool = build_segment_providers(
        services.db_manager, Person.statbate_refreshed_at
    )

    def common(name: str) -> dict:
        return {
            "store": store,
            "scheduler": scheduler,
            "clock": clock,
            "overrides": settings.job_overrides(name),
        }

    registry = JobRegistry()
    registry.register(
        StatbateRefreshJob(
            **common(StatbateRefreshJob.name),
            selector=TargetSelector(providers, default_pool),
            client=services.statbate,
            directory=services.directory,
            snapshots=services.snapshots,
        )
    )
    registry.register(
        AffiliatePollingJob(
            **common(AffiliatePollingJob.name),
            client=services.affiliate,
            directory=services.directory,
            snapshots=services.snapshots,
            feed_cache=services.feed_cache,
        )
    )
    registry.register(
        ProfileScrapeJob(
            **common(ProfileScrapeJob.name),
            scraper=services.scraper,
            directory=services.directory,
            snapshots=services.snapshots,
        )
    )
    registry.register(
        CBHoursPollingJob(
            **common(CBHoursPollingJob.name),
            client=services.cbhours,
            directory=services.directory,
            snapshots=services.snapshots,
        )
    )
    registry.register(
        LiveScreenshotJob(
            **common(LiveScreenshotJob.name),
            http=services.media_http,
            directory=services.directory,
            feed_cache=services.feed_cache,
            storage=services.storage,
            db_manager=services.db_manager,
        )
    )
    registry.register(
        MediaTransferJob(
            **common(MediaTransferJob.name),
            storage=services.storage,
            transfer=services.transfer,
        )
    )
    registry.register(
        StatsCollectionJob(
            **common(StatsCollectionJob.name),
            service=services.stats,
        )
    )
    return registry
