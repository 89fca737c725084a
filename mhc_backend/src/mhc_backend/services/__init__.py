"""外部协作者集合

build_services() 按配置构造全部服务，应用关闭时调用 aclose() 释放 HTTP 连接。
"""

from __future__ import annotations

from dataclasses import dataclass

from ..config.settings import Settings
from ..models.database import DatabaseManager
from .affiliate import AffiliateClient
from .cbhours import CBHoursClient
from .directory import PersonDirectory
from .feed_cache import FeedCache
from .http import ApiClient, ExternalServiceError
from .scrapers import CookieProfileScraper, ProfileScraper
from .snapshots import SnapshotStore
from .statbate import StatbateClient
from .stats_collection import StatsCollectionService
from .storage import StorageError, StorageService, TransferService


@dataclass
class ServiceContainer:
    db_manager: DatabaseManager
    directory: PersonDirectory
    snapshots: SnapshotStore
    feed_cache: FeedCache
    storage: StorageService
    transfer: TransferService
    stats: StatsCollectionService
    statbate: StatbateClient
    cbhours: CBHoursClient
    affiliate: AffiliateClient
    scraper: ProfileScraper
    # 封面图下载不需要鉴权，单独一个客户端
    media_http: ApiClient

    async def aclose(self) -> None:
        for client in (self.statbate, self.cbhours, self.affiliate, self.media_http):
            await client.aclose()
        if isinstance(self.scraper, ApiClient):
            await self.scraper.aclose()


def build_services(settings: Settings, db_manager: DatabaseManager) -> ServiceContainer:
    ext = settings.external
    directory = PersonDirectory(db_manager)
    snapshots = SnapshotStore(db_manager)
    storage = StorageService(settings.media)
    return ServiceContainer(
        db_manager=db_manager,
        directory=directory,
        snapshots=snapshots,
        feed_cache=FeedCache(),
        storage=storage,
        transfer=TransferService(storage, db_manager),
        stats=StatsCollectionService(db_manager, directory, snapshots),
        statbate=StatbateClient(
            ext.statbate_base_url, ext.statbate_token, timeout=ext.timeout_seconds
        ),
        cbhours=CBHoursClient(ext.cbhours_base_url),
        affiliate=AffiliateClient(
            ext.affiliate_base_url, ext.affiliate_wm, timeout=ext.timeout_seconds
        ),
        scraper=CookieProfileScraper(
            ext.profile_base_url, ext.cookies_path, timeout=ext.timeout_seconds
        ),
        media_http=ApiClient("", timeout=ext.timeout_seconds),
    )


__all__ = [
    "ExternalServiceError",
    "ServiceContainer",
    "StorageError",
    "build_services",
]
