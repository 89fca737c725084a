from __future__ import annotations

import logging
from datetime import timedelta
from typing import Any, Dict

from sqlalchemy import func, select

from ..models.database import DatabaseManager, utcnow
from ..models.person import MediaFile, SystemStatsSnapshot
from .directory import PersonDirectory
from .snapshots import SnapshotStore

logger = logging.getLogger("mhc.services.stats")


class StatsCollectionService:
    """汇总系统计数并写入 system_stats_history"""

    def __init__(
        self,
        db_manager: DatabaseManager,
        directory: PersonDirectory,
        snapshots: SnapshotStore,
    ):
        self.db_manager = db_manager
        self.directory = directory
        self.snapshots = snapshots

    def collect(self) -> Dict[str, Any]:
        session = self.db_manager.get_session()
        try:
            media_count, media_bytes = session.execute(
                select(func.count(MediaFile.id), func.coalesce(func.sum(MediaFile.size), 0))
            ).one()
        finally:
            session.close()

        roles = self.directory.role_counts()
        return {
            "persons": {"total": sum(roles.values()), "by_role": roles},
            "segments": self.directory.segment_counts(),
            "snapshots": {
                "total": self.snapshots.count(),
                "last_24h": self.snapshots.count(since=utcnow() - timedelta(hours=24)),
                "by_source": self.snapshots.counts_by_source(),
            },
            "media": {"files": int(media_count), "bytes": int(media_bytes)},
        }

    def save_snapshot(self, stats: Dict[str, Any], duration_ms: int) -> int:
        session = self.db_manager.get_session()
        try:
            row = SystemStatsSnapshot(stats=stats, duration_ms=duration_ms)
            session.add(row)
            session.commit()
            return row.id
        except Exception as e:
            session.rollback()
            logger.error("保存系统统计失败 error=%s", e)
            raise
        finally:
            session.close()

    def history_count(self) -> int:
        session = self.db_manager.get_session()
        try:
            return session.scalar(select(func.count(SystemStatsSnapshot.id))) or 0
        finally:
            session.close()
