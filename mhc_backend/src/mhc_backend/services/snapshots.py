from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Dict, Optional

from sqlalchemy import func, select

from ..models.database import DatabaseManager, utcnow
from ..models.person import Snapshot

logger = logging.getLogger("mhc.services.snapshots")


class SnapshotStore:
    def __init__(self, db_manager: DatabaseManager):
        self.db_manager = db_manager

    def add(
        self,
        person_id: int,
        source: str,
        raw_payload: Optional[Dict[str, Any]] = None,
        normalized_metrics: Optional[Dict[str, Any]] = None,
        captured_at: Optional[datetime] = None,
    ) -> int:
        session = self.db_manager.get_session()
        try:
            snapshot = Snapshot(
                person_id=person_id,
                source=source,
                raw_payload=raw_payload,
                normalized_metrics=normalized_metrics,
                captured_at=captured_at or utcnow(),
            )
            session.add(snapshot)
            session.commit()
            return snapshot.id
        except Exception as e:
            session.rollback()
            logger.error(
                "写入快照失败 person_id=%s source=%s error=%s", person_id, source, e
            )
            raise
        finally:
            session.close()

    def count(self, source: Optional[str] = None, since: Optional[datetime] = None) -> int:
        stmt = select(func.count()).select_from(Snapshot)
        if source is not None:
            stmt = stmt.where(Snapshot.source == source)
        if since is not None:
            stmt = stmt.where(Snapshot.captured_at >= since)
        session = self.db_manager.get_session()
        try:
            return session.scalar(stmt) or 0
        finally:
            session.close()

    def counts_by_source(self) -> Dict[str, int]:
        session = self.db_manager.get_session()
        try:
            rows = session.execute(
                select(Snapshot.source, func.count()).group_by(Snapshot.source)
            ).all()
            return {source: count for source, count in rows}
        finally:
            session.close()
