"""任务状态存储

本模块负责后台任务运行状态、配置与统计的持久化，进程重启后据此恢复。
每次写入在独立会话中完成整行更新，后写覆盖先写。
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional

from ..models.database import DatabaseManager, utcnow
from ..models.job_state import JobStateRecord

logger = logging.getLogger("mhc.state_store")


@dataclass
class JobStateSnapshot:
    name: str
    running: bool
    paused: bool
    config: Dict[str, Any] = field(default_factory=dict)
    stats: Dict[str, Any] = field(default_factory=dict)
    last_started_at: Optional[datetime] = None
    last_stopped_at: Optional[datetime] = None
    last_run_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @classmethod
    def from_record(cls, record: JobStateRecord) -> "JobStateSnapshot":
        return cls(
            name=record.job_name,
            running=bool(record.is_running),
            paused=bool(record.is_paused),
            config=dict(record.config or {}),
            stats=dict(record.stats or {}),
            last_started_at=record.last_started_at,
            last_stopped_at=record.last_stopped_at,
            last_run_at=record.last_run_at,
            updated_at=record.updated_at,
        )


class JobStateStore:
    """任务状态存储

    通过 DatabaseManager 的会话读写 job_state 表。
    """

    def __init__(self, db_manager: DatabaseManager):
        self.db_manager = db_manager

    def ensure_job_state(self, name: str, default_config: Dict[str, Any]) -> bool:
        """确保任务状态记录存在，已存在时不做任何修改

        Returns:
            bool: 本次是否新建了记录
        """
        session = self.db_manager.get_session()
        try:
            if session.get(JobStateRecord, name) is not None:
                return False
            session.add(
                JobStateRecord(
                    job_name=name,
                    is_running=False,
                    is_paused=False,
                    config=dict(default_config),
                    stats={},
                )
            )
            session.commit()
            logger.info("创建任务状态记录 job=%s", name)
            return True
        except Exception as e:
            session.rollback()
            logger.error("创建任务状态记录失败 job=%s error=%s", name, e)
            raise
        finally:
            session.close()

    def load_state(self, name: str) -> Optional[JobStateSnapshot]:
        session = self.db_manager.get_session()
        try:
            record = session.get(JobStateRecord, name)
            if record is None:
                return None
            return JobStateSnapshot.from_record(record)
        finally:
            session.close()

    def load_all_states(self) -> Dict[str, JobStateSnapshot]:
        session = self.db_manager.get_session()
        try:
            records = session.query(JobStateRecord).order_by(JobStateRecord.job_name)
            return {r.job_name: JobStateSnapshot.from_record(r) for r in records}
        finally:
            session.close()

    def get_jobs_to_restore(self) -> List[str]:
        """返回持久化为运行中的任务名"""
        session = self.db_manager.get_session()
        try:
            rows = (
                session.query(JobStateRecord.job_name)
                .filter(JobStateRecord.is_running.is_(True))
                .order_by(JobStateRecord.job_name)
                .all()
            )
            return [row[0] for row in rows]
        finally:
            session.close()

    def save_config(self, name: str, config: Dict[str, Any]) -> None:
        self._upsert(name, "保存任务配置", config=dict(config))

    def save_running_state(self, name: str, running: bool, paused: bool) -> None:
        """保存运行/暂停标记

        Raises:
            ValueError: paused 为真但 running 为假
        """
        if paused and not running:
            raise ValueError(f"job {name}: paused requires running")

        now = utcnow()
        fields: Dict[str, Any] = {"is_running": running, "is_paused": paused}
        if running and not paused:
            fields["last_started_at"] = now
        elif not running:
            fields["last_stopped_at"] = now
        self._upsert(name, "保存运行状态", **fields)
        logger.debug(
            "保存运行状态 job=%s running=%s paused=%s", name, running, paused
        )

    def save_stats(
        self, name: str, stats: Dict[str, Any], mark_run: bool = True
    ) -> None:
        """保存统计信息，mark_run 为真时同时更新 last_run_at"""
        fields: Dict[str, Any] = {"stats": dict(stats)}
        if mark_run:
            fields["last_run_at"] = utcnow()
        self._upsert(name, "保存任务统计", **fields)

    def _upsert(self, name: str, action: str, **fields: Any) -> None:
        session = self.db_manager.get_session()
        try:
            record = session.get(JobStateRecord, name)
            if record is None:
                record = JobStateRecord(
                    job_name=name, is_running=False, is_paused=False,
                    config={}, stats={},
                )
                session.add(record)
            for key, value in fields.items():
                setattr(record, key, value)
            record.updated_at = utcnow()
            session.commit()
        except Exception as e:
            session.rollback()
            logger.error("%s失败 job=%s error=%s", action, name, e)
            raise
        finally:
            session.close()
