"""任务持久化状态表"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, Optional

from sqlalchemy import JSON, Boolean, DateTime, String
from sqlalchemy.orm import Mapped, mapped_column

from .database import Base, utcnow


class JobStateRecord(Base):
    """后台任务状态表

    每个后台任务一行，进程重启后据此恢复运行状态。

    字段说明：
    - job_name: 任务名称，如 statbate-refresh
    - is_running / is_paused: 期望运行状态，is_paused 为真时 is_running 必为真
    - config / stats: 任务配置与累计统计（无模式 JSON）
    - last_started_at / last_stopped_at / last_run_at: 生命周期时间戳
    """

    __tablename__ = "job_state"

    job_name: Mapped[str] = mapped_column(
        String, primary_key=True, comment="任务名称"
    )
    is_running: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False, comment="是否处于启动状态"
    )
    is_paused: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False, comment="是否暂停"
    )
    config: Mapped[Dict[str, Any]] = mapped_column(
        JSON, nullable=False, default=lambda: {}, comment="任务配置"
    )
    stats: Mapped[Dict[str, Any]] = mapped_column(
        JSON, nullable=False, default=lambda: {}, comment="任务统计"
    )
    last_started_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime, nullable=True, comment="最近一次启动时间"
    )
    last_stopped_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime, nullable=True, comment="最近一次停止时间"
    )
    last_run_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime, nullable=True, comment="最近一次周期结束时间"
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, default=utcnow, comment="创建时间"
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, default=utcnow, onupdate=utcnow, comment="更新时间"
    )

    def __repr__(self) -> str:
        return (
            f"<JobStateRecord(job_name={self.job_name}, "
            f"is_running={self.is_running}, is_paused={self.is_paused})>"
        )
