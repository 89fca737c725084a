"""人员目录与快照数据模型

persons 保存被跟踪的主播/观众，以及各关系分组标记与各任务的新鲜度时间戳。
snapshots、media_files、system_stats_history 为各后台任务的写入目标。
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, Optional

from sqlalchemy import (
    JSON,
    Boolean,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    String,
    Text,
)
from sqlalchemy.orm import Mapped, mapped_column

from .database import Base, utcnow

ROLE_MODEL = "MODEL"
ROLE_VIEWER = "VIEWER"
ROLE_UNKNOWN = "UNKNOWN"


class Person(Base):
    __tablename__ = "persons"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    username: Mapped[str] = mapped_column(
        String, nullable=False, unique=True, index=True, comment="平台用户名"
    )
    role: Mapped[str] = mapped_column(
        String, nullable=False, default=ROLE_UNKNOWN, comment="MODEL/VIEWER/UNKNOWN"
    )
    rid: Mapped[Optional[int]] = mapped_column(Integer, comment="Statbate 主播 ID")
    did: Mapped[Optional[int]] = mapped_column(Integer, comment="Statbate 会员 ID")
    is_excluded: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False, comment="排除在任务之外"
    )
    last_seen_at: Mapped[Optional[datetime]] = mapped_column(DateTime)

    # 关系分组
    on_watchlist: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    following: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    follower: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    banned: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    dom: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    friend: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    sub: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    is_live: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    tipped_me_total: Mapped[float] = mapped_column(Float, nullable=False, default=0)
    tipped_by_me_total: Mapped[float] = mapped_column(
        Float, nullable=False, default=0
    )

    # 各任务的新鲜度
    statbate_refreshed_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime, index=True
    )
    profile_scraped_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime, index=True
    )

    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)

    def __repr__(self) -> str:
        return f"<Person(id={self.id}, username={self.username}, role={self.role})>"


class Snapshot(Base):
    """外部数据源快照，每次成功抓取写入一行"""

    __tablename__ = "snapshots"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    person_id: Mapped[int] = mapped_column(
        ForeignKey("persons.id", ondelete="CASCADE"), index=True
    )
    source: Mapped[str] = mapped_column(
        String, nullable=False, index=True, comment="如 statbate_model, cbhours"
    )
    raw_payload: Mapped[Optional[Dict[str, Any]]] = mapped_column(JSON)
    normalized_metrics: Mapped[Optional[Dict[str, Any]]] = mapped_column(JSON)
    captured_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, default=utcnow, index=True
    )


class MediaFile(Base):
    __tablename__ = "media_files"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    person_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("persons.id", ondelete="SET NULL"), index=True
    )
    username: Mapped[str] = mapped_column(String, nullable=False)
    relative_path: Mapped[str] = mapped_column(Text, nullable=False)
    storage_provider: Mapped[str] = mapped_column(
        String, nullable=False, index=True, comment="所在存储提供者"
    )
    size: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    mime_type: Mapped[Optional[str]] = mapped_column(String)
    source: Mapped[str] = mapped_column(
        String, nullable=False, default="following_snap"
    )
    captured_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, default=utcnow
    )


class SystemStatsSnapshot(Base):
    __tablename__ = "system_stats_history"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    collected_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, default=utcnow, index=True
    )
    duration_ms: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    stats: Mapped[Dict[str, Any]] = mapped_column(JSON, nullable=False)
