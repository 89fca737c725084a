"""数据库基础设施

定义 Typed Declarative 基类与线程安全的 DatabaseManager 单例。
"""

from __future__ import annotations

import threading
from datetime import datetime, timezone

from sqlalchemy import create_engine, event
from sqlalchemy.orm import DeclarativeBase, sessionmaker


def utcnow() -> datetime:
    """当前 UTC 时间（naive），SQLite 不保存时区信息"""
    return datetime.now(timezone.utc).replace(tzinfo=None)


# SQLAlchemy 基类（Typed Declarative）
class Base(DeclarativeBase):
    pass


class DatabaseManager:
    """数据库管理器（单例模式）

    提供数据库连接和会话管理功能，支持自动创建表结构。
    """

    _instance = None
    _lock = threading.Lock()

    def __new__(cls, db_path: str = "mhc.db", enable_wal: bool = True):
        if cls._instance is None:
            with cls._lock:
                # 双重检查锁定
                if cls._instance is None:
                    cls._instance = super().__new__(cls)
                    cls._instance._initialized = False
        return cls._instance

    def __init__(self, db_path: str = "mhc.db", enable_wal: bool = True):
        # 确保只初始化一次
        if self._initialized:
            return

        # 导入模型模块以注册全部表
        from . import job_state, person  # noqa: F401

        self.db_path = db_path
        self.engine = create_engine(
            f"sqlite:///{db_path}",
            connect_args={"check_same_thread": False},
            echo=False,
        )
        if enable_wal and db_path != ":memory:":

            @event.listens_for(self.engine, "connect")
            def _set_sqlite_pragma(dbapi_connection, _record):
                cursor = dbapi_connection.cursor()
                cursor.execute("PRAGMA journal_mode=WAL")
                cursor.close()

        with self.__class__._lock:
            Base.metadata.create_all(self.engine, checkfirst=True)
        self.Session = sessionmaker(bind=self.engine, expire_on_commit=False)

        self._initialized = True

    def get_session(self):
        """获取数据库会话"""
        return self.Session()

    def dispose(self) -> None:
        self.engine.dispose()

    @classmethod
    def reset_instance(cls):
        """重置单例实例（主要用于测试）"""
        with cls._lock:
            if cls._instance is not None and getattr(
                cls._instance, "_initialized", False
            ):
                cls._instance.dispose()
            cls._instance = None

    @classmethod
    def get_instance(
        cls, db_path: str = "mhc.db", enable_wal: bool = True
    ) -> "DatabaseManager":
        return cls(db_path, enable_wal)
