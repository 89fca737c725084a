"""媒体存储

本地目录形式的存储提供者（如 docker 卷、SSD 挂载），以及跨提供者的迁移服务。
迁移流程：复制 -> 校验大小 -> 更新记录 -> 删除源文件，任何一步失败都保留源文件。
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Dict, List, Optional

from sqlalchemy import select

from ..config.settings import MediaStorageConfig
from ..models.database import DatabaseManager
from ..models.person import MediaFile

logger = logging.getLogger("mhc.services.storage")


class StorageError(Exception):
    pass


class LocalStorageProvider:
    def __init__(self, name: str, root: str | Path):
        self.name = name
        self.root = Path(root)

    def _path(self, relative_path: str) -> Path:
        path = (self.root / relative_path).resolve()
        if self.root.resolve() not in path.parents:
            raise StorageError(f"path escapes storage root: {relative_path}")
        return path

    def is_available(self) -> bool:
        try:
            self.root.mkdir(parents=True, exist_ok=True)
        except OSError:
            return False
        return os.access(self.root, os.W_OK)

    def write(self, relative_path: str, data: bytes) -> int:
        path = self._path(relative_path)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(data)
        return len(data)

    def read(self, relative_path: str) -> bytes:
        return self._path(relative_path).read_bytes()

    def exists(self, relative_path: str) -> bool:
        return self._path(relative_path).is_file()

    def size(self, relative_path: str) -> int:
        return self._path(relative_path).stat().st_size

    def delete(self, relative_path: str) -> None:
        self._path(relative_path).unlink(missing_ok=True)


class StorageService:
    def __init__(self, config: MediaStorageConfig):
        self.providers: Dict[str, LocalStorageProvider] = {
            name: LocalStorageProvider(name, root)
            for name, root in config.providers.items()
        }
        self.primary_name = config.primary
        self.destination_preference = list(config.destination_preference)

    def get(self, name: str) -> Optional[LocalStorageProvider]:
        return self.providers.get(name)

    @property
    def primary(self) -> LocalStorageProvider:
        provider = self.providers.get(self.primary_name)
        if provider is None:
            raise StorageError(f"primary storage provider not configured: {self.primary_name}")
        return provider

    def write_primary(self, relative_path: str, data: bytes) -> tuple[str, int]:
        size = self.primary.write(relative_path, data)
        return self.primary_name, size

    def resolve_destination(self, destination: str) -> Optional[LocalStorageProvider]:
        """解析迁移目标，auto 按偏好顺序取第一个可用且非主存储的提供者"""
        if destination == "auto":
            candidates: List[str] = self.destination_preference
        else:
            candidates = [destination]
        for name in candidates:
            provider = self.providers.get(name)
            if provider is None or name == self.primary_name:
                continue
            if provider.is_available():
                return provider
        return None


class TransferService:
    def __init__(self, storage: StorageService, db_manager: DatabaseManager):
        self.storage = storage
        self.db_manager = db_manager

    def pending(self, destination: str, limit: int) -> List[MediaFile]:
        session = self.db_manager.get_session()
        try:
            stmt = (
                select(MediaFile)
                .where(MediaFile.storage_provider != destination)
                .order_by(MediaFile.captured_at.asc(), MediaFile.id.asc())
                .limit(limit)
            )
            return list(session.scalars(stmt))
        finally:
            session.close()

    def transfer(self, media: MediaFile, destination: LocalStorageProvider) -> int:
        source = self.storage.get(media.storage_provider)
        if source is None:
            raise StorageError(f"unknown source provider: {media.storage_provider}")
        if not source.exists(media.relative_path):
            raise StorageError(f"source file missing: {media.relative_path}")

        data = source.read(media.relative_path)
        destination.write(media.relative_path, data)
        if destination.size(media.relative_path) != len(data):
            destination.delete(media.relative_path)
            raise StorageError(f"size mismatch after copy: {media.relative_path}")

        session = self.db_manager.get_session()
        try:
            record = session.get(MediaFile, media.id)
            if record is None:
                raise StorageError(f"media record disappeared: {media.id}")
            record.storage_provider = destination.name
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

        source.delete(media.relative_path)
        logger.debug(
            "迁移完成 media_id=%s %s -> %s size=%d",
            media.id, source.name, destination.name, len(data),
        )
        return len(data)
