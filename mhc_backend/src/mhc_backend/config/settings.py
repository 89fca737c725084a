from __future__ import annotations

from pydantic import BaseModel, Field
from pathlib import Path
import yaml
from typing import Any, Dict, List, Optional
import logging
import os

logger = logging.getLogger("mhc.config")


class StorageConfig(BaseModel):
    db_path: str = Field(default="./data/mhc.db")
    enable_wal: bool = Field(default=True)

    def __init__(self, **data):
        super().__init__(**data)
        # 支持环境变量覆盖数据库路径
        if "MHC_DB_PATH" in os.environ:
            self.db_path = os.environ["MHC_DB_PATH"]


class MediaStorageConfig(BaseModel):
    """媒体存储配置

    providers 为 本地存储提供者名称 -> 根目录 的映射，
    destination_preference 决定 media-transfer 在 destination=auto 时的选择顺序。
    """

    providers: Dict[str, str] = Field(
        default_factory=lambda: {"docker": "./data/media"}
    )
    primary: str = Field(default="docker")
    destination_preference: List[str] = Field(
        default_factory=lambda: ["ssd", "s3"]
    )


class ExternalApiConfig(BaseModel):
    statbate_base_url: str = Field(default="https://plus.statbate.com/api")
    statbate_token: Optional[str] = Field(default=None)
    cbhours_base_url: str = Field(default="https://www.cbhours.com/api.php")
    affiliate_base_url: str = Field(
        default="https://chaturbate.com/api/public/affiliates"
    )
    affiliate_wm: str = Field(default="")
    profile_base_url: str = Field(default="https://chaturbate.com")
    cookies_path: str = Field(default="./data/cookies.json")
    timeout_seconds: float = Field(default=30.0, gt=0)

    def __init__(self, **data):
        super().__init__(**data)
        if "MHC_STATBATE_TOKEN" in os.environ:
            self.statbate_token = os.environ["MHC_STATBATE_TOKEN"]


class Settings(BaseModel):
    scheduler_timezone: str = Field(default="UTC")
    log_level: str = Field(default="INFO")
    storage: StorageConfig = Field(default_factory=StorageConfig)
    media: MediaStorageConfig = Field(default_factory=MediaStorageConfig)
    external: ExternalApiConfig = Field(default_factory=ExternalApiConfig)
    # 各任务默认配置覆盖，键为任务名，如 statbate-refresh
    jobs: Dict[str, Dict[str, Any]] = Field(default_factory=dict)

    def job_overrides(self, job_name: str) -> Dict[str, Any]:
        return dict(self.jobs.get(job_name) or {})

    @staticmethod
    def from_yaml(path: Optional[Path | str] = None) -> "Settings":
        """从 YAML 文件加载配置"""
        if path is None:
            path = os.environ.get("MHC_CONFIG") or _discover_yaml_path()

        path = Path(path)
        if not path.exists():
            logger.warning(f"配置文件不存在: {path}")
            return Settings()

        try:
            with open(path, encoding="utf-8") as f:
                data = yaml.safe_load(f) or {}

            # 解析任务覆盖配置，忽略非字典项
            jobs: Dict[str, Dict[str, Any]] = {}
            for name, overrides in (data.get("jobs") or {}).items():
                if isinstance(overrides, dict):
                    jobs[str(name)] = overrides
                else:
                    logger.warning(f"跳过无效的任务配置项: {name}={overrides!r}")

            settings = Settings(
                scheduler_timezone=data.get("scheduler_timezone", "UTC"),
                log_level=os.environ.get(
                    "MHC_LOG_LEVEL", data.get("log_level", "INFO")
                ),
                storage=StorageConfig(**(data.get("storage") or {})),
                media=MediaStorageConfig(**(data.get("media") or {})),
                external=ExternalApiConfig(**(data.get("external") or {})),
                jobs=jobs,
            )
            return settings

        except Exception as e:
            logger.error(f"加载配置文件失败: {e}")
            return Settings()


def _discover_yaml_path() -> Path:
    """向上递归查找 mhc.yaml 文件"""
    start = Path(__file__).resolve()
    for parent in start.parents:
        candidate = parent / "mhc.yaml"
        if candidate.exists():
            return candidate
    # 默认位置
    return Path(__file__).resolve().parent.parent.parent / "mhc.yaml"


_settings: Settings | None = None


def get_settings() -> Settings:
    """获取全局配置实例"""
    global _settings
    if _settings is None:
        _settings = Settings.from_yaml()
    return _settings


def set_settings(settings: Settings | None) -> None:
    """替换全局配置实例（测试使用）"""
    global _settings
    _settings = settings
