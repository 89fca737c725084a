"""配置验证器模块

启动时检查配置的有效性，返回错误与警告列表，不直接抛出异常。
"""

from __future__ import annotations

import logging
import os
from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path
from typing import Any, List
from zoneinfo import available_timezones

from .settings import MediaStorageConfig, Settings, StorageConfig

logger = logging.getLogger("mhc.config.validators")


@dataclass
class ValidationResult:
    """验证结果

    包含验证是否通过、错误信息和警告信息。
    """

    is_valid: bool
    errors: List[str]
    warnings: List[str]

    def __post_init__(self):
        self.errors = self.errors or []
        self.warnings = self.warnings or []

    def add_error(self, message: str):
        self.errors.append(message)
        self.is_valid = False

    def add_warning(self, message: str):
        self.warnings.append(message)

    def merge(self, other: "ValidationResult"):
        """合并另一个验证结果"""
        if not other.is_valid:
            self.is_valid = False
        self.errors.extend(other.errors)
        self.warnings.extend(other.warnings)


class ConfigValidator(ABC):
    @abstractmethod
    def validate(self, config: Any) -> ValidationResult:
        raise NotImplementedError


class StorageConfigValidator(ConfigValidator):
    def validate(self, config: StorageConfig) -> ValidationResult:
        result = ValidationResult(is_valid=True, errors=[], warnings=[])

        if not config.db_path or not config.db_path.strip():
            result.add_error("数据库路径不能为空")
            return result

        path = Path(config.db_path)
        parent_dir = path.parent
        if not parent_dir.exists():
            try:
                parent_dir.mkdir(parents=True, exist_ok=True)
                result.add_warning(f"创建数据库目录: {parent_dir}")
            except OSError as e:
                result.add_error(f"无法创建数据库目录 {parent_dir}: {e}")

        if path.exists():
            if not path.is_file():
                result.add_error(f"数据库路径不是文件: {config.db_path}")
            elif not os.access(path, os.R_OK | os.W_OK):
                result.add_error(f"数据库文件无读写权限: {config.db_path}")

        return result


class MediaStorageConfigValidator(ConfigValidator):
    def validate(self, config: MediaStorageConfig) -> ValidationResult:
        result = ValidationResult(is_valid=True, errors=[], warnings=[])

        if not config.providers:
            result.add_warning("未配置任何媒体存储提供者，截图与迁移任务将无法写入")
            return result

        if config.primary not in config.providers:
            result.add_error(f"主存储提供者 '{config.primary}' 未在 providers 中定义")

        unknown = [
            name for name in config.destination_preference
            if name not in config.providers
        ]
        if unknown:
            result.add_warning(f"迁移目标中存在未配置的提供者: {', '.join(unknown)}")

        return result


class SchedulerConfigValidator(ConfigValidator):
    def validate(self, config: Settings) -> ValidationResult:
        result = ValidationResult(is_valid=True, errors=[], warnings=[])

        if config.scheduler_timezone not in available_timezones():
            result.add_warning(f"时区 '{config.scheduler_timezone}' 可能不被支持")

        for job_name, overrides in config.jobs.items():
            interval = overrides.get("interval_minutes")
            if interval is None:
                continue
            if not isinstance(interval, int) or interval < 1:
                result.add_error(f"任务 {job_name}: interval_minutes 必须是正整数")
            elif interval > 24 * 60:
                result.add_warning(f"任务 {job_name}: 执行间隔超过一天")

        return result


class CompositeConfigValidator(ConfigValidator):
    """组合配置验证器"""

    def __init__(self):
        self.storage_validator = StorageConfigValidator()
        self.media_validator = MediaStorageConfigValidator()
        self.scheduler_validator = SchedulerConfigValidator()

    def validate(self, config: Settings) -> ValidationResult:
        result = ValidationResult(is_valid=True, errors=[], warnings=[])
        result.merge(self.storage_validator.validate(config.storage))
        result.merge(self.media_validator.validate(config.media))
        result.merge(self.scheduler_validator.validate(config))
        return result


def validate_settings(config: Settings) -> ValidationResult:
    """校验配置并记录日志"""
    result = CompositeConfigValidator().validate(config)
    for warning in result.warnings:
        logger.warning("配置警告: %s", warning)
    for error in result.errors:
        logger.error("配置错误: %s", error)
    return result
