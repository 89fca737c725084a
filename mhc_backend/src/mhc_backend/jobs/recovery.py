"""任务恢复管理

进程启动时为每个任务补全持久化记录并按记录恢复运行状态；
进程关闭时只挂起定时器，保留运行标记以便下次启动恢复。
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import List, Optional

from .registry import JobRegistry

logger = logging.getLogger("mhc.jobs.recovery")


@dataclass
class RestoreReport:
    restored: List[str] = field(default_factory=list)
    skipped: List[str] = field(default_factory=list)
    failed: List[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "restored": list(self.restored),
            "skipped": list(self.skipped),
            "failed": list(self.failed),
        }


class JobRecoveryManager:
    def __init__(self, registry: JobRegistry):
        self.registry = registry

    def initialize_all(self) -> List[str]:
        """确保每个任务都有持久化记录，返回新建记录的任务名"""
        created = []
        for job in self.registry:
            try:
                if job.ensure():
                    created.append(job.name)
            except Exception as e:
                logger.error("初始化任务状态失败 job=%s error=%s", job.name, e)
        return created

    async def restore_all(self) -> RestoreReport:
        self.initialize_all()
        report = RestoreReport()
        for job in self.registry:
            try:
                if await job.restore():
                    report.restored.append(job.name)
                else:
                    report.skipped.append(job.name)
            except Exception as e:
                logger.exception("恢复任务失败 job=%s error=%s", job.name, e)
                report.failed.append(job.name)

        logger.info(
            "任务恢复完成 restored=%s skipped=%d failed=%s",
            report.restored, len(report.skipped), report.failed,
        )
        return report

    async def halt_all(self, timeout: Optional[float] = 10.0) -> None:
        for job in self.registry:
            job.halt()
        for job in self.registry:
            await job.join(timeout)
        logger.info("全部任务已挂起 jobs=%d", len(self.registry))

    async def stop_all(self) -> None:
        for job in self.registry:
            try:
                await job.stop()
            except Exception as e:
                logger.error("停止任务失败 job=%s error=%s", job.name, e)
