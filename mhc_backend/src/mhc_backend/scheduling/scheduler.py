from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import Any, Awaitable, Callable

from apscheduler.jobstores.base import JobLookupError
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

logger = logging.getLogger("mhc.scheduler")

TickCallback = Callable[[], Awaitable[Any]]


class SchedulerPort(ABC):
    """周期定时器端口

    每个后台任务最多持有一个定时器，以任务名作为 job_id。
    定时器只负责按间隔触发，互斥由任务自身的 processing 标记保证。
    """

    @abstractmethod
    def install(self, job_id: str, func: TickCallback, interval_seconds: float) -> None:
        raise NotImplementedError

    @abstractmethod
    def remove(self, job_id: str) -> bool:
        raise NotImplementedError

    @abstractmethod
    def is_installed(self, job_id: str) -> bool:
        raise NotImplementedError

    def start(self) -> None:
        pass

    def shutdown(self) -> None:
        pass

    def is_running(self) -> bool:
        return True

    def installed_jobs(self) -> list[str]:
        return []


class APSchedulerAdapter(SchedulerPort):
    """基于 APScheduler AsyncIOScheduler 的定时器实现。

    Attributes:
        scheduler: APScheduler 异步调度器实例
    """

    def __init__(self, timezone: str = "UTC"):
        # max_instances 放宽，让重叠的触发到达任务自身的互斥检查并被丢弃
        self.scheduler = AsyncIOScheduler(
            timezone=timezone,
            job_defaults={
                "coalesce": True,  # 多个待执行实例合并
                "max_instances": 3,
                "misfire_grace_time": 300,
            },
        )
        # AsyncIOScheduler 的 shutdown 会投递到事件循环执行，running 标记不能立即反映
        self._active = False

    def start(self) -> None:
        if not self._active:
            self.scheduler.start()
            self._active = True
            logger.info("调度器已启动 jobs=%d", len(self.scheduler.get_jobs()))

    def shutdown(self) -> None:
        """关闭调度器，不等待正在执行的任务"""
        if self._active:
            self._active = False
            self.scheduler.shutdown(wait=False)
            logger.info("调度器已关闭")

    def is_running(self) -> bool:
        return self._active

    def install(self, job_id: str, func: TickCallback, interval_seconds: float) -> None:
        self.scheduler.add_job(
            func,
            trigger=IntervalTrigger(seconds=interval_seconds),
            id=job_id,
            name=job_id,
            replace_existing=True,
        )
        logger.info("安装定时器 job=%s interval=%ss", job_id, interval_seconds)

    def remove(self, job_id: str) -> bool:
        try:
            self.scheduler.remove_job(job_id)
        except JobLookupError:
            return False
        logger.info("移除定时器 job=%s", job_id)
        return True

    def is_installed(self, job_id: str) -> bool:
        return self.scheduler.get_job(job_id) is not None

    def installed_jobs(self) -> list[str]:
        return [job.id for job in self.scheduler.get_jobs()]

    def next_run_time(self, job_id: str):
        job = self.scheduler.get_job(job_id)
        return getattr(job, "next_run_time", None) if job else None
