"""JobRegistry: 后台任务注册表"""

from __future__ import annotations

from typing import Dict, Iterator, Optional

from .base import JobError, RecurringJob


class UnknownJobError(JobError):
    def __init__(self, name: str):
        self.name = name
        super().__init__(f"unknown job: {name}")


class JobRegistry:
    """后台任务注册表

    按注册顺序保存任务实例，恢复与关闭时也按此顺序遍历。

    Attributes:
        jobs: Key 为任务名，value 为任务实例
    """

    def __init__(self):
        self.jobs: Dict[str, RecurringJob] = {}

    def register(self, job: RecurringJob) -> None:
        """注册任务

        Raises:
            ValueError: 当名称已存在时抛出异常
        """
        if job.name in self.jobs:
            raise ValueError(f"Job with name '{job.name}' already registered")
        self.jobs[job.name] = job

    def find(self, name: str) -> Optional[RecurringJob]:
        return self.jobs.get(name)

    def get(self, name: str) -> RecurringJob:
        """按名称获取任务，不存在时抛出 UnknownJobError"""
        job = self.jobs.get(name)
        if job is None:
            raise UnknownJobError(name)
        return job

    def __iter__(self) -> Iterator[RecurringJob]:
        return iter(list(self.jobs.values()))

    def __len__(self) -> int:
        return len(self.jobs)

    def __contains__(self, name: str) -> bool:
        return name in self.jobs
