"""业务逻辑服务层

把 HTTP 请求翻译为任务生命周期操作，作为路由和任务注册表之间的中间层。
"""

from __future__ import annotations

from typing import Any, Mapping, Optional

from ..jobs.registry import JobRegistry, UnknownJobError
from ..state import get_registry
from .schemas import JobActionResponse, JobListResponse, JobStatusResponse


class RegistryUnavailableError(RuntimeError):
    pass


class JobControlService:
    """任务控制服务"""

    def __init__(self, registry: Optional[JobRegistry] = None):
        """初始化服务

        Args:
            registry: 任务注册表，为 None 时使用运行时共享的注册表
        """
        if registry is None:
            registry = get_registry()
        if registry is None:
            raise RegistryUnavailableError("job registry is not initialised")
        self.registry = registry

    def _status(self, name: str) -> JobStatusResponse:
        return JobStatusResponse(**self.registry.get(name).get_status())

    def list_jobs(self) -> JobListResponse:
        return JobListResponse(
            jobs=[JobStatusResponse(**job.get_status()) for job in self.registry]
        )

    def get_status(self, name: str) -> JobStatusResponse:
        return self._status(name)

    async def update_config(self, name: str, partial: Mapping[str, Any]) -> JobStatusResponse:
        await self.registry.get(name).update_config(partial)
        return self._status(name)

    async def perform(self, name: str, action: str) -> JobActionResponse:
        """执行生命周期操作

        Raises:
            UnknownJobError: 任务不存在
            UnsupportedOperationError: 任务不支持该操作
        """
        job = self.registry.get(name)
        message: Optional[str] = None

        if action == "start":
            changed = await job.start()
        elif action == "stop":
            changed = job.is_running
            await job.stop()
        elif action == "pause":
            changed = await job.pause()
        elif action == "resume":
            changed = await job.resume()
        elif action == "reset-stats":
            job.reset_stats()
            changed = True
        elif action == "run-now":
            result = await job.run_now()
            changed, message = result.success, result.message
        else:
            raise ValueError(f"unknown action: {action}")

        return JobActionResponse(
            name=name,
            action=action,
            changed=bool(changed),
            message=message,
            job=self._status(name),
        )


__all__ = ["JobControlService", "RegistryUnavailableError", "UnknownJobError"]
