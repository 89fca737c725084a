"""API v1 路由定义。

此模块包含后台任务控制接口：查询状态、修改配置与生命周期操作。
"""

from __future__ import annotations

from typing import Any, Dict

from fastapi import APIRouter, Body, Depends, HTTPException, status
from pydantic import ValidationError

from ...jobs.base import UnsupportedOperationError
from ...jobs.registry import UnknownJobError
from ..schemas import JobActionResponse, JobListResponse, JobStatusResponse
from ..services import JobControlService, RegistryUnavailableError

router = APIRouter(prefix="/api/v1/jobs", tags=["jobs"])

ACTIONS = ("start", "stop", "pause", "resume", "reset-stats", "run-now")


def get_job_service() -> JobControlService:
    """依赖注入：获取任务控制服务实例"""

    try:
        return JobControlService()
    except RegistryUnavailableError as exc:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="任务注册表尚未初始化",
        ) from exc


def _not_found(name: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_404_NOT_FOUND, detail=f"任务 {name} 不存在"
    )


@router.get(
    "",
    response_model=JobListResponse,
    summary="列出全部任务",
)
async def list_jobs(service: JobControlService = Depends(get_job_service)):
    try:
        return service.list_jobs()
    except Exception as exc:  # noqa: BLE001
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"获取任务列表失败: {exc}",
        ) from exc


@router.get(
    "/{name}/status",
    response_model=JobStatusResponse,
    summary="获取任务状态",
)
async def get_job_status(
    name: str, service: JobControlService = Depends(get_job_service)
):
    try:
        return service.get_status(name)
    except UnknownJobError as exc:
        raise _not_found(name) from exc
    except Exception as exc:  # noqa: BLE001
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"获取任务状态失败: {exc}",
        ) from exc


@router.post(
    "/{name}/config",
    response_model=JobStatusResponse,
    summary="更新任务配置",
    description="部分更新；正在运行的任务会先停止再按新配置启动",
)
async def update_job_config(
    name: str,
    partial: Dict[str, Any] = Body(..., description="需要修改的配置项"),
    service: JobControlService = Depends(get_job_service),
):
    try:
        return await service.update_config(name, partial)
    except UnknownJobError as exc:
        raise _not_found(name) from exc
    except ValidationError as exc:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=exc.errors(include_url=False, include_context=False),
        ) from exc
    except Exception as exc:  # noqa: BLE001
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"更新任务配置失败: {exc}",
        ) from exc


@router.post(
    "/{name}/{action}",
    response_model=JobActionResponse,
    summary="执行生命周期操作",
    description="action: start / stop / pause / resume / reset-stats / run-now",
)
async def perform_job_action(
    name: str, action: str, service: JobControlService = Depends(get_job_service)
):
    if action not in ACTIONS:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND, detail=f"未知操作 {action}"
        )
    try:
        return await service.perform(name, action)
    except UnknownJobError as exc:
        raise _not_found(name) from exc
    except UnsupportedOperationError as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"任务 {name} 不支持操作 {action}",
        ) from exc
    except HTTPException:
        raise
    except Exception as exc:  # noqa: BLE001
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"执行任务操作失败: {exc}",
        ) from exc
