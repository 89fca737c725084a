"""API 响应模型定义

本模块定义了后台任务控制接口的请求和响应模型。
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


class JobStatusResponse(BaseModel):
    """单个任务状态"""

    name: str = Field(..., description="任务名称")
    status: str = Field(..., description="stopped/idle/processing/paused")
    is_running: bool = Field(..., description="是否已启动")
    is_paused: bool = Field(..., description="是否暂停")
    is_processing: bool = Field(..., description="是否有周期正在执行")
    timer_active: bool = Field(..., description="定时器是否已安装")
    supports_pause: bool = Field(..., description="是否支持暂停")
    supports_run_now: bool = Field(..., description="是否支持立即执行")
    config: Dict[str, Any] = Field(default_factory=dict, description="当前配置")
    stats: Dict[str, Any] = Field(default_factory=dict, description="统计信息")


class JobListResponse(BaseModel):
    jobs: List[JobStatusResponse] = Field(..., description="全部任务")


class JobActionResponse(BaseModel):
    """生命周期操作结果"""

    name: str = Field(..., description="任务名称")
    action: str = Field(..., description="执行的操作")
    changed: bool = Field(..., description="状态是否发生变化")
    message: Optional[str] = Field(None, description="附加信息")
    job: JobStatusResponse = Field(..., description="操作后的任务状态")
