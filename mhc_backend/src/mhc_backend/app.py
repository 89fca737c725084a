"""MHC 后端核心骨架

- FastAPI 实例
- 后台任务调度（APScheduler）与任务恢复（应用启动/关闭生命周期）
- 任务控制 RESTful API 接口
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any, AsyncIterator

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .api.v1 import router as api_v1_router
from .config.settings import get_settings
from .config.validators import validate_settings
from .jobs.factory import build_registry
from .jobs.recovery import JobRecoveryManager
from .models.database import DatabaseManager
from .scheduling.scheduler import APSchedulerAdapter
from .scheduling.state_store import JobStateStore
from .services import build_services
from .state import get_registry, get_scheduler, set_registry, set_scheduler
from .utils.logging import setup_logging

logger = setup_logging()


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:  # noqa: D401 (fastapi 兼容)
    """应用生命周期：恢复后台任务 & 关闭时挂起。"""
    logger.info("Application starting ...")

    settings = get_settings()
    setup_logging(settings.log_level)
    validate_settings(settings)

    db_manager = DatabaseManager.get_instance(
        settings.storage.db_path, settings.storage.enable_wal
    )
    store = JobStateStore(db_manager)
    scheduler = APSchedulerAdapter(timezone=settings.scheduler_timezone)
    services = build_services(settings, db_manager)
    registry = build_registry(settings, store, scheduler, services)
    recovery = JobRecoveryManager(registry)

    try:
        scheduler.start()
        report = await recovery.restore_all()
    except Exception as exc:
        logger.exception("Failed to initialise jobs: %s", exc)
        scheduler.shutdown()
        await services.aclose()
        raise

    set_registry(registry)
    set_scheduler(scheduler)
    app.state.restore_report = report.to_dict()
    logger.info("Application started jobs=%d", len(registry))

    try:
        yield
    finally:
        logger.info("Application shutting down ...")
        await recovery.halt_all()
        scheduler.shutdown()
        await services.aclose()
        set_registry(None)
        set_scheduler(None)
        logger.info("Jobs halted.")


app = FastAPI(
    title="MHC Backend",
    description="直播数据看板后台任务服务 API",
    version="1.0.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # 在生产环境中应该限制为具体域名
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(api_v1_router)


@app.get("/", summary="健康检查 / Hello")
async def root():
    return {"message": "Hello MHC"}


@app.get("/status")
async def get_status() -> dict[str, Any]:
    """获取系统状态信息。"""
    registry = get_registry()
    scheduler = get_scheduler()
    status: dict[str, Any] = {
        "message": "MHC Backend Service is running",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "scheduler_running": scheduler.is_running() if scheduler else False,
        "registered_jobs": len(registry) if registry else 0,
        "active_timers": scheduler.installed_jobs() if scheduler else [],
        "jobs": {},
    }
    if registry:
        status["jobs"] = {job.name: job.status.value for job in registry}
    return status


# 可选：uvicorn 直接运行入口
if __name__ == "__main__":  # pragma: no cover
    import uvicorn

    uvicorn.run("mhc_backend.app:app", host="0.0.0.0", port=8000, reload=True)
