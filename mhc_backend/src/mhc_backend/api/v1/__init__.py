"""API v1：后台任务控制路由。"""

from __future__ import annotations

from .routes import router

__all__ = ["router"]
