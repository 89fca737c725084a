from __future__ import annotations

import asyncio
import time
from abc import ABC, abstractmethod
from datetime import datetime

from ..models.database import utcnow


class Clock(ABC):
    """时间端口：任务与分发器只通过它获取时间和等待"""

    @abstractmethod
    def now(self) -> datetime:
        raise NotImplementedError

    @abstractmethod
    def monotonic(self) -> float:
        raise NotImplementedError

    @abstractmethod
    async def sleep(self, seconds: float) -> None:
        raise NotImplementedError


class AsyncioClock(Clock):
    def now(self) -> datetime:
        return utcnow()

    def monotonic(self) -> float:
        return time.monotonic()

    async def sleep(self, seconds: float) -> None:
        if seconds > 0:
            await asyncio.sleep(seconds)
