"""后台周期任务基类

RecurringJob 是一个显式的状态机：
    STOPPED --start--> IDLE <--> PROCESSING
    IDLE/PROCESSING --pause--> PAUSED --resume--> IDLE
    任意状态 --stop--> STOPPED

运行标记 (running/paused) 每次变化都写入 JobStateStore，进程重启时由 restore()
据此恢复。processing 只存在于内存，用于保证同一任务同一时刻只有一个周期在执行。
"""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Callable, ClassVar, Dict, Mapping, Optional, Sequence

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from ..scheduling.clock import AsyncioClock, Clock
from ..scheduling.scheduler import SchedulerPort
from ..scheduling.state_store import JobStateSnapshot, JobStateStore
from .dispatcher import (
    BatchDispatcher,
    BatchOutcome,
    BatchProcessor,
    DispatchResult,
    ItemOutcome,
    ItemProcessor,
)

logger = logging.getLogger("mhc.jobs")

# 重启时持久化为暂停的任务只恢复内存标记，不安装定时器，需要 resume 重新挂载
RESUME_PAUSED_ON_RESTORE = False


class JobStatus(str, Enum):
    STOPPED = "stopped"
    IDLE = "idle"
    PROCESSING = "processing"
    PAUSED = "paused"


class JobError(Exception):
    """任务基础异常类"""


class UnsupportedOperationError(JobError):
    def __init__(self, job_name: str, operation: str):
        self.job_name = job_name
        self.operation = operation
        super().__init__(f"job {job_name} does not support {operation}")


class JobConfig(BaseModel):
    model_config = ConfigDict(extra="ignore")

    enabled: bool = True
    interval_minutes: int = Field(default=60, ge=1)


class RunStats(BaseModel):
    model_config = ConfigDict(extra="ignore")

    last_run: Optional[datetime] = None
    total_runs: int = 0
    total_succeeded: int = 0
    total_failed: int = 0
    total_skipped: int = 0
    last_run_succeeded: int = 0
    last_run_failed: int = 0
    last_run_skipped: int = 0
    last_cycle_duration_ms: int = 0
    last_error: Optional[str] = None
    # 以下仅在周期执行中有意义
    progress: int = 0
    total: int = 0
    current_item: Optional[str] = None

    def clear_progress(self) -> None:
        self.progress = 0
        self.total = 0
        self.current_item = None

    def begin_cycle(self) -> None:
        self.last_run_succeeded = 0
        self.last_run_failed = 0
        self.last_run_skipped = 0

    def record(self, result: DispatchResult) -> None:
        self.last_run_succeeded += result.succeeded
        self.last_run_failed += result.failed
        self.last_run_skipped += result.skipped
        self.total_succeeded += result.succeeded
        self.total_failed += result.failed
        self.total_skipped += result.skipped


@dataclass
class RunNowResult:
    success: bool
    message: str


class RecurringJob(ABC):
    """后台周期任务。

    子类声明 name、config_model、stats_model 与能力标记，并实现 execute_cycle()。

    Attributes:
        config: 当前生效的任务配置
        stats: 当前统计信息
    """

    name: ClassVar[str]
    config_model: ClassVar[type[JobConfig]] = JobConfig
    stats_model: ClassVar[type[RunStats]] = RunStats
    supports_pause: ClassVar[bool] = False
    supports_run_now: ClassVar[bool] = False

    def __init__(
        self,
        store: JobStateStore,
        scheduler: SchedulerPort,
        clock: Optional[Clock] = None,
        overrides: Optional[Mapping[str, Any]] = None,
    ):
        self.store = store
        self.scheduler = scheduler
        self.clock = clock or AsyncioClock()
        self.dispatcher = BatchDispatcher(self.clock)

        self._defaults = self.config_model.model_validate(dict(overrides or {}))
        self.config = self._defaults.model_copy()
        self.stats = self.stats_model()

        self._running = False
        self._paused = False
        self._processing = False
        self._halting = False
        self._cycle_needs_running = True
        self._cycle_task: Optional[asyncio.Task] = None
        self._current_cycle: Optional[asyncio.Task] = None

    # ------------------------------------------------------------------
    # 状态查询
    # ------------------------------------------------------------------

    @property
    def status(self) -> JobStatus:
        if not self._running:
            return JobStatus.STOPPED
        if self._paused:
            return JobStatus.PAUSED
        if self._processing:
            return JobStatus.PROCESSING
        return JobStatus.IDLE

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def is_paused(self) -> bool:
        return self._paused

    @property
    def is_processing(self) -> bool:
        return self._processing

    @property
    def interval_seconds(self) -> float:
        return self.config.interval_minutes * 60

    def get_status(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "status": self.status.value,
            "is_running": self._running,
            "is_paused": self._paused,
            "is_processing": self._processing,
            "timer_active": self.scheduler.is_installed(self.name),
            "supports_pause": self.supports_pause,
            "supports_run_now": self.supports_run_now,
            "config": self.config.model_dump(mode="json"),
            "stats": self.stats.model_dump(mode="json"),
        }

    # ------------------------------------------------------------------
    # 生命周期
    # ------------------------------------------------------------------

    def ensure(self) -> bool:
        """确保持久化记录存在，默认配置只在首次创建时写入"""
        return self.store.ensure_job_state(
            self.name, self._defaults.model_dump(mode="json")
        )

    async def restore(self) -> bool:
        """按持久化状态恢复任务，返回是否恢复为运行状态"""
        state = self.store.load_state(self.name)
        if state is None:
            logger.info("无持久化记录，跳过恢复 job=%s", self.name)
            return False

        self._apply_persisted(state)

        if state.running and not state.paused:
            logger.info("恢复运行中的任务 job=%s", self.name)
            return await self._restart_restored()

        if state.running and state.paused:
            if not self.supports_pause:
                return await self._restart_restored()
            self._running = True
            self._paused = True
            if RESUME_PAUSED_ON_RESTORE:
                self._install_timer()
            logger.info("恢复为暂停状态，未安装定时器 job=%s", self.name)
            return True

        return False

    async def _restart_restored(self) -> bool:
        if await self.start():
            return True
        # 启动被拒绝（未启用或前置条件失败），持久化状态与内存保持一致
        self.store.save_running_state(self.name, False, False)
        logger.warning("恢复启动失败，已标记为停止 job=%s", self.name)
        return False

    async def start(self) -> bool:
        if self._running and not self._paused:
            logger.warning("任务已在运行，忽略启动 job=%s", self.name)
            return False
        if not self.config.enabled:
            logger.warning("任务未启用，忽略启动 job=%s", self.name)
            return False

        error = await self.check_start_preconditions()
        if error:
            logger.error("任务启动失败 job=%s reason=%s", self.name, error)
            return False

        self.store.save_running_state(self.name, True, False)
        self._running = True
        self._paused = False
        self._halting = False

        self._cycle_task = asyncio.create_task(
            self.run_cycle("start"), name=f"{self.name}:start"
        )
        self._install_timer()
        logger.info(
            "任务已启动 job=%s interval_minutes=%d",
            self.name, self.config.interval_minutes,
        )
        return True

    async def stop(self) -> None:
        """停止任务：移除定时器并持久化停止状态，不打断正在执行的周期"""
        self.scheduler.remove(self.name)
        self._running = False
        self._paused = False
        self.store.save_running_state(self.name, False, False)
        logger.info("任务已停止 job=%s processing=%s", self.name, self._processing)

    def halt(self) -> None:
        """进程关闭时使用：只移除定时器，运行标记保持不变"""
        self.scheduler.remove(self.name)
        self._halting = True
        logger.info("任务已挂起 job=%s", self.name)

    async def pause(self) -> bool:
        self._require(self.supports_pause, "pause")
        if not self._running or self._paused:
            logger.warning(
                "任务未运行或已暂停，忽略暂停 job=%s status=%s",
                self.name, self.status.value,
            )
            return False
        self._paused = True
        self.store.save_running_state(self.name, True, True)
        logger.info("任务已暂停 job=%s", self.name)
        return True

    async def resume(self) -> bool:
        self._require(self.supports_pause, "resume")
        if not self._running or not self._paused:
            logger.warning(
                "任务未处于暂停状态，忽略恢复 job=%s status=%s",
                self.name, self.status.value,
            )
            return False
        self._paused = False
        self.store.save_running_state(self.name, True, False)
        if not self.scheduler.is_installed(self.name):
            self._install_timer()
        logger.info("任务已恢复 job=%s", self.name)
        return True

    async def update_config(self, partial: Mapping[str, Any]) -> JobConfig:
        """合并并持久化配置

        Raises:
            pydantic.ValidationError: 合并后的配置无效，此时不产生任何副作用
        """
        merged = self.config_model.model_validate(
            {**self.config.model_dump(), **dict(partial)}
        )
        was_active = self._running and not self._paused
        was_paused = self._running and self._paused

        if was_active:
            await self.stop()

        self.config = merged
        self.store.save_config(self.name, merged.model_dump(mode="json"))
        logger.info("任务配置已更新 job=%s keys=%s", self.name, sorted(partial))

        if was_active and merged.enabled:
            await self.start()
        elif was_paused:
            if merged.enabled:
                # 保持暂停，resume 时按新间隔重新安装定时器
                self.scheduler.remove(self.name)
            else:
                await self.stop()
        return merged

    def reset_stats(self) -> None:
        self.stats = self.stats_model()
        self.store.save_stats(
            self.name, self.stats.model_dump(mode="json"), mark_run=False
        )
        logger.info("任务统计已重置 job=%s", self.name)

    async def run_now(self) -> RunNowResult:
        self._require(self.supports_run_now, "run-now")
        if self._processing:
            return RunNowResult(False, "任务正在执行中")
        if self._paused:
            return RunNowResult(False, "任务已暂停")
        ok = await self.run_cycle("manual")
        if ok:
            return RunNowResult(True, "执行完成")
        return RunNowResult(False, self.stats.last_error or "本次周期被跳过")

    async def join(self, timeout: Optional[float] = None) -> None:
        """等待正在执行的周期结束"""
        pending = {
            t for t in (self._cycle_task, self._current_cycle)
            if t is not None and not t.done() and t is not asyncio.current_task()
        }
        if pending:
            await asyncio.wait(pending, timeout=timeout)

    # ------------------------------------------------------------------
    # 周期执行
    # ------------------------------------------------------------------

    async def run_cycle(self, trigger: str = "timer") -> bool:
        """执行一个周期，返回周期是否完整执行"""
        if self._processing:
            logger.warning(
                "上一周期仍在执行，丢弃本次触发 job=%s trigger=%s", self.name, trigger
            )
            return False
        if self._paused:
            logger.debug("任务已暂停，跳过周期 job=%s trigger=%s", self.name, trigger)
            return False

        self._processing = True
        self._cycle_needs_running = trigger != "manual" or self._running
        self._current_cycle = asyncio.current_task()
        started = self.clock.monotonic()
        counted = False
        try:
            reason = await self.precheck()
            if reason is not None:
                logger.info("跳过本周期 job=%s reason=%s", self.name, reason)
                return False
            counted = True
            self.stats.begin_cycle()
            logger.info("周期开始 job=%s trigger=%s", self.name, trigger)
            await self.execute_cycle()
            self.stats.last_error = None
            return True
        except Exception as e:
            counted = True
            logger.exception("周期执行失败 job=%s error=%s", self.name, e)
            self.stats.last_error = str(e)
            return False
        finally:
            if counted:
                self.stats.total_runs += 1
                self.stats.last_run = self.clock.now()
                self.stats.last_cycle_duration_ms = int(
                    (self.clock.monotonic() - started) * 1000
                )
            self.stats.clear_progress()
            self._processing = False
            self._current_cycle = None
            if counted:
                self._persist_stats()
                logger.info(
                    "周期结束 job=%s succeeded=%d failed=%d skipped=%d error=%s",
                    self.name,
                    self.stats.last_run_succeeded,
                    self.stats.last_run_failed,
                    self.stats.last_run_skipped,
                    self.stats.last_error,
                )

    def should_continue(self) -> bool:
        """批次之间的继续条件：暂停、挂起或（由运行状态触发的周期）停止后不再开始新批次"""
        if self._halting or self._paused:
            return False
        return self._running or not self._cycle_needs_running

    async def dispatch(
        self,
        items: Sequence[Any],
        process_item: ItemProcessor,
        *,
        batch_size: int,
        delay_between_items: float = 0.0,
        delay_between_batches: float = 0.0,
        label: Callable[[Any], str] = str,
    ) -> DispatchResult:
        self.stats.total = len(items)
        self.stats.progress = 0

        def on_item(index: int, item: Any, _outcome: ItemOutcome) -> None:
            self.stats.progress = index + 1
            self.stats.current_item = label(item)

        result = await self.dispatcher.run(
            items,
            process_item,
            batch_size=batch_size,
            delay_between_items=delay_between_items,
            delay_between_batches=delay_between_batches,
            should_continue=self.should_continue,
            on_item=on_item,
        )
        self.stats.record(result)
        return result

    async def dispatch_batches(
        self,
        items: Sequence[Any],
        process_batch: BatchProcessor,
        *,
        batch_size: int,
        delay_between_batches: float = 0.0,
        on_batch: Optional[Callable[[int, int, BatchOutcome], Any]] = None,
    ) -> DispatchResult:
        self.stats.total = len(items)
        self.stats.progress = 0

        def track(batch_no: int, total: int, outcome: BatchOutcome) -> None:
            self.stats.progress += outcome.succeeded + outcome.failed + outcome.skipped
            if on_batch is not None:
                on_batch(batch_no, total, outcome)

        result = await self.dispatcher.run_batches(
            items,
            process_batch,
            batch_size=batch_size,
            delay_between_batches=delay_between_batches,
            should_continue=self.should_continue,
            on_batch=track,
        )
        self.stats.record(result)
        return result

    # ------------------------------------------------------------------
    # 子类钩子
    # ------------------------------------------------------------------

    async def check_start_preconditions(self) -> Optional[str]:
        """返回非空字符串表示无法启动"""
        return None

    async def precheck(self) -> Optional[str]:
        """返回非空字符串表示跳过本周期（不计入运行次数）"""
        return None

    @abstractmethod
    async def execute_cycle(self) -> None:
        raise NotImplementedError

    # ------------------------------------------------------------------
    # 内部工具
    # ------------------------------------------------------------------

    async def _on_tick(self) -> None:
        await self.run_cycle("timer")

    def _install_timer(self) -> None:
        self.scheduler.install(self.name, self._on_tick, self.interval_seconds)

    def _require(self, supported: bool, operation: str) -> None:
        if not supported:
            raise UnsupportedOperationError(self.name, operation)

    def _apply_persisted(self, state: JobStateSnapshot) -> None:
        try:
            self.config = self.config_model.model_validate(
                {**self._defaults.model_dump(), **state.config}
            )
        except ValidationError as e:
            logger.warning("持久化配置无效，使用默认配置 job=%s error=%s", self.name, e)
            self.config = self._defaults.model_copy()
        try:
            self.stats = self.stats_model.model_validate(state.stats)
        except ValidationError as e:
            logger.warning("持久化统计无效，已重置 job=%s error=%s", self.name, e)
            self.stats = self.stats_model()
        self.stats.clear_progress()

    def _persist_stats(self) -> None:
        try:
            self.store.save_stats(self.name, self.stats.model_dump(mode="json"))
        except Exception as e:
            logger.error("保存任务统计失败 job=%s error=%s", self.name, e)
