"""批量分发器

把一个周期选出的条目切分成批次，按顺序逐条处理，并在条目之间、批次之间等待。
单个条目的异常只计为失败，不会中断整个周期。
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, Optional, Sequence, TypeVar

from ..scheduling.clock import Clock

logger = logging.getLogger("mhc.jobs.dispatcher")

T = TypeVar("T")


class ItemOutcome(str, Enum):
    SUCCEEDED = "succeeded"
    SKIPPED = "skipped"
    FAILED = "failed"


@dataclass
class BatchOutcome:
    succeeded: int = 0
    failed: int = 0
    skipped: int = 0


@dataclass
class DispatchResult:
    succeeded: int = 0
    failed: int = 0
    skipped: int = 0
    batches_run: int = 0
    interrupted: bool = False

    @property
    def processed(self) -> int:
        return self.succeeded + self.failed + self.skipped

    def add(self, outcome: ItemOutcome) -> None:
        if outcome is ItemOutcome.SUCCEEDED:
            self.succeeded += 1
        elif outcome is ItemOutcome.SKIPPED:
            self.skipped += 1
        else:
            self.failed += 1

    def add_batch(self, outcome: BatchOutcome) -> None:
        self.succeeded += outcome.succeeded
        self.failed += outcome.failed
        self.skipped += outcome.skipped


ItemProcessor = Callable[[T], Awaitable[ItemOutcome]]
BatchProcessor = Callable[[Sequence[T]], Awaitable[BatchOutcome]]
ContinueCheck = Callable[[], bool]


class BatchDispatcher:
    """顺序批处理执行器。

    - 条目按 batch_size 切分，批次依次执行
    - 每个条目处理完（无论成功失败，包括最后一个）等待 delay_between_items 秒
    - 批次之间（最后一批之后除外）等待 delay_between_batches 秒
    - 除第一批外，每批开始前检查 should_continue，返回 False 时停止后续批次
    """

    def __init__(self, clock: Clock):
        self.clock = clock

    @staticmethod
    def _slice(items: Sequence[T], batch_size: int) -> list[list[T]]:
        if batch_size < 1:
            raise ValueError("batch_size must be >= 1")
        items = list(items)
        return [items[i:i + batch_size] for i in range(0, len(items), batch_size)]

    async def _before_batch(
        self,
        batch_no: int,
        total: int,
        delay_between_batches: float,
        should_continue: Optional[ContinueCheck],
    ) -> bool:
        if batch_no == 0:
            return True
        if delay_between_batches > 0:
            await self.clock.sleep(delay_between_batches)
        if should_continue is not None and not should_continue():
            logger.info("分发中断 batch=%d/%d", batch_no + 1, total)
            return False
        return True

    async def run(
        self,
        items: Sequence[T],
        process_item: ItemProcessor,
        *,
        batch_size: int,
        delay_between_items: float = 0.0,
        delay_between_batches: float = 0.0,
        should_continue: Optional[ContinueCheck] = None,
        on_item: Optional[Callable[[int, T, ItemOutcome], Any]] = None,
    ) -> DispatchResult:
        batches = self._slice(items, batch_size)
        result = DispatchResult()
        index = 0

        for batch_no, batch in enumerate(batches):
            if not await self._before_batch(
                batch_no, len(batches), delay_between_batches, should_continue
            ):
                result.interrupted = True
                break
            result.batches_run += 1

            for item in batch:
                outcome = await self._process_one(process_item, item)
                result.add(outcome)
                if on_item is not None:
                    on_item(index, item, outcome)
                index += 1
                if delay_between_items > 0:
                    await self.clock.sleep(delay_between_items)

        return result

    async def run_batches(
        self,
        items: Sequence[T],
        process_batch: BatchProcessor,
        *,
        batch_size: int,
        delay_between_batches: float = 0.0,
        should_continue: Optional[ContinueCheck] = None,
        on_batch: Optional[Callable[[int, int, BatchOutcome], Any]] = None,
    ) -> DispatchResult:
        """整批处理：一批条目交给 process_batch 一次完成，批次异常计全部失败"""
        batches = self._slice(items, batch_size)
        result = DispatchResult()

        for batch_no, batch in enumerate(batches):
            if not await self._before_batch(
                batch_no, len(batches), delay_between_batches, should_continue
            ):
                result.interrupted = True
                break
            result.batches_run += 1

            try:
                outcome = await process_batch(batch)
            except Exception as e:
                logger.warning(
                    "批次处理失败 batch=%d/%d size=%d error=%s",
                    batch_no + 1, len(batches), len(batch), e,
                )
                outcome = BatchOutcome(failed=len(batch))
            result.add_batch(outcome)
            if on_batch is not None:
                on_batch(batch_no, len(batches), outcome)

        return result

    async def _process_one(self, process_item: ItemProcessor, item: Any) -> ItemOutcome:
        try:
            outcome = await process_item(item)
        except Exception as e:
            logger.warning("条目处理失败 item=%s error=%s", item, e)
            return ItemOutcome.FAILED
        if outcome is None:
            return ItemOutcome.SUCCEEDED
        return ItemOutcome(outcome)
