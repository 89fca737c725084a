from __future__ import annotations

import math

import pytest

from mhc_backend.jobs.dispatcher import (
    BatchDispatcher,
    BatchOutcome,
    ItemOutcome,
)

from conftest import FakeClock


@pytest.mark.parametrize("count,batch_size", [(1, 1), (7, 3), (9, 3), (10, 4)])
@pytest.mark.asyncio
async def test_batch_and_delay_counts(count, batch_size):
    clock = FakeClock()
    dispatcher = BatchDispatcher(clock)
    seen = []

    async def process(item):
        seen.append(item)
        return ItemOutcome.SUCCEEDED

    result = await dispatcher.run(
        list(range(count)),
        process,
        batch_size=batch_size,
        delay_between_items=2,
        delay_between_batches=30,
    )

    batches = math.ceil(count / batch_size)
    assert seen == list(range(count))
    assert result.batches_run == batches
    assert result.succeeded == count
    assert clock.sleeps.count(30) == batches - 1
    assert clock.sleeps.count(2) == count


@pytest.mark.asyncio
async def test_empty_input_runs_nothing():
    clock = FakeClock()
    result = await BatchDispatcher(clock).run([], _unused, batch_size=5)

    assert result.batches_run == 0
    assert result.processed == 0
    assert clock.sleeps == []


@pytest.mark.asyncio
async def test_zero_delays_never_sleep():
    clock = FakeClock()

    async def process(item):
        return None

    result = await BatchDispatcher(clock).run([1, 2, 3], process, batch_size=2)

    assert result.succeeded == 3
    assert clock.sleeps == []


@pytest.mark.asyncio
async def test_failing_item_does_not_abort_cycle():
    clock = FakeClock()

    async def process(item):
        if item == "b":
            raise RuntimeError("upstream 500")
        if item == "c":
            return ItemOutcome.SKIPPED
        return ItemOutcome.SUCCEEDED

    result = await BatchDispatcher(clock).run(
        ["a", "b", "c", "d"], process, batch_size=2, delay_between_items=1
    )

    assert (result.succeeded, result.failed, result.skipped) == (2, 1, 1)
    assert clock.sleeps.count(1) == 4


@pytest.mark.asyncio
async def test_should_continue_checked_between_batches():
    clock = FakeClock()
    checks = []

    def should_continue():
        checks.append(len(checks))
        return len(checks) < 2

    async def process(item):
        return ItemOutcome.SUCCEEDED

    result = await BatchDispatcher(clock).run(
        list(range(10)),
        process,
        batch_size=3,
        delay_between_batches=5,
        should_continue=should_continue,
    )

    # 第一批不检查；第二批检查通过；第三批前中断
    assert result.batches_run == 2
    assert result.succeeded == 6
    assert result.interrupted is True
    assert len(checks) == 2
    assert clock.sleeps == [5, 5]


@pytest.mark.asyncio
async def test_on_item_reports_progress():
    clock = FakeClock()
    progress = []

    async def process(item):
        return ItemOutcome.SUCCEEDED

    await BatchDispatcher(clock).run(
        ["x", "y", "z"],
        process,
        batch_size=2,
        on_item=lambda i, item, outcome: progress.append((i, item, outcome)),
    )

    assert [p[0] for p in progress] == [0, 1, 2]
    assert [p[1] for p in progress] == ["x", "y", "z"]


@pytest.mark.asyncio
async def test_run_batches_counts_failed_batch():
    clock = FakeClock()
    calls = []

    async def process_batch(batch):
        calls.append(list(batch))
        if len(calls) == 2:
            raise RuntimeError("timeout")
        return BatchOutcome(succeeded=len(batch) - 1, skipped=1)

    result = await BatchDispatcher(clock).run_batches(
        list(range(7)), process_batch, batch_size=3, delay_between_batches=2
    )

    assert calls == [[0, 1, 2], [3, 4, 5], [6]]
    assert result.batches_run == 3
    assert result.failed == 3
    assert result.succeeded == 2
    assert result.skipped == 2
    assert clock.sleeps == [2, 2]


@pytest.mark.asyncio
async def test_invalid_batch_size():
    with pytest.raises(ValueError):
        await BatchDispatcher(FakeClock()).run([1], _unused, batch_size=0)


async def _unused(item):  # pragma: no cover
    raise AssertionError("should not be called")
