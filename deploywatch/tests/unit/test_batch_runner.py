from __future__ import annotations

import asyncio

import pytest

from deploywatch.services.control_plane.fetcher import BatchRunner


@pytest.mark.asyncio
async def test_in_flight_calls_never_exceed_batch_size() -> None:
    state = {"active": 0, "peak": 0}

    async def work(item: int) -> int:
        state["active"] += 1
        state["peak"] = max(state["peak"], state["active"])
        await asyncio.sleep(0)
        state["active"] -= 1
        return item * 2

    runner: BatchRunner[int, int] = BatchRunner(3)
    results = await runner.run(list(range(10)), work)

    assert results == [item * 2 for item in range(10)]
    assert state["peak"] == 3


@pytest.mark.asyncio
async def test_failed_item_yields_none_without_cancelling_siblings() -> None:
    async def work(item: int) -> int:
        if item == 2:
            raise RuntimeError("unit fetch failed")
        return item

    runner: BatchRunner[int, int] = BatchRunner(15)
    assert await runner.run([1, 2, 3], work) == [1, None, 3]


@pytest.mark.asyncio
async def test_batches_run_sequentially() -> None:
    order: list[str] = []

    async def work(item: int) -> int:
        order.append(f"start-{item}")
        await asyncio.sleep(0)
        order.append(f"end-{item}")
        return item

    runner: BatchRunner[int, int] = BatchRunner(2)
    await runner.run([1, 2, 3], work)

    assert order.index("start-3") > order.index("end-1")
    assert order.index("start-3") > order.index("end-2")


def test_batch_size_floor_is_one() -> None:
    assert BatchRunner(0).batch_size == 1
