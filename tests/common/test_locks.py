from __future__ import annotations

import asyncio

import pytest

from fusionid.common.batching import gather_batched
from fusionid.common.locks import KeyedLockManager


def test_waiters_on_one_key_run_in_arrival_order() -> None:
    order: list[int] = []

    async def run() -> None:
        locks = KeyedLockManager()

        async def worker(index: int) -> None:
            async with locks.lock("login"):
                await asyncio.sleep(0)
                order.append(index)

        await asyncio.gather(*(worker(index) for index in range(5)))

    asyncio.run(run())

    assert order == [0, 1, 2, 3, 4]


def test_distinct_keys_do_not_block_each_other() -> None:
    async def run() -> list[str]:
        locks = KeyedLockManager()
        events: list[str] = []
        release = asyncio.Event()

        async def holder() -> None:
            async with locks.lock("a"):
                events.append("a-acquired")
                await release.wait()

        async def other() -> None:
            async with locks.lock("b"):
                events.append("b-acquired")
                release.set()

        await asyncio.gather(holder(), other())
        return events

    assert asyncio.run(run()) == ["a-acquired", "b-acquired"]


def test_entries_are_dropped_once_idle() -> None:
    async def run() -> tuple[frozenset[str], bool, frozenset[str]]:
        locks = KeyedLockManager()
        async with locks.lock("a"):
            held = locks.pending_keys
            locked = locks.is_locked("a")
        await locks.wait_for_all_pending()
        return held, locked, locks.pending_keys

    held, locked, after = asyncio.run(run())

    assert held == {"a"}
    assert locked
    assert after == frozenset()


def test_with_lock_releases_on_error() -> None:
    async def run() -> bool:
        locks = KeyedLockManager()

        async def boom() -> None:
            raise RuntimeError("boom")

        with pytest.raises(RuntimeError, match="boom"):
            await locks.with_lock("a", boom)

        async def value() -> int:
            return 42

        assert await locks.with_lock("a", value) == 42
        return locks.is_locked("a")

    assert asyncio.run(run()) is False


def test_wait_for_all_pending_blocks_until_holders_finish() -> None:
    async def run() -> list[str]:
        locks = KeyedLockManager()
        events: list[str] = []

        async def holder() -> None:
            async with locks.lock("counter-state:login"):
                await asyncio.sleep(0.01)
                events.append("released")

        task = asyncio.create_task(holder())
        await asyncio.sleep(0)
        await locks.wait_for_all_pending()
        events.append("idle")
        await task
        return events

    assert asyncio.run(run()) == ["released", "idle"]


def test_gather_batched_keeps_order_and_isolates_failures() -> None:
    in_flight = 0
    peak = 0

    async def operation(item: int) -> int:
        nonlocal in_flight, peak
        in_flight += 1
        peak = max(peak, in_flight)
        await asyncio.sleep(0)
        in_flight -= 1
        if item == 3:
            raise ValueError("bad item")
        return item * 10

    results = asyncio.run(gather_batched(list(range(7)), operation, batch_size=2))

    assert results[:3] == [0, 10, 20]
    assert isinstance(results[3], ValueError)
    assert results[4:] == [40, 50, 60]
    assert peak == 2


def test_gather_batched_rejects_empty_batches() -> None:
    async def operation(item: int) -> int:
        return item

    with pytest.raises(ValueError, match="batch_size"):
        asyncio.run(gather_batched([1], operation, batch_size=0))
