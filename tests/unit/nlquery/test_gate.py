"""Tests for the LLM concurrency gate."""

from __future__ import annotations

import asyncio

import pytest

from src.nlquery.gate import ConcurrencyGate


class TestEnqueue:
    """Outcome delivery."""

    @pytest.mark.asyncio
    async def test_returns_task_result(self) -> None:
        gate = ConcurrencyGate(max_concurrent=2, min_spacing=0)

        async def task():
            return "ok"

        assert await gate.enqueue(task) == "ok"
        assert gate.active_count == 0
        assert gate.queue_length == 0

    @pytest.mark.asyncio
    async def test_task_exception_propagates_unchanged(self) -> None:
        gate = ConcurrencyGate(max_concurrent=1, min_spacing=0)
        error = ValueError("boom")

        async def task():
            raise error

        with pytest.raises(ValueError) as exc_info:
            await gate.enqueue(task)
        assert exc_info.value is error

    @pytest.mark.asyncio
    async def test_failure_releases_slot(self) -> None:
        gate = ConcurrencyGate(max_concurrent=1, min_spacing=0)

        async def failing():
            raise RuntimeError("nope")

        async def ok():
            return 1

        with pytest.raises(RuntimeError):
            await gate.enqueue(failing)
        assert await gate.enqueue(ok) == 1
        assert gate.active_count == 0

    def test_rejects_zero_concurrency(self) -> None:
        with pytest.raises(ValueError):
            ConcurrencyGate(max_concurrent=0)


class TestScheduling:
    """Concurrency cap, FIFO dispatch and spacing."""

    @pytest.mark.asyncio
    async def test_never_exceeds_max_concurrent(self) -> None:
        gate = ConcurrencyGate(max_concurrent=2, min_spacing=0)
        in_flight = 0
        peak = 0

        async def task():
            nonlocal in_flight, peak
            in_flight += 1
            peak = max(peak, in_flight)
            await asyncio.sleep(0.01)
            in_flight -= 1
            return True

        results = await asyncio.gather(*(gate.enqueue(task) for _ in range(6)))

        assert all(results)
        assert peak == 2

    @pytest.mark.asyncio
    async def test_dispatch_is_fifo(self) -> None:
        gate = ConcurrencyGate(max_concurrent=1, min_spacing=0)
        started: list[int] = []

        def make(i: int):
            async def task():
                started.append(i)
                await asyncio.sleep(0)
                return i

            return task

        results = await asyncio.gather(*(gate.enqueue(make(i)) for i in range(5)))

        assert started == [0, 1, 2, 3, 4]
        assert results == [0, 1, 2, 3, 4]

    @pytest.mark.asyncio
    async def test_dispatches_are_spaced(self) -> None:
        gate = ConcurrencyGate(max_concurrent=3, min_spacing=0.05)
        loop = asyncio.get_running_loop()
        start_times: list[float] = []

        async def task():
            start_times.append(loop.time())

        await asyncio.gather(*(gate.enqueue(task) for _ in range(3)))

        gaps = [b - a for a, b in zip(start_times, start_times[1:])]
        assert len(gaps) == 2
        assert all(gap >= 0.045 for gap in gaps)


class TestIntrospection:
    """is_busy, wait estimates and stats."""

    @pytest.mark.asyncio
    async def test_busy_while_saturated(self) -> None:
        gate = ConcurrencyGate(max_concurrent=1, min_spacing=0)
        release = asyncio.Event()

        async def blocked():
            await release.wait()
            return "first"

        async def quick():
            return "second"

        assert gate.is_busy() is False

        first = asyncio.create_task(gate.enqueue(blocked))
        await asyncio.sleep(0)
        second = asyncio.create_task(gate.enqueue(quick))
        await asyncio.sleep(0)

        assert gate.is_busy() is True
        assert gate.get_stats() == {"queue_length": 1, "active_count": 1, "max_concurrent": 1}
        # (1 queued + 1 active) / 1 * 3s
        assert gate.get_estimated_wait_time() == 6

        release.set()
        assert await first == "first"
        assert await second == "second"
        assert gate.is_busy() is False

    def test_idle_estimate_is_zero(self) -> None:
        gate = ConcurrencyGate(max_concurrent=3)
        assert gate.get_estimated_wait_time() == 0

    @pytest.mark.asyncio
    async def test_abandoned_waiter_does_not_cancel_task(self) -> None:
        gate = ConcurrencyGate(max_concurrent=1, min_spacing=0)
        release = asyncio.Event()
        finished = asyncio.Event()

        async def task():
            await release.wait()
            finished.set()
            return "done"

        waiter = asyncio.create_task(gate.enqueue(task))
        await asyncio.sleep(0)
        waiter.cancel()
        with pytest.raises(asyncio.CancelledError):
            await waiter

        release.set()
        await asyncio.wait_for(finished.wait(), timeout=1)
        assert finished.is_set()
