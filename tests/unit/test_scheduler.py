"""Tests for the coalescing update scheduler."""

import asyncio

import pytest

from agentbridge.core.scheduler import CoalescingScheduler


class FakeClock:
    def __init__(self) -> None:
        self.now = 0.0

    def __call__(self) -> float:
        return self.now


def recorder(log: list[int], value: int):
    async def push() -> None:
        log.append(value)

    return push


class TestCoalescingScheduler:
    """Tests for rate limiting and coalescing of pushes."""

    @pytest.mark.asyncio
    async def test_first_push_is_immediate(self) -> None:
        """Test that the first schedule pushes without waiting."""
        pushed: list[int] = []
        scheduler = CoalescingScheduler(interval=10)

        scheduler.schedule(recorder(pushed, 1))
        await asyncio.sleep(0)

        assert pushed == [1]
        assert scheduler.push_count == 1

    @pytest.mark.asyncio
    async def test_burst_coalesces_to_latest(self) -> None:
        """Test that a burst yields one immediate push and one final push."""
        pushed: list[int] = []
        scheduler = CoalescingScheduler(interval=10)

        for i in range(10):
            scheduler.schedule(recorder(pushed, i))
        await scheduler.flush()

        assert pushed == [0, 9]
        assert scheduler.push_count == 2
        assert not scheduler.has_pending

    @pytest.mark.asyncio
    async def test_pending_push_fires_after_interval(self) -> None:
        """Test that the pending push is delivered by the timer."""
        pushed: list[int] = []
        scheduler = CoalescingScheduler(interval=0.02)

        scheduler.schedule(recorder(pushed, 1))
        scheduler.schedule(recorder(pushed, 2))
        scheduler.schedule(recorder(pushed, 3))
        await asyncio.sleep(0.2)

        assert pushed == [1, 3]

    @pytest.mark.asyncio
    async def test_pushes_respect_interval(self) -> None:
        """Test that a push inside the interval is deferred."""
        clock = FakeClock()
        pushed: list[int] = []
        scheduler = CoalescingScheduler(interval=1.5, clock=clock)

        scheduler.schedule(recorder(pushed, 1))
        await asyncio.sleep(0)
        clock.now = 1.0
        scheduler.schedule(recorder(pushed, 2))
        await asyncio.sleep(0)

        assert pushed == [1]
        assert scheduler.has_pending

        await scheduler.flush()
        assert pushed == [1, 2]

    @pytest.mark.asyncio
    async def test_push_after_interval_is_immediate(self) -> None:
        clock = FakeClock()
        pushed: list[int] = []
        scheduler = CoalescingScheduler(interval=1.5, clock=clock)

        scheduler.schedule(recorder(pushed, 1))
        await asyncio.sleep(0)
        clock.now = 2.0
        scheduler.schedule(recorder(pushed, 2))
        await asyncio.sleep(0)

        assert pushed == [1, 2]
        assert not scheduler.has_pending

    @pytest.mark.asyncio
    async def test_single_push_in_flight(self) -> None:
        """Test that a slow push blocks the next one until it finishes."""
        clock = FakeClock()
        release = asyncio.Event()
        active = 0
        max_active = 0
        pushed: list[int] = []

        def slow(value: int):
            async def push() -> None:
                nonlocal active, max_active
                active += 1
                max_active = max(max_active, active)
                await release.wait()
                pushed.append(value)
                active -= 1

            return push

        scheduler = CoalescingScheduler(interval=0.01, clock=clock)
        scheduler.schedule(slow(1))
        await asyncio.sleep(0)
        clock.now = 5.0
        scheduler.schedule(slow(2))
        await asyncio.sleep(0.05)

        assert pushed == []
        assert scheduler.has_pending

        release.set()
        await scheduler.flush()

        assert pushed == [1, 2]
        assert max_active == 1

    @pytest.mark.asyncio
    async def test_cancel_drops_pending(self) -> None:
        """Test that cancel discards the pending push."""
        pushed: list[int] = []
        scheduler = CoalescingScheduler(interval=10)

        scheduler.schedule(recorder(pushed, 1))
        scheduler.schedule(recorder(pushed, 2))
        scheduler.cancel()
        await scheduler.flush()

        assert pushed == [1]

    @pytest.mark.asyncio
    async def test_failed_push_is_swallowed(self) -> None:
        """Test that a sink failure does not break later pushes."""
        pushed: list[int] = []
        scheduler = CoalescingScheduler(interval=10)

        async def broken() -> None:
            raise RuntimeError("sink down")

        scheduler.schedule(broken)
        scheduler.schedule(recorder(pushed, 2))
        await scheduler.flush()

        assert pushed == [2]
        assert scheduler.push_count == 2

    @pytest.mark.asyncio
    async def test_flush_with_nothing_pending(self) -> None:
        scheduler = CoalescingScheduler()

        await scheduler.flush()

        assert scheduler.push_count == 0
