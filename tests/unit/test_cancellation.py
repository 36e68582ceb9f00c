"""Tests for cancellation tokens, guarded iteration and timeout budgets."""

import asyncio

import pytest

from agentbridge.core.cancellation import (
    CancellationToken,
    CancelReason,
    TimeoutBudget,
    iterate_until_cancelled,
)


class TestCancellationToken:
    """Tests for the cancellation token."""

    @pytest.mark.asyncio
    async def test_cancel_is_idempotent(self) -> None:
        """Test that the first reason wins."""
        token = CancellationToken()

        assert token.cancel(CancelReason.TIMEOUT) is True
        assert token.cancel(CancelReason.STOPPED) is False
        assert token.cancelled
        assert token.reason == CancelReason.TIMEOUT

    @pytest.mark.asyncio
    async def test_callbacks_run_once(self) -> None:
        token = CancellationToken()
        reasons: list[CancelReason] = []
        token.add_callback(reasons.append)

        token.cancel()
        token.cancel()

        assert reasons == [CancelReason.STOPPED]

    @pytest.mark.asyncio
    async def test_callback_after_cancel_runs_immediately(self) -> None:
        token = CancellationToken()
        token.cancel(CancelReason.SHUTDOWN)
        reasons: list[CancelReason] = []

        token.add_callback(reasons.append)

        assert reasons == [CancelReason.SHUTDOWN]

    @pytest.mark.asyncio
    async def test_removed_callback_not_called(self) -> None:
        token = CancellationToken()
        reasons: list[CancelReason] = []
        token.add_callback(reasons.append)
        token.remove_callback(reasons.append)
        token.remove_callback(reasons.append)

        token.cancel()

        assert reasons == []

    @pytest.mark.asyncio
    async def test_wait_returns_reason(self) -> None:
        token = CancellationToken()
        asyncio.get_running_loop().call_soon(token.cancel, CancelReason.TIMEOUT)

        assert await asyncio.wait_for(token.wait(), 1) == CancelReason.TIMEOUT


class TestIterateUntilCancelled:
    """Tests for cancellation-aware stream iteration."""

    @pytest.mark.asyncio
    async def test_yields_all_items(self) -> None:
        async def stream():
            for i in range(3):
                yield i

        token = CancellationToken()
        items = [item async for item in iterate_until_cancelled(stream(), token)]

        assert items == [0, 1, 2]

    @pytest.mark.asyncio
    async def test_stalled_stream_stops_on_cancel(self) -> None:
        """Test that a stream stuck between items is abandoned and closed."""
        closed = asyncio.Event()

        async def stream():
            try:
                yield 1
                await asyncio.Event().wait()
                yield 2
            finally:
                closed.set()

        token = CancellationToken()
        items: list[int] = []

        async def consume() -> None:
            async for item in iterate_until_cancelled(stream(), token):
                items.append(item)

        consumer = asyncio.ensure_future(consume())
        await asyncio.sleep(0.01)
        token.cancel()
        await asyncio.wait_for(consumer, 1)

        assert items == [1]
        assert closed.is_set()

    @pytest.mark.asyncio
    async def test_already_cancelled_yields_nothing(self) -> None:
        async def stream():
            yield 1

        token = CancellationToken()
        token.cancel()

        items = [item async for item in iterate_until_cancelled(stream(), token)]

        assert items == []

    @pytest.mark.asyncio
    async def test_stream_errors_propagate(self) -> None:
        async def stream():
            yield 1
            raise RuntimeError("backend crashed")

        token = CancellationToken()
        with pytest.raises(RuntimeError, match="backend crashed"):
            async for _ in iterate_until_cancelled(stream(), token):
                pass


class TestTimeoutBudget:
    """Tests for the pausable timeout budget."""

    @pytest.mark.asyncio
    async def test_expiry_cancels_with_timeout(self) -> None:
        token = CancellationToken()
        budget = TimeoutBudget(token, 0.02)

        budget.start()
        await asyncio.wait_for(token.wait(), 1)

        assert token.reason == CancelReason.TIMEOUT

    @pytest.mark.asyncio
    async def test_stop_prevents_expiry(self) -> None:
        token = CancellationToken()
        budget = TimeoutBudget(token, 0.02)

        budget.start()
        budget.stop()
        await asyncio.sleep(0.05)

        assert not token.cancelled

    @pytest.mark.asyncio
    async def test_pause_freezes_remaining(self) -> None:
        """Test that paused time does not count against the budget."""
        token = CancellationToken()
        budget = TimeoutBudget(token, 0.1)

        budget.start()
        budget.pause()
        remaining = budget.remaining
        await asyncio.sleep(0.15)

        assert not token.cancelled
        assert budget.remaining == remaining

        budget.resume()
        await asyncio.wait_for(token.wait(), 1)
        assert token.reason == CancelReason.TIMEOUT

    @pytest.mark.asyncio
    async def test_resume_uses_remaining_time(self) -> None:
        now = 0.0
        token = CancellationToken()
        budget = TimeoutBudget(token, 100, clock=lambda: now)

        budget.start()
        now = 40.0
        budget.pause()
        budget.resume()

        assert budget.remaining == pytest.approx(60.0)
        budget.stop()

    @pytest.mark.asyncio
    async def test_resume_can_reset_budget(self) -> None:
        now = 0.0
        token = CancellationToken()
        budget = TimeoutBudget(token, 100, reset_on_resume=True, clock=lambda: now)

        budget.start()
        now = 40.0
        budget.pause()
        budget.resume()

        assert budget.remaining == pytest.approx(100.0)
        budget.stop()
