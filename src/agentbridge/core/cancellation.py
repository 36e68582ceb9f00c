"""Cooperative cancellation for task streams."""

import asyncio
import contextlib
import logging
import time
from collections.abc import AsyncIterator, Callable
from enum import Enum
from typing import TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


class CancelReason(str, Enum):
    """Why a task was cancelled."""

    STOPPED = "stopped"
    TIMEOUT = "timeout"
    SHUTDOWN = "shutdown"


class CancellationToken:
    """Idempotent cancellation signal threaded through a task.

    The first ``cancel()`` wins; later calls are no-ops and keep the
    original reason.
    """

    def __init__(self) -> None:
        self._event = asyncio.Event()
        self._reason: CancelReason | None = None
        self._callbacks: list[Callable[[CancelReason], None]] = []

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    @property
    def reason(self) -> CancelReason | None:
        return self._reason

    def cancel(self, reason: CancelReason = CancelReason.STOPPED) -> bool:
        """Fire the signal.

        Returns:
            True if this call cancelled the token, False if it already was
        """
        if self._event.is_set():
            return False
        self._reason = reason
        self._event.set()
        for callback in self._callbacks:
            try:
                callback(reason)
            except Exception as e:
                logger.warning(f"Cancellation callback failed: {e}")
        self._callbacks.clear()
        return True

    def add_callback(self, callback: Callable[[CancelReason], None]) -> None:
        """Run ``callback`` on cancellation, immediately if already cancelled."""
        if self._reason is not None:
            callback(self._reason)
        else:
            self._callbacks.append(callback)

    def remove_callback(self, callback: Callable[[CancelReason], None]) -> None:
        with contextlib.suppress(ValueError):
            self._callbacks.remove(callback)

    async def wait(self) -> CancelReason:
        """Block until cancelled."""
        await self._event.wait()
        assert self._reason is not None
        return self._reason


async def iterate_until_cancelled(
    stream: AsyncIterator[T],
    token: CancellationToken,
) -> AsyncIterator[T]:
    """Yield items from ``stream`` until it ends or ``token`` fires.

    The wait for each item is raced against the token, so a backend that
    stalls between events does not delay cancellation. The source stream
    is closed on exit.
    """
    waiter = asyncio.ensure_future(token.wait())
    try:
        while not token.cancelled:
            next_item = asyncio.ensure_future(stream.__anext__())
            done, _ = await asyncio.wait(
                {next_item, waiter},
                return_when=asyncio.FIRST_COMPLETED,
            )
            if next_item not in done:
                next_item.cancel()
                with contextlib.suppress(asyncio.CancelledError, StopAsyncIteration):
                    await next_item
                break
            try:
                item = next_item.result()
            except StopAsyncIteration:
                break
            if token.cancelled:
                break
            yield item
    finally:
        waiter.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await waiter
        aclose = getattr(stream, "aclose", None)
        if aclose is not None:
            try:
                await aclose()
            except Exception as e:
                logger.debug(f"Error closing stream: {e}")


class TimeoutBudget:
    """Wall-clock budget that cancels a token when it runs out.

    The budget only counts time while armed: ``pause()`` stops the clock
    and ``resume()`` re-arms it with what is left, or with the full
    budget when ``reset_on_resume`` is set.
    """

    def __init__(
        self,
        token: CancellationToken,
        seconds: float,
        reset_on_resume: bool = False,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._token = token
        self._seconds = seconds
        self._reset_on_resume = reset_on_resume
        self._clock = clock
        self._remaining = seconds
        self._armed_at: float | None = None
        self._handle: asyncio.TimerHandle | None = None

    @property
    def remaining(self) -> float:
        if self._armed_at is None:
            return self._remaining
        return max(0.0, self._remaining - (self._clock() - self._armed_at))

    def start(self) -> None:
        self._remaining = self._seconds
        self._arm()

    def pause(self) -> None:
        if self._handle is None:
            return
        self._remaining = self.remaining
        self._disarm()

    def resume(self) -> None:
        if self._handle is not None:
            return
        if self._reset_on_resume:
            self._remaining = self._seconds
        self._arm()

    def stop(self) -> None:
        self._disarm()

    def _arm(self) -> None:
        self._disarm()
        loop = asyncio.get_running_loop()
        self._armed_at = self._clock()
        self._handle = loop.call_later(self._remaining, self._expire)

    def _disarm(self) -> None:
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None
        self._armed_at = None

    def _expire(self) -> None:
        self._handle = None
        self._armed_at = None
        self._remaining = 0.0
        logger.warning(f"Task budget of {self._seconds:.0f}s exhausted, cancelling")
        self._token.cancel(CancelReason.TIMEOUT)
