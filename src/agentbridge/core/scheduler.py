"""Coalescing admission control for outbound UI updates."""

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable

logger = logging.getLogger(__name__)

Producer = Callable[[], Awaitable[None]]


class CoalescingScheduler:
    """Rate-limits pushes to a UI sink without losing the latest state.

    At most one push runs at a time and pushes start at least
    ``interval`` seconds apart. Between pushes only the most recently
    scheduled producer is kept; older ones are dropped.
    """

    def __init__(
        self,
        interval: float = 1.5,
        clock: Callable[[], float] = time.monotonic,
    ):
        """Initialize the scheduler.

        Args:
            interval: Minimum seconds between the start of two pushes
            clock: Monotonic time source
        """
        self._interval = interval
        self._clock = clock
        self._pending: Producer | None = None
        self._timer: asyncio.TimerHandle | None = None
        self._inflight: asyncio.Task[None] | None = None
        self._last_push: float | None = None
        self._push_count = 0

    def schedule(self, producer: Producer) -> None:
        """Push now if allowed, otherwise keep ``producer`` as the pending push."""
        if self._can_push_now():
            self._start(producer)
            return

        self._pending = producer
        if self._timer is None and not self._is_busy():
            self._arm(self._remaining())

    async def flush(self) -> None:
        """Wait for the in-flight push, then deliver the pending one if any."""
        while True:
            self._cancel_timer()
            task = self._inflight
            if task is not None and not task.done():
                await asyncio.wait({task})
                continue
            if self._pending is None:
                return
            self._start(self._pending)

    def cancel(self) -> None:
        """Drop the pending push and timer; an in-flight push is left to finish."""
        self._cancel_timer()
        self._pending = None

    @property
    def has_pending(self) -> bool:
        return self._pending is not None

    @property
    def push_count(self) -> int:
        """Number of pushes started so far."""
        return self._push_count

    # Internals

    def _is_busy(self) -> bool:
        return self._inflight is not None and not self._inflight.done()

    def _remaining(self) -> float:
        if self._last_push is None:
            return 0.0
        return max(0.0, self._interval - (self._clock() - self._last_push))

    def _can_push_now(self) -> bool:
        if self._timer is not None or self._is_busy():
            return False
        return self._remaining() <= 0.0

    def _arm(self, delay: float) -> None:
        loop = asyncio.get_running_loop()
        self._timer = loop.call_later(delay, self._fire)

    def _cancel_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def _fire(self) -> None:
        self._timer = None
        if self._pending is None or self._is_busy():
            # _on_push_done re-arms once the running push completes
            return
        self._start(self._pending)

    def _start(self, producer: Producer) -> None:
        self._pending = None
        self._last_push = self._clock()
        self._push_count += 1
        task = asyncio.ensure_future(self._push(producer))
        task.add_done_callback(self._on_push_done)
        self._inflight = task

    def _on_push_done(self, task: "asyncio.Task[None]") -> None:
        if self._inflight is task:
            self._inflight = None
        if self._pending is not None and self._timer is None:
            self._arm(self._remaining())

    async def _push(self, producer: Producer) -> None:
        try:
            await producer()
        except Exception as e:
            logger.warning(f"Scheduled update failed: {e}")
