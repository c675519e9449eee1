"""
Per-service rate limiting for outbound vendor API calls.

Each external service gets its own limiter which bounds the number of
in-flight calls and spaces consecutive call starts by a minimum delay.
Waiters are admitted in FIFO order.
"""

import asyncio
import time
from collections import deque
from typing import Awaitable, Callable, Deque, Dict, Tuple, TypeVar

T = TypeVar("T")

# service id -> (max concurrent calls, min delay between starts in ms)
SERVICE_LIMITS: Dict[str, Tuple[int, int]] = {
    "notion": (3, 334),           # ~3 requests per second
    "attio": (50, 20),            # well under the 100 rps read limit
    "ga4": (10, 100),
    "phantombuster": (5, 200),
}
DEFAULT_LIMITS: Tuple[int, int] = (5, 200)


class RateLimiter:
    """
    Concurrency ceiling plus minimum spacing between call starts.

    Attributes:
        max_concurrent: Maximum number of operations in flight
        min_delay_ms: Minimum milliseconds between consecutive starts
    """

    def __init__(self, max_concurrent: int, min_delay_ms: int):
        if max_concurrent < 1:
            raise ValueError("max_concurrent must be at least 1")
        self.max_concurrent = max_concurrent
        self.min_delay_ms = min_delay_ms
        self._running = 0
        self._queue: Deque[asyncio.Future] = deque()
        self._last_start = 0.0  # monotonic seconds
        self._pacing_lock = asyncio.Lock()

    async def execute(self, operation: Callable[[], Awaitable[T]]) -> T:
        """
        Run ``operation`` once a slot is free and the pacing delay has passed.

        The operation's result is returned and its exception propagated;
        the slot is released either way.
        """
        await self._acquire_slot()
        try:
            await self._wait_for_spacing()
            return await operation()
        finally:
            self._release_slot()

    async def _acquire_slot(self) -> None:
        if self._running < self.max_concurrent and not self._queue:
            self._running += 1
            return

        waiter = asyncio.get_running_loop().create_future()
        self._queue.append(waiter)
        try:
            # The releasing call hands its slot over before resolving us
            await waiter
        except asyncio.CancelledError:
            if waiter.done() and not waiter.cancelled():
                # Slot was handed over just before cancellation; pass it on
                self._release_slot()
            elif waiter in self._queue:
                self._queue.remove(waiter)
            raise

    def _release_slot(self) -> None:
        while self._queue:
            waiter = self._queue.popleft()
            if not waiter.done():
                waiter.set_result(None)
                return
        self._running -= 1

    async def _wait_for_spacing(self) -> None:
        # Serialised so two admitted callers cannot read the same last start
        async with self._pacing_lock:
            min_delay = self.min_delay_ms / 1000.0
            elapsed = time.monotonic() - self._last_start
            if elapsed < min_delay:
                await asyncio.sleep(min_delay - elapsed)
            self._last_start = time.monotonic()

    @property
    def queue_length(self) -> int:
        """Number of callers waiting for a slot"""
        return len(self._queue)

    @property
    def running_count(self) -> int:
        """Number of operations currently holding a slot"""
        return self._running

    def clear(self) -> None:
        """Drop all queued waiters; they fail with CancelledError"""
        while self._queue:
            waiter = self._queue.popleft()
            if not waiter.done():
                waiter.cancel()


_limiters: Dict[str, RateLimiter] = {}


def get_rate_limiter(service_id: str) -> RateLimiter:
    """
    Get the shared rate limiter for an external service.

    Unknown services share the conservative default limiter.
    """
    key = service_id if service_id in SERVICE_LIMITS else "default"
    limiter = _limiters.get(key)
    if limiter is None:
        max_concurrent, min_delay_ms = SERVICE_LIMITS.get(key, DEFAULT_LIMITS)
        limiter = RateLimiter(max_concurrent, min_delay_ms)
        _limiters[key] = limiter
    return limiter


def reset_rate_limiters() -> None:
    """Forget all shared limiters (used between event loops in tests)"""
    _limiters.clear()
