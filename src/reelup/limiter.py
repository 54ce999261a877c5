"""Bounded concurrency for part transfers.

``ConcurrencyLimiter`` admits at most ``max_concurrency`` coroutines at a
time and queues the rest in submission order. A released slot is handed
directly to the oldest waiter, so late submitters never overtake queued
ones.

All bookkeeping happens on the event loop thread; no lock is needed.
"""

from __future__ import annotations

import asyncio
from collections import deque
from collections.abc import Awaitable, Callable
from typing import Any, TypeVar

T = TypeVar("T")


class ConcurrencyLimiter:
    """Run coroutines with at most ``max_concurrency`` executing at once.

    Attributes:
        max_concurrency: Number of slots.
        peak_in_flight: Highest number of simultaneously admitted tasks seen.
    """

    def __init__(self, max_concurrency: int) -> None:
        if max_concurrency < 1:
            raise ValueError(f"max_concurrency must be >= 1, got {max_concurrency}")
        self.max_concurrency = max_concurrency
        self.peak_in_flight = 0
        self._in_flight = 0
        self._waiters: deque[asyncio.Future[None]] = deque()

    @property
    def in_flight(self) -> int:
        """Number of tasks currently holding a slot."""
        return self._in_flight

    @property
    def pending(self) -> int:
        """Number of tasks queued for a slot."""
        return sum(1 for fut in self._waiters if not fut.done())

    async def _acquire(self) -> None:
        if self._in_flight < self.max_concurrency and not self._waiters:
            self._in_flight += 1
            self.peak_in_flight = max(self.peak_in_flight, self._in_flight)
            return

        fut: asyncio.Future[None] = asyncio.get_running_loop().create_future()
        self._waiters.append(fut)
        try:
            await fut
        except asyncio.CancelledError:
            if fut.done() and not fut.cancelled():
                # The slot was handed over just before cancellation landed.
                self._release()
            elif fut in self._waiters:
                self._waiters.remove(fut)
            raise

    def _release(self) -> None:
        while self._waiters:
            fut = self._waiters.popleft()
            if not fut.done():
                # Hand the slot over; the in-flight count is unchanged.
                fut.set_result(None)
                return
        self._in_flight -= 1

    async def run(self, fn: Callable[..., Awaitable[T]], *args: Any, **kwargs: Any) -> T:
        """Wait for a slot, then await ``fn(*args, **kwargs)`` while holding it.

        Exceptions raised by ``fn`` propagate to the caller unchanged; the
        slot is always released.
        """
        await self._acquire()
        try:
            return await fn(*args, **kwargs)
        finally:
            self._release()
