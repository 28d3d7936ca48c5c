"""Bounded FIFO channel between event producers and the dispatch loop.

`asyncio.Queue` has no notion of closing, so this is a small queue with the
four operations the sender needs:

- `put()`: suspends while the queue is full (backpressure on producers).
- `get()`: suspends while the queue is empty.
- `get_nowait()`: never suspends.
- `close()`: no further puts; queued items stay retrievable until drained.

All operations must run on the event loop thread that owns the queue.
"""

from __future__ import annotations

import asyncio
from collections import deque
from contextlib import suppress
from typing import Generic, TypeVar

_T = TypeVar("_T")


class QueueClosedError(RuntimeError):
    """Raised by `put` on a closed queue, and by `get`/`get_nowait` once it is closed and drained."""


def _wakeup_next(waiters: deque[asyncio.Future[None]]) -> None:
    """Wake the first waiter that is still pending."""
    while waiters:
        waiter = waiters.popleft()
        if not waiter.done():
            waiter.set_result(None)
            break


class BoundedQueue(Generic[_T]):
    """Fixed-capacity FIFO with blocking put/get, non-blocking get and close."""

    def __init__(self, capacity: int = 100) -> None:
        if capacity <= 0:
            raise ValueError(f"capacity must be > 0. Got: {capacity}")
        self._capacity = capacity
        self._items: deque[_T] = deque()
        self._getters: deque[asyncio.Future[None]] = deque()
        self._putters: deque[asyncio.Future[None]] = deque()
        self._closed = False

    @property
    def capacity(self) -> int:
        return self._capacity

    @property
    def closed(self) -> bool:
        return self._closed

    def qsize(self) -> int:
        """Number of items currently queued."""
        return len(self._items)

    def empty(self) -> bool:
        return not self._items

    def full(self) -> bool:
        return len(self._items) >= self._capacity

    async def _wait(self, waiters: deque[asyncio.Future[None]]) -> None:
        """Park the current task on `waiters` until woken (or cancelled)."""
        waiter: asyncio.Future[None] = asyncio.get_running_loop().create_future()
        waiters.append(waiter)
        try:
            await waiter
        except BaseException:
            waiter.cancel()
            with suppress(ValueError):
                waiters.remove(waiter)
            # Pass on a wakeup we may have consumed.
            if waiter.done() and not waiter.cancelled():
                _wakeup_next(waiters)
            raise

    async def put(self, item: _T) -> None:
        """Append `item`, suspending while the queue is at capacity."""
        while not self._closed and self.full():
            await self._wait(self._putters)
        if self._closed:
            raise QueueClosedError("put() on a closed queue")
        self._items.append(item)
        _wakeup_next(self._getters)

    async def get(self) -> _T:
        """Remove and return the oldest item, suspending while the queue is empty."""
        while not self._items and not self._closed:
            await self._wait(self._getters)
        return self.get_nowait()

    def get_nowait(self) -> _T:
        """Remove and return the oldest item without suspending.

        Raises `asyncio.QueueEmpty` when nothing is available yet, and
        `QueueClosedError` when the queue is closed and fully drained.
        """
        if not self._items:
            if self._closed:
                raise QueueClosedError("queue is closed and drained")
            raise asyncio.QueueEmpty
        item = self._items.popleft()
        _wakeup_next(self._putters)
        return item

    def close(self) -> None:
        """Refuse further puts and wake every suspended producer and consumer."""
        if self._closed:
            return
        self._closed = True
        for waiters in (self._getters, self._putters):
            while waiters:
                waiter = waiters.popleft()
                if not waiter.done():
                    waiter.set_result(None)
