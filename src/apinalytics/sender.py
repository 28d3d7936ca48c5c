"""Send events to Apinalytics asynchronously in batches.

A `Sender` owns one background task (the dispatch loop) fed by a bounded
queue:

- Producers `await sender.enqueue(event)`; they only suspend when the queue is
  full (backpressure).
- The dispatch loop blocks for the first event, then drains whatever else is
  already queued without blocking, and sends it all as one batch.
- A batch that grows past `send_threshold` while draining is sent straight
  away, so a batch never outgrows the queue.

The upshot is that events trickling in are sent immediately and individually,
while bursts are batched, without any timer.

`aclose()` closes the queue and waits for the loop to flush everything that
was enqueued before it was called.
"""

from __future__ import annotations

import asyncio
import enum
import logging
from typing import Any

from .batch import BatchAccumulator
from .bounded_queue import BoundedQueue, QueueClosedError
from .config import ApinalyticsConfig
from .models import AnalyticsEvent
from .transport import HttpTransport, Transport

logger = logging.getLogger(__name__)

# Size of the queue to the background task.
DEFAULT_QUEUE_CAPACITY = 100
# The background task sends a batch mid-drain once it grows past this size.
DEFAULT_SEND_THRESHOLD = 90


class SenderClosedError(RuntimeError):
    """`enqueue()` was called on a sender that has been closed."""


class DispatchState(str, enum.Enum):
    """Where the dispatch loop currently is."""

    WAITING_FOR_FIRST = "waiting_for_first"
    DRAINING = "draining"
    FLUSHING = "flushing"
    STOPPED = "stopped"


class Sender:
    """Batches events onto a transport from a single background task.

    Must be created while an event loop is running: the dispatch loop starts
    immediately. Senders are independent; each owns its own queue and task.
    """

    def __init__(
        self,
        *,
        transport: Transport,
        queue_capacity: int = DEFAULT_QUEUE_CAPACITY,
        send_threshold: int = DEFAULT_SEND_THRESHOLD,
    ) -> None:
        """Create a sender and start its dispatch loop.

        Args:
            transport: Destination for each flushed batch.
            queue_capacity: Events buffered before `enqueue` suspends.
            send_threshold: Accumulated count above which a batch is sent
                mid-drain. Must be below `queue_capacity`.
        """
        if not 0 < send_threshold < queue_capacity:
            raise ValueError(
                f"send_threshold must be > 0 and below queue_capacity ({queue_capacity}). Got: {send_threshold}"
            )
        self._transport = transport
        self._queue: BoundedQueue[AnalyticsEvent | None] = BoundedQueue(queue_capacity)
        self._send_threshold = send_threshold
        self._batch = BatchAccumulator()
        self._state = DispatchState.WAITING_FOR_FIRST
        self._done = asyncio.Event()

        self._stats = {
            "batches_flushed": 0,
            "events_flushed": 0,
            "threshold_flushes": 0,
            "skipped_events": 0,
            "send_errors": 0,
        }

        self._worker: asyncio.Task[None] = asyncio.get_running_loop().create_task(
            self._run(), name="apinalytics-sender"
        )

    @classmethod
    def from_config(cls, config: ApinalyticsConfig, *, transport: Transport | None = None) -> Sender:
        """Create a sender posting to the configured endpoint (or `transport`, if given)."""
        if transport is None:
            transport = HttpTransport(
                application_id=config.application_id,
                write_key=config.write_key,
                url=config.url,
                timeout=config.timeout,
            )
        return cls(
            transport=transport,
            queue_capacity=config.queue_capacity,
            send_threshold=config.send_threshold,
        )

    @property
    def state(self) -> DispatchState:
        return self._state

    @property
    def running(self) -> bool:
        """True until the dispatch loop has made its final flush and exited."""
        return self._state is not DispatchState.STOPPED

    @property
    def queue_depth(self) -> int:
        return self._queue.qsize()

    @property
    def transport(self) -> Transport:
        return self._transport

    async def enqueue(self, event: AnalyticsEvent) -> None:
        """Queue an event for sending.

        Returns as soon as the event is queued; suspends only while the queue
        is full. Ownership of `event` passes to the sender.

        Raises:
            SenderClosedError: the sender was closed before (or while waiting
                for) a free slot.
        """
        try:
            await self._queue.put(event)
        except QueueClosedError as exc:
            raise SenderClosedError("enqueue() called after aclose()") from exc

    async def aclose(self) -> None:
        """Close the sender and wait for queued events to be sent.

        Safe to call multiple times; later calls just wait for the same drain.
        """
        self._queue.close()
        await self._done.wait()

    async def __aenter__(self) -> Sender:
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    def stats(self) -> dict[str, Any]:
        """Return dispatch counters plus current queue depth and state."""
        return {
            **self._stats,
            "queue_depth": self.queue_depth,
            "state": self._state.value,
        }

    def _add(self, event: AnalyticsEvent | None) -> None:
        """Append a drained event to the batch, skipping absent ones."""
        if event is None:
            self._stats["skipped_events"] += 1
            return
        self._batch.append(event)

    async def _flush(self) -> None:
        """Send the current batch (if any) and reset it, whatever the outcome."""
        if not self._batch.size():
            return
        batch = self._batch.drain_and_reset()
        try:
            await self._transport.send(batch)
        except Exception:  # noqa: BLE001 - a failing transport must not stop the loop
            self._stats["send_errors"] += 1
            logger.exception("Analytics transport raised while sending %d events; batch dropped", len(batch))
            return
        self._stats["batches_flushed"] += 1
        self._stats["events_flushed"] += len(batch)

    async def _drain(self) -> bool:
        """Move every immediately available event into the batch.

        Returns True when the queue turned out to be closed and drained.
        """
        while True:
            try:
                event = self._queue.get_nowait()
            except asyncio.QueueEmpty:
                return False
            except QueueClosedError:
                return True

            self._add(event)
            if self._batch.size() > self._send_threshold:
                self._stats["threshold_flushes"] += 1
                await self._flush()

    async def _run(self) -> None:
        """Dispatch loop: block for one event, drain the rest, flush, repeat."""
        logger.info(
            "Analytics sender started (capacity=%d, threshold=%d)", self._queue.capacity, self._send_threshold
        )
        try:
            while True:
                self._state = DispatchState.WAITING_FOR_FIRST
                try:
                    event = await self._queue.get()
                except QueueClosedError:
                    break
                self._add(event)

                self._state = DispatchState.DRAINING
                closed = await self._drain()

                self._state = DispatchState.FLUSHING
                await self._flush()
                if closed:
                    break
        finally:
            self._state = DispatchState.STOPPED
            self._done.set()
            logger.info("Analytics sender exited. Stats: %s", self._stats)
