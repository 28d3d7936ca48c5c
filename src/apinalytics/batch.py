"""Batch accumulator owned by the dispatch loop."""

from __future__ import annotations

from .models import AnalyticsEvent


class BatchAccumulator:
    """Ordered list of pending events plus a count.

    Only the dispatch loop touches an accumulator, so it needs no locking.
    """

    def __init__(self) -> None:
        self._events: list[AnalyticsEvent] = []

    def append(self, event: AnalyticsEvent) -> None:
        """Add an event at the end of the batch."""
        self._events.append(event)

    def size(self) -> int:
        return len(self._events)

    def __len__(self) -> int:
        return len(self._events)

    def drain_and_reset(self) -> list[AnalyticsEvent]:
        """Return the pending events in order and start a fresh, empty batch."""
        events, self._events = self._events, []
        return events
