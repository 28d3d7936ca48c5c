"""Transports that deliver batches of events.

A transport receives one batch per flush. Delivery is best-effort: the
dispatch loop never looks at the outcome of a send, so transports report
success and failure only through logging (and their own counters).

The HTTP call uses `requests` executed in a thread so the event loop (and the
producers sharing it) keeps running while a batch is in flight.
"""

from __future__ import annotations

import asyncio
import json
import logging
import time
from collections.abc import Sequence
from datetime import datetime
from typing import Any, Protocol

import requests  # type: ignore

from .models import AnalyticsEvent, utc_now

logger = logging.getLogger(__name__)


class Transport(Protocol):
    """Destination for batches produced by the dispatch loop."""

    async def send(self, batch: Sequence[AnalyticsEvent]) -> None:
        """Deliver one batch. Must not raise for delivery failures."""


def serialize_batch(batch: Sequence[AnalyticsEvent]) -> bytes:
    """Encode a batch as a JSON array of wire records, preserving order."""
    return json.dumps([event.to_wire() for event in batch], separators=(",", ":")).encode("utf-8")


class ApinalyticsHttpError(RuntimeError):
    """The service answered a batch POST with something other than HTTP 200."""

    def __init__(self, *, status_code: int, reason: str = "") -> None:
        self.status_code = status_code
        self.reason = reason
        super().__init__(f"Apinalytics HTTP {status_code}: {reason}")


class HttpTransport:
    """POSTs each batch as JSON to the Apinalytics event endpoint.

    Failures (serialization, connection, non-200 status) are logged and the
    batch is dropped. Nothing is retried and nothing is raised to the caller.
    """

    def __init__(self, *, application_id: str, url: str, write_key: str = "", timeout: float = 10.0) -> None:
        """Create a transport posting to `url` with the given credentials."""
        self.application_id = application_id
        self.write_key = write_key
        self.url = url
        self.timeout = timeout

        self._failures = 0
        self._first_failure_at: datetime | None = None
        self._last_failure_at: datetime | None = None

    def _headers(self) -> dict[str, str]:
        headers = {
            "Content-Type": "application/json",
            "X-Auth-User": self.application_id,
        }
        if self.write_key:
            headers["X-Auth-Key"] = self.write_key
        return headers

    def _post(self, payload: bytes) -> None:
        """Execute the HTTP request synchronously (runs in a worker thread)."""
        resp = requests.request("POST", self.url, headers=self._headers(), data=payload, timeout=self.timeout)
        try:
            if resp.status_code != 200:
                raise ApinalyticsHttpError(status_code=resp.status_code, reason=resp.reason)
        finally:
            resp.close()

    def _record_failure(self) -> None:
        now = utc_now()
        self._failures += 1
        self._first_failure_at = self._first_failure_at or now
        self._last_failure_at = now

    async def send(self, batch: Sequence[AnalyticsEvent]) -> None:
        """Serialize and POST `batch`; log the outcome."""
        if not batch:
            return

        try:
            payload = serialize_batch(batch)
        except (TypeError, ValueError) as exc:
            logger.error("Couldn't serialize %d analytics events, dropping batch: %s", len(batch), exc)
            self._record_failure()
            return

        start = time.monotonic()
        try:
            await asyncio.to_thread(self._post, payload)
        except ApinalyticsHttpError as exc:
            logger.warning(
                "Failure return for analytics post: status=%d reason=%r events=%d",
                exc.status_code,
                exc.reason,
                len(batch),
            )
            self._record_failure()
        except requests.RequestException as exc:
            logger.warning("Failed to post %d analytics events: %s", len(batch), exc)
            self._record_failure()
        else:
            logger.debug("Sent %d analytics events in %.1fms", len(batch), (time.monotonic() - start) * 1000)

    def degraded_status(self) -> dict[str, Any]:
        """Return a minimal snapshot of delivery failures."""
        return {
            "send_failures": self._failures,
            "first_failure_at": self._first_failure_at,
            "last_failure_at": self._last_failure_at,
        }


class InMemoryTransport:
    """Transport that keeps every batch in memory, for tests and local debugging."""

    def __init__(self) -> None:
        self._batches: list[list[AnalyticsEvent]] = []

    async def send(self, batch: Sequence[AnalyticsEvent]) -> None:
        """Record a copy of the batch (empty batches are ignored)."""
        if not batch:
            return
        self._batches.append(list(batch))

    @property
    def batches(self) -> list[list[AnalyticsEvent]]:
        """Point-in-time copy of all batches received, in send order."""
        return [list(b) for b in self._batches]

    @property
    def events(self) -> list[AnalyticsEvent]:
        """All received events flattened in send order."""
        return [event for b in self._batches for event in b]
