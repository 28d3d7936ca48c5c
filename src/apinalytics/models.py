"""Event model reported to the Apinalytics service.

One `AnalyticsEvent` describes the outcome of a single HTTP request. Events are
immutable once constructed; ownership passes to the sender on `enqueue`.
"""

from __future__ import annotations

import time
from datetime import datetime, timezone
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

# Label used when the handler did not record a function name.
UNKNOWN_FUNCTION = "unknown"


def utc_now() -> datetime:
    """Return the current UTC time as a timezone-aware datetime."""
    return datetime.now(tz=timezone.utc)


def unix_now() -> int:
    """Return the current time in whole seconds since the epoch."""
    return int(time.time())


class AnalyticsEvent(BaseModel):
    """A single reportable occurrence (one HTTP request's outcome)."""

    model_config = ConfigDict(extra="ignore", frozen=True)

    # Seconds since 1 Jan 1970 UTC.
    timestamp: int = Field(default_factory=unix_now)
    # Identifier for the API consumer.
    consumer_id: str = ""
    # HTTP method ("GET", "POST", ...).
    method: str
    # Request URI as seen by the server, including the query string.
    url: str
    # Name of the handler that served the request.
    function: str = ""
    # Response time in microseconds.
    response_us: int
    status_code: int
    data: dict[str, str] = Field(default_factory=dict)

    @classmethod
    def create(
        cls,
        *,
        method: str,
        url: str,
        response_us: int,
        status_code: int,
        function: str | None = None,
        consumer_id: str = "",
        data: dict[str, str] | None = None,
        timestamp: int | None = None,
    ) -> AnalyticsEvent:
        """Build an event, stamping the current time and defaulting the function label."""
        return cls(
            timestamp=unix_now() if timestamp is None else timestamp,
            consumer_id=consumer_id,
            method=method,
            url=url,
            function=function or UNKNOWN_FUNCTION,
            response_us=response_us,
            status_code=status_code,
            data=dict(data or {}),
        )

    def to_wire(self) -> dict[str, Any]:
        """Return the JSON record sent to the service (empty `function`/`data` omitted)."""
        record: dict[str, Any] = {
            "timestamp": self.timestamp,
            "consumer_id": self.consumer_id,
            "method": self.method,
            "url": self.url,
            "response_us": self.response_us,
            "status_code": self.status_code,
        }
        if self.function:
            record["function"] = self.function
        if self.data:
            record["data"] = dict(self.data)
        return record
