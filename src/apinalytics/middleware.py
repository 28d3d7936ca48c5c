"""ASGI middleware that reports every HTTP request to Apinalytics.

Wrap any ASGI application:

    sender = Sender.from_config(load_config().apinalytics)
    app = AnalyticsMiddleware(app, sender)

The middleware fills in timestamp, method, url (path plus query string),
response_us and status_code. Handlers can name themselves by setting
`scope["state"]["function"]` (`request.state.function` in Starlette/FastAPI);
otherwise the function is reported as "unknown".

To add your own data, pass a callback. It receives the ASGI scope and the
mutable dict of event fields before the event is built:

    def callback(scope, fields):
        fields["consumer_id"] = scope["state"].get("api_user", "")

    app = AnalyticsMiddleware(app, sender, callback=callback)
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable, MutableMapping
from typing import Any

from .models import AnalyticsEvent, unix_now
from .sender import Sender, SenderClosedError

logger = logging.getLogger(__name__)

Scope = MutableMapping[str, Any]
Message = MutableMapping[str, Any]
Receive = Callable[[], Awaitable[Message]]
Send = Callable[[Message], Awaitable[None]]
ASGIApp = Callable[[Scope, Receive, Send], Awaitable[None]]

EventCallback = Callable[[Scope, dict[str, Any]], None]


def _elapsed_us(start: float) -> int:
    return int((time.monotonic() - start) * 1_000_000)


def request_uri(scope: Scope) -> str:
    """Rebuild the request URI (path and query string) as the server received it."""
    raw_path = scope.get("raw_path")
    path = raw_path.decode("latin-1") if raw_path else scope.get("path", "")
    query = scope.get("query_string", b"")
    if query:
        return f"{path}?{query.decode('latin-1')}"
    return path


class AnalyticsMiddleware:
    """Measure each HTTP request and enqueue one `AnalyticsEvent` for it."""

    def __init__(self, app: ASGIApp, sender: Sender, *, callback: EventCallback | None = None) -> None:
        self.app = app
        self.sender = sender
        self.callback = callback

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        start = time.monotonic()
        status_code: int | None = None

        async def send_wrapper(message: Message) -> None:
            nonlocal status_code
            if message["type"] == "http.response.start":
                status_code = message["status"]
            await send(message)

        try:
            await self.app(scope, receive, send_wrapper)
        except asyncio.CancelledError:
            # Client went away; there is no outcome to report.
            raise
        except Exception:
            # The server turns an unhandled error into a 500.
            await self._report(scope, 500 if status_code is None else status_code, _elapsed_us(start))
            raise
        await self._report(scope, 200 if status_code is None else status_code, _elapsed_us(start))

    async def _report(self, scope: Scope, status_code: int, response_us: int) -> None:
        state = scope.get("state") or {}
        fields: dict[str, Any] = {
            "timestamp": unix_now(),
            "method": scope.get("method", ""),
            "url": request_uri(scope),
            "function": state.get("function"),
            "response_us": response_us,
            "status_code": status_code,
            "consumer_id": "",
            "data": {},
        }
        if self.callback is not None:
            try:
                self.callback(scope, fields)
            except Exception:  # noqa: BLE001 - instrumentation must not fail the request
                logger.exception("Analytics callback failed for %s %s", fields["method"], fields["url"])

        try:
            event = AnalyticsEvent.create(**fields)
        except (TypeError, ValueError) as exc:
            logger.warning("Dropping malformed analytics event for %s: %s", fields.get("url"), exc)
            return

        try:
            await self.sender.enqueue(event)
        except SenderClosedError:
            logger.warning("Analytics sender is closed; event for %s not reported", event.url)
