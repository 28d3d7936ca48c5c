from __future__ import annotations

import asyncio
from typing import Any

import pytest

from apinalytics.middleware import AnalyticsMiddleware, request_uri
from apinalytics.sender import Sender
from apinalytics.transport import InMemoryTransport


def _scope(path: str = "/api/1/event/click/", query: bytes = b"", method: str = "GET") -> dict[str, Any]:
    return {
        "type": "http",
        "method": method,
        "path": path,
        "raw_path": path.encode("latin-1"),
        "query_string": query,
        "state": {},
    }


async def _receive() -> dict[str, Any]:
    return {"type": "http.request", "body": b"", "more_body": False}


def _app(status: int = 200, function: str | None = None):
    async def app(scope, receive, send) -> None:
        if function is not None:
            scope["state"]["function"] = function
        await send({"type": "http.response.start", "status": status, "headers": []})
        await send({"type": "http.response.body", "body": b"ok"})

    return app


async def _call(middleware: AnalyticsMiddleware, scope: dict[str, Any]) -> list[dict[str, Any]]:
    sent: list[dict[str, Any]] = []

    async def send(message: dict[str, Any]) -> None:
        sent.append(message)

    await middleware(scope, _receive, send)
    return sent


def test_request_uri_includes_query_string():
    assert request_uri(_scope("/a/b", b"x=1&y=2")) == "/a/b?x=1&y=2"
    assert request_uri({"path": "/plain"}) == "/plain"


@pytest.mark.asyncio
async def test_reports_one_event_per_request() -> None:
    transport = InMemoryTransport()
    sender = Sender(transport=transport)
    middleware = AnalyticsMiddleware(_app(status=201, function="PostEvent"), sender)

    sent = await _call(middleware, _scope(query=b"page=2", method="POST"))
    await sender.aclose()

    assert [m["type"] for m in sent] == ["http.response.start", "http.response.body"]
    [event] = transport.events
    assert event.method == "POST"
    assert event.url == "/api/1/event/click/?page=2"
    assert event.function == "PostEvent"
    assert event.status_code == 201
    assert event.response_us >= 0
    assert event.timestamp > 0


@pytest.mark.asyncio
async def test_function_defaults_to_unknown() -> None:
    transport = InMemoryTransport()
    sender = Sender(transport=transport)

    await _call(AnalyticsMiddleware(_app(), sender), _scope())
    await sender.aclose()

    assert transport.events[0].function == "unknown"
    assert transport.events[0].status_code == 200


@pytest.mark.asyncio
async def test_callback_can_add_consumer_and_data() -> None:
    transport = InMemoryTransport()
    sender = Sender(transport=transport)

    def callback(scope: dict[str, Any], fields: dict[str, Any]) -> None:
        fields["consumer_id"] = "consumer-42"
        fields["data"]["plan"] = "gold"

    await _call(AnalyticsMiddleware(_app(), sender, callback=callback), _scope())
    await sender.aclose()

    event = transport.events[0]
    assert event.consumer_id == "consumer-42"
    assert event.data == {"plan": "gold"}


@pytest.mark.asyncio
async def test_failing_callback_does_not_fail_request() -> None:
    transport = InMemoryTransport()
    sender = Sender(transport=transport)

    def callback(scope: dict[str, Any], fields: dict[str, Any]) -> None:
        raise KeyError("api_user")

    sent = await _call(AnalyticsMiddleware(_app(), sender, callback=callback), _scope())
    await sender.aclose()

    assert sent[0]["status"] == 200
    assert len(transport.events) == 1


@pytest.mark.asyncio
async def test_unhandled_error_is_reported_as_500() -> None:
    transport = InMemoryTransport()
    sender = Sender(transport=transport)

    async def broken(scope, receive, send) -> None:
        raise RuntimeError("boom")

    with pytest.raises(RuntimeError):
        await _call(AnalyticsMiddleware(broken, sender), _scope())
    await sender.aclose()

    assert transport.events[0].status_code == 500


@pytest.mark.asyncio
async def test_non_http_scopes_pass_through() -> None:
    transport = InMemoryTransport()
    sender = Sender(transport=transport)
    seen: list[str] = []

    async def app(scope, receive, send) -> None:
        seen.append(scope["type"])

    await AnalyticsMiddleware(app, sender)({"type": "lifespan"}, _receive, _noop_send)
    await sender.aclose()

    assert seen == ["lifespan"]
    assert transport.events == []


@pytest.mark.asyncio
async def test_closed_sender_does_not_fail_request() -> None:
    transport = InMemoryTransport()
    sender = Sender(transport=transport)
    await sender.aclose()

    sent = await _call(AnalyticsMiddleware(_app(), sender), _scope())

    assert sent[0]["status"] == 200
    assert transport.events == []


async def _noop_send(message: dict[str, Any]) -> None:
    return None


@pytest.mark.asyncio
async def test_cancelled_request_is_not_reported() -> None:
    transport = InMemoryTransport()
    sender = Sender(transport=transport)

    async def disconnected(scope, receive, send) -> None:
        raise asyncio.CancelledError()

    with pytest.raises(asyncio.CancelledError):
        await _call(AnalyticsMiddleware(disconnected, sender), _scope())
    await sender.aclose()

    assert transport.events == []
