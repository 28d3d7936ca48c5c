from __future__ import annotations

import pytest


@pytest.fixture(autouse=True)
def _no_threads_in_unit_tests(monkeypatch: pytest.MonkeyPatch):
    """Run `asyncio.to_thread` inline for unit tests.

    The HTTP transport uses `asyncio.to_thread` to keep `requests` off the event
    loop. In unit tests `requests` is faked, and running it inline keeps the
    tests deterministic and free of threadpool workers.
    """

    async def _to_thread(func, /, *args, **kwargs):  # noqa: ANN001, D401
        return func(*args, **kwargs)

    monkeypatch.setattr("apinalytics.transport.asyncio.to_thread", _to_thread)
    yield
