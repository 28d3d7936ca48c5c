"""Demo entrypoint wiring a `Sender` to the configured Apinalytics endpoint.

This module contains a small, end-to-end "smoke test" that:

- Loads configuration from environment.
- Starts a sender posting to `APINALYTICS_URL`.
- Enqueues a burst of synthetic events (batched) and then a slow trickle
  (sent one by one).
- Closes the sender, which flushes anything still queued.

It is **not** intended to be production wiring; use `AnalyticsMiddleware` to
report real requests.
"""

from __future__ import annotations

import asyncio
import logging
import os
import random

from .config import load_config
from .models import AnalyticsEvent
from .sender import Sender

logger = logging.getLogger(__name__)


def configure_logging(level: str = "INFO") -> None:
    """Send log records to stderr at `level` (demo only; the library never configures logging)."""
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def _demo_event(i: int) -> AnalyticsEvent:
    """Build a plausible-looking request event."""
    method, path, function = random.choice(
        [
            ("GET", "/api/1/event/click/", "GetEvent"),
            ("POST", "/api/1/event/click/", "PostEvent"),
            ("GET", "/api/1/health", ""),
        ]
    )
    return AnalyticsEvent.create(
        method=method,
        url=f"{path}?page={i}",
        function=function,
        response_us=random.randint(200, 50_000),
        status_code=random.choice([200, 200, 200, 404, 500]),
        consumer_id=os.getenv("DEMO_CONSUMER_ID", "demo-consumer"),
    )


async def run_demo(*, burst: int = 25, trickle: int = 5, trickle_interval_s: float = 0.2) -> None:
    """Send a burst and a trickle of synthetic events, then close the sender."""
    cfg = load_config()
    configure_logging(cfg.log_level)

    async with Sender.from_config(cfg.apinalytics) as sender:
        for i in range(burst):
            await sender.enqueue(_demo_event(i))

        for i in range(burst, burst + trickle):
            await asyncio.sleep(trickle_interval_s)
            await sender.enqueue(_demo_event(i))

        logger.info("Queued %d demo events, closing sender", burst + trickle)

    logger.info("Demo finished. Sender stats: %s", sender.stats())


def main() -> None:
    """CLI entrypoint for running the demo with `python -m apinalytics.main` / `apinalytics-demo`."""
    asyncio.run(run_demo())


if __name__ == "__main__":
    main()
