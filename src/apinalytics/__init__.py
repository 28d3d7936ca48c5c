"""Client for reporting API usage events to Apinalytics.

Events are queued to a single background task per `Sender`, which sends them
to the service in batches:

- Light load: each event is sent on its own, almost immediately.
- Bursts: everything queued is coalesced into one POST (bounded in size).
- Shutdown: `await sender.aclose()` flushes whatever is still queued.

Delivery is best-effort; a failed POST is logged and its batch dropped.
"""

from .bounded_queue import BoundedQueue, QueueClosedError
from .config import ApinalyticsConfig, Config, load_config
from .middleware import AnalyticsMiddleware
from .models import UNKNOWN_FUNCTION, AnalyticsEvent
from .sender import DispatchState, Sender, SenderClosedError
from .transport import ApinalyticsHttpError, HttpTransport, InMemoryTransport, Transport, serialize_batch

__all__ = [
    "UNKNOWN_FUNCTION",
    "AnalyticsEvent",
    "AnalyticsMiddleware",
    "ApinalyticsConfig",
    "ApinalyticsHttpError",
    "BoundedQueue",
    "Config",
    "DispatchState",
    "HttpTransport",
    "InMemoryTransport",
    "QueueClosedError",
    "Sender",
    "SenderClosedError",
    "Transport",
    "load_config",
    "serialize_batch",
]
