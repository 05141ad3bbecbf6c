"""
Product feeds - realtime product snapshots delivered to the reconciler.

``StreamProductFeed`` polls the Redis Stream written by the server's
``RealtimeHub``. The upstash REST API does not support blocking XREAD, so new
entries are read with XRANGE after the last seen id and the loop sleeps
between polls.
"""
import asyncio
import json
from typing import Any, Callable, Optional, Protocol

from teashop.db import StorageKeys, get_redis
from teashop.logging import get_logger
from teashop.services.models import Product

logger = get_logger(__name__)

# Polling interval for reading new stream entries (seconds)
POLL_INTERVAL_SECS = 1.0

# Entries read per XRANGE call
MAX_EVENTS_PER_POLL = 50

EVENT_SNAPSHOT = "products.snapshot"
EVENT_CREATED = "product.created"
EVENT_UPDATED = "product.updated"
EVENT_DELETED = "product.deleted"
PRODUCT_EVENTS = (EVENT_CREATED, EVENT_UPDATED, EVENT_DELETED)

SnapshotHandler = Callable[[list[Any]], None]
ErrorHandler = Callable[[Exception], None]
EventHandler = Callable[[dict], Any]


class ProductSource(Protocol):
    """One-shot product list provider (e.g. ``CatalogClient``)."""

    async def fetch(self) -> list[Product]: ...


class ProductFeed(Protocol):
    """Realtime snapshot provider."""

    def subscribe(
        self,
        on_change: SnapshotHandler,
        on_error: ErrorHandler,
        on_event: Optional[EventHandler] = None,
    ) -> Callable[[], None]: ...


def parse_entry(fields: dict) -> Optional[dict]:
    """Decode the JSON ``data`` field of a stream entry."""
    data = fields.get("data", "{}")
    if not isinstance(data, str):
        return data if isinstance(data, dict) else None
    try:
        parsed = json.loads(data)
    except json.JSONDecodeError:
        logger.warning(f"Invalid JSON in product stream: {data[:80]}")
        return None
    return parsed if isinstance(parsed, dict) else None


class StreamProductFeed:
    """Product snapshots and events read from a Redis Stream by polling."""

    def __init__(
        self,
        redis=None,
        stream_key: str = StorageKeys.PRODUCTS_STREAM,
        poll_interval: float = POLL_INTERVAL_SECS,
        sleep: Callable[[float], Any] = asyncio.sleep,
    ):
        self._redis = redis
        self.stream_key = stream_key
        self.poll_interval = poll_interval
        self._sleep = sleep
        self._tasks: set[asyncio.Task] = set()

    @property
    def redis(self):
        if self._redis is None:
            self._redis = get_redis()
        return self._redis

    def subscribe(
        self,
        on_change: SnapshotHandler,
        on_error: ErrorHandler,
        on_event: Optional[EventHandler] = None,
    ) -> Callable[[], None]:
        """
        Start polling in a background task.

        ``on_change`` receives the latest snapshot on attach and every later
        one; ``on_error`` is called once when polling fails, after which the
        subscription is finished.

        Returns:
            Callable cancelling the subscription
        """
        task = asyncio.create_task(self._run(on_change, on_error, on_event))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

        def unsubscribe() -> None:
            if not task.done():
                task.cancel()

        return unsubscribe

    async def _read_after(self, last_id: Optional[str]) -> list:
        start = "-" if last_id is None else f"({last_id}"
        return await self.redis.xrange(self.stream_key, start=start, end="+", count=MAX_EVENTS_PER_POLL)

    async def _catch_up(self) -> tuple[Optional[str], Optional[dict], list[dict]]:
        """Read the stream to its end, keeping the latest snapshot and the events after it."""
        last_id: Optional[str] = None
        snapshot: Optional[dict] = None
        events: list[dict] = []
        while True:
            entries = await self._read_after(last_id)
            for entry_id, fields in entries:
                last_id = entry_id
                payload = parse_entry(fields)
                if payload is None:
                    continue
                if payload.get("event") == EVENT_SNAPSHOT:
                    snapshot = payload
                    events = []
                elif payload.get("event") in PRODUCT_EVENTS:
                    events.append(payload)
            if len(entries) < MAX_EVENTS_PER_POLL:
                return last_id, snapshot, events

    async def _run(
        self,
        on_change: SnapshotHandler,
        on_error: ErrorHandler,
        on_event: Optional[EventHandler],
    ) -> None:
        try:
            last_id, snapshot, events = await self._catch_up()
            if snapshot is not None:
                on_change(snapshot.get("products") or [])
            if on_event is not None:
                for payload in events:
                    on_event(payload)

            while True:
                await self._sleep(self.poll_interval)
                for entry_id, fields in await self._read_after(last_id):
                    last_id = entry_id
                    payload = parse_entry(fields)
                    if payload is None:
                        continue
                    if payload.get("event") == EVENT_SNAPSHOT:
                        on_change(payload.get("products") or [])
                    elif on_event is not None and payload.get("event") in PRODUCT_EVENTS:
                        on_event(payload)
        except asyncio.CancelledError:
            logger.debug("Product stream subscription cancelled")
            raise
        except Exception as e:
            logger.warning(f"Product stream failed: {e}")
            on_error(e)
