"""Realtime Hub - product change broadcasting over Redis Streams.

Every admin write appends a full ``products.snapshot`` entry followed by a
``product.created|updated|deleted`` entry to the products stream. Clients
follow the stream with ``StreamProductFeed``.

Emits are best-effort: a failed XADD is logged and never fails the write
that triggered it.
"""

import json
from typing import Any, Iterable, Optional

from teashop.catalog.feeds import EVENT_SNAPSHOT, PRODUCT_EVENTS
from teashop.db import StorageKeys, get_redis
from teashop.logging import get_logger, sanitize_id_for_logging
from teashop.services.models import Product

logger = get_logger(__name__)


class RealtimeHub:
    """Owns the Redis connection used for product broadcasts.

    Created by the application root; ``connect()`` on startup and
    ``disconnect()`` on shutdown.
    """

    def __init__(self, redis=None, stream_key: str = StorageKeys.PRODUCTS_STREAM):
        self._redis = redis
        self.stream_key = stream_key

    @property
    def connected(self) -> bool:
        return self._redis is not None

    def connect(self) -> None:
        if self._redis is not None:
            return
        try:
            self._redis = get_redis()
        except ValueError as e:
            logger.warning(f"Realtime disabled: {e}")

    def disconnect(self) -> None:
        self._redis = None

    async def _emit(self, payload: dict[str, Any]) -> bool:
        if self._redis is None:
            logger.debug(f"Realtime not connected, dropping {payload.get('event')}")
            return False
        try:
            await self._redis.xadd(self.stream_key, "*", {"data": json.dumps(payload)})
            return True
        except Exception as e:
            logger.warning(f"Failed to emit {payload.get('event')}: {e}", exc_info=True)
            return False

    async def emit_products_snapshot(self, products: Iterable[Product]) -> bool:
        """Emit products.snapshot with the full product list."""
        payload = {
            "event": EVENT_SNAPSHOT,
            "products": [p.to_dict() for p in products],
        }
        return await self._emit(payload)

    async def emit_product_event(
        self,
        event: str,
        product: Optional[Product] = None,
        product_id: Optional[str] = None,
    ) -> bool:
        """Emit product.created / product.updated / product.deleted.

        Args:
            event: Event name
            product: Product payload (created/updated)
            product_id: Id of the affected product (defaults to ``product.id``)
        """
        if event not in PRODUCT_EVENTS:
            raise ValueError(f"Unknown product event: {event}")
        pid = product_id or (product.id if product else None)
        payload = {
            "event": event,
            "product_id": pid,
            "product": product.to_dict() if product else None,
        }
        emitted = await self._emit(payload)
        if emitted:
            logger.debug(f"Emitted {event} for product {sanitize_id_for_logging(pid)}")
        return emitted

    async def broadcast_change(
        self,
        event: str,
        products: Iterable[Product],
        product: Optional[Product] = None,
        product_id: Optional[str] = None,
    ) -> None:
        """Snapshot first, then the single-product event."""
        await self.emit_products_snapshot(products)
        await self.emit_product_event(event, product=product, product_id=product_id)
