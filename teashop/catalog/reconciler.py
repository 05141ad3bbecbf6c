"""
Product Reconciler - merges product lists arriving from several sources.

Sources, in order of precedence:
- realtime snapshots (authoritative once attached)
- one-shot REST fetch (ignored after the first realtime snapshot)
- broadcast product events (applied only while no snapshot is attached)

Every merged list passes through ``reconcile_products``, which drops
tombstoned ids and keeps optimistic local-only products until the server
confirms them.
"""
import asyncio
from typing import Any, Callable, Iterable, Optional

from teashop.catalog.cache import ProductCache
from teashop.catalog.feeds import (
    EVENT_CREATED,
    EVENT_DELETED,
    EVENT_UPDATED,
    ProductFeed,
    ProductSource,
)
from teashop.catalog.tombstones import TombstoneLedger
from teashop.channels import Channel
from teashop.config import get_settings
from teashop.errors import ShopError
from teashop.logging import get_logger, sanitize_id_for_logging
from teashop.services.models import Product, decode_product, decode_products
from teashop.storage import ORIGIN_EXTERNAL

logger = get_logger(__name__)


def _match_key(product: Product) -> tuple[str, Any]:
    return product.name.lower(), product.price


def _dedupe(products: Iterable[Product]) -> list[Product]:
    seen: set[str] = set()
    result = []
    for product in products:
        if product.id in seen:
            continue
        seen.add(product.id)
        result.append(product)
    return result


def reconcile_products(
    incoming: Iterable[Product],
    cached: Iterable[Product],
    tombstoned_ids: Iterable[str],
) -> list[Product]:
    """
    Merge an incoming server list with the cached list.

    1. Incoming products with an active tombstone are dropped.
    2. Local-only cached products (``tmp-``/``local-`` ids) are matched to
       incoming products by lowercased name and price, else by a unique
       lowercased name. A matched local product is superseded by the server one.
    3. Unmatched local-only products come first, then the incoming list.
       Ids are unique; incoming products win.

    Applying the pass twice with the same incoming list gives the same result.

    Args:
        incoming: Products from the server (snapshot or fetch)
        cached: Currently cached products
        tombstoned_ids: Ids deleted within the grace window

    Returns:
        Merged product list
    """
    tombstoned = {str(pid) for pid in tombstoned_ids}
    filtered = _dedupe(p for p in incoming if p.id not in tombstoned)

    local_only = [p for p in cached if p.is_local and p.id not in tombstoned]
    if not local_only:
        return filtered

    by_key = {_match_key(p): p for p in filtered}
    incoming_ids = {p.id for p in filtered}

    unmatched = []
    for local in local_only:
        match = by_key.get(_match_key(local))
        if match is None:
            name = local.name.lower()
            name_matches = [p for p in filtered if p.name.lower() == name]
            if len(name_matches) == 1:
                match = name_matches[0]
        if match is not None:
            logger.debug(
                f"Local product {sanitize_id_for_logging(local.id)} confirmed as "
                f"{sanitize_id_for_logging(match.id)}"
            )
            continue
        if local.id not in incoming_ids:
            unmatched.append(local)

    return _dedupe(unmatched + filtered)


class ProductReconciler:
    """
    Coordinates product sources and publishes the merged list.

    ``products`` replays the current list to new subscribers; ``degraded``
    turns True once realtime retries are exhausted and the cached list is all
    there is.
    """

    def __init__(
        self,
        cache: ProductCache,
        tombstones: TombstoneLedger,
        max_retries: Optional[int] = None,
        base_delay: Optional[float] = None,
        sleep: Callable[[float], Any] = asyncio.sleep,
    ):
        settings = get_settings()
        self.cache = cache
        self.tombstones = tombstones
        self.max_retries = max_retries if max_retries is not None else settings.realtime_max_retries
        self.base_delay = base_delay if base_delay is not None else settings.realtime_base_delay
        self._sleep = sleep

        self.realtime_attached = False
        self.products: Channel[list[Product]] = Channel(cache.products)
        self.degraded: Channel[bool] = Channel(False)
        self._unsubscribe_store = cache.store.subscribe(self._on_store_change)

    def close(self) -> None:
        self._unsubscribe_store()

    def publish(self, products: list[Product]) -> list[Product]:
        """Persist a product list to the cache and push it to subscribers."""
        saved = self.cache.save(products)
        self.products.publish(saved)
        return saved

    def _on_store_change(self, key: str, origin: str) -> None:
        if key == self.cache.key and origin == ORIGIN_EXTERNAL:
            self.products.publish(self.cache.reload())

    # ==================== SOURCES ====================

    def apply_snapshot(self, raw_products: Iterable[Any]) -> list[Product]:
        """Merge a realtime snapshot; from now on one-shot fetches are ignored."""
        incoming = decode_products(raw_products)
        active = self.tombstones.purge_expired()
        merged = reconcile_products(incoming, self.cache.products, active)
        self.realtime_attached = True
        if self.degraded.value:
            self.degraded.publish(False)
        return self.publish(merged)

    async def refresh(self, source: ProductSource) -> list[Product]:
        """
        Apply a one-shot fetch unless a realtime snapshot is attached.

        A failed fetch, unreachable server or error response alike, keeps the
        last good cached list.
        """
        if self.realtime_attached:
            logger.debug("Skipping one-shot product fetch: realtime attached")
            return self.cache.products
        try:
            fetched = await source.fetch()
        except ShopError as e:
            logger.warning(f"Product fetch failed, keeping cached list: {e.message}")
            return self.cache.products

        # A snapshot may have arrived while the fetch was in flight
        if self.realtime_attached:
            return self.cache.products
        merged = reconcile_products(fetched, self.cache.products, self.tombstones.purge_expired())
        return self.publish(merged)

    def apply_event(self, event: dict) -> bool:
        """
        Apply a broadcast ``product.created|updated|deleted`` event.

        Returns:
            True if the cached list changed
        """
        if self.realtime_attached:
            return False

        name = event.get("event")
        products = self.cache.products

        if name == EVENT_DELETED:
            product_id = event.get("product_id")
            if product_id is None:
                return False
            product_id = str(product_id)
            self.tombstones.record(product_id)
            remaining = [p for p in products if p.id != product_id]
            if len(remaining) == len(products):
                return False
            self.publish(remaining)
            return True

        if name not in (EVENT_CREATED, EVENT_UPDATED):
            return False
        product = decode_product(event.get("product"))
        if product is None or self.tombstones.is_active(product.id):
            return False

        if any(p.id == product.id for p in products):
            products = [product if p.id == product.id else p for p in products]
        else:
            products = [product] + products
        self.publish(products)
        return True

    async def watch(self, feed: ProductFeed) -> None:
        """
        Follow a realtime feed until cancelled or degraded.

        On feed failure the cached list stays published and the subscription is
        retried after ``base_delay * 2**(attempt - 1)`` seconds, for attempts
        1..max_retries. A good snapshot resets the counter.
        """
        attempt = 0
        while True:
            failed = asyncio.Event()

            def on_change(raw_products: list[Any]) -> None:
                nonlocal attempt
                attempt = 0
                self.apply_snapshot(raw_products)

            def on_error(error: Exception) -> None:
                logger.warning(f"Realtime product feed error: {error}")
                failed.set()

            unsubscribe = feed.subscribe(on_change, on_error, self.apply_event)
            try:
                await failed.wait()
            finally:
                unsubscribe()

            attempt += 1
            if attempt > self.max_retries:
                logger.warning(
                    f"Realtime product feed unavailable after {self.max_retries} retries, "
                    "serving cached products"
                )
                self.realtime_attached = False
                self.degraded.publish(True)
                return

            delay = self.base_delay * 2 ** (attempt - 1)
            logger.info(f"Resubscribing to product feed in {delay:.1f}s (attempt {attempt})")
            await self._sleep(delay)
