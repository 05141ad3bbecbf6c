"""
Catalog Admin - optimistic product writes.

Creates, updates and deletes show up in the product list immediately and are
then written to the server. Failed writes are rolled back, except updates,
which stay local while the server is unreachable.
"""
import secrets
import time
from typing import Any, Callable, Optional

from teashop.catalog.client import CatalogClient
from teashop.catalog.reconciler import ProductReconciler
from teashop.config import get_settings
from teashop.errors import ProductNotFound, RemoteUnavailable, ShopError
from teashop.logging import get_logger, sanitize_id_for_logging
from teashop.services.models import Product

logger = get_logger(__name__)


class CatalogAdmin:
    """Admin write path on top of the reconciler's product list."""

    def __init__(
        self,
        reconciler: ProductReconciler,
        client: Optional[CatalogClient] = None,
        clock: Callable[[], float] = time.time,
    ):
        self.reconciler = reconciler
        self.client = client
        self.clock = clock

    @property
    def products(self) -> list[Product]:
        return self.reconciler.cache.products

    def _now_ms(self) -> int:
        return int(self.clock() * 1000)

    def new_local_id(self) -> str:
        """Placeholder id for a product the server has not confirmed yet."""
        now = self._now_ms()
        candidate = f"tmp-{now}"
        if any(p.id == candidate for p in self.products):
            candidate = f"local-{now}-{secrets.token_hex(3)}"
        return candidate

    async def create(self, data: dict[str, Any]) -> Product:
        """
        Add a product optimistically, then create it on the server.

        Returns:
            The server's product (the placeholder is replaced by it)

        Raises:
            ShopError: Remote create failed; the placeholder is removed again
        """
        temp = Product.model_validate({**data, "id": self.new_local_id(), "createdAt": self._now_ms()})
        self.reconciler.publish([temp] + self.products)

        if self.client is None:
            return temp

        try:
            created = await self.client.create_product(data)
        except ShopError as e:
            logger.warning(f"Product create failed, removing {sanitize_id_for_logging(temp.id)}: {e.message}")
            self.reconciler.publish([p for p in self.products if p.id != temp.id])
            raise

        products = [p for p in self.products if p.id != created.id]
        if any(p.id == temp.id for p in products):
            products = [created if p.id == temp.id else p for p in products]
        else:
            products = [created] + products
        self.reconciler.publish(products)
        return created

    async def update(self, product_id: str, data: dict[str, Any]) -> Product:
        """
        Update a product on the server and in the cached list.

        Local-only products, and any product while the server is
        unreachable, are updated locally only.

        Raises:
            ProductNotFound: Product is neither cached nor known to the server
        """
        product_id = str(product_id)
        current = next((p for p in self.products if p.id == product_id), None)

        if self.client is not None and (current is None or not current.is_local):
            try:
                updated = await self.client.update_product(product_id, data)
                return self._replace(product_id, updated)
            except RemoteUnavailable as e:
                logger.warning(f"Product update kept local for {sanitize_id_for_logging(product_id)}: {e.message}")

        if current is None:
            raise ProductNotFound()
        merged = Product.model_validate({**current.to_dict(), **data, "id": product_id})
        return self._replace(product_id, merged)

    def _replace(self, product_id: str, product: Product) -> Product:
        products = self.products
        if any(p.id == product_id for p in products):
            products = [product if p.id == product_id else p for p in products]
        else:
            products = [product] + products
        self.reconciler.publish(products)
        return product

    async def delete(self, product_id: str) -> bool:
        """
        Remove a product optimistically and tombstone its id.

        Returns:
            True once deleted (a product the server no longer has counts as deleted)

        Raises:
            ShopError: Remote delete failed; the product and its id are restored
        """
        product_id = str(product_id)
        products = self.products
        index = next((i for i, p in enumerate(products) if p.id == product_id), None)
        before = products[index] if index is not None else None

        self.reconciler.publish([p for p in products if p.id != product_id])
        self.reconciler.tombstones.record(product_id)

        if self.client is None or (before is not None and before.is_local):
            return True

        try:
            await self.client.delete_product(product_id)
        except ShopError as e:
            logger.warning(f"Product delete failed, restoring {sanitize_id_for_logging(product_id)}: {e.message}")
            self.reconciler.tombstones.forget(product_id)
            if before is not None:
                restored = self.products
                restored.insert(min(index, len(restored)), before)
                self.reconciler.publish(restored)
            raise
        return True

    def purge_stale_local(self, max_age: Optional[float] = None) -> list[str]:
        """
        Drop local-only products older than ``max_age`` seconds (24 h by default).

        Local-only products without ``createdAt`` are treated as stale.

        Returns:
            Ids of the purged products
        """
        max_age = max_age if max_age is not None else get_settings().local_product_max_age
        threshold_ms = max_age * 1000
        now = self._now_ms()

        keep, purged = [], []
        for product in self.products:
            if product.is_local and (product.created_at is None or now - product.created_at > threshold_ms):
                purged.append(product.id)
            else:
                keep.append(product)

        if purged:
            self.reconciler.publish(keep)
            logger.info(f"Purged {len(purged)} stale local product(s)")
        return purged
