"""Catalog Service - product listing and admin writes with realtime broadcasts."""
from typing import Any, Dict, List, Optional

from pydantic import ValidationError

from teashop.catalog.feeds import EVENT_CREATED, EVENT_DELETED, EVENT_UPDATED
from teashop.errors import InvalidRequest, ProductNotFound
from teashop.logging import get_logger, sanitize_id_for_logging
from teashop.realtime import RealtimeHub
from teashop.services.models import Product
from teashop.services.repositories import ProductRepository, product_to_row

logger = get_logger(__name__)


def _validate(data: Dict[str, Any], product_id: str = "new") -> Product:
    try:
        return Product.model_validate({**data, "id": product_id})
    except ValidationError as e:
        raise InvalidRequest(f"Invalid product: {e.error_count()} error(s)")


class CatalogService:
    """Products table access; every write is followed by a realtime broadcast."""

    def __init__(self, products: ProductRepository, hub: Optional[RealtimeHub] = None):
        self.products = products
        self.hub = hub

    async def list_products(self) -> List[Product]:
        return await self.products.get_all()

    async def _broadcast(self, event: str, product: Optional[Product] = None, product_id: Optional[str] = None) -> None:
        if self.hub is None:
            return
        await self.hub.broadcast_change(event, await self.products.get_all(), product=product, product_id=product_id)

    async def create_product(self, data: Dict[str, Any]) -> Product:
        """
        Raises:
            InvalidRequest: Payload is not a valid product
        """
        created = await self.products.create(_validate(data))
        logger.info(f"Product {sanitize_id_for_logging(created.id)} created")
        await self._broadcast(EVENT_CREATED, product=created)
        return created

    async def update_product(self, product_id: str, data: Dict[str, Any]) -> Product:
        """
        Merge ``data`` into the stored product.

        Raises:
            ProductNotFound: Unknown product
            InvalidRequest: Result is not a valid product
        """
        current = await self.products.get_by_id(product_id)
        if current is None:
            raise ProductNotFound()
        merged = _validate({**current.to_dict(), **data}, product_id)
        updated = await self.products.update(product_id, product_to_row(merged))
        if updated is None:
            raise ProductNotFound()
        await self._broadcast(EVENT_UPDATED, product=updated)
        return updated

    async def delete_product(self, product_id: str) -> None:
        """
        Raises:
            ProductNotFound: Unknown product
        """
        if not await self.products.delete(product_id):
            raise ProductNotFound()
        logger.info(f"Product {sanitize_id_for_logging(product_id)} deleted")
        await self._broadcast(EVENT_DELETED, product_id=product_id)
