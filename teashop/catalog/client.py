"""Catalog Client - product list fetch and admin product writes over HTTP."""
from typing import Any

from teashop.errors import RemoteUnavailable
from teashop.http import ApiClient
from teashop.logging import get_logger
from teashop.services.models import Product, decode_product, decode_products

logger = get_logger(__name__)


class CatalogClient(ApiClient):
    """One-shot product fetch plus the admin create/update/delete endpoints."""

    async def fetch(self) -> list[Product]:
        """
        Fetch the full product list once.

        Raises:
            RemoteUnavailable: Network failure or unreadable payload
            ShopError: Any other error response (ProductNotFound on 404)
        """
        response = await self._request("GET", "/products/list")
        self._raise_for_error(response)
        raw = response.json()
        if not isinstance(raw, list):
            raise RemoteUnavailable("Server returned an unreadable product list")
        return decode_products(raw)

    async def create_product(self, data: dict[str, Any]) -> Product:
        response = await self._request("POST", "/admin/products", json=data)
        self._raise_for_error(response)
        return self._decode(response.json())

    async def update_product(self, product_id: str, data: dict[str, Any]) -> Product:
        response = await self._request("PUT", f"/admin/products/{product_id}", json=data)
        self._raise_for_error(response)
        return self._decode(response.json())

    async def delete_product(self, product_id: str) -> bool:
        """Delete a product; False when the server no longer has it."""
        response = await self._request("DELETE", f"/admin/products/{product_id}")
        if response.status_code == 404:
            return False
        self._raise_for_error(response)
        return True

    @staticmethod
    def _decode(raw: Any) -> Product:
        product = decode_product(raw)
        if product is None:
            raise RemoteUnavailable("Server returned an unreadable product")
        return product
