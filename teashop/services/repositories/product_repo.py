"""Product Repository - Product catalog operations."""
from typing import Any, Dict, List, Optional

from .base import BaseRepository
from teashop.services.models import Product, decode_product

# Columns the products table accepts on insert/update
PRODUCT_COLUMNS = (
    "name",
    "price",
    "old_price",
    "base_price_per_kg",
    "unit",
    "category",
    "description",
    "img",
    "kg_step",
    "min_quantity",
    "max_quantity",
    "price_tiers",
    "in_stock",
)


def product_to_row(product: Product) -> Dict[str, Any]:
    """Product -> products table row (snake_case, JSON-ready, without id)."""
    data = product.model_dump(mode="json")
    data["price_tiers"] = [tier.model_dump(mode="json", by_alias=True) for tier in product.price_tiers]
    return {key: data.get(key) for key in PRODUCT_COLUMNS}


class ProductRepository(BaseRepository):
    """Product database operations."""

    table_name = "products"

    async def get_all(self) -> List[Product]:
        """Get all products, newest first. Unreadable rows are skipped."""
        result = self._table().select("*").order("created_at", desc=True).execute()

        products = []
        for row in result.data or []:
            product = decode_product(row)
            if product is not None:
                products.append(product)
        return products

    async def get_by_id(self, product_id: str) -> Optional[Product]:
        result = self._table().select("*").eq("id", product_id).execute()
        if not result.data:
            return None
        return decode_product(result.data[0])

    async def create(self, product: Product) -> Product:
        """Insert a product; the database assigns id and created_at."""
        result = self._table().insert(product_to_row(product)).execute()
        return Product.model_validate(result.data[0])

    async def update(self, product_id: str, data: Dict[str, Any]) -> Optional[Product]:
        """Update columns of a product; None if it does not exist."""
        result = self._table().update(data).eq("id", product_id).execute()
        return Product.model_validate(result.data[0]) if result.data else None

    async def delete(self, product_id: str) -> bool:
        result = self._table().delete().eq("id", product_id).execute()
        return bool(result.data)
