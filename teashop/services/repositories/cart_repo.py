"""Cart Repository - server-side cart lines (cart_items table)."""
from decimal import Decimal
from typing import Any, Dict, List, Optional

from pydantic import Field

from .base import BaseRepository
from teashop.cart.models import CartLineItem
from teashop.services.models import Unit
from teashop.services.money import to_float


class CartItemRecord(CartLineItem):
    """Stored cart line with its owner."""

    user_id: Optional[str] = Field(None, alias="userId")

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "CartItemRecord":
        return cls(
            server_id=str(row["id"]),
            user_id=str(row["user_id"]) if row.get("user_id") is not None else None,
            product_id=str(row["product_id"]),
            quantity=row["quantity"],
            unit=row.get("unit"),
            unit_price_at_time=row.get("unit_price_at_time"),
            total_price_at_time=row.get("total_price_at_time"),
            created_at=row.get("created_at"),
        )


class CartRepository(BaseRepository):
    """Cart line database operations."""

    table_name = "cart_items"

    async def list_for_user(self, user_id: str) -> List[CartItemRecord]:
        """All lines of a user, newest first."""
        result = (
            self._table()
            .select("*")
            .eq("user_id", user_id)
            .order("created_at", desc=True)
            .execute()
        )
        return [CartItemRecord.from_row(row) for row in result.data or []]

    async def get_by_id(self, item_id: str) -> Optional[CartItemRecord]:
        result = self._table().select("*").eq("id", item_id).execute()
        return CartItemRecord.from_row(result.data[0]) if result.data else None

    async def find_line(self, user_id: str, product_id: str, unit: Unit) -> Optional[CartItemRecord]:
        """First line of a user for ``(product_id, unit)``."""
        result = (
            self._table()
            .select("*")
            .eq("user_id", user_id)
            .eq("product_id", product_id)
            .eq("unit", unit.value)
            .limit(1)
            .execute()
        )
        return CartItemRecord.from_row(result.data[0]) if result.data else None

    async def create(
        self,
        user_id: str,
        product_id: str,
        quantity: float,
        unit: Unit,
        unit_price: Decimal,
        total_price: Decimal,
    ) -> CartItemRecord:
        result = self._table().insert({
            "user_id": user_id,
            "product_id": product_id,
            "quantity": quantity,
            "unit": unit.value,
            "unit_price_at_time": to_float(unit_price),
            "total_price_at_time": to_float(total_price),
        }).execute()
        return CartItemRecord.from_row(result.data[0])

    async def update_quantity(self, item_id: str, quantity: float, total_price: Decimal) -> Optional[CartItemRecord]:
        result = self._table().update({
            "quantity": quantity,
            "total_price_at_time": to_float(total_price),
        }).eq("id", item_id).execute()
        return CartItemRecord.from_row(result.data[0]) if result.data else None

    async def delete(self, item_id: str) -> bool:
        result = self._table().delete().eq("id", item_id).execute()
        return bool(result.data)
