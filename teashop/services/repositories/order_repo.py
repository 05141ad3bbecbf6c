"""Order Repository - Order operations."""
from typing import List, Optional

from .base import BaseRepository
from teashop.services.models import Order, OrderLine
from teashop.services.money import to_float


class OrderRepository(BaseRepository):
    """Order database operations."""

    table_name = "orders"

    async def create(
        self,
        user_id: Optional[str],
        items: List[OrderLine],
        total,
        payment_method: Optional[str] = None,
        transaction_id: Optional[str] = None,
        address: Optional[str] = None,
        phone: Optional[str] = None,
    ) -> Order:
        """Create new order with server-computed lines."""
        result = self._table().insert({
            "user_id": user_id,
            "items": [item.model_dump(mode="json", by_alias=True) for item in items],
            "total": to_float(total),
            "status": "pending",
            "payment_method": payment_method,
            "transaction_id": transaction_id,
            "address": address,
            "phone": phone,
        }).execute()
        return Order.model_validate(result.data[0])

    async def get_by_id(self, order_id: str) -> Optional[Order]:
        result = self._table().select("*").eq("id", order_id).execute()
        return Order.model_validate(result.data[0]) if result.data else None

    async def list_for_user(self, user_id: str) -> List[Order]:
        result = (
            self._table()
            .select("*")
            .eq("user_id", user_id)
            .order("created_at", desc=True)
            .execute()
        )
        return [Order.model_validate(row) for row in result.data or []]
