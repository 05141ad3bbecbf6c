"""Pytest configuration and fixtures"""
import os
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional
from unittest.mock import Mock

import pytest

# Set test environment variables
os.environ.setdefault("SUPABASE_URL", "https://test.supabase.co")
os.environ.setdefault("SUPABASE_SERVICE_ROLE_KEY", "test_key")

from teashop.catalog.cache import ProductCache
from teashop.catalog.tombstones import TombstoneLedger
from teashop.services.models import Order, OrderLine, Product, Unit
from teashop.services.repositories import CartItemRecord
from teashop.storage import MemoryKeyValueStore


@pytest.fixture
def mock_supabase_client():
    """Mock Supabase client"""
    client = Mock()

    # Mock table operations
    table_mock = Mock()
    table_mock.select.return_value = table_mock
    table_mock.insert.return_value = table_mock
    table_mock.update.return_value = table_mock
    table_mock.delete.return_value = table_mock
    table_mock.eq.return_value = table_mock
    table_mock.limit.return_value = table_mock
    table_mock.order.return_value = table_mock

    client.table.return_value = table_mock
    return client


# ==================== SAMPLE DATA ====================

@pytest.fixture
def sample_product():
    """Loose-leaf tea sold by weight"""
    return {
        "id": "p1",
        "name": "Da Hong Pao",
        "price": 200.0,
        "basePricePerKg": 200.0,
        "unit": "kg",
        "kgStep": 0.5,
        "minQuantity": 0.5,
        "maxQuantity": 5,
        "inStock": True,
    }


@pytest.fixture
def sample_products(sample_product):
    return [
        sample_product,
        {"id": "p2", "name": "Gaiwan", "price": 35.5, "unit": "piece", "inStock": True},
        {"id": "p3", "name": "Shou Puer", "price": 90.0, "unit": "kg", "inStock": False},
    ]


class FakeClock:
    """Manually advanced clock (epoch seconds)."""

    def __init__(self, now: float = 1_700_000_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def memory_store():
    return MemoryKeyValueStore()


@pytest.fixture
def product_cache(memory_store, sample_products):
    cache = ProductCache(memory_store)
    cache.save([Product.model_validate(p) for p in sample_products])
    return cache


@pytest.fixture
def tombstones(memory_store, clock):
    return TombstoneLedger(memory_store, grace=120, clock=clock)


# ==================== IN-MEMORY REPOSITORIES ====================

class InMemoryProductRepository:
    """Same interface as ProductRepository, backed by a dict."""

    def __init__(self, products: Optional[List[Product]] = None):
        self.rows: Dict[str, Product] = {p.id: p for p in products or []}
        self._next = 100

    async def get_all(self) -> List[Product]:
        return list(self.rows.values())

    async def get_by_id(self, product_id: str) -> Optional[Product]:
        return self.rows.get(product_id)

    async def create(self, product: Product) -> Product:
        self._next += 1
        created = product.model_copy(update={"id": f"p{self._next}"})
        self.rows[created.id] = created
        return created

    async def update(self, product_id: str, data: Dict[str, Any]) -> Optional[Product]:
        if product_id not in self.rows:
            return None
        updated = Product.model_validate({**self.rows[product_id].model_dump(), **data, "id": product_id})
        self.rows[product_id] = updated
        return updated

    async def delete(self, product_id: str) -> bool:
        return self.rows.pop(product_id, None) is not None


class InMemoryCartRepository:
    """Same interface as CartRepository, backed by a list."""

    def __init__(self):
        self.rows: List[CartItemRecord] = []
        self._next = 0

    async def list_for_user(self, user_id: str) -> List[CartItemRecord]:
        return [r.model_copy() for r in reversed(self.rows) if r.user_id == user_id]

    async def get_by_id(self, item_id: str) -> Optional[CartItemRecord]:
        return next((r.model_copy() for r in self.rows if r.server_id == item_id), None)

    async def find_line(self, user_id: str, product_id: str, unit: Unit) -> Optional[CartItemRecord]:
        return next(
            (
                r.model_copy()
                for r in self.rows
                if r.user_id == user_id and r.product_id == product_id and r.unit == unit
            ),
            None,
        )

    async def create(self, user_id, product_id, quantity, unit, unit_price, total_price) -> CartItemRecord:
        self._next += 1
        record = CartItemRecord(
            server_id=f"c{self._next}",
            user_id=user_id,
            product_id=product_id,
            quantity=quantity,
            unit=unit,
            unit_price_at_time=unit_price,
            total_price_at_time=total_price,
            created_at=datetime.now(timezone.utc),
        )
        self.rows.append(record)
        return record.model_copy()

    async def update_quantity(self, item_id, quantity, total_price) -> Optional[CartItemRecord]:
        for record in self.rows:
            if record.server_id == item_id:
                record.quantity = quantity
                record.total_price_at_time = total_price
                return record.model_copy()
        return None

    async def delete(self, item_id: str) -> bool:
        before = len(self.rows)
        self.rows = [r for r in self.rows if r.server_id != item_id]
        return len(self.rows) != before


class InMemoryOrderRepository:
    """Same interface as OrderRepository."""

    def __init__(self):
        self.orders: List[Order] = []

    async def create(self, user_id, items: List[OrderLine], total, **payment) -> Order:
        order = Order(
            id=f"o{len(self.orders) + 1}",
            user_id=user_id,
            items=items,
            total=total,
            created_at=datetime.now(timezone.utc),
            **payment,
        )
        self.orders.append(order)
        return order


@pytest.fixture
def product_repo(sample_products):
    return InMemoryProductRepository([Product.model_validate(p) for p in sample_products])


@pytest.fixture
def cart_repo():
    return InMemoryCartRepository()


@pytest.fixture
def order_repo():
    return InMemoryOrderRepository()


@pytest.fixture
def cart_service(product_repo, cart_repo, order_repo):
    from teashop.services.cart_service import CartService

    return CartService(product_repo, cart_repo, order_repo)
