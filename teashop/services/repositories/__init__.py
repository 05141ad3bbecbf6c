"""Repositories over the Supabase tables (products, cart_items, orders)."""
from .base import BaseRepository
from .cart_repo import CartItemRecord, CartRepository
from .order_repo import OrderRepository
from .product_repo import ProductRepository, product_to_row

__all__ = [
    "BaseRepository",
    "CartItemRecord",
    "CartRepository",
    "OrderRepository",
    "ProductRepository",
    "product_to_row",
]
