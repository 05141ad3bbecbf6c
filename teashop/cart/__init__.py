"""Cart package - line model, local store and remote sync client."""
from teashop.cart.models import CartLineItem, decode_cart_lines, encode_cart_lines
from teashop.cart.store import CartStore
from teashop.cart.sync import CartSyncClient

__all__ = [
    "CartLineItem",
    "CartStore",
    "CartSyncClient",
    "decode_cart_lines",
    "encode_cart_lines",
]
