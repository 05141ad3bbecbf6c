"""
Cart Service - server-side cart and checkout authority.

Clients never dictate prices: every unit price and line total here is
computed from the stored product.
"""
import math
from typing import Any, Iterable, List, Optional

from teashop.cart.models import sum_quantities
from teashop.errors import (
    CartItemNotFound,
    Forbidden,
    InvalidRequest,
    ProductNotFound,
    ProductOutOfStock,
)
from teashop.logging import get_logger, sanitize_id_for_logging
from teashop.services.models import Order, OrderLine, coerce_unit
from teashop.services.money import sum_money
from teashop.services.pricing import (
    check_quantity,
    clamp_quantity,
    line_total,
    unit_price,
    validate_quantity,
)
from teashop.services.repositories import CartItemRecord, CartRepository, OrderRepository, ProductRepository

logger = get_logger(__name__)


def _parse_merge_item(item: Any) -> Optional[tuple[str, float, Any]]:
    """``(product_id, quantity, unit)`` of a merge entry, or None if unusable."""
    if not isinstance(item, dict):
        return None
    product_id = item.get("productId")
    if product_id is None or product_id == "":
        return None
    quantity = item.get("quantity")
    if isinstance(quantity, bool):
        return None
    try:
        qty = float(quantity)
    except (TypeError, ValueError):
        return None
    if not math.isfinite(qty) or qty <= 0:
        return None
    return str(product_id), qty, coerce_unit(item.get("unit"))


class CartService:
    """Cart lines per user plus order creation."""

    def __init__(self, products: ProductRepository, cart: CartRepository, orders: OrderRepository):
        self.products = products
        self.cart = cart
        self.orders = orders

    async def add_item(self, user_id: str, product_id: str, quantity: Any, unit: Any = "kg") -> CartItemRecord:
        """
        Add to the user's ``(productId, unit)`` line at the authoritative price.

        A user holds at most one line per key: adding to an existing line sums
        the quantities, and the summed quantity must satisfy the product rules
        too. The existing line keeps its unit price snapshot.

        Returns:
            The created or grown line

        Raises:
            InvalidRequest: Missing product id
            InvalidQuantity: Quantity is not a finite positive number
            ProductNotFound: Unknown product
            ProductOutOfStock: Product is not in stock
            QuantityOutOfBounds, QuantityStepViolation: Product quantity rules
        """
        if not product_id:
            raise InvalidRequest("productId required")
        qty = validate_quantity(quantity)

        product = await self.products.get_by_id(str(product_id))
        if product is None:
            raise ProductNotFound()
        if not product.in_stock:
            raise ProductOutOfStock()

        use_unit = coerce_unit(unit)
        check_quantity(product, qty, use_unit)

        record = None
        existing = await self.cart.find_line(user_id, product.id, use_unit)
        if existing is not None:
            new_qty = check_quantity(product, sum_quantities(existing.quantity, qty), use_unit)
            price = existing.unit_price_at_time
            if price is None:
                price = unit_price(product, use_unit, new_qty)
            record = await self.cart.update_quantity(existing.server_id, new_qty, line_total(price, new_qty))

        if record is None:
            price = unit_price(product, use_unit, qty)
            record = await self.cart.create(user_id, product.id, qty, use_unit, price, line_total(price, qty))
        logger.info(
            f"Cart line {sanitize_id_for_logging(record.server_id)} added for product "
            f"{sanitize_id_for_logging(product.id)}"
        )
        return record

    async def list_items(self, user_id: str) -> List[CartItemRecord]:
        return await self.cart.list_for_user(user_id)

    async def merge_items(self, user_id: str, items: Iterable[Any]) -> List[CartItemRecord]:
        """
        Fold a client cart into the server cart.

        Each entry is summed into the user's existing ``(productId, unit)``
        line or creates one. Quantities are clamped to the product bounds and
        snapped to its step; the total is repriced for the final quantity.
        Invalid entries and unknown products are skipped.

        Returns:
            The full server cart after the merge
        """
        for item in items:
            parsed = _parse_merge_item(item)
            if parsed is None:
                logger.warning("Skipping invalid cart merge entry")
                continue
            product_id, qty, use_unit = parsed

            product = await self.products.get_by_id(product_id)
            if product is None:
                logger.warning(f"Skipping merge of unknown product {sanitize_id_for_logging(product_id)}")
                continue

            existing = await self.cart.find_line(user_id, product_id, use_unit)
            if existing is not None:
                new_qty = clamp_quantity(product, sum_quantities(existing.quantity, qty))
                price = existing.unit_price_at_time
                if price is None:
                    price = unit_price(product, use_unit, new_qty)
                await self.cart.update_quantity(existing.server_id, new_qty, line_total(price, new_qty))
            else:
                new_qty = clamp_quantity(product, qty)
                price = unit_price(product, use_unit, new_qty)
                await self.cart.create(user_id, product_id, new_qty, use_unit, price, line_total(price, new_qty))

        return await self.cart.list_for_user(user_id)

    async def delete_item(self, user_id: str, item_id: str) -> None:
        """
        Raises:
            CartItemNotFound: No such line
            Forbidden: Line belongs to another user
        """
        record = await self.cart.get_by_id(item_id)
        if record is None:
            raise CartItemNotFound()
        if record.user_id != str(user_id):
            raise Forbidden()
        await self.cart.delete(item_id)

    async def create_order(
        self,
        user_id: Optional[str],
        items: Any,
        payment_method: Optional[str] = None,
        transaction_id: Optional[str] = None,
        address: Optional[str] = None,
        phone: Optional[str] = None,
    ) -> Order:
        """
        Create an order, recomputing every line from the stored products.

        Raises:
            InvalidRequest: Empty item list or an item without productId/quantity
            ProductNotFound: Unknown product
            InvalidQuantity: Quantity is not a finite positive number
        """
        if not isinstance(items, list) or not items:
            raise InvalidRequest("Order items required")

        lines: List[OrderLine] = []
        for item in items:
            if not isinstance(item, dict) or not item.get("productId") or item.get("quantity") is None:
                raise InvalidRequest("Invalid item")
            product = await self.products.get_by_id(str(item["productId"]))
            if product is None:
                raise ProductNotFound()

            use_unit = coerce_unit(item.get("unit"))
            qty = validate_quantity(item["quantity"])
            price = unit_price(product, use_unit, qty)
            item_total = line_total(price, qty)
            lines.append(OrderLine(
                product_id=product.id,
                name=product.name,
                quantity=qty,
                unit=use_unit,
                unit_price=price,
                total_price=item_total,
            ))

        order = await self.orders.create(
            user_id=user_id,
            items=lines,
            total=sum_money(line.total_price for line in lines),
            payment_method=payment_method,
            transaction_id=transaction_id,
            address=address,
            phone=phone,
        )
        logger.info(f"Order {sanitize_id_for_logging(order.id)} created with {len(lines)} line(s)")
        return order
