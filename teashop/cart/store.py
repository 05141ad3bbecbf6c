"""
Cart Store - optimistic client-side cart persisted in a durable slot.

Every mutation is written to the key-value store before the call returns.
Prices computed here are advisory; lines that came back from the remote cart
carry the server's authoritative prices.
"""
from decimal import Decimal
from typing import Optional

from teashop.cart.models import (
    CartLineItem,
    decode_cart_lines,
    encode_cart_lines,
    sum_quantities,
)
from teashop.cart.sync import CartSyncClient
from teashop.catalog.cache import ProductCache
from teashop.channels import Channel
from teashop.db import StorageKeys
from teashop.errors import (
    MalformedPersistedState,
    ProductNotFound,
    ProductOutOfStock,
    RemoteUnavailable,
    ShopError,
    Unauthorized,
)
from teashop.logging import get_logger, sanitize_id_for_logging
from teashop.services.models import Unit, coerce_unit
from teashop.services.money import add, round_money, sum_money, to_float
from teashop.services.pricing import line_total, unit_price, validate_quantity
from teashop.storage import ORIGIN_EXTERNAL, KeyValueStore

logger = get_logger(__name__)


class CartStore:
    """
    Ordered cart keyed by ``(product_id, unit)``.

    Features:
    - Synchronous persistence of the full snapshot on every mutation
    - Optional remote authority (``CartSyncClient``) with local fallback
    - ``changes`` channel replaying the current lines to new subscribers
    """

    def __init__(
        self,
        store: KeyValueStore,
        products: ProductCache,
        sync: Optional[CartSyncClient] = None,
        key: str = StorageKeys.CART,
    ):
        self.store = store
        self.products = products
        self.sync = sync
        self.key = key
        self._lines: list[CartLineItem] = self._load()
        self.changes: Channel[list[CartLineItem]] = Channel(self.items)
        self._unsubscribe_store = store.subscribe(self._on_store_change)

    # ==================== PERSISTENCE ====================

    def _load(self) -> list[CartLineItem]:
        try:
            return decode_cart_lines(self.store.get_json(self.key, default=[]))
        except MalformedPersistedState as e:
            logger.warning(f"Discarding unreadable cart snapshot: {e.message}")
            return []

    def _persist(self) -> None:
        self.store.set_json(self.key, encode_cart_lines(self._lines))
        self.changes.publish(self.items)

    def _on_store_change(self, key: str, origin: str) -> None:
        if key == self.key and origin == ORIGIN_EXTERNAL:
            self.reload()

    def reload(self) -> list[CartLineItem]:
        """Re-read the persisted snapshot and republish it."""
        self._lines = self._load()
        self.changes.publish(self.items)
        return self.items

    def close(self) -> None:
        self._unsubscribe_store()

    # ==================== READ ====================

    @property
    def items(self) -> list[CartLineItem]:
        return [line.model_copy() for line in self._lines]

    def _find(self, product_id: str, unit: Unit) -> Optional[CartLineItem]:
        return next((line for line in self._lines if line.key == (product_id, unit)), None)

    def get(self, product_id: str, unit: Unit | str = Unit.KG) -> Optional[CartLineItem]:
        line = self._find(str(product_id), coerce_unit(unit))
        return line.model_copy() if line else None

    def line_value(self, line: CartLineItem) -> Decimal:
        """Stored total when present, else priced from the product cache (0 if unknown)."""
        if line.total_price_at_time is not None:
            return line.total_price_at_time
        product = self.products.get(line.product_id)
        if product is None:
            return Decimal("0")
        return line_total(unit_price(product, line.unit, line.quantity), line.quantity)

    def total(self) -> Decimal:
        return sum_money(self.line_value(line) for line in self._lines)

    def summary(self) -> dict:
        """Cart overview for display: lines with names, item count and total.

        Lines holding quantity the remote cart has not recorded are marked
        ``pending``: their prices are advisory until the server confirms them.
        """
        items = []
        for line in self._lines:
            product = self.products.get(line.product_id)
            items.append({
                **line.to_dict(),
                "name": product.name if product else None,
                "value": to_float(self.line_value(line)),
                "pending": not line.is_synced,
            })
        return {
            "items": items,
            "itemCount": len(self._lines),
            "total": to_float(self.total()),
            "pending": any(not line.is_synced for line in self._lines),
        }

    # ==================== LOCAL MUTATIONS ====================

    def add(self, product_id: str, quantity: float, unit: Unit | str = Unit.KG) -> CartLineItem:
        """
        Add a product to the cart (local, optimistic pricing).

        An existing ``(product_id, unit)`` line has its quantity incremented
        and the newly priced amount added to its total. A line the remote cart
        already recorded keeps the server's unit price and counts the added
        quantity as unsynced until the next merge.

        Raises:
            InvalidQuantity: Quantity is not a finite positive number
            ProductNotFound: Product is not in the product cache
            ProductOutOfStock: Product is not in stock
        """
        qty = validate_quantity(quantity)
        unit = coerce_unit(unit)
        product_id = str(product_id)

        product = self.products.get(product_id)
        if product is None:
            raise ProductNotFound()
        if not product.in_stock:
            raise ProductOutOfStock()

        price = unit_price(product, unit, qty)
        total = line_total(price, qty)

        line = self._find(product_id, unit)
        if line is not None:
            if line.server_id is None:
                line.unit_price_at_time = price
            else:
                line.unsynced_quantity = sum_quantities(line.pending_quantity, qty)
                if line.unit_price_at_time is not None:
                    total = line_total(line.unit_price_at_time, qty)
                else:
                    line.unit_price_at_time = price
            line.quantity = sum_quantities(line.quantity, qty)
            line.total_price_at_time = round_money(add(line.total_price_at_time or 0, total))
        else:
            line = CartLineItem(
                product_id=product_id,
                quantity=qty,
                unit=unit,
                unit_price_at_time=price,
                total_price_at_time=total,
            )
            self._lines.append(line)

        self._persist()
        return line.model_copy()

    async def update_quantity(
        self, product_id: str, quantity: float, unit: Unit | str = Unit.KG
    ) -> Optional[CartLineItem]:
        """
        Replace a line's quantity; zero or less removes the line.

        The line total is repriced from its unit price snapshot. On a line
        the remote cart recorded, an increase is held as unsynced quantity
        for the next merge; a decrease deletes the server line so the next
        merge recreates it at the new quantity. When that delete fails the
        server's quantity wins at the next merge.

        Returns:
            Updated line, or None when the line was removed or does not exist
        """
        unit = coerce_unit(unit)
        product_id = str(product_id)
        if isinstance(quantity, (int, float)) and not isinstance(quantity, bool) and quantity <= 0:
            await self.remove(product_id, unit)
            return None

        qty = validate_quantity(quantity)
        line = self._find(product_id, unit)
        if line is None:
            return None

        detach = False
        if line.server_id is not None:
            confirmed = line.confirmed_quantity
            if qty >= confirmed:
                line.unsynced_quantity = sum_quantities(qty, -confirmed) or None
            else:
                line.unsynced_quantity = None
                detach = True

        line.quantity = qty
        if line.unit_price_at_time is not None:
            line.total_price_at_time = line_total(line.unit_price_at_time, qty)
        self._persist()

        if detach and self.sync is not None:
            server_id = line.server_id
            if await self._delete_remote(line):
                current = self._find(product_id, unit)
                if current is not None and current.server_id == server_id:
                    current.server_id = None
                    self._persist()
                    return current.model_copy()
        return line.model_copy()

    async def remove(self, product_id: str, unit: Unit | str = Unit.KG) -> bool:
        """
        Remove a line locally, then best-effort on the server.

        Returns:
            True if a local line was removed
        """
        line = self._find(str(product_id), coerce_unit(unit))
        if line is None:
            return False
        self._lines.remove(line)
        self._persist()

        if self.sync is not None:
            await self._delete_remote(line)
        return True

    async def _delete_remote(self, line: CartLineItem) -> bool:
        """True once the server no longer holds the line."""
        try:
            server_id = line.server_id or await self.sync.find_server_id(line)
            if not server_id:
                return False
            await self.sync.delete_remote(server_id)
            return True
        except ShopError as e:
            logger.warning(
                f"Remote delete failed for product {sanitize_id_for_logging(line.product_id)}: {e.message}"
            )
            return False

    def clear(self) -> None:
        self._lines = []
        self._persist()

    # ==================== REMOTE-BACKED MUTATIONS ====================

    async def add_synced(self, product_id: str, quantity: float, unit: Unit | str = Unit.KG) -> CartLineItem:
        """
        Add through the remote cart, falling back to the local add.

        The server answers with its whole ``(productId, unit)`` line, which
        replaces the local one. Quantity the server has not recorded yet is
        kept on top as unsynced, so the next merge still pushes it. Quantity,
        bounds and product rejections propagate without touching local state.
        """
        if self.sync is None:
            return self.add(product_id, quantity, unit)

        qty = validate_quantity(quantity)
        unit = coerce_unit(unit)
        try:
            remote = await self.sync.add_remote(str(product_id), qty, unit)
        except (RemoteUnavailable, Unauthorized) as e:
            logger.warning(f"Remote cart unavailable, adding locally: {e.message}")
            return self.add(product_id, qty, unit)

        line = self._find(remote.product_id, remote.unit)
        if line is not None:
            pending = line.pending_quantity
            price = remote.unit_price_at_time or line.unit_price_at_time
            total = remote.total_price_at_time or 0
            if pending > 0 and price is not None:
                total = add(total, line_total(price, pending))
            line.quantity = sum_quantities(remote.quantity, pending)
            line.server_id = remote.server_id
            line.unsynced_quantity = pending or None
            line.unit_price_at_time = price
            line.total_price_at_time = round_money(total)
        else:
            line = remote.model_copy()
            self._lines.append(line)

        self._persist()
        return line.model_copy()

    async def merge_with_server(self) -> list[CartLineItem]:
        """
        Push unsynced quantities to the remote cart and adopt the merged result.

        Called after login. On remote failure the local cart is left as is.
        """
        if self.sync is None:
            return self.items
        try:
            merged = await self.sync.merge_remote(self._lines)
        except (RemoteUnavailable, Unauthorized) as e:
            logger.warning(f"Cart merge skipped: {e.message}")
            return self.items

        self._lines = decode_cart_lines(merged)
        self._persist()
        logger.info(f"Cart merged with server: {len(self._lines)} line(s)")
        return self.items
