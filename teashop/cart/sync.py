"""
Cart Sync Client - async HTTP client of the remote cart authority.

Usage:
    async with CartSyncClient(token=session_token) as sync:
        line = await sync.add_remote("p1", 0.5, "kg")
        lines = await sync.list_remote()
"""
from typing import Any, Iterable, Optional

from teashop.cart.models import CartLineItem, decode_cart_line
from teashop.errors import RemoteUnavailable
from teashop.http import ApiClient
from teashop.logging import get_logger, sanitize_id_for_logging
from teashop.services.models import Order, Unit, coerce_unit
from teashop.services.pricing import STEP_EPSILON

logger = get_logger(__name__)


def _line_payload(line: CartLineItem, quantity: Optional[float] = None) -> dict:
    return {
        "productId": line.product_id,
        "quantity": line.quantity if quantity is None else quantity,
        "unit": line.unit.value,
    }


def _decode_line_list(raw: Any) -> list[CartLineItem]:
    if not isinstance(raw, list):
        raise RemoteUnavailable("Server returned an unreadable cart")
    lines = []
    for item in raw:
        line = decode_cart_line(item)
        if line is not None:
            lines.append(line)
    return lines


class CartSyncClient(ApiClient):
    """Remote cart operations: add, list, merge, delete and checkout."""

    async def add_remote(self, product_id: str, quantity: float, unit: Unit | str = Unit.KG) -> CartLineItem:
        """
        Add to the server cart; an existing ``(productId, unit)`` line grows.

        Returns:
            The server's whole line, with its id and authoritative prices

        Raises:
            ProductNotFound: Unknown product
            InvalidQuantity, QuantityOutOfBounds, QuantityStepViolation: Rejected quantity
        """
        response = await self._request(
            "POST",
            "/cart/add",
            json={"productId": str(product_id), "quantity": quantity, "unit": coerce_unit(unit).value},
        )
        self._raise_for_error(response)
        line = decode_cart_line(response.json())
        if line is None:
            raise RemoteUnavailable("Server returned an unreadable cart line")
        return line

    async def list_remote(self) -> list[CartLineItem]:
        response = await self._request("GET", "/cart/list")
        self._raise_for_error(response)
        return _decode_line_list(response.json())

    async def merge_remote(self, local_lines: Iterable[CartLineItem]) -> list[CartLineItem]:
        """
        Submit the quantities the server has not recorded yet.

        Local-only lines go in whole; recorded lines contribute only their
        ``pending_quantity``, which the server sums into its existing line.

        Returns:
            The full remote cart after the merge
        """
        items = [
            _line_payload(line, line.pending_quantity)
            for line in local_lines
            if line.pending_quantity > 0
        ]
        response = await self._request("POST", "/cart/merge", json={"items": items})
        self._raise_for_error(response)
        return _decode_line_list(response.json())

    async def delete_remote(self, server_id: str) -> bool:
        """Delete a server line; False when it was already gone."""
        response = await self._request("DELETE", f"/cart/{server_id}")
        if response.status_code == 404:
            logger.info(f"Cart line {sanitize_id_for_logging(server_id)} already deleted")
            return False
        self._raise_for_error(response)
        return True

    async def find_server_id(self, line: CartLineItem) -> Optional[str]:
        """Resolve the server id of a local line by productId, unit and quantity."""
        for remote in await self.list_remote():
            if (
                remote.product_id == line.product_id
                and remote.unit == line.unit
                and abs(remote.quantity - line.quantity) <= STEP_EPSILON
            ):
                return remote.server_id
        return None

    async def checkout(self, lines: Iterable[CartLineItem], payment: Optional[dict] = None) -> Order:
        """
        Place an order. The server recomputes every price.

        Args:
            lines: Cart lines to order
            payment: Optional paymentMethod / transactionId / address / phone

        Raises:
            RemoteUnavailable: Checkout has no local fallback
        """
        payload: dict[str, Any] = dict(payment or {})
        payload["items"] = [_line_payload(line) for line in lines]
        response = await self._request("POST", "/orders/create", json=payload)
        self._raise_for_error(response)
        return Order.model_validate(response.json())
