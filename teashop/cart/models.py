"""Cart line model and the decode boundary for persisted/remote cart snapshots."""
import math
from datetime import datetime
from decimal import Decimal
from typing import Any, Iterable, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, ValidationError, field_serializer, field_validator

from teashop.errors import MalformedPersistedState
from teashop.logging import get_logger, sanitize_id_for_logging
from teashop.services.models import Unit, coerce_unit
from teashop.services.money import add, round_money, to_decimal

logger = get_logger(__name__)


class CartLineItem(BaseModel):
    """Single line in the cart, keyed by ``(product_id, unit)``.

    Prices are snapshots taken when the line was priced. ``server_id`` is set
    once the remote cart recorded the line; ``unsynced_quantity`` is the part
    of a recorded line's quantity added locally since then.
    """
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    product_id: str = Field(alias="productId")
    quantity: float
    unit: Unit = Unit.KG
    unit_price_at_time: Optional[Decimal] = Field(None, alias="unitPriceAtTime")
    total_price_at_time: Optional[Decimal] = Field(None, alias="totalPriceAtTime")
    server_id: Optional[str] = Field(
        None,
        validation_alias=AliasChoices("serverId", "server_id", "_id"),
        serialization_alias="serverId",
    )
    unsynced_quantity: Optional[float] = Field(None, alias="unsyncedQuantity")
    created_at: Optional[datetime] = Field(None, alias="createdAt")

    @field_validator("product_id", "server_id", mode="before")
    @classmethod
    def coerce_id(cls, v):
        if v is None or isinstance(v, str):
            return v
        if isinstance(v, (int, float)) and not isinstance(v, bool):
            return str(int(v)) if float(v).is_integer() else str(v)
        return v

    @field_validator("quantity", mode="before")
    @classmethod
    def check_quantity(cls, v):
        if isinstance(v, bool):
            raise ValueError("quantity must be a number")
        try:
            number = float(v)
        except TypeError:
            raise ValueError("quantity must be a number")
        if not math.isfinite(number) or number <= 0:
            raise ValueError("quantity must be a finite positive number")
        return number

    @field_validator("unsynced_quantity", mode="before")
    @classmethod
    def convert_unsynced(cls, v):
        if v is None or isinstance(v, bool):
            return None
        try:
            number = float(v)
        except (TypeError, ValueError):
            return None
        return number if math.isfinite(number) and number > 0 else None

    @field_validator("unit", mode="before")
    @classmethod
    def convert_unit(cls, v):
        return coerce_unit(v) if v is not None else Unit.KG

    @field_validator("unit_price_at_time", "total_price_at_time", mode="before")
    @classmethod
    def convert_price(cls, v):
        if v is None or v == "":
            return None
        return to_decimal(v)

    @field_serializer("unit_price_at_time", "total_price_at_time", when_used="json")
    def serialize_price(self, v: Optional[Decimal]) -> Optional[float]:
        return None if v is None else float(v)

    @property
    def key(self) -> tuple[str, Unit]:
        return self.product_id, self.unit

    @property
    def pending_quantity(self) -> float:
        """Quantity the remote cart has not recorded yet."""
        if self.server_id is None:
            return self.quantity
        return min(self.unsynced_quantity or 0.0, self.quantity)

    @property
    def confirmed_quantity(self) -> float:
        return float(to_decimal(self.quantity) - to_decimal(self.pending_quantity))

    @property
    def is_synced(self) -> bool:
        return self.server_id is not None and not self.unsynced_quantity

    def to_dict(self) -> dict:
        """Convert to a JSON-ready dict with wire (camelCase) names."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


def sum_quantities(a: float, b: float) -> float:
    """Add two quantities without binary float drift (0.1 + 0.2 == 0.3)."""
    return float(to_decimal(a) + to_decimal(b))


def _fold_duplicate(target: CartLineItem, extra: CartLineItem) -> None:
    pending = sum_quantities(target.pending_quantity, extra.pending_quantity)
    target.quantity = sum_quantities(target.quantity, extra.quantity)
    if target.total_price_at_time is not None or extra.total_price_at_time is not None:
        target.total_price_at_time = round_money(
            add(target.total_price_at_time or 0, extra.total_price_at_time or 0)
        )
    if target.server_id is None:
        target.server_id = extra.server_id
    target.unsynced_quantity = pending if target.server_id is not None and pending > 0 else None


def decode_cart_line(raw: Any) -> Optional[CartLineItem]:
    """Validate one raw line; returns None (and logs) when it is unusable."""
    if isinstance(raw, CartLineItem):
        return raw
    if not isinstance(raw, dict):
        logger.warning(f"Skipping non-object cart line: {type(raw).__name__}")
        return None
    try:
        return CartLineItem.model_validate(raw)
    except ValidationError as e:
        logger.warning(
            f"Skipping invalid cart line for product "
            f"{sanitize_id_for_logging(raw.get('productId'))}: {e.error_count()} error(s)"
        )
        return None


def decode_cart_lines(raw: Any) -> list[CartLineItem]:
    """
    Decode a cart snapshot into key-unique lines.

    Invalid lines are dropped. Lines sharing a ``(productId, unit)`` key are
    folded into the first one, so the result never holds duplicate keys.

    Raises:
        MalformedPersistedState: If the snapshot is not a list
    """
    if not isinstance(raw, list):
        raise MalformedPersistedState(f"Cart snapshot must be a list, got {type(raw).__name__}")

    lines: list[CartLineItem] = []
    by_key: dict[tuple[str, Unit], CartLineItem] = {}
    for item in raw:
        line = decode_cart_line(item)
        if line is None:
            continue
        existing = by_key.get(line.key)
        if existing is not None:
            _fold_duplicate(existing, line)
            continue
        by_key[line.key] = line
        lines.append(line)
    return lines


def encode_cart_lines(lines: Iterable[CartLineItem]) -> list[dict]:
    return [line.to_dict() for line in lines]
