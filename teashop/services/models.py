"""Catalog and order models - the decode/validate boundary for records
arriving from the document store, the REST API and the local cache."""
import json
import math
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Iterable, Optional

from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    Field,
    ValidationError,
    field_serializer,
    field_validator,
    model_validator,
)

from teashop.logging import get_logger, sanitize_id_for_logging
from teashop.services.money import to_decimal as _to_decimal

logger = get_logger(__name__)

# Ids given to products created optimistically, before the server assigns one
LOCAL_ID_PREFIXES = ("tmp-", "local-")


class Unit(str, Enum):
    """Unit of sale."""
    KG = "kg"
    PIECE = "piece"


def coerce_unit(value: Any) -> Unit:
    """Anything that is not explicitly 'piece' is sold by weight."""
    if isinstance(value, Unit):
        return value
    return Unit.PIECE if str(value).lower() == Unit.PIECE.value else Unit.KG


def is_local_id(product_id: Any) -> bool:
    """True for placeholder ids of products not yet confirmed by the server."""
    return isinstance(product_id, str) and product_id.startswith(LOCAL_ID_PREFIXES)


def _optional_decimal(v):
    if v is None or v == "":
        return None
    return _to_decimal(v)


def _optional_float(v):
    if v is None or v == "":
        return None
    try:
        number = float(v)
    except (TypeError, ValueError):
        return None
    return number if math.isfinite(number) else None


class PriceTier(BaseModel):
    """Weight-threshold price rule: applies from ``min_total_weight`` grams."""
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    min_total_weight: float = Field(alias="minTotalWeight", ge=0)
    price_per_kg: Decimal = Field(alias="pricePerKg")

    @field_validator("price_per_kg", mode="before")
    @classmethod
    def convert_price_to_decimal(cls, v):
        return _to_decimal(v)

    @field_serializer("price_per_kg", when_used="json")
    def serialize_price(self, v: Decimal) -> float:
        return float(v)


class Product(BaseModel):
    """Product model."""
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    id: str = Field(validation_alias=AliasChoices("id", "_id"), serialization_alias="id")
    name: str
    price: Decimal = Decimal("0")
    old_price: Optional[Decimal] = Field(None, alias="oldPrice")
    base_price_per_kg: Optional[Decimal] = Field(None, alias="basePricePerKg")
    unit: Unit = Unit.KG
    category: Optional[str] = None
    description: Optional[str] = None
    img: Optional[str] = None
    kg_step: Optional[float] = Field(None, alias="kgStep")
    min_quantity: Optional[float] = Field(None, alias="minQuantity")
    max_quantity: Optional[float] = Field(None, alias="maxQuantity")
    price_tiers: list[PriceTier] = Field(default_factory=list, alias="priceTiers")
    in_stock: bool = Field(True, alias="inStock")
    created_at: Optional[float] = Field(None, alias="createdAt")  # epoch milliseconds

    @field_validator("id", mode="before")
    @classmethod
    def coerce_id(cls, v):
        # Numeric ids from the legacy store are accepted and normalized to strings
        if isinstance(v, bool) or v is None:
            raise ValueError("product id is required")
        if isinstance(v, (int, float)):
            v = str(int(v)) if float(v).is_integer() else str(v)
        if not isinstance(v, str) or not v.strip():
            raise ValueError("product id is required")
        return v.strip()

    @field_validator("price", mode="before")
    @classmethod
    def convert_price_to_decimal(cls, v):
        return _to_decimal(v)

    @field_validator("old_price", "base_price_per_kg", mode="before")
    @classmethod
    def convert_optional_decimal(cls, v):
        return _optional_decimal(v)

    @field_validator("unit", mode="before")
    @classmethod
    def convert_unit(cls, v):
        return coerce_unit(v) if v is not None else Unit.KG

    @field_validator("kg_step", mode="before")
    @classmethod
    def convert_kg_step(cls, v):
        # A zero step means "no step constraint"
        step = _optional_float(v)
        if step == 0:
            return None
        return step

    @field_validator("min_quantity", "max_quantity", mode="before")
    @classmethod
    def convert_optional_number(cls, v):
        return _optional_float(v)

    @field_validator("created_at", mode="before")
    @classmethod
    def convert_created_at(cls, v):
        # Document-store timestamps arrive as ISO strings, local ones as epoch ms
        if isinstance(v, str):
            try:
                return datetime.fromisoformat(v.replace("Z", "+00:00")).timestamp() * 1000
            except ValueError:
                return _optional_float(v)
        return _optional_float(v)

    @field_validator("price_tiers", mode="before")
    @classmethod
    def convert_price_tiers(cls, v):
        if v is None or v == "":
            return []
        if isinstance(v, str):
            try:
                v = json.loads(v)
            except json.JSONDecodeError:
                return []
        return v if isinstance(v, list) else []

    @field_validator("in_stock", mode="before")
    @classmethod
    def convert_in_stock(cls, v):
        # Only an explicit false takes a product off sale
        return v is not False and v != "false"

    @model_validator(mode="after")
    def check_bounds(self) -> "Product":
        if self.kg_step is not None and self.kg_step <= 0:
            raise ValueError("kgStep must be positive")
        if (
            self.min_quantity is not None
            and self.max_quantity is not None
            and self.min_quantity > self.max_quantity
        ):
            raise ValueError("minQuantity must not exceed maxQuantity")
        self.price_tiers.sort(key=lambda tier: tier.min_total_weight)
        return self

    @field_serializer("price", "old_price", "base_price_per_kg", when_used="json")
    def serialize_money(self, v: Optional[Decimal]) -> Optional[float]:
        return None if v is None else float(v)

    @property
    def is_local(self) -> bool:
        return is_local_id(self.id)

    def to_dict(self) -> dict:
        """Convert to a JSON-ready dict with wire (camelCase) names."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


def decode_product(raw: Any) -> Optional[Product]:
    """Validate a single raw record; returns None (and logs) when it is unusable."""
    if isinstance(raw, Product):
        return raw
    if not isinstance(raw, dict):
        logger.warning(f"Skipping non-object product record: {type(raw).__name__}")
        return None
    try:
        return Product.model_validate(raw)
    except ValidationError as e:
        raw_id = raw.get("id", raw.get("_id"))
        logger.warning(
            f"Skipping invalid product {sanitize_id_for_logging(raw_id)}: {e.error_count()} error(s)"
        )
        return None


def decode_products(raw: Iterable[Any]) -> list[Product]:
    """Validate a list of raw records, dropping the ones that fail."""
    products = []
    for item in raw:
        product = decode_product(item)
        if product is not None:
            products.append(product)
    return products


class OrderLine(BaseModel):
    """A priced order line, computed by the server."""
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    product_id: str = Field(alias="productId")
    name: str = "Unknown Product"
    quantity: float
    unit: Unit = Unit.KG
    unit_price: Decimal = Field(alias="unitPrice")
    total_price: Decimal = Field(alias="totalPrice")

    @field_validator("unit_price", "total_price", mode="before")
    @classmethod
    def convert_to_decimal(cls, v):
        return _to_decimal(v)

    @field_serializer("unit_price", "total_price", when_used="json")
    def serialize_money(self, v: Decimal) -> float:
        return float(v)


class Order(BaseModel):
    """Order model."""
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    id: str = Field(validation_alias=AliasChoices("id", "_id"), serialization_alias="id")
    user_id: Optional[str] = Field(None, alias="userId")
    items: list[OrderLine] = Field(default_factory=list)
    total: Decimal
    status: str = "pending"
    payment_method: Optional[str] = Field(None, alias="paymentMethod")
    transaction_id: Optional[str] = Field(None, alias="transactionId")
    address: Optional[str] = None
    phone: Optional[str] = None
    created_at: Optional[datetime] = Field(None, alias="createdAt")

    @field_validator("id", "user_id", mode="before")
    @classmethod
    def coerce_ids(cls, v):
        return str(v) if isinstance(v, int) and not isinstance(v, bool) else v

    @field_validator("total", mode="before")
    @classmethod
    def convert_total(cls, v):
        return _to_decimal(v)

    @field_serializer("total", when_used="json")
    def serialize_total(self, v: Decimal) -> float:
        return float(v)
