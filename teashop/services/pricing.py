"""
Pricing - unit price, line total and quantity rules.

Single source of truth for both sides of the cart:
- the local cart store uses it for optimistic (advisory) prices
- the cart service uses it for authoritative prices and bound checks

Client-computed values are never trusted by the server; it recomputes them here.
"""
import math
from decimal import Decimal, ROUND_CEILING, ROUND_FLOOR, ROUND_HALF_UP
from typing import Optional, Sequence, Union

from teashop.errors import InvalidQuantity, QuantityOutOfBounds, QuantityStepViolation
from teashop.services.models import PriceTier, Product, Unit, coerce_unit
from teashop.services.money import multiply, round_money, to_decimal

# Tolerance for "is an exact multiple of kgStep" checks
STEP_EPSILON = 1e-8

GRAMS_PER_KG = 1000

Quantity = Union[int, float, Decimal]


def validate_quantity(quantity: Quantity) -> float:
    """
    Ensure quantity is a finite positive number.

    Returns:
        Quantity as float

    Raises:
        InvalidQuantity: For zero, negative, NaN, infinite or non-numeric values
    """
    if isinstance(quantity, bool):
        raise InvalidQuantity()
    try:
        qty = float(quantity)
    except (TypeError, ValueError):
        raise InvalidQuantity()
    if not math.isfinite(qty) or qty <= 0:
        raise InvalidQuantity()
    return qty


def select_tier(tiers: Sequence[PriceTier], quantity: Optional[float]) -> PriceTier:
    """
    Pick the stepped price tier for an order weight.

    The tier with the highest ``min_total_weight`` not exceeding the weight
    (in grams) applies; when none qualifies, the smallest tier is used.
    """
    smallest = min(tiers, key=lambda tier: tier.min_total_weight)
    if quantity is None:
        return smallest
    grams = float(quantity) * GRAMS_PER_KG
    qualifying = [tier for tier in tiers if tier.min_total_weight <= grams]
    if not qualifying:
        return smallest
    return max(qualifying, key=lambda tier: tier.min_total_weight)


def unit_price(product: Product, unit: Union[Unit, str], quantity: Optional[Quantity] = None) -> Decimal:
    """
    Compute the price of one unit (one kilogram or one piece).

    Args:
        product: Product being priced
        unit: Unit requested by the buyer
        quantity: Requested quantity, used to select a weight tier

    Returns:
        Unit price as Decimal
    """
    unit = coerce_unit(unit)

    if unit is Unit.PIECE:
        # Legacy piece products may keep their per-piece price in basePricePerKg
        if product.unit is Unit.PIECE and product.base_price_per_kg:
            return to_decimal(product.base_price_per_kg)
        return to_decimal(product.price)

    if product.price_tiers:
        qty = float(quantity) if quantity is not None else None
        return to_decimal(select_tier(product.price_tiers, qty).price_per_kg)

    return to_decimal(product.base_price_per_kg or product.price)


def line_total(price: Union[Decimal, float, int, str], quantity: Quantity) -> Decimal:
    """
    Total for a line: ``round(price * quantity, 2)``, half away from zero.

    Raises:
        InvalidQuantity: If quantity is not a finite positive number
    """
    qty = validate_quantity(quantity)
    return round_money(multiply(price, qty))


def check_quantity(product: Product, quantity: Quantity, unit: Union[Unit, str] = Unit.KG) -> float:
    """
    Enforce product-level bounds before creating a server cart line.

    Returns:
        Validated quantity as float

    Raises:
        InvalidQuantity: Non-positive or non-finite quantity
        QuantityOutOfBounds: Below minQuantity or above maxQuantity
        QuantityStepViolation: Not a multiple of kgStep (kg products only)
    """
    qty = validate_quantity(quantity)

    if product.min_quantity is not None and qty < product.min_quantity:
        raise QuantityOutOfBounds(
            f"Quantity {qty:g} is below product minimum of {product.min_quantity:g}"
        )
    if product.max_quantity is not None and qty > product.max_quantity:
        raise QuantityOutOfBounds(
            f"Quantity {qty:g} is above product maximum of {product.max_quantity:g}"
        )

    if product.unit is Unit.KG and product.kg_step:
        quotient = qty / product.kg_step
        if abs(quotient - round(quotient)) > STEP_EPSILON:
            raise QuantityStepViolation(f"Quantity must be a multiple of {product.kg_step:g}")

    return qty


def _snap(quantity: float, step: float, rounding: str) -> float:
    steps = (to_decimal(quantity) / to_decimal(step)).quantize(Decimal("1"), rounding=rounding)
    return float(steps * to_decimal(step))


def clamp_quantity(product: Product, quantity: float) -> float:
    """
    Bring a merged quantity back inside the product's rules.

    Clamps to ``[min_quantity, max_quantity]`` and then, for kg products,
    snaps to the nearest ``kg_step`` multiple (half up). A snap that leaves
    the bounds falls back to the nearest in-bounds multiple.
    """
    qty = float(quantity)
    if product.max_quantity is not None and qty > product.max_quantity:
        qty = product.max_quantity
    if product.min_quantity is not None and qty < product.min_quantity:
        qty = product.min_quantity

    step = product.kg_step
    if product.unit is not Unit.KG or not step:
        return qty

    snapped = _snap(qty, step, ROUND_HALF_UP)
    if product.max_quantity is not None and snapped > product.max_quantity:
        snapped = _snap(product.max_quantity, step, ROUND_FLOOR)
    if product.min_quantity is not None and snapped < product.min_quantity:
        snapped = _snap(product.min_quantity, step, ROUND_CEILING)
    if snapped <= 0:
        snapped = step
    return snapped
