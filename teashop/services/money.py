"""
Money helpers for cart and order prices.

Amounts are ``Decimal`` end to end and only become floats in JSON payloads.
Prices in this shop have two decimal places and round half away from zero,
so 0.125 becomes 0.13.
"""
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Iterable, Union

Number = Union[str, int, float, Decimal]

CENT = Decimal("0.01")
ZERO = Decimal("0")


def to_decimal(value: Union[Number, None]) -> Decimal:
    """
    Coerce a price or quantity to Decimal.

    Floats go through ``str`` so 0.1 stays 0.1. Missing or unparseable
    values count as zero.
    """
    if value is None:
        return ZERO
    if isinstance(value, Decimal):
        return value
    if isinstance(value, float):
        value = str(value)
    try:
        return Decimal(value)
    except (InvalidOperation, ValueError, TypeError):
        return ZERO


def round_money(value: Number) -> Decimal:
    """Round to whole cents, half away from zero."""
    return to_decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


def sum_money(values: Iterable[Number]) -> Decimal:
    """Sum of amounts, rounded once at the end."""
    return round_money(sum((to_decimal(v) for v in values), ZERO))


def to_float(value: Number) -> float:
    """JSON boundary only."""
    return float(to_decimal(value))


def add(a: Number, b: Number) -> Decimal:
    return to_decimal(a) + to_decimal(b)


def multiply(value: Number, factor: Number) -> Decimal:
    return to_decimal(value) * to_decimal(factor)
