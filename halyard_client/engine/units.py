"""Conversions between integer base units and human-readable decimals."""
from __future__ import annotations

import decimal
from decimal import Decimal

# Enough digits for uint256 values at any token decimals.
_CONTEXT = decimal.Context(prec=100, rounding=decimal.ROUND_FLOOR)


def from_base_units(value: int, decimals: int) -> Decimal:
    """Exact decimal amount for ``value`` base units."""
    return Decimal(value).scaleb(-decimals, context=_CONTEXT)


def to_base_units(amount: Decimal | str | int, decimals: int) -> int:
    """Integer base units for a decimal amount, dropping sub-unit dust.

    Raises:
        ValueError: on negative, NaN or infinite input.
    """
    try:
        value = Decimal(amount) if not isinstance(amount, Decimal) else amount
    except decimal.InvalidOperation as e:
        raise ValueError(f"Not a number: {amount!r}") from e

    if not value.is_finite():
        raise ValueError(f"Amount must be finite, got {amount!r}")
    if value < 0:
        raise ValueError(f"Amount must be non-negative, got {amount!r}")

    scaled = value.scaleb(decimals, context=_CONTEXT)
    return int(scaled.to_integral_value(rounding=decimal.ROUND_FLOOR))


def rate_to_percent(rate_ray: int) -> Decimal:
    """Annual RAY rate as a percentage, e.g. 5 * 10**25 -> Decimal('5')."""
    return Decimal(rate_ray * 100).scaleb(-27, context=_CONTEXT)


def format_amount(value: int, decimals: int, places: int = 6) -> str:
    """Base units rendered with at most ``places`` fractional digits."""
    amount = from_base_units(value, decimals)
    quantum = Decimal(1).scaleb(-places)
    return f"{amount.quantize(quantum, rounding=decimal.ROUND_FLOOR, context=_CONTEXT):,}"
