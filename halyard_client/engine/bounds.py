"""Conservative price bounds from oracle confidence intervals."""
from __future__ import annotations

from ..errors import StalePriceError
from ..models import WAD, PriceBounds, PriceQuote


def check_fresh(quote: PriceQuote, now: int, max_age_seconds: int) -> None:
    """Raise StalePriceError when ``quote`` is older than the window."""
    age = now - quote.publish_time
    if age > max_age_seconds:
        raise StalePriceError(quote.feed_id, age, max_age_seconds)


def resolve_bounds(
    quote: PriceQuote, now: int | None = None, max_age_seconds: int | None = None
) -> PriceBounds:
    """Low/high price around the quote's confidence band.

    ``low = max(0, price - conf)`` and ``high = price + conf``, both as integer
    mantissas at the quote's exponent. The staleness check runs only when both
    ``now`` and ``max_age_seconds`` are given.
    """
    if now is not None and max_age_seconds is not None:
        check_fresh(quote, now, max_age_seconds)

    confidence = abs(quote.confidence)
    mid = max(0, quote.price)
    return PriceBounds(
        feed_id=quote.feed_id,
        low=max(0, mid - confidence),
        mid=mid,
        high=mid + confidence,
        exponent=quote.exponent,
    )


def value_of(
    amount: int, decimals: int, mantissa: int, exponent: int, round_up: bool = False
) -> int:
    """WAD-scaled value of ``amount`` base units at ``mantissa * 10**exponent``."""
    numerator = amount * mantissa
    shift = 18 + exponent - decimals
    if shift >= 0:
        return numerator * 10**shift
    divisor = 10**-shift
    if round_up:
        return -(-numerator // divisor)
    return numerator // divisor


def collateral_value(amount: int, decimals: int, bounds: PriceBounds) -> int:
    """Collateral is valued at the low bound, rounded down."""
    return value_of(amount, decimals, bounds.low, bounds.exponent)


def debt_value(amount: int, decimals: int, bounds: PriceBounds) -> int:
    """Debt is valued at the high bound, rounded up."""
    return value_of(amount, decimals, bounds.high, bounds.exponent, round_up=True)


def value_to_amount(value: int, decimals: int, bounds: PriceBounds) -> int:
    """Base units of an asset purchasable with ``value`` at its high bound.

    Rounds down; zero when the high bound is zero.
    """
    if bounds.high <= 0:
        return 0
    # amount = value * 10**decimals / (high * 10**exponent * WAD)
    shift = decimals - bounds.exponent
    if shift >= 0:
        return value * 10**shift // (bounds.high * WAD)
    return value // (bounds.high * WAD * 10**-shift)
