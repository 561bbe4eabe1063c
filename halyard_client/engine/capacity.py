"""Borrow capacity from live balances and conservative price bounds.

Collateral counts at its low price bound and debt at its high bound, so price
uncertainty only ever shrinks the figure. Any missing or stale quote for an
asset the user holds, or any unreadable position, makes the whole result
UNKNOWN rather than a partial sum.
"""
from __future__ import annotations

from collections.abc import Collection, Mapping

from ..errors import StalePriceError
from ..models import (
    BPS,
    AccrualSnapshot,
    CapacityResult,
    CapacityStatus,
    Position,
    PriceBounds,
    PriceQuote,
    ReserveState,
)
from . import accrual, bounds


def _involved(position: Position) -> bool:
    return position.deposit_scaled > 0 or position.borrow_scaled > 0


def resolve_all(
    token_ids: list[str],
    quotes: Mapping[str, PriceQuote],
    now: int,
    max_age_seconds: int,
) -> tuple[dict[str, PriceBounds], tuple[str, ...], tuple[str, ...]]:
    """Bounds per token plus the (missing, stale) token ids."""
    resolved: dict[str, PriceBounds] = {}
    missing: list[str] = []
    stale: list[str] = []
    for token_id in token_ids:
        quote = quotes.get(token_id)
        if quote is None:
            missing.append(token_id)
            continue
        try:
            resolved[token_id] = bounds.resolve_bounds(quote, now, max_age_seconds)
        except StalePriceError:
            stale.append(token_id)
    return resolved, tuple(missing), tuple(stale)


def calculate_capacity(
    reserves: Mapping[str, ReserveState],
    positions: Mapping[str, Position],
    quotes: Mapping[str, PriceQuote],
    now: int,
    ltv_bps: int,
    max_age_seconds: int,
    accruals: Mapping[str, AccrualSnapshot] | None = None,
    malformed: Collection[str] = (),
) -> CapacityResult:
    """Available-to-borrow value (WAD quote currency) for one user.

    ``positions`` and ``quotes`` are keyed by token id. ``accruals`` may carry
    precomputed extrapolations for ``now``; anything absent is derived here.
    Tokens in ``malformed`` have unreadable positions, so the result is
    UNKNOWN whenever any are present.
    """
    involved = sorted(t for t, p in positions.items() if _involved(p))

    resolved, missing, stale = resolve_all(involved, quotes, now, max_age_seconds)
    unpriced = set(missing) | {t for t in involved if t not in reserves}
    if unpriced or stale or malformed:
        return CapacityResult(
            status=CapacityStatus.UNKNOWN,
            missing=tuple(sorted(unpriced)),
            stale=stale,
            malformed=tuple(sorted(malformed)),
        )

    collateral_total = 0
    debt_total = 0
    for token_id in involved:
        reserve = reserves[token_id]
        position = positions[token_id]
        snap = (accruals or {}).get(token_id) or accrual.extrapolate(reserve, now)
        price = resolved[token_id]

        if position.deposit_scaled > 0:
            amount = accrual.live_deposit(position.deposit_scaled, snap)
            collateral_total += bounds.collateral_value(amount, reserve.decimals, price)
        if position.borrow_scaled > 0:
            amount = accrual.live_debt(position.borrow_scaled, snap)
            debt_total += bounds.debt_value(amount, reserve.decimals, price)

    max_borrow = collateral_total * ltv_bps // BPS
    return CapacityResult(
        status=CapacityStatus.KNOWN,
        available=max(0, max_borrow - debt_total),
        collateral_value=collateral_total,
        max_borrow_value=max_borrow,
        debt_value=debt_total,
    )


def capacity_in_asset(
    result: CapacityResult, reserve: ReserveState, price: PriceBounds
) -> int:
    """Available capacity expressed in base units of ``reserve``'s asset."""
    if not result.is_known or result.available is None:
        raise ValueError("capacity is unknown")
    return bounds.value_to_amount(result.available, reserve.decimals, price)
