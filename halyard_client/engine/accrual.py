"""Off-chain replica of the settlement layer's interest accrual.

Pure integer arithmetic, floor division everywhere. Nothing here mutates the
reserve snapshot it is given; every call re-derives from the stored state.

Rate curve (two segments, kink in WAD utilization)::

    U <= kink:  base + slope1 * U / kink
    U >  kink:  base + slope1 + slope2 * (U - kink) / (WAD - kink)

Extrapolation over ``dt`` seconds is simple interest on the stored index::

    new_index = index * (RAY + rate * dt / SECONDS_PER_YEAR) / RAY
"""
from __future__ import annotations

from ..models import RAY, SECONDS_PER_YEAR, WAD, AccrualSnapshot, ReserveState


def normalize_index(index: int) -> int:
    """An index never written on-chain (stored as 0) is exactly 1 RAY."""
    return index if index > 0 else RAY


def scaled_to_actual(scaled: int, index: int) -> int:
    return scaled * normalize_index(index) // RAY


def stored_totals(reserve: ReserveState) -> tuple[int, int]:
    """Actual (deposits, borrows) at the stored, non-extrapolated indices."""
    return (
        scaled_to_actual(reserve.total_scaled_supply, reserve.liquidity_index),
        scaled_to_actual(reserve.total_borrows_scaled, reserve.borrow_index),
    )


def utilization(reserve: ReserveState) -> int:
    """Borrowed share of liquidity as a WAD fraction; 0 with no liquidity."""
    deposits, borrows = stored_totals(reserve)
    denominator = deposits + borrows
    if denominator == 0:
        return 0
    return borrows * WAD // denominator


def borrow_rate(reserve: ReserveState, util: int) -> int:
    if reserve.kink <= 0:
        return reserve.base_rate + reserve.slope1
    if util <= reserve.kink:
        return reserve.base_rate + reserve.slope1 * util // reserve.kink
    excess_span = WAD - reserve.kink
    if excess_span <= 0:
        return reserve.base_rate + reserve.slope1
    return (
        reserve.base_rate
        + reserve.slope1
        + reserve.slope2 * (util - reserve.kink) // excess_span
    )


def supply_rate(reserve: ReserveState, util: int) -> int:
    """Borrow rate less the protocol's reserve factor cut."""
    return borrow_rate(reserve, util) * (RAY - reserve.reserve_factor) // RAY


def _grow(index: int, rate: int, elapsed: int) -> int:
    accrued = rate * elapsed // SECONDS_PER_YEAR
    return index * (RAY + accrued) // RAY


def elapsed_seconds(reserve: ReserveState, now: int) -> int:
    # A wall clock behind the snapshot extrapolates nothing.
    return max(0, now - reserve.last_update_timestamp)


def extrapolate_liquidity_index(reserve: ReserveState, now: int) -> int:
    index = normalize_index(reserve.liquidity_index)
    elapsed = elapsed_seconds(reserve, now)
    deposits, _ = stored_totals(reserve)
    if elapsed == 0 or deposits == 0:
        return index
    return _grow(index, supply_rate(reserve, utilization(reserve)), elapsed)


def extrapolate_borrow_index(reserve: ReserveState, now: int) -> int:
    index = normalize_index(reserve.borrow_index)
    elapsed = elapsed_seconds(reserve, now)
    if elapsed == 0:
        return index
    return _grow(index, borrow_rate(reserve, utilization(reserve)), elapsed)


def extrapolate(reserve: ReserveState, now: int) -> AccrualSnapshot:
    """Both indices, rates and live totals for ``reserve`` at ``now``."""
    util = utilization(reserve)
    liquidity_index = extrapolate_liquidity_index(reserve, now)
    borrow_index = extrapolate_borrow_index(reserve, now)
    return AccrualSnapshot(
        token_id=reserve.token_id,
        timestamp=now,
        utilization=util,
        borrow_rate=borrow_rate(reserve, util),
        supply_rate=supply_rate(reserve, util),
        liquidity_index=liquidity_index,
        borrow_index=borrow_index,
        total_deposits=reserve.total_scaled_supply * liquidity_index // RAY,
        total_borrows=reserve.total_borrows_scaled * borrow_index // RAY,
    )


def live_deposit(scaled: int, accrual: AccrualSnapshot) -> int:
    return scaled * accrual.liquidity_index // RAY


def live_debt(scaled: int, accrual: AccrualSnapshot) -> int:
    return scaled * accrual.borrow_index // RAY


def available_liquidity(accrual: AccrualSnapshot) -> int:
    """Deposits not currently lent out, floored at zero."""
    return max(0, accrual.total_deposits - accrual.total_borrows)
