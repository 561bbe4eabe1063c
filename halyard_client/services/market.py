"""Versioned market state with memoized derived values."""
from __future__ import annotations

import logging
import time
from collections.abc import Callable
from typing import Any, TypeVar

from ..config import AppConfig
from ..engine import accrual, bounds, capacity
from ..errors import StalePriceError, UnknownCapacityError, ValidationError
from ..interfaces.market_source import MarketSource
from ..interfaces.price_oracle import PriceOracle
from ..models import (
    AccrualSnapshot,
    Action,
    CapacityResult,
    LiveBalance,
    MarketSnapshot,
    PriceQuote,
    QuoteSet,
    ReserveSummary,
)
from ..protocols.halyard.parser import normalize_feed_id

logger = logging.getLogger(__name__)

T = TypeVar("T")


class MarketView:
    """Latest snapshot and quote set, plus everything derived from them.

    Snapshots and quote sets are never patched in place. ``refresh`` swaps in
    new versions and every derived value is recomputed from
    ``(snapshot.version, quotes.version, now)``. Each derived value keeps only
    its latest result, so repeated reads with unchanged inputs return the same
    objects.
    """

    def __init__(self, source: MarketSource, oracle: PriceOracle, config: AppConfig) -> None:
        self._source = source
        self._oracle = oracle
        self._config = config
        self._snapshot_version = 0
        self._quotes_version = 0
        self.snapshot = MarketSnapshot(version=0, fetched_at=0)
        self.quotes = QuoteSet(version=0)
        self._memo: dict[str, tuple[tuple[int, int, int], Any]] = {}

    # ------------------------------------------------------------------
    # Inputs
    # ------------------------------------------------------------------

    def feed_ids(self) -> dict[str, str]:
        """Normalized feed id per tracked token id."""
        return {
            t.token_id.lower(): normalize_feed_id(t.price_feed_id)
            for t in self._config.tokens.values()
        }

    async def refresh(self) -> None:
        """Re-read the snapshot and quotes; derived values follow."""
        self._snapshot_version += 1
        self.snapshot = await self._source.fetch_snapshot(
            self._config.wallet.address, self._snapshot_version
        )
        await self.refresh_quotes()

    async def refresh_quotes(self) -> None:
        by_feed = await self._oracle.fetch_quotes(sorted(set(self.feed_ids().values())))
        self.apply_quotes(by_feed)

    def apply_quotes(self, by_feed: dict[str, PriceQuote]) -> None:
        """Install a new quote set from quotes keyed by feed id."""
        by_feed = {normalize_feed_id(k): v for k, v in by_feed.items()}
        quotes = {
            token_id: by_feed[feed_id]
            for token_id, feed_id in self.feed_ids().items()
            if feed_id in by_feed
        }
        self._quotes_version += 1
        self.quotes = QuoteSet(version=self._quotes_version, quotes=quotes)
        logger.debug(
            "Quote set v%d: %d/%d tokens priced",
            self._quotes_version,
            len(quotes),
            len(self._config.tokens),
        )

    def _derive(self, name: str, now: int | None, compute: Callable[[int], T]) -> T:
        now = int(time.time()) if now is None else now
        key = (self.snapshot.version, self.quotes.version, now)
        cached = self._memo.get(name)
        if cached is None or cached[0] != key:
            cached = (key, compute(now))
            self._memo[name] = cached
        return cached[1]

    # ------------------------------------------------------------------
    # Derived values
    # ------------------------------------------------------------------

    def accruals(self, now: int | None = None) -> dict[str, AccrualSnapshot]:
        return self._derive(
            "accruals",
            now,
            lambda ts: {
                token_id: accrual.extrapolate(reserve, ts)
                for token_id, reserve in self.snapshot.reserves.items()
            },
        )

    def reserve_summaries(self, now: int | None = None) -> list[ReserveSummary]:
        def compute(ts: int) -> list[ReserveSummary]:
            accruals = self.accruals(ts)
            summaries = []
            for token_id, reserve in sorted(self.snapshot.reserves.items()):
                snap = accruals[token_id]
                summaries.append(
                    ReserveSummary(
                        token_id=token_id,
                        symbol=reserve.symbol,
                        decimals=reserve.decimals,
                        is_active=reserve.is_active,
                        utilization=snap.utilization,
                        borrow_rate=snap.borrow_rate,
                        supply_rate=snap.supply_rate,
                        total_deposits=snap.total_deposits,
                        total_borrows=snap.total_borrows,
                        available_liquidity=accrual.available_liquidity(snap),
                    )
                )
            return summaries

        return self._derive("summaries", now, compute)

    def live_balances(self, now: int | None = None) -> dict[str, LiveBalance]:
        def compute(ts: int) -> dict[str, LiveBalance]:
            accruals = self.accruals(ts)
            balances: dict[str, LiveBalance] = {}
            for token_id, reserve in self.snapshot.reserves.items():
                position = self.snapshot.positions.get(token_id)
                snap = accruals[token_id]
                balances[token_id] = LiveBalance(
                    token_id=token_id,
                    symbol=reserve.symbol,
                    decimals=reserve.decimals,
                    deposited=accrual.live_deposit(position.deposit_scaled, snap) if position else 0,
                    owed=accrual.live_debt(position.borrow_scaled, snap) if position else 0,
                    wallet=self.snapshot.wallet_balances.get(token_id, 0),
                )
            return balances

        return self._derive("balances", now, compute)

    def capacity(self, now: int | None = None) -> CapacityResult:
        return self._derive(
            "capacity",
            now,
            lambda ts: capacity.calculate_capacity(
                self.snapshot.reserves,
                self.snapshot.positions,
                self.quotes.quotes,
                ts,
                self._config.risk.ltv_bps,
                self._config.risk.max_price_age_seconds,
                accruals=self.accruals(ts),
                malformed=self.snapshot.malformed,
            ),
        )

    def required_feed_ids(self, token_id: str) -> list[str]:
        """Feeds of every asset held as collateral or debt, plus the target."""
        token_id = token_id.lower()
        feeds = self.feed_ids()
        involved = {
            t
            for t, p in self.snapshot.positions.items()
            if p.deposit_scaled > 0 or p.borrow_scaled > 0
        }
        involved.add(token_id)
        return sorted({feeds[t] for t in involved if t in feeds})

    def max_amount(self, action: Action, token_id: str, now: int | None = None) -> int:
        """Upper bound, in base units, for ``action`` on ``token_id``."""
        token_id = token_id.lower()
        now = int(time.time()) if now is None else now
        reserve = self.snapshot.reserves.get(token_id)
        if reserve is None:
            raise ValidationError(f"Unknown asset {token_id}")

        if token_id in self.snapshot.malformed and action in (Action.WITHDRAW, Action.REPAY):
            raise ValidationError(f"Balances for {reserve.symbol} could not be read")

        balance = self.live_balances(now)[token_id]
        if action is Action.DEPOSIT:
            return balance.wallet
        if action is Action.WITHDRAW:
            return balance.deposited
        if action is Action.REPAY:
            return balance.owed

        def compute(ts: int) -> int:
            result = self.capacity(ts)
            if not result.is_known:
                raise UnknownCapacityError(result.missing, result.stale, result.malformed)
            quote = self.quotes.quotes.get(token_id)
            if quote is None:
                raise UnknownCapacityError(missing=(token_id,))
            try:
                price = bounds.resolve_bounds(
                    quote, ts, self._config.risk.max_price_age_seconds
                )
            except StalePriceError:
                raise UnknownCapacityError(stale=(token_id,)) from None
            in_asset = capacity.capacity_in_asset(result, reserve, price)
            liquidity = accrual.available_liquidity(self.accruals(ts)[token_id])
            return min(in_asset, liquidity)

        return self._derive(f"borrow:{token_id}", now, compute)
