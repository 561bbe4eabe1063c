"""Wires the chain client, market view and orchestrator into one service."""
from __future__ import annotations

import logging
import time
from decimal import Decimal

from ..chains.evm import EvmClient
from ..config import AppConfig
from ..engine import units
from ..errors import ValidationError
from ..interfaces.price_oracle import PriceOracle
from ..interfaces.settlement import SettlementClient
from ..models import Action, OrchestrationRun, TransactionIntent
from ..oracles import PythOracle
from ..protocols.halyard import HalyardAdapter
from .market import MarketView
from .orchestrator import TransactionOrchestrator

logger = logging.getLogger(__name__)


def _percent(value: Decimal) -> str:
    return f"{value:.2f}%"


class LendingClient:
    """Reports on the Halyard market and submits transactions for one wallet."""

    def __init__(
        self,
        config: AppConfig,
        settlement: SettlementClient | None = None,
        oracle: PriceOracle | None = None,
    ) -> None:
        if config.price_oracle.provider != "pyth":
            raise ValueError(f"Unsupported price oracle: {config.price_oracle.provider}")

        self._config = config
        if settlement is None:
            chain = EvmClient(config)
            settlement = chain
            if oracle is None:
                oracle = PythOracle(config.price_oracle.pyth, chain, config.contracts.pyth)
        if oracle is None:
            raise ValueError("An oracle is required when a settlement client is injected")

        self.settlement = settlement
        self.oracle = oracle
        self.adapter = HalyardAdapter(settlement, config)
        self.market = MarketView(self.adapter, oracle, config)
        self.orchestrator = TransactionOrchestrator(settlement, oracle, self.market, config)
        self.orchestrator.add_refresh_listener(self.market.refresh)

    # ------------------------------------------------------------------
    # Reports
    # ------------------------------------------------------------------

    @staticmethod
    def _format_wallet(address: str) -> str:
        if len(address) > 16:
            return f"{address[:10]}...{address[-6:]}"
        return address

    def _symbol(self, token_id: str) -> str:
        token = self._config.token_by_id(token_id)
        return token.symbol if token else token_id

    async def markets_report(self, now: int | None = None) -> str:
        """Totals, utilization and APYs for every tracked reserve."""
        await self.market.refresh()
        now = int(time.time()) if now is None else now

        lines = [f"📊 Halyard markets · snapshot v{self.market.snapshot.version}", ""]
        for summary in self.market.reserve_summaries(now):
            status = "" if summary.is_active else " (inactive)"
            utilization = units.from_base_units(summary.utilization * 100, 18)
            lines.append(
                f"{summary.symbol}{status}\n"
                f"  Deposits: {units.format_amount(summary.total_deposits, summary.decimals)}"
                f" · Borrows: {units.format_amount(summary.total_borrows, summary.decimals)}\n"
                f"  Utilization: {_percent(utilization)}"
                f" · Supply APY: {_percent(units.rate_to_percent(summary.supply_rate))}"
                f" · Borrow APY: {_percent(units.rate_to_percent(summary.borrow_rate))}"
            )
        if len(lines) == 2:
            lines.append("No reserves available")
        return "\n".join(lines)

    async def position_report(self, now: int | None = None) -> str:
        """Live balances per asset and the available-to-borrow figure."""
        await self.market.refresh()
        now = int(time.time()) if now is None else now

        wallet = self._format_wallet(self._config.wallet.address)
        lines = [f"👛 {wallet}", ""]
        for balance in sorted(self.market.live_balances(now).values(), key=lambda b: b.symbol):
            if not (balance.deposited or balance.owed):
                continue
            lines.append(
                f"{balance.symbol}: deposited {units.format_amount(balance.deposited, balance.decimals)}"
                f" · owed {units.format_amount(balance.owed, balance.decimals)}"
            )
        if len(lines) == 2:
            lines.append("No open positions")

        result = self.market.capacity(now)
        lines.append("")
        if result.is_known:
            lines.append(
                f"Collateral value: ${units.format_amount(result.collateral_value or 0, 18, 2)}\n"
                f"Debt value: ${units.format_amount(result.debt_value or 0, 18, 2)}\n"
                f"Available to borrow: ${units.format_amount(result.available or 0, 18, 2)}"
            )
        else:
            reasons = []
            if result.missing:
                reasons.append("missing prices: " + ", ".join(self._symbol(t) for t in result.missing))
            if result.stale:
                reasons.append("stale prices: " + ", ".join(self._symbol(t) for t in result.stale))
            if result.malformed:
                reasons.append(
                    "unreadable positions: " + ", ".join(self._symbol(t) for t in result.malformed)
                )
            lines.append(f"Available to borrow: unknown ({'; '.join(reasons)})")
        return "\n".join(lines)

    # ------------------------------------------------------------------
    # Transactions
    # ------------------------------------------------------------------

    async def transact(self, action: Action, symbol: str, amount: str) -> OrchestrationRun:
        """Submit ``amount`` (human units) of ``symbol`` and wait for the outcome.

        Raises:
            ValidationError: Unknown symbol or unparseable amount, or the
                orchestrator guard rejected the intent.
        """
        token = self._config.tokens.get(symbol) or self._config.tokens.get(symbol.upper())
        if token is None:
            raise ValidationError(f"Unknown asset {symbol}")
        try:
            base_amount = units.to_base_units(amount, token.decimals)
        except ValueError as e:
            raise ValidationError(str(e)) from e

        await self.market.refresh()
        intent = TransactionIntent(
            action=action,
            asset=token.symbol,
            amount=base_amount,
            token_id=token.token_id,
        )
        run = await self.orchestrator.submit(intent)
        if run.error:
            logger.error("%s failed: %s", action.value, run.error.message)
        return run
