"""Transaction orchestration — approval, oracle refresh, write, confirmation."""
from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable

from ..config import AppConfig, TokenConfig
from ..engine.classifier import classify
from ..errors import (
    ApprovalError,
    ConfirmationError,
    OracleUpdateError,
    ValidationError,
    WriteError,
)
from ..interfaces.price_oracle import PriceOracle
from ..interfaces.settlement import SettlementClient
from ..models import Action, OrchestrationRun, Phase, Receipt, TransactionIntent
from .market import MarketView

logger = logging.getLogger(__name__)

RefreshListener = Callable[[], Awaitable[None]]


class _Dismissed(Exception):
    """Internal signal: the caller stopped waiting on this run."""


class TransactionOrchestrator:
    """Drives one intent at a time per (asset, action) pair.

    Phases run strictly in order: approvals (ERC20 only), price refresh and
    fee quote (borrow, and repay when configured), the primary write, then
    confirmation. Runs for different pairs may be in flight concurrently.
    """

    def __init__(
        self,
        settlement: SettlementClient,
        oracle: PriceOracle,
        market: MarketView,
        config: AppConfig,
    ) -> None:
        self._settlement = settlement
        self._oracle = oracle
        self._market = market
        self._config = config
        self._active: dict[tuple[str, Action], OrchestrationRun] = {}
        self._dismissals: dict[int, asyncio.Event] = {}
        self._listeners: list[RefreshListener] = []

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def add_refresh_listener(self, listener: RefreshListener) -> None:
        self._listeners.append(listener)

    def is_active(self, token_id: str, action: Action) -> bool:
        return (token_id.lower(), action) in self._active

    def begin(self, intent: TransactionIntent) -> OrchestrationRun:
        """Validate ``intent`` and register its run; nothing awaits here.

        Raises:
            ValidationError: Non-positive amount, unknown asset, an amount
                above the current bound, or a run for the same asset and
                action that has not finished yet.
            UnknownCapacityError: Borrowing while capacity cannot be computed.
        """
        if intent.amount <= 0:
            raise ValidationError("Amount must be greater than zero")
        if not intent.token_id:
            raise ValidationError("Missing token identifier")
        if self._config.token_by_id(intent.token_id) is None:
            raise ValidationError(f"Unknown asset {intent.asset or intent.token_id}")

        run = OrchestrationRun(intent=intent)
        if run.key in self._active:
            raise ValidationError(
                f"A {intent.action.value} of {intent.asset} is already in progress"
            )

        bound = self._market.max_amount(intent.action, intent.token_id)
        if intent.amount > bound:
            raise ValidationError(
                f"Amount {intent.amount} exceeds the {intent.action.value} limit of {bound}"
            )

        self._active[run.key] = run
        self._dismissals[id(run)] = asyncio.Event()
        logger.info(
            "Starting %s of %d %s", intent.action.value, intent.amount, intent.asset
        )
        return run

    async def run(self, run: OrchestrationRun) -> OrchestrationRun:
        """Drive ``run`` to a terminal phase and return it."""
        if run.phase.is_terminal:
            return run
        try:
            await self._execute(run)
        except _Dismissed:
            run.phase = Phase.DISMISSED
            logger.info(
                "%s of %s dismissed (pending tx: %s)",
                run.intent.action.value,
                run.intent.asset,
                run.pending_hash or "none",
            )
        except Exception as e:
            run.error = classify(str(e))
            run.phase = Phase.FAILED
            logger.error(
                "%s of %s failed [%s]: %s",
                run.intent.action.value,
                run.intent.asset,
                run.error.kind,
                e,
            )
        finally:
            self._release(run)
        return run

    async def submit(self, intent: TransactionIntent) -> OrchestrationRun:
        return await self.run(self.begin(intent))

    def dismiss(self, run: OrchestrationRun) -> None:
        """Stop waiting on ``run``; a broadcast write is not cancelled."""
        if run.phase.is_terminal:
            return
        run.dismissed = True
        if run.phase is Phase.IDLE:
            run.phase = Phase.DISMISSED
            self._release(run)
            return
        event = self._dismissals.get(id(run))
        if event is not None:
            event.set()

    async def needs_approval(self, intent: TransactionIntent) -> bool:
        """True if any spender's current allowance is below the amount."""
        token = self._token(intent)
        for spender in self._spenders(intent.action, token):
            if await self._allowance(token, spender) < intent.amount:
                return True
        return False

    # ------------------------------------------------------------------
    # Phases
    # ------------------------------------------------------------------

    async def _execute(self, run: OrchestrationRun) -> None:
        intent = run.intent
        token = self._token(intent)

        await self._approve_all(run, token)

        update_data: list[bytes] = []
        fee = 0
        needs_oracle = self._needs_oracle(intent.action)
        if needs_oracle:
            update_data, fee = await self._refresh_prices(run)

        self._checkpoint(run)
        run.phase = Phase.SUBMITTING
        value = self._write_value(intent.action, token, intent.amount, fee)
        try:
            run.write_hash = await self._write(intent, update_data, needs_oracle, value)
        except Exception as e:
            raise WriteError(str(e)) from e
        logger.info("Submitted %s: %s", intent.action.value, run.write_hash)

        run.phase = Phase.CONFIRMING
        receipt = await self._await_or_dismiss(run, run.write_hash)
        if not receipt.success:
            raise ConfirmationError(f"Transaction {run.write_hash} reverted")

        run.phase = Phase.CONFIRMED
        run.input_amount = None
        logger.info(
            "%s of %s confirmed in block %d",
            intent.action.value,
            intent.asset,
            receipt.block_number,
        )
        await self._notify_refresh()

    async def _approve_all(self, run: OrchestrationRun, token: TokenConfig) -> None:
        amount = run.intent.amount
        for spender in self._spenders(run.intent.action, token):
            self._checkpoint(run)
            if await self._allowance(token, spender) >= amount:
                continue

            run.phase = Phase.NEEDS_APPROVAL
            self._checkpoint(run)
            run.phase = Phase.APPROVING
            try:
                tx_hash = await self._settlement.approve(token.address, spender, amount)
            except Exception as e:
                raise ApprovalError(str(e)) from e
            run.approval_hashes.append(tx_hash)
            logger.info("Approval for %s submitted: %s", spender, tx_hash)

            run.phase = Phase.APPROVAL_CONFIRMING
            receipt = await self._await_or_dismiss(run, tx_hash)
            if not receipt.success:
                raise ApprovalError(f"Approval {tx_hash} reverted")
            if await self._allowance(token, spender) < amount:
                raise ApprovalError(f"Allowance for {spender} still below {amount}")

    async def _refresh_prices(self, run: OrchestrationRun) -> tuple[list[bytes], int]:
        """Fresh update payload and its fee, fetched just before the write."""
        self._checkpoint(run)
        run.phase = Phase.PRICE_REFRESHING
        feed_ids = self._market.required_feed_ids(run.intent.token_id)
        tolerate = self._config.price_oracle.pyth.tolerate_missing_update
        try:
            update_data = await self._oracle.build_update_data(feed_ids)
            self._checkpoint(run)
            run.phase = Phase.FEE_QUOTING
            fee = await self._oracle.get_update_fee(update_data)
        except OracleUpdateError as e:
            if not tolerate:
                raise
            logger.warning("Proceeding without a price update: %s", e)
            run.phase = Phase.FEE_QUOTING
            return [], 0
        logger.info("Price update: %d payload(s), fee %d wei", len(update_data), fee)
        return update_data, fee

    async def _write(
        self,
        intent: TransactionIntent,
        update_data: list[bytes],
        needs_oracle: bool,
        value: int,
    ) -> str:
        token_id = intent.token_id
        if intent.action is Action.DEPOSIT:
            return await self._settlement.deposit(token_id, intent.amount, value=value)
        if intent.action is Action.WITHDRAW:
            return await self._settlement.withdraw(token_id, intent.amount)
        price_ids = self._market.required_feed_ids(token_id)
        if intent.action is Action.BORROW:
            return await self._settlement.borrow(
                token_id, intent.amount, update_data, price_ids, value=value
            )
        if needs_oracle:
            return await self._settlement.repay(
                token_id,
                intent.amount,
                value=value,
                update_data=update_data,
                price_ids=price_ids,
            )
        return await self._settlement.repay(token_id, intent.amount, value=value)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _token(self, intent: TransactionIntent) -> TokenConfig:
        token = self._config.token_by_id(intent.token_id)
        if token is None:
            raise ValidationError(f"Unknown asset {intent.token_id}")
        return token

    def _spenders(self, action: Action, token: TokenConfig) -> list[str]:
        if token.is_native:
            return []
        contracts = self._config.contracts
        if action is Action.DEPOSIT:
            spenders = [contracts.deposit_manager]
            if contracts.bridge_router:
                spenders.append(contracts.bridge_router)
            return spenders
        if action is Action.REPAY:
            return [contracts.deposit_manager]
        return []

    def _needs_oracle(self, action: Action) -> bool:
        if action is Action.BORROW:
            return True
        return action is Action.REPAY and self._config.risk.repay_requires_price_update

    @staticmethod
    def _write_value(action: Action, token: TokenConfig, amount: int, fee: int) -> int:
        native = amount if token.is_native else 0
        if action is Action.DEPOSIT:
            return native
        if action is Action.BORROW:
            return fee
        if action is Action.REPAY:
            return native + fee
        return 0

    async def _allowance(self, token: TokenConfig, spender: str) -> int:
        return await self._settlement.get_allowance(
            token.address, self._config.wallet.address, spender
        )

    @staticmethod
    def _checkpoint(run: OrchestrationRun) -> None:
        if run.dismissed:
            raise _Dismissed()

    async def _await_or_dismiss(self, run: OrchestrationRun, tx_hash: str) -> Receipt:
        """Wait for ``tx_hash`` unless the run is dismissed first."""
        run.awaiting_hash = tx_hash
        self._checkpoint(run)
        receipt_task = asyncio.ensure_future(self._settlement.wait_for_receipt(tx_hash))
        dismiss_task = asyncio.ensure_future(self._dismissals[id(run)].wait())
        try:
            done, _ = await asyncio.wait(
                {receipt_task, dismiss_task}, return_when=asyncio.FIRST_COMPLETED
            )
        finally:
            for task in (receipt_task, dismiss_task):
                if not task.done():
                    task.cancel()

        if receipt_task not in done:
            raise _Dismissed()
        run.awaiting_hash = None
        return receipt_task.result()

    async def _notify_refresh(self) -> None:
        for listener in self._listeners:
            try:
                await listener()
            except Exception as e:
                logger.error("Refresh listener failed: %s", e)

    def _release(self, run: OrchestrationRun) -> None:
        if self._active.get(run.key) is run:
            del self._active[run.key]
        self._dismissals.pop(id(run), None)
