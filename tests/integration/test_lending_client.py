"""Integration tests for the LendingClient service."""
from __future__ import annotations

import time

import pytest

from conftest import BTC_FEED, ETH_ID, USDC_ID
from halyard_client.config import AppConfig, PriceOracleConfig
from halyard_client.errors import ValidationError
from halyard_client.models import Action, Phase
from halyard_client.services.client import LendingClient


@pytest.fixture()
def client(sample_app_config, settlement, oracle) -> LendingClient:
    return LendingClient(sample_app_config, settlement=settlement, oracle=oracle)


class TestConstruction:
    def test_unsupported_oracle_provider(self, sample_app_config, settlement, oracle) -> None:
        config = AppConfig(
            chain=sample_app_config.chain,
            wallet=sample_app_config.wallet,
            contracts=sample_app_config.contracts,
            tokens=sample_app_config.tokens,
            price_oracle=PriceOracleConfig(provider="chainlink"),
        )
        with pytest.raises(ValueError, match="Unsupported price oracle"):
            LendingClient(config, settlement=settlement, oracle=oracle)

    def test_injected_settlement_requires_oracle(self, sample_app_config, settlement) -> None:
        with pytest.raises(ValueError, match="oracle is required"):
            LendingClient(sample_app_config, settlement=settlement)


class TestReports:
    @pytest.mark.asyncio
    async def test_markets_report(self, client: LendingClient) -> None:
        report = await client.markets_report()

        assert "Halyard markets" in report
        for symbol in ("ETH", "USDC", "BTC"):
            assert symbol in report
        assert "Utilization: 33.33%" in report
        assert "Borrow APY" in report

    @pytest.mark.asyncio
    async def test_position_report(self, client: LendingClient) -> None:
        report = await client.position_report(int(time.time()))

        assert "ETH: deposited 1.000000" in report
        assert "USDC: deposited 0.000000 · owed 1,000.000000" in report
        assert "Available to borrow: $" in report

    @pytest.mark.asyncio
    async def test_position_report_unknown_capacity(self, client: LendingClient, oracle) -> None:
        del oracle.quotes[BTC_FEED]

        report = await client.position_report()

        assert "Available to borrow: unknown (missing prices: BTC)" in report


class TestTransact:
    @pytest.mark.asyncio
    async def test_borrow_by_symbol(self, client: LendingClient, settlement) -> None:
        run = await client.transact(Action.BORROW, "usdc", "12.5")

        assert run.phase is Phase.CONFIRMED
        assert settlement.write_calls[0][:3] == ("borrow", USDC_ID, 12_500_000)

    @pytest.mark.asyncio
    async def test_confirmed_run_refreshes_market(self, client: LendingClient) -> None:
        await client.transact(Action.DEPOSIT, "ETH", "0.1")
        # One refresh before submitting and one from the refresh listener.
        assert client.market.snapshot.version == 2

    @pytest.mark.asyncio
    async def test_unknown_symbol(self, client: LendingClient) -> None:
        with pytest.raises(ValidationError, match="Unknown asset"):
            await client.transact(Action.DEPOSIT, "DOGE", "1")

    @pytest.mark.asyncio
    async def test_bad_amount(self, client: LendingClient) -> None:
        with pytest.raises(ValidationError):
            await client.transact(Action.DEPOSIT, "ETH", "lots")

    @pytest.mark.asyncio
    async def test_failed_run_is_returned(self, client: LendingClient, settlement) -> None:
        settlement.write_error = RuntimeError("EnforcedPause()")

        run = await client.transact(Action.WITHDRAW, "ETH", "0.5")

        assert run.phase is Phase.FAILED
        assert run.error.kind == "paused"
        assert run.intent.token_id == ETH_ID
