"""Shared test fixtures, sample data and in-memory collaborators."""
from __future__ import annotations

import asyncio
import textwrap
import time
from pathlib import Path

import pytest

from halyard_client.config import (
    AppConfig,
    ChainConfig,
    ContractsConfig,
    PriceOracleConfig,
    PythConfig,
    RiskConfig,
    TokenConfig,
    WalletConfig,
)
from halyard_client.models import RAY, WAD, Position, PriceQuote, Receipt, ReserveState

ETH_ID = "0x" + "11" * 32
USDC_ID = "0x" + "22" * 32
BTC_ID = "0x" + "33" * 32

ETH_FEED = "aa" * 32
USDC_FEED = "bb" * 32
BTC_FEED = "cc" * 32

USDC_ADDRESS = "0x000000000000000000000000000000000000c0de"
BTC_ADDRESS = "0x000000000000000000000000000000000000b7c0"
NATIVE = "0x0000000000000000000000000000000000000000"

WALLET = "0x00000000000000000000000000000000000000a1"
DEPOSIT_MANAGER = "0x0000000000000000000000000000000000000d01"
BORROW_MANAGER = "0x0000000000000000000000000000000000000b01"
PYTH = "0x0000000000000000000000000000000000000f01"
BRIDGE_ROUTER = "0x0000000000000000000000000000000000000e01"

NOW = 1_700_000_000


# ---------------------------------------------------------------------------
# Config fixtures
# ---------------------------------------------------------------------------


@pytest.fixture()
def sample_tokens() -> dict[str, TokenConfig]:
    return {
        "ETH": TokenConfig(symbol="ETH", token_id=ETH_ID, decimals=18, price_feed_id="0x" + ETH_FEED),
        "USDC": TokenConfig(
            symbol="USDC",
            token_id=USDC_ID,
            address=USDC_ADDRESS,
            decimals=6,
            price_feed_id=USDC_FEED,
        ),
        "BTC": TokenConfig(
            symbol="BTC",
            token_id=BTC_ID,
            address=BTC_ADDRESS,
            decimals=8,
            price_feed_id=BTC_FEED,
        ),
    }


@pytest.fixture()
def sample_app_config(sample_tokens: dict[str, TokenConfig]) -> AppConfig:
    return AppConfig(
        chain=ChainConfig(
            rpc_endpoints=("https://rpc1.example.com", "https://rpc2.example.com"),
            rpc_timeout=10,
            chain_id=84532,
            receipt_poll_interval=0,
        ),
        wallet=WalletConfig(address=WALLET),
        contracts=ContractsConfig(
            deposit_manager=DEPOSIT_MANAGER,
            borrow_manager=BORROW_MANAGER,
            pyth=PYTH,
        ),
        tokens=sample_tokens,
        risk=RiskConfig(ltv_bps=8000, max_price_age_seconds=60),
        price_oracle=PriceOracleConfig(
            provider="pyth",
            pyth=PythConfig(hermes_url="https://hermes.example.com/v2/updates/price/latest"),
        ),
    )


SAMPLE_YAML = textwrap.dedent("""\
    chain:
      rpc_endpoints: ["https://rpc.example.com"]
      rpc_timeout: 10
      chain_id: 84532
    wallet:
      address: "0xTEST"
      private_key: "${HALYARD_TEST_KEY}"
    contracts:
      deposit_manager: "0x0d01"
      borrow_manager: "0x0b01"
      pyth: "0x0f01"
    tokens:
      ETH:
        token_id: "0x1111"
        decimals: 18
        price_feed_id: "0xaaaa"
      USDC:
        token_id: "0x2222"
        address: "0xc0de"
        decimals: 6
        price_feed_id: "0xbbbb"
    risk:
      ltv_bps: 7500
      max_price_age_seconds: 120
    price_oracle:
      provider: pyth
      pyth:
        hermes_url: "https://hermes.example.com"
        tolerate_missing_update: "true"
""")


@pytest.fixture()
def sample_yaml_path(tmp_path: Path) -> Path:
    cfg_file = tmp_path / "config.yaml"
    cfg_file.write_text(SAMPLE_YAML)
    return cfg_file


# ---------------------------------------------------------------------------
# Model fixtures
# ---------------------------------------------------------------------------


def make_reserve(
    token_id: str = ETH_ID,
    symbol: str = "ETH",
    decimals: int = 18,
    deposits: int = 100 * WAD,
    borrows: int = 40 * WAD,
    last_update: int = NOW,
    **overrides,
) -> ReserveState:
    fields = dict(
        token_id=token_id,
        symbol=symbol,
        token_address=NATIVE,
        decimals=decimals,
        is_active=True,
        liquidity_index=RAY,
        borrow_index=RAY,
        last_update_timestamp=last_update,
        total_scaled_supply=deposits,
        total_borrows_scaled=borrows,
        base_rate=2 * 10**25,
        slope1=4 * 10**25,
        slope2=75 * 10**25,
        kink=8 * 10**17,
        reserve_factor=10**26,
    )
    fields.update(overrides)
    return ReserveState(**fields)


def make_quote(
    feed_id: str = ETH_FEED,
    price: int = 3_000 * 10**8,
    confidence: int = 10**8,
    exponent: int = -8,
    publish_time: int = NOW,
) -> PriceQuote:
    return PriceQuote(
        feed_id=feed_id,
        price=price,
        confidence=confidence,
        exponent=exponent,
        publish_time=publish_time,
    )


@pytest.fixture()
def sample_reserves() -> dict[str, ReserveState]:
    return {
        ETH_ID: make_reserve(),
        USDC_ID: make_reserve(
            USDC_ID, "USDC", 6, deposits=1_000_000 * 10**6, borrows=500_000 * 10**6
        ),
        BTC_ID: make_reserve(BTC_ID, "BTC", 8, deposits=50 * 10**8, borrows=10 * 10**8),
    }


@pytest.fixture()
def sample_quotes() -> dict[str, PriceQuote]:
    """Quotes keyed by token id."""
    return {
        ETH_ID: make_quote(ETH_FEED, 3_000 * 10**8, 10**8),
        USDC_ID: make_quote(USDC_FEED, 10**8, 10**5),
        BTC_ID: make_quote(BTC_FEED, 60_000 * 10**8, 50 * 10**8),
    }


@pytest.fixture()
def sample_positions() -> dict[str, Position]:
    """1 ETH and 0.1 BTC of collateral against 1,000 USDC of debt."""
    return {
        ETH_ID: Position(ETH_ID, deposit_scaled=WAD),
        BTC_ID: Position(BTC_ID, deposit_scaled=10**7),
        USDC_ID: Position(USDC_ID, borrow_scaled=1_000 * 10**6),
    }


# ---------------------------------------------------------------------------
# In-memory collaborators
# ---------------------------------------------------------------------------


def asset_struct(reserve: ReserveState) -> dict:
    """A ``getAsset`` result in mapping form."""
    return {
        "tokenAddress": reserve.token_address,
        "decimals": reserve.decimals,
        "isActive": reserve.is_active,
        "liquidityIndex": reserve.liquidity_index,
        "lastUpdateTimestamp": reserve.last_update_timestamp,
        "symbol": reserve.symbol,
        "totalScaledSupply": reserve.total_scaled_supply,
        "totalDeposits": reserve.total_scaled_supply,
        "totalBorrows": reserve.total_borrows_scaled,
        "baseRate": reserve.base_rate,
        "slope1": reserve.slope1,
        "slope2": reserve.slope2,
        "kink": reserve.kink,
        "reserveFactor": reserve.reserve_factor,
    }


class FakeSettlement:
    """Deposit/borrow manager state held in memory.

    Writes are recorded in ``calls`` and return sequential hashes. Set
    ``hold_receipts`` to make ``wait_for_receipt`` block until ``release``,
    or ``hold_writes`` to make approve and write calls block until
    ``write_gate`` is set.
    """

    def __init__(self, reserves: dict[str, ReserveState], positions: dict[str, Position]) -> None:
        self.reserves = dict(reserves)
        self.positions = dict(positions)
        self.wallet_balances: dict[str, int] = {}
        self.allowances: dict[tuple[str, str], int] = {}
        self.ray = RAY
        self.calls: list[tuple] = []
        self.receipt_success = True
        self.write_error: Exception | None = None
        self.approve_error: Exception | None = None
        self.hold_receipts = False
        self.release = asyncio.Event()
        self.hold_writes = False
        self.write_gate = asyncio.Event()
        self._tx_count = 0

    def _hash(self) -> str:
        self._tx_count += 1
        return f"0x{self._tx_count:064x}"

    async def _held(self) -> None:
        if self.hold_writes:
            await self.write_gate.wait()

    async def _write(self, *call) -> str:
        self.calls.append(call)
        await self._held()
        if self.write_error is not None:
            raise self.write_error
        return self._hash()

    # Reads

    async def get_supported_tokens(self) -> list[str]:
        return list(self.reserves)

    async def get_asset(self, token_id: str) -> dict:
        return asset_struct(self.reserves[token_id.lower()])

    async def get_borrow_index(self, token_id: str) -> int:
        return self.reserves[token_id.lower()].borrow_index

    async def get_total_borrows_scaled(self, token_id: str) -> int:
        return self.reserves[token_id.lower()].total_borrows_scaled

    async def get_deposit_scaled(self, token_id: str, user: str) -> int:
        position = self.positions.get(token_id.lower())
        return position.deposit_scaled if position else 0

    async def get_borrow_scaled(self, token_id: str, user: str) -> int:
        position = self.positions.get(token_id.lower())
        return position.borrow_scaled if position else 0

    async def get_ray(self) -> int:
        return self.ray

    async def get_allowance(self, token_address: str, owner: str, spender: str) -> int:
        return self.allowances.get((token_address, spender), 0)

    async def get_wallet_balance(self, token_address: str, owner: str) -> int:
        return self.wallet_balances.get(token_address, 0)

    async def get_latest_block_timestamp(self) -> int:
        return int(time.time())

    # Writes

    async def approve(self, token_address: str, spender: str, amount: int) -> str:
        self.calls.append(("approve", token_address, spender, amount))
        await self._held()
        if self.approve_error is not None:
            raise self.approve_error
        self.allowances[(token_address, spender)] = amount
        return self._hash()

    async def deposit(self, token_id: str, amount: int, value: int = 0) -> str:
        return await self._write("deposit", token_id, amount, value)

    async def withdraw(self, token_id: str, amount: int) -> str:
        return await self._write("withdraw", token_id, amount)

    async def borrow(self, token_id, amount, update_data, price_ids, value=0) -> str:
        return await self._write(
            "borrow", token_id, amount, tuple(update_data), tuple(price_ids), value
        )

    async def repay(self, token_id, amount, value=0, update_data=None, price_ids=None) -> str:
        if update_data is None:
            return await self._write("repay", token_id, amount, value)
        return await self._write(
            "repay", token_id, amount, value, tuple(update_data), tuple(price_ids or ())
        )

    async def wait_for_receipt(self, tx_hash: str) -> Receipt:
        if self.hold_receipts:
            await self.release.wait()
        return Receipt(tx_hash=tx_hash, success=self.receipt_success, block_number=42)

    @property
    def write_calls(self) -> list[tuple]:
        return [c for c in self.calls if c[0] != "approve"]


class FakeOracle:
    """Quotes keyed by feed id; update payloads are one byte string per feed."""

    def __init__(self, quotes: dict[str, PriceQuote], fee: int = 7) -> None:
        self.quotes = dict(quotes)
        self.fee = fee
        self.update_error: Exception | None = None
        self.fee_error: Exception | None = None
        self.update_requests: list[list[str]] = []

    async def fetch_quotes(self, feed_ids: list[str]) -> dict[str, PriceQuote]:
        return {f: self.quotes[f] for f in feed_ids if f in self.quotes}

    async def fetch_update(self, feed_ids: list[str]):
        raise NotImplementedError

    async def build_update_data(self, feed_ids: list[str]) -> list[bytes]:
        self.update_requests.append(list(feed_ids))
        if self.update_error is not None:
            raise self.update_error
        return [bytes.fromhex(f[:8]) for f in feed_ids]

    async def get_update_fee(self, update_data: list[bytes]) -> int:
        if self.fee_error is not None:
            raise self.fee_error
        return self.fee * len(update_data)


@pytest.fixture()
def live_reserves(sample_reserves: dict[str, ReserveState]) -> dict[str, ReserveState]:
    """Sample reserves last updated now, for code paths that read the clock."""
    now = int(time.time())
    return {
        token_id: make_reserve(
            token_id,
            r.symbol,
            r.decimals,
            deposits=r.total_scaled_supply,
            borrows=r.total_borrows_scaled,
            last_update=now,
        )
        for token_id, r in sample_reserves.items()
    }


@pytest.fixture()
def live_feed_quotes() -> dict[str, PriceQuote]:
    """Fresh quotes keyed by feed id."""
    now = int(time.time())
    return {
        ETH_FEED: make_quote(ETH_FEED, 3_000 * 10**8, 10**8, publish_time=now),
        USDC_FEED: make_quote(USDC_FEED, 10**8, 10**5, publish_time=now),
        BTC_FEED: make_quote(BTC_FEED, 60_000 * 10**8, 50 * 10**8, publish_time=now),
    }


@pytest.fixture()
def settlement(
    live_reserves: dict[str, ReserveState], sample_positions: dict[str, Position]
) -> FakeSettlement:
    fake = FakeSettlement(live_reserves, sample_positions)
    fake.wallet_balances = {NATIVE: 5 * WAD, USDC_ADDRESS: 10_000 * 10**6, BTC_ADDRESS: 10**8}
    return fake


@pytest.fixture()
def oracle(live_feed_quotes: dict[str, PriceQuote]) -> FakeOracle:
    return FakeOracle(live_feed_quotes)


@pytest.fixture()
def market(sample_app_config: AppConfig, settlement: FakeSettlement, oracle: FakeOracle):
    from halyard_client.protocols.halyard import HalyardAdapter
    from halyard_client.services.market import MarketView

    return MarketView(HalyardAdapter(settlement, sample_app_config), oracle, sample_app_config)
