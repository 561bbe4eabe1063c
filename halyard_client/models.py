"""Data models. Snapshots are frozen; only an orchestration run mutates."""
from __future__ import annotations

import enum
from dataclasses import dataclass, field
from decimal import Decimal

RAY = 10**27
WAD = 10**18
BPS = 10_000
SECONDS_PER_YEAR = 365 * 24 * 60 * 60


@dataclass(frozen=True)
class ReserveState:
    """Settlement-layer reserve snapshot for one asset.

    ``base_rate``, ``slope1``, ``slope2`` are annual RAY fractions, ``kink`` is
    a WAD fraction of utilization and ``reserve_factor`` a RAY fraction.
    """

    token_id: str
    symbol: str
    token_address: str
    decimals: int
    is_active: bool
    liquidity_index: int
    borrow_index: int
    last_update_timestamp: int
    total_scaled_supply: int
    total_borrows_scaled: int
    base_rate: int = 0
    slope1: int = 0
    slope2: int = 0
    kink: int = 8 * 10**17
    reserve_factor: int = 0


@dataclass(frozen=True)
class Position:
    """A user's index-scaled balances in one reserve."""

    token_id: str
    deposit_scaled: int = 0
    borrow_scaled: int = 0


@dataclass(frozen=True)
class PriceQuote:
    feed_id: str
    price: int
    confidence: int
    exponent: int
    publish_time: int

    @property
    def mid_value(self) -> Decimal:
        return Decimal(self.price).scaleb(self.exponent)

    @property
    def confidence_value(self) -> Decimal:
        return Decimal(self.confidence).scaleb(self.exponent)


@dataclass(frozen=True)
class PriceBounds:
    """Integer mantissas at ``exponent``: low <= mid <= high, low >= 0."""

    feed_id: str
    low: int
    mid: int
    high: int
    exponent: int

    @property
    def low_value(self) -> Decimal:
        return Decimal(self.low).scaleb(self.exponent)

    @property
    def mid_value(self) -> Decimal:
        return Decimal(self.mid).scaleb(self.exponent)

    @property
    def high_value(self) -> Decimal:
        return Decimal(self.high).scaleb(self.exponent)


@dataclass(frozen=True)
class PriceUpdate:
    """Signed update payloads plus the quotes parsed out of them."""

    binary: tuple[bytes, ...] = ()
    quotes: dict[str, PriceQuote] = field(default_factory=dict)


@dataclass(frozen=True)
class AccrualSnapshot:
    """Reserve state extrapolated to a point in time."""

    token_id: str
    timestamp: int
    utilization: int
    borrow_rate: int
    supply_rate: int
    liquidity_index: int
    borrow_index: int
    total_deposits: int
    total_borrows: int


@dataclass(frozen=True)
class MarketSnapshot:
    """Everything read from the settlement layer in one refresh.

    ``malformed`` holds token ids whose position read failed to parse; the
    user's balances there are unknown, not zero.
    """

    version: int
    fetched_at: int
    reserves: dict[str, ReserveState] = field(default_factory=dict)
    positions: dict[str, Position] = field(default_factory=dict)
    wallet_balances: dict[str, int] = field(default_factory=dict)
    malformed: frozenset[str] = frozenset()


@dataclass(frozen=True)
class QuoteSet:
    version: int
    quotes: dict[str, PriceQuote] = field(default_factory=dict)


@dataclass(frozen=True)
class ReserveSummary:
    """Display figures for one reserve at a point in time."""

    token_id: str
    symbol: str
    decimals: int
    is_active: bool
    utilization: int
    borrow_rate: int
    supply_rate: int
    total_deposits: int
    total_borrows: int
    available_liquidity: int


@dataclass(frozen=True)
class LiveBalance:
    """One user's live-accrued balances in a single asset, in base units."""

    token_id: str
    symbol: str
    decimals: int
    deposited: int = 0
    owed: int = 0
    wallet: int = 0


class CapacityStatus(str, enum.Enum):
    KNOWN = "known"
    UNKNOWN = "unknown"


@dataclass(frozen=True)
class CapacityResult:
    """Borrow capacity in WAD-scaled quote currency.

    ``available`` is None whenever ``status`` is UNKNOWN; it is never a
    stand-in zero.
    """

    status: CapacityStatus
    available: int | None = None
    collateral_value: int | None = None
    max_borrow_value: int | None = None
    debt_value: int | None = None
    missing: tuple[str, ...] = ()
    stale: tuple[str, ...] = ()
    malformed: tuple[str, ...] = ()

    @property
    def is_known(self) -> bool:
        return self.status is CapacityStatus.KNOWN


class Action(str, enum.Enum):
    DEPOSIT = "deposit"
    WITHDRAW = "withdraw"
    BORROW = "borrow"
    REPAY = "repay"


class Phase(str, enum.Enum):
    IDLE = "idle"
    NEEDS_APPROVAL = "needs_approval"
    APPROVING = "approving"
    APPROVAL_CONFIRMING = "approval_confirming"
    PRICE_REFRESHING = "price_refreshing"
    FEE_QUOTING = "fee_quoting"
    SUBMITTING = "submitting"
    CONFIRMING = "confirming"
    CONFIRMED = "confirmed"
    FAILED = "failed"
    DISMISSED = "dismissed"

    @property
    def is_terminal(self) -> bool:
        return self in (Phase.CONFIRMED, Phase.FAILED, Phase.DISMISSED)


@dataclass(frozen=True)
class TransactionIntent:
    action: Action
    asset: str
    amount: int
    token_id: str


@dataclass(frozen=True)
class ClassifiedError:
    kind: str
    message: str


@dataclass(frozen=True)
class Receipt:
    tx_hash: str
    success: bool
    block_number: int = 0


@dataclass
class OrchestrationRun:
    """Mutable state of one intent moving through the write sequence."""

    intent: TransactionIntent
    phase: Phase = Phase.IDLE
    approval_hashes: list[str] = field(default_factory=list)
    write_hash: str | None = None
    error: ClassifiedError | None = None
    input_amount: int | None = None
    awaiting_hash: str | None = None
    dismissed: bool = False

    def __post_init__(self) -> None:
        if self.input_amount is None:
            self.input_amount = self.intent.amount

    @property
    def key(self) -> tuple[str, Action]:
        return (self.intent.token_id.lower(), self.intent.action)

    @property
    def pending_hash(self) -> str | None:
        """Hash broadcast but not confirmed when the run stopped, if any."""
        if self.phase is not Phase.DISMISSED:
            return None
        return self.awaiting_hash

    @property
    def outcome(self) -> str:
        if self.phase is Phase.CONFIRMED:
            return "confirmed"
        if self.phase is Phase.FAILED:
            return "failed"
        if self.phase is Phase.DISMISSED:
            return "dismissed_pending" if self.pending_hash else "dismissed"
        return "pending"
