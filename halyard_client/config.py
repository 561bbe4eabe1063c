"""Configuration loader — reads config.yaml, interpolates env vars, validates."""
from __future__ import annotations

import logging
import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml
from dotenv import load_dotenv

logger = logging.getLogger(__name__)

NATIVE_ADDRESS = "0x0000000000000000000000000000000000000000"

# ---------------------------------------------------------------------------
# Frozen config dataclasses
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ChainConfig:
    rpc_endpoints: tuple[str, ...] = ()
    rpc_timeout: int = 30
    chain_id: int = 0
    receipt_poll_interval: float = 2.0


@dataclass(frozen=True)
class WalletConfig:
    address: str = ""
    private_key: str = ""


@dataclass(frozen=True)
class ContractsConfig:
    deposit_manager: str = ""
    borrow_manager: str = ""
    pyth: str = ""
    bridge_router: str = ""


@dataclass(frozen=True)
class TokenConfig:
    symbol: str = ""
    token_id: str = ""
    address: str = NATIVE_ADDRESS
    decimals: int = 18
    price_feed_id: str = ""

    @property
    def is_native(self) -> bool:
        return int(self.address, 16) == 0


@dataclass(frozen=True)
class RiskConfig:
    ltv_bps: int = 8000
    max_price_age_seconds: int = 60
    repay_requires_price_update: bool = False


@dataclass(frozen=True)
class PythConfig:
    hermes_url: str = "https://hermes.pyth.network/v2/updates/price/latest"
    use_mock: bool = False
    tolerate_missing_update: bool = False
    mock_price: int = 123 * 10**8
    mock_conf: int = 100
    mock_expo: int = -8


@dataclass(frozen=True)
class PriceOracleConfig:
    provider: str = "pyth"
    pyth: PythConfig = field(default_factory=PythConfig)


@dataclass(frozen=True)
class AppConfig:
    chain: ChainConfig = field(default_factory=ChainConfig)
    wallet: WalletConfig = field(default_factory=WalletConfig)
    contracts: ContractsConfig = field(default_factory=ContractsConfig)
    tokens: dict[str, TokenConfig] = field(default_factory=dict)
    risk: RiskConfig = field(default_factory=RiskConfig)
    price_oracle: PriceOracleConfig = field(default_factory=PriceOracleConfig)

    def token_by_id(self, token_id: str) -> TokenConfig | None:
        for token in self.tokens.values():
            if token.token_id.lower() == token_id.lower():
                return token
        return None


# ---------------------------------------------------------------------------
# Env interpolation
# ---------------------------------------------------------------------------

_ENV_VAR_RE = re.compile(r"\$\{([^}]+)}")


def _interpolate_env(value: Any) -> Any:
    """Recursively replace ${VAR} references with environment variable values."""
    if isinstance(value, str):
        return _ENV_VAR_RE.sub(lambda m: os.environ.get(m.group(1), ""), value)
    if isinstance(value, dict):
        return {k: _interpolate_env(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_interpolate_env(item) for item in value]
    return value


def _as_bool(value: Any) -> bool:
    # Interpolated env values arrive as strings.
    if isinstance(value, str):
        return value.strip().lower() in ("1", "true", "yes", "on")
    return bool(value)


# ---------------------------------------------------------------------------
# YAML → dataclass builders
# ---------------------------------------------------------------------------


def _build_chain(raw: dict[str, Any]) -> ChainConfig:
    return ChainConfig(
        rpc_endpoints=tuple(raw.get("rpc_endpoints", [])),
        rpc_timeout=int(raw.get("rpc_timeout", 30)),
        chain_id=int(raw.get("chain_id", 0)),
        receipt_poll_interval=float(raw.get("receipt_poll_interval", 2.0)),
    )


def _build_wallet(raw: dict[str, Any]) -> WalletConfig:
    return WalletConfig(
        address=raw.get("address", ""),
        private_key=raw.get("private_key", ""),
    )


def _build_contracts(raw: dict[str, Any]) -> ContractsConfig:
    return ContractsConfig(
        deposit_manager=raw.get("deposit_manager", ""),
        borrow_manager=raw.get("borrow_manager", ""),
        pyth=raw.get("pyth", ""),
        bridge_router=raw.get("bridge_router", ""),
    )


def _build_tokens(raw: dict[str, Any]) -> dict[str, TokenConfig]:
    tokens: dict[str, TokenConfig] = {}
    for symbol, cfg in raw.items():
        tokens[symbol] = TokenConfig(
            symbol=symbol,
            token_id=cfg.get("token_id", ""),
            address=cfg.get("address", NATIVE_ADDRESS) or NATIVE_ADDRESS,
            decimals=int(cfg.get("decimals", 18)),
            price_feed_id=cfg.get("price_feed_id", ""),
        )
    return tokens


def _build_risk(raw: dict[str, Any]) -> RiskConfig:
    return RiskConfig(
        ltv_bps=int(raw.get("ltv_bps", 8000)),
        max_price_age_seconds=int(raw.get("max_price_age_seconds", 60)),
        repay_requires_price_update=_as_bool(
            raw.get("repay_requires_price_update", False)
        ),
    )


def _build_price_oracle(raw: dict[str, Any]) -> PriceOracleConfig:
    pyth_raw = raw.get("pyth", {})
    return PriceOracleConfig(
        provider=raw.get("provider", "pyth"),
        pyth=PythConfig(
            hermes_url=pyth_raw.get("hermes_url", PythConfig.hermes_url),
            use_mock=_as_bool(pyth_raw.get("use_mock", False)),
            tolerate_missing_update=_as_bool(
                pyth_raw.get("tolerate_missing_update", False)
            ),
            mock_price=int(pyth_raw.get("mock_price", PythConfig.mock_price)),
            mock_conf=int(pyth_raw.get("mock_conf", PythConfig.mock_conf)),
            mock_expo=int(pyth_raw.get("mock_expo", PythConfig.mock_expo)),
        ),
    )


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def load_config(config_path: str | Path | None = None) -> AppConfig:
    """Load and validate application configuration from YAML + .env.

    Args:
        config_path: Path to config.yaml. Defaults to ``config.yaml`` in the
            project root (one level up from this package).
    """
    load_dotenv()

    if config_path is None:
        config_path = Path(__file__).resolve().parent.parent / "config.yaml"
    config_path = Path(config_path)

    if not config_path.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")

    with open(config_path) as f:
        raw = yaml.safe_load(f) or {}

    raw = _interpolate_env(raw)

    cfg = AppConfig(
        chain=_build_chain(raw.get("chain", {})),
        wallet=_build_wallet(raw.get("wallet", {})),
        contracts=_build_contracts(raw.get("contracts", {})),
        tokens=_build_tokens(raw.get("tokens", {})),
        risk=_build_risk(raw.get("risk", {})),
        price_oracle=_build_price_oracle(raw.get("price_oracle", {})),
    )

    _validate(cfg)
    logger.info("Configuration loaded from %s", config_path)
    return cfg


def _validate(cfg: AppConfig) -> None:
    """Raise on invalid configuration."""
    if not cfg.chain.rpc_endpoints:
        raise ValueError("At least one RPC endpoint must be configured")

    if not cfg.wallet.address:
        raise ValueError("Wallet has no address")

    if not cfg.contracts.deposit_manager or not cfg.contracts.borrow_manager:
        raise ValueError("Deposit and borrow manager addresses are required")

    if not cfg.tokens:
        raise ValueError("At least one token must be configured")

    for symbol, token in cfg.tokens.items():
        if not token.token_id:
            raise ValueError(f"Token '{symbol}' has no token_id")
        if token.decimals < 0:
            raise ValueError(f"Token '{symbol}' has negative decimals")
        if not token.price_feed_id:
            raise ValueError(f"Token '{symbol}' has no price_feed_id")

    if not 0 < cfg.risk.ltv_bps <= 10_000:
        raise ValueError(f"ltv_bps must be in (0, 10000], got {cfg.risk.ltv_bps}")

    if cfg.price_oracle.pyth.use_mock and not cfg.contracts.pyth:
        raise ValueError("Mock price updates require contracts.pyth")
