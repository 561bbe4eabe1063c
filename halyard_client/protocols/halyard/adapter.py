"""Halyard protocol adapter — reads reserves and one user's positions."""
from __future__ import annotations

import asyncio
import logging
import time

from ...config import AppConfig, TokenConfig
from ...errors import MalformedResponseError
from ...interfaces.settlement import SettlementClient
from ...models import RAY, MarketSnapshot, Position, ReserveState
from . import parser

logger = logging.getLogger(__name__)


class HalyardAdapter:
    """Fetch and parse Halyard deposit/borrow manager state."""

    def __init__(self, client: SettlementClient, config: AppConfig) -> None:
        self._client = client
        self._config = config

    @property
    def protocol_name(self) -> str:
        return "halyard"

    async def _tracked_tokens(self) -> list[TokenConfig]:
        """Configured tokens the deposit manager actually supports."""
        supported = {t.lower() for t in await self._client.get_supported_tokens()}
        tracked: list[TokenConfig] = []
        for token in self._config.tokens.values():
            if token.token_id.lower() in supported:
                tracked.append(token)
            else:
                logger.warning("Token %s is configured but not supported on-chain", token.symbol)

        configured = {t.token_id.lower() for t in self._config.tokens.values()}
        for token_id in supported - configured:
            logger.debug("Ignoring unconfigured on-chain token %s", token_id)
        return tracked

    async def _check_ray(self) -> None:
        ray = await self._client.get_ray()
        if ray != RAY:
            logger.warning("Contract RAY is %s, expected 10^27", ray)

    async def _fetch_reserve(self, token: TokenConfig) -> ReserveState | None:
        raw_asset, borrow_index, total_borrows_scaled = await asyncio.gather(
            self._client.get_asset(token.token_id),
            self._client.get_borrow_index(token.token_id),
            self._client.get_total_borrows_scaled(token.token_id),
        )
        try:
            return parser.parse_reserve(
                token.token_id.lower(), raw_asset, borrow_index, total_borrows_scaled
            )
        except MalformedResponseError as e:
            logger.error("Malformed reserve data for %s: %s", token.symbol, e)
            return None

    async def _fetch_position(self, token: TokenConfig, user: str) -> Position | None:
        deposit_scaled, borrow_scaled = await asyncio.gather(
            self._client.get_deposit_scaled(token.token_id, user),
            self._client.get_borrow_scaled(token.token_id, user),
        )
        try:
            return parser.parse_position(token.token_id.lower(), deposit_scaled, borrow_scaled)
        except MalformedResponseError as e:
            logger.error("Malformed position data for %s: %s", token.symbol, e)
            return None

    async def _fetch_wallet_balance(self, token: TokenConfig, user: str) -> int | None:
        raw = await self._client.get_wallet_balance(token.address, user)
        try:
            return parser.parse_int(raw, "walletBalance")
        except MalformedResponseError as e:
            logger.error("Malformed wallet balance for %s: %s", token.symbol, e)
            return None

    async def fetch_snapshot(self, user: str, version: int) -> MarketSnapshot:
        """Read every tracked reserve plus the user's balances in one pass."""
        logger.info("Reading Halyard market state for wallet: %s", user)
        await self._check_ray()
        tokens = await self._tracked_tokens()

        reserves_raw, positions_raw, balances_raw = await asyncio.gather(
            asyncio.gather(*(self._fetch_reserve(t) for t in tokens)),
            asyncio.gather(*(self._fetch_position(t, user) for t in tokens)),
            asyncio.gather(*(self._fetch_wallet_balance(t, user) for t in tokens)),
        )

        reserves: dict[str, ReserveState] = {}
        positions: dict[str, Position] = {}
        wallet_balances: dict[str, int] = {}
        malformed: set[str] = set()
        for token, reserve, position, balance in zip(
            tokens, reserves_raw, positions_raw, balances_raw
        ):
            key = token.token_id.lower()
            if reserve is not None:
                reserves[key] = reserve
            if position is not None:
                positions[key] = position
            else:
                malformed.add(key)
            if balance is not None:
                wallet_balances[key] = balance

        logger.info(
            "Snapshot v%d: %d reserves, %d positions", version, len(reserves), len(positions)
        )
        return MarketSnapshot(
            version=version,
            fetched_at=int(time.time()),
            reserves=reserves,
            positions=positions,
            wallet_balances=wallet_balances,
            malformed=frozenset(malformed),
        )
