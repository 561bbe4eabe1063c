"""Pyth Network price oracle service (Hermes v2 and MockPyth)."""
from __future__ import annotations

import logging
import ssl
from typing import Any, Protocol

import aiohttp
import certifi

from ..config import PythConfig
from ..errors import MalformedResponseError, OracleUpdateError
from ..models import PriceQuote, PriceUpdate
from ..protocols.halyard import parser

logger = logging.getLogger(__name__)


class PythChain(Protocol):
    """Chain reads the oracle needs for fees and mock payloads."""

    async def get_latest_block_timestamp(self) -> int: ...

    async def get_update_fee(self, pyth_address: str, update_data: list[bytes]) -> int: ...

    async def create_mock_update(
        self,
        pyth_address: str,
        feed_id: str,
        price: int,
        conf: int,
        expo: int,
        publish_time: int,
    ) -> bytes: ...


class PythOracle:
    """Fetch quotes and signed update payloads from Pyth Network.

    With ``use_mock`` set, payloads and quotes are synthesized through a
    MockPyth contract at the latest block timestamp instead of Hermes.
    """

    def __init__(self, config: PythConfig, chain: PythChain, pyth_address: str) -> None:
        self.hermes_url = config.hermes_url
        self.use_mock = config.use_mock
        self._config = config
        self._chain = chain
        self._pyth_address = pyth_address

    def _url(self, feed_ids: list[str]) -> str:
        query_params = "&".join(f"ids[]=0x{parser.normalize_feed_id(f)}" for f in feed_ids)
        return f"{self.hermes_url}?{query_params}&encoding=hex&parsed=true"

    async def _get_json(self, feed_ids: list[str]) -> dict[str, Any]:
        ssl_context = ssl.create_default_context(cafile=certifi.where())
        connector = aiohttp.TCPConnector(ssl=ssl_context)

        async with aiohttp.ClientSession(connector=connector) as session:
            async with session.get(self._url(feed_ids)) as response:
                if response.status != 200:
                    raise OracleUpdateError(f"Hermes returned HTTP {response.status}")
                data = await response.json()
        if not isinstance(data, dict):
            raise MalformedResponseError("Hermes response is not an object")
        return data

    @staticmethod
    def _parse_quotes(parsed: Any) -> dict[str, PriceQuote]:
        quotes: dict[str, PriceQuote] = {}
        for item in parsed or []:
            try:
                quote = parser.parse_price_item(item)
            except MalformedResponseError as e:
                logger.warning("Skipping malformed price item: %s", e)
                continue
            quotes[quote.feed_id] = quote
        return quotes

    async def _mock_quotes(self, feed_ids: list[str]) -> dict[str, PriceQuote]:
        now = await self._chain.get_latest_block_timestamp()
        return {
            parser.normalize_feed_id(f): PriceQuote(
                feed_id=parser.normalize_feed_id(f),
                price=self._config.mock_price,
                confidence=self._config.mock_conf,
                exponent=self._config.mock_expo,
                publish_time=now,
            )
            for f in feed_ids
        }

    async def fetch_quotes(self, feed_ids: list[str]) -> dict[str, PriceQuote]:
        """Latest quotes keyed by normalized feed id; partial on failure."""
        feed_ids = sorted(set(feed_ids))
        if not feed_ids:
            return {}

        try:
            if self.use_mock:
                quotes = await self._mock_quotes(feed_ids)
            else:
                data = await self._get_json(feed_ids)
                quotes = self._parse_quotes(data.get("parsed"))
        except Exception as e:
            logger.error("Error fetching prices from Pyth: %s", e)
            return {}

        logger.info("Fetched %d/%d prices from Pyth Network", len(quotes), len(feed_ids))
        for feed_id, quote in sorted(quotes.items()):
            logger.debug("  %s: %s ± %s", feed_id[:10], quote.mid_value, quote.confidence_value)
        return quotes

    async def _mock_update(self, feed_ids: list[str]) -> PriceUpdate:
        quotes = await self._mock_quotes(feed_ids)
        payloads = []
        for quote in quotes.values():
            payloads.append(
                await self._chain.create_mock_update(
                    self._pyth_address,
                    quote.feed_id,
                    quote.price,
                    quote.confidence,
                    quote.exponent,
                    quote.publish_time,
                )
            )
        return PriceUpdate(binary=tuple(payloads), quotes=quotes)

    async def fetch_update(self, feed_ids: list[str]) -> PriceUpdate:
        """Signed update payloads plus their parsed quotes.

        Raises:
            OracleUpdateError: If no usable payload could be obtained.
        """
        feed_ids = sorted(set(feed_ids))
        if not feed_ids:
            raise OracleUpdateError("No price feeds requested")

        try:
            if self.use_mock:
                update = await self._mock_update(feed_ids)
            else:
                data = await self._get_json(feed_ids)
                update = PriceUpdate(
                    binary=parser.parse_update_binary(data.get("binary")),
                    quotes=self._parse_quotes(data.get("parsed")),
                )
        except OracleUpdateError:
            raise
        except Exception as e:
            raise OracleUpdateError(f"Failed to fetch price update: {e}") from e

        logger.info("Fetched %d update payload(s) for %d feed(s)", len(update.binary), len(feed_ids))
        return update

    async def build_update_data(self, feed_ids: list[str]) -> list[bytes]:
        update = await self.fetch_update(feed_ids)
        return list(update.binary)

    async def get_update_fee(self, update_data: list[bytes]) -> int:
        try:
            return await self._chain.get_update_fee(self._pyth_address, update_data)
        except Exception as e:
            raise OracleUpdateError(f"Failed to quote update fee: {e}") from e
