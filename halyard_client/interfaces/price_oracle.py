"""Price oracle protocol — price feed and update-payload abstraction."""
from typing import Protocol

from ..models import PriceQuote, PriceUpdate


class PriceOracle(Protocol):
    """Abstract interface for fetching quotes and signed price updates."""

    async def fetch_quotes(self, feed_ids: list[str]) -> dict[str, PriceQuote]: ...

    async def fetch_update(self, feed_ids: list[str]) -> PriceUpdate: ...

    async def build_update_data(self, feed_ids: list[str]) -> list[bytes]: ...

    async def get_update_fee(self, update_data: list[bytes]) -> int: ...
