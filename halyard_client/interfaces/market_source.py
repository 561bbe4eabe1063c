"""Market source protocol: produces immutable reserve and position snapshots."""
from typing import Protocol

from ..models import MarketSnapshot


class MarketSource(Protocol):
    """Abstract interface for reading one user's view of the lending market."""

    @property
    def protocol_name(self) -> str: ...

    async def fetch_snapshot(self, user: str, version: int) -> MarketSnapshot: ...
