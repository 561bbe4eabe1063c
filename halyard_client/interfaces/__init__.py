"""Protocol interfaces for the lending client."""
from .market_source import MarketSource
from .price_oracle import PriceOracle
from .settlement import SettlementClient

__all__ = ["MarketSource", "PriceOracle", "SettlementClient"]
