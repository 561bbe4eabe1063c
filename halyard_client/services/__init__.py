"""Service modules"""
from .client import LendingClient
from .market import MarketView
from .orchestrator import TransactionOrchestrator

__all__ = ["LendingClient", "MarketView", "TransactionOrchestrator"]
