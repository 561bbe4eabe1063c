"""Halyard lending protocol support."""
from .adapter import HalyardAdapter

__all__ = ["HalyardAdapter"]
