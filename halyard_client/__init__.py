"""Halyard lending client — live accrual, borrow capacity and transaction orchestration."""

__version__ = "0.1.0"
