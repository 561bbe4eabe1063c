"""Pure computation: accrual, price bounds, capacity, error classification."""
