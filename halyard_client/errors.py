"""Error taxonomy for the lending client.

Every error carries a stable ``kind`` so callers can branch without string
matching. User-facing text for failures raised by collaborators comes from
``engine.classifier``, never from the raw exception message.
"""
from __future__ import annotations


class HalyardError(Exception):
    """Base client error."""

    kind = "error"

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)


# --- Local, pre-submission ---

class ValidationError(HalyardError):
    """Intent rejected before anything reaches the network."""

    kind = "validation"


class StalePriceError(HalyardError):
    """A quote is older than the staleness window; refetch, do not retry."""

    kind = "stale_price"

    def __init__(self, feed_id: str, age_seconds: int, max_age_seconds: int) -> None:
        self.feed_id = feed_id
        self.age_seconds = age_seconds
        self.max_age_seconds = max_age_seconds
        super().__init__(
            f"Price for feed {feed_id} is {age_seconds}s old "
            f"(max {max_age_seconds}s)"
        )


class UnknownCapacityError(HalyardError):
    """Borrow capacity cannot be computed; borrowing is disabled."""

    kind = "unknown_capacity"

    def __init__(
        self,
        missing: tuple[str, ...] = (),
        stale: tuple[str, ...] = (),
        malformed: tuple[str, ...] = (),
    ) -> None:
        self.missing = missing
        self.stale = stale
        self.malformed = malformed
        parts = []
        if missing:
            parts.append(f"missing prices for {', '.join(missing)}")
        if stale:
            parts.append(f"stale prices for {', '.join(stale)}")
        if malformed:
            parts.append(f"unreadable balances for {', '.join(malformed)}")
        super().__init__("Borrow capacity unknown: " + ("; ".join(parts) or "no data"))


# --- External boundaries ---

class MalformedResponseError(HalyardError):
    """A raw external response failed strict parsing."""

    kind = "malformed_response"


class OracleUpdateError(HalyardError):
    """Fresh price update payload or its fee could not be obtained."""

    kind = "oracle_update"


# --- Write phases ---

class ApprovalError(HalyardError):
    kind = "approval"


class WriteError(HalyardError):
    kind = "write"


class ConfirmationError(HalyardError):
    kind = "confirmation"
