"""Map raw failure text to short, user-facing messages.

The table is data: the first entry with any matching needle wins. Needles are
matched case-insensitively as substrings of the raw message.
"""
from __future__ import annotations

from dataclasses import dataclass

from ..models import ClassifiedError


@dataclass(frozen=True)
class ErrorRule:
    kind: str
    needles: tuple[str, ...]
    message: str


GENERIC_MESSAGE = "Transaction failed. Please try again."

ERROR_RULES: tuple[ErrorRule, ...] = (
    ErrorRule(
        "user_rejected",
        ("user rejected", "user denied", "rejected the request", "action_rejected"),
        "Transaction was rejected in your wallet.",
    ),
    ErrorRule(
        "insufficient_collateral",
        (
            "insufficient collateral",
            "insufficientcollateral",
            "exceeds borrow capacity",
            "undercollateralized",
            "health factor",
        ),
        "Not enough collateral for this amount. Deposit more or borrow less.",
    ),
    ErrorRule(
        "insufficient_liquidity",
        ("insufficient liquidity", "insufficientliquidity", "not enough liquidity"),
        "The pool does not have enough liquidity for this amount right now.",
    ),
    ErrorRule(
        "stale_price",
        ("stale price", "staleprice", "price too old", "0x19abf40e"),
        "Price data is out of date. Refresh prices and try again.",
    ),
    ErrorRule(
        "oracle_fee",
        ("insufficient fee", "insufficientfee", "0x025dbdd4"),
        "The price update fee was not covered. Please retry.",
    ),
    ErrorRule(
        "paused",
        ("enforcedpause", "pausable: paused", "is paused", "contract paused"),
        "The protocol is paused. Try again later.",
    ),
    ErrorRule(
        "reentrancy",
        ("reentrancy", "reentrantcall"),
        "The transaction was blocked by a reentrancy guard.",
    ),
    ErrorRule(
        "nonce",
        (
            "nonce too low",
            "nonce too high",
            "invalid nonce",
            "replacement transaction underpriced",
            "already known",
        ),
        "Wallet nonce conflict. Wait for pending transactions, then retry.",
    ),
    ErrorRule(
        "insufficient_gas_funds",
        ("insufficient funds",),
        "Not enough native balance to pay for gas and value.",
    ),
    ErrorRule(
        "allowance",
        ("insufficient allowance", "exceeds allowance", "erc20insufficientallowance"),
        "Token approval is too low for this amount. Approve and retry.",
    ),
    ErrorRule(
        "balance",
        (
            "transfer amount exceeds balance",
            "insufficient balance",
            "erc20insufficientbalance",
        ),
        "Your balance is too low for this amount.",
    ),
    ErrorRule(
        "unsupported_asset",
        ("asset not supported", "token not supported", "asset not active"),
        "This asset is not currently supported.",
    ),
    ErrorRule(
        "gas_estimation",
        (
            "gas required exceeds",
            "cannot estimate gas",
            "unpredictable_gas_limit",
            "out of gas",
            "intrinsic gas too low",
        ),
        "Gas estimation failed. The transaction would likely revert.",
    ),
    ErrorRule(
        "network",
        (
            "timeout",
            "timed out",
            "network error",
            "failed to fetch",
            "connection refused",
            "connection reset",
            "all rpc endpoints failed",
        ),
        "Network problem while talking to the chain. Please retry.",
    ),
)


def classify(raw_message: str, rules: tuple[ErrorRule, ...] = ERROR_RULES) -> ClassifiedError:
    """Classify ``raw_message``; unmatched text yields the generic message."""
    text = (raw_message or "").lower()
    for rule in rules:
        if any(needle in text for needle in rule.needles):
            return ClassifiedError(kind=rule.kind, message=rule.message)
    return ClassifiedError(kind="unknown", message=GENERIC_MESSAGE)
