"""Pure parsing functions for settlement and oracle responses — no I/O.

This is the only place raw, loosely shaped external data is accepted. Anything
that does not fit the expected shape raises MalformedResponseError here
instead of leaking into the accrual or capacity math.
"""
from __future__ import annotations

from collections.abc import Mapping, Sequence
from typing import Any

from ...errors import MalformedResponseError
from ...models import RAY, WAD, Position, PriceQuote, ReserveState

# Field order of the DepositManager ``getAsset`` struct.
ASSET_FIELDS = (
    "tokenAddress",
    "decimals",
    "isActive",
    "liquidityIndex",
    "lastUpdateTimestamp",
    "symbol",
    "totalScaledSupply",
    "totalDeposits",
    "totalBorrows",
    "baseRate",
    "slope1",
    "slope2",
    "kink",
    "reserveFactor",
)


def normalize_feed_id(feed_id: str) -> str:
    """Lowercase hex feed id without the ``0x`` prefix.

    Examples:
        "0xFF61..." → "ff61..."
        "ff61..." → "ff61..."
    """
    feed_id = feed_id.strip().lower()
    return feed_id[2:] if feed_id.startswith("0x") else feed_id


def parse_int(value: Any, name: str, minimum: int | None = 0) -> int:
    """Strict integer coercion; decimal strings are accepted, floats are not."""
    if isinstance(value, bool):
        raise MalformedResponseError(f"{name}: expected integer, got bool")
    if isinstance(value, int):
        result = value
    elif isinstance(value, str) and value.strip().lstrip("-").isdigit():
        result = int(value.strip())
    else:
        raise MalformedResponseError(f"{name}: expected integer, got {value!r}")
    if minimum is not None and result < minimum:
        raise MalformedResponseError(f"{name}: {result} is below {minimum}")
    return result


def _asset_mapping(raw: Any) -> Mapping[str, Any]:
    if isinstance(raw, Mapping):
        return raw
    if isinstance(raw, Sequence) and not isinstance(raw, (str, bytes)):
        if len(raw) != len(ASSET_FIELDS):
            raise MalformedResponseError(
                f"getAsset: expected {len(ASSET_FIELDS)} fields, got {len(raw)}"
            )
        return dict(zip(ASSET_FIELDS, raw))
    raise MalformedResponseError(f"getAsset: unexpected shape {type(raw).__name__}")


def _require(fields: Mapping[str, Any], name: str) -> Any:
    if name not in fields or fields[name] is None:
        raise MalformedResponseError(f"getAsset: missing field '{name}'")
    return fields[name]


def parse_reserve(
    token_id: str,
    raw_asset: Any,
    borrow_index: Any,
    total_borrows_scaled: Any,
) -> ReserveState:
    """Build a ReserveState from a ``getAsset`` result plus borrow-side reads."""
    fields = _asset_mapping(raw_asset)

    is_active = _require(fields, "isActive")
    if not isinstance(is_active, bool):
        raise MalformedResponseError(f"isActive: expected bool, got {is_active!r}")

    symbol = _require(fields, "symbol")
    if not isinstance(symbol, str):
        raise MalformedResponseError(f"symbol: expected str, got {symbol!r}")

    token_address = _require(fields, "tokenAddress")
    if not isinstance(token_address, str) or not token_address.startswith("0x"):
        raise MalformedResponseError(f"tokenAddress: invalid {token_address!r}")

    kink = parse_int(_require(fields, "kink"), "kink")
    reserve_factor = parse_int(_require(fields, "reserveFactor"), "reserveFactor")
    if kink > WAD:
        raise MalformedResponseError(f"kink: {kink} exceeds 1e18")
    if reserve_factor > RAY:
        raise MalformedResponseError(f"reserveFactor: {reserve_factor} exceeds 1e27")

    return ReserveState(
        token_id=token_id,
        symbol=symbol,
        token_address=token_address,
        decimals=parse_int(_require(fields, "decimals"), "decimals"),
        is_active=is_active,
        liquidity_index=parse_int(_require(fields, "liquidityIndex"), "liquidityIndex"),
        borrow_index=parse_int(borrow_index, "borrowIndex"),
        last_update_timestamp=parse_int(
            _require(fields, "lastUpdateTimestamp"), "lastUpdateTimestamp"
        ),
        total_scaled_supply=parse_int(
            _require(fields, "totalScaledSupply"), "totalScaledSupply"
        ),
        total_borrows_scaled=parse_int(total_borrows_scaled, "totalBorrowsScaled"),
        base_rate=parse_int(_require(fields, "baseRate"), "baseRate"),
        slope1=parse_int(_require(fields, "slope1"), "slope1"),
        slope2=parse_int(_require(fields, "slope2"), "slope2"),
        kink=kink,
        reserve_factor=reserve_factor,
    )


def parse_position(token_id: str, deposit_scaled: Any, borrow_scaled: Any) -> Position:
    return Position(
        token_id=token_id,
        deposit_scaled=parse_int(deposit_scaled, "depositScaled"),
        borrow_scaled=parse_int(borrow_scaled, "borrowScaled"),
    )


def parse_price_item(item: Mapping[str, Any]) -> PriceQuote:
    """Parse one entry of a Hermes ``parsed`` array.

    Hermes encodes price and confidence as decimal strings, e.g.
    ``{"id": "ff61...", "price": {"price": "350000000", "conf": "12000",
    "expo": -8, "publish_time": 1700000000}}``.
    """
    if not isinstance(item, Mapping):
        raise MalformedResponseError(f"price item: unexpected shape {item!r}")
    feed_id = item.get("id")
    if not isinstance(feed_id, str) or not feed_id:
        raise MalformedResponseError("price item: missing id")

    price_data = item.get("price")
    if not isinstance(price_data, Mapping):
        raise MalformedResponseError(f"price item {feed_id}: missing price")

    price = parse_int(price_data.get("price"), "price", minimum=1)
    confidence = parse_int(price_data.get("conf"), "conf")
    exponent = parse_int(price_data.get("expo"), "expo", minimum=None)
    publish_time = parse_int(price_data.get("publish_time"), "publish_time")

    return PriceQuote(
        feed_id=normalize_feed_id(feed_id),
        price=price,
        confidence=confidence,
        exponent=exponent,
        publish_time=publish_time,
    )


def parse_update_binary(binary: Any) -> tuple[bytes, ...]:
    """Decode the Hermes ``binary`` block (hex encoding) into payloads."""
    if not isinstance(binary, Mapping):
        raise MalformedResponseError("update: missing binary block")
    if binary.get("encoding", "hex") != "hex":
        raise MalformedResponseError(f"update: unsupported encoding {binary.get('encoding')!r}")
    data = binary.get("data")
    if not isinstance(data, list) or not data:
        raise MalformedResponseError("update: empty binary data")

    payloads: list[bytes] = []
    for chunk in data:
        if not isinstance(chunk, str):
            raise MalformedResponseError(f"update: non-string payload {chunk!r}")
        try:
            payloads.append(bytes.fromhex(chunk[2:] if chunk.startswith("0x") else chunk))
        except ValueError as e:
            raise MalformedResponseError(f"update: invalid hex payload: {e}") from e
    return tuple(payloads)
