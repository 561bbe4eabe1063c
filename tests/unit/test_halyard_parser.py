"""Unit tests for the Halyard parse boundary."""
from __future__ import annotations

import pytest

from conftest import ETH_FEED, ETH_ID, asset_struct, make_reserve
from halyard_client.errors import MalformedResponseError
from halyard_client.models import RAY, WAD
from halyard_client.protocols.halyard.parser import (
    ASSET_FIELDS,
    normalize_feed_id,
    parse_int,
    parse_position,
    parse_price_item,
    parse_reserve,
    parse_update_binary,
)


def _hermes_item(**price_overrides) -> dict:
    price = {"price": "300000000000", "conf": "100000000", "expo": -8, "publish_time": 1_700_000_000}
    price.update(price_overrides)
    return {"id": ETH_FEED, "price": price}


class TestNormalizeFeedId:
    def test_strips_prefix_and_lowercases(self) -> None:
        assert normalize_feed_id("0xABCD") == "abcd"

    def test_already_normalized(self) -> None:
        assert normalize_feed_id("abcd") == "abcd"


class TestParseInt:
    def test_accepts_int_and_digit_string(self) -> None:
        assert parse_int(5, "x") == 5
        assert parse_int(" 42 ", "x") == 42

    @pytest.mark.parametrize("bad", [1.5, True, None, "1e3", "abc"])
    def test_rejects_non_integers(self, bad) -> None:
        with pytest.raises(MalformedResponseError):
            parse_int(bad, "x")

    def test_rejects_below_minimum(self) -> None:
        with pytest.raises(MalformedResponseError, match="below"):
            parse_int(-1, "x")

    def test_no_minimum(self) -> None:
        assert parse_int("-8", "expo", minimum=None) == -8


class TestParseReserve:
    def test_mapping_form(self) -> None:
        expected = make_reserve()
        reserve = parse_reserve(ETH_ID, asset_struct(expected), RAY, 40 * WAD)
        assert reserve == expected

    def test_tuple_form(self) -> None:
        expected = make_reserve()
        struct = asset_struct(expected)
        raw = tuple(struct[name] for name in ASSET_FIELDS)
        assert parse_reserve(ETH_ID, raw, RAY, 40 * WAD) == expected

    def test_zero_borrow_index_is_kept_raw(self) -> None:
        reserve = parse_reserve(ETH_ID, asset_struct(make_reserve()), 0, 0)
        assert reserve.borrow_index == 0

    def test_wrong_tuple_length(self) -> None:
        with pytest.raises(MalformedResponseError, match="expected 14 fields"):
            parse_reserve(ETH_ID, (1, 2, 3), RAY, 0)

    def test_missing_field(self) -> None:
        struct = asset_struct(make_reserve())
        del struct["kink"]
        with pytest.raises(MalformedResponseError, match="kink"):
            parse_reserve(ETH_ID, struct, RAY, 0)

    def test_negative_index(self) -> None:
        struct = asset_struct(make_reserve())
        struct["liquidityIndex"] = -1
        with pytest.raises(MalformedResponseError):
            parse_reserve(ETH_ID, struct, RAY, 0)

    def test_non_bool_active_flag(self) -> None:
        struct = asset_struct(make_reserve())
        struct["isActive"] = 1
        with pytest.raises(MalformedResponseError, match="isActive"):
            parse_reserve(ETH_ID, struct, RAY, 0)

    def test_kink_above_one(self) -> None:
        struct = asset_struct(make_reserve())
        struct["kink"] = WAD + 1
        with pytest.raises(MalformedResponseError, match="kink"):
            parse_reserve(ETH_ID, struct, RAY, 0)

    def test_unexpected_shape(self) -> None:
        with pytest.raises(MalformedResponseError):
            parse_reserve(ETH_ID, "garbage", RAY, 0)


class TestParsePosition:
    def test_valid(self) -> None:
        position = parse_position(ETH_ID, 10, "20")
        assert position.deposit_scaled == 10
        assert position.borrow_scaled == 20

    def test_negative_balance(self) -> None:
        with pytest.raises(MalformedResponseError):
            parse_position(ETH_ID, -10, 0)


class TestParsePriceItem:
    def test_valid(self) -> None:
        quote = parse_price_item(_hermes_item())
        assert quote.feed_id == ETH_FEED
        assert quote.price == 300_000_000_000
        assert quote.confidence == 100_000_000
        assert quote.exponent == -8
        assert quote.publish_time == 1_700_000_000

    def test_prefixed_id_is_normalized(self) -> None:
        item = _hermes_item()
        item["id"] = "0x" + ETH_FEED.upper()
        assert parse_price_item(item).feed_id == ETH_FEED

    @pytest.mark.parametrize("price", ["0", "-5"])
    def test_non_positive_price(self, price: str) -> None:
        with pytest.raises(MalformedResponseError):
            parse_price_item(_hermes_item(price=price))

    def test_negative_confidence(self) -> None:
        with pytest.raises(MalformedResponseError):
            parse_price_item(_hermes_item(conf="-1"))

    def test_missing_price_block(self) -> None:
        with pytest.raises(MalformedResponseError, match="missing price"):
            parse_price_item({"id": ETH_FEED})


class TestParseUpdateBinary:
    def test_hex_payloads(self) -> None:
        assert parse_update_binary({"encoding": "hex", "data": ["0xdead", "beef"]}) == (
            b"\xde\xad",
            b"\xbe\xef",
        )

    def test_empty_data(self) -> None:
        with pytest.raises(MalformedResponseError):
            parse_update_binary({"encoding": "hex", "data": []})

    def test_wrong_encoding(self) -> None:
        with pytest.raises(MalformedResponseError, match="encoding"):
            parse_update_binary({"encoding": "base64", "data": ["AAAA"]})

    def test_invalid_hex(self) -> None:
        with pytest.raises(MalformedResponseError, match="invalid hex"):
            parse_update_binary({"encoding": "hex", "data": ["zz"]})
