"""Tests for utility functions."""

from decimal import Decimal

import pytest

from enveloping_client.constants import ZERO_ADDRESS
from enveloping_client.exceptions import ValidationError
from enveloping_client.utils import (
    address_or_zero,
    is_empty_data,
    is_zero_address,
    round_half_up,
    same_address,
    serialise_receipt,
    to_bytes,
    to_hex_data,
    to_int,
)


class TestQuantityConversion:
    """Test integer quantity coercion."""

    def test_int_passthrough(self):
        assert to_int(42) == 42

    def test_decimal_string(self):
        assert to_int("1000000000") == 1_000_000_000

    def test_hex_string(self):
        assert to_int("0x2a") == 42
        assert to_int("0x") == 0

    def test_integral_decimal(self):
        assert to_int(Decimal("15")) == 15

    def test_fractional_decimal_raises(self):
        with pytest.raises(ValidationError):
            to_int(Decimal("1.5"))

    def test_bool_rejected(self):
        with pytest.raises(ValidationError) as excinfo:
            to_int(True, field="nonce")
        assert excinfo.value.field == "nonce"

    def test_garbage_string_raises(self):
        with pytest.raises(ValidationError):
            to_int("ten")


class TestHexData:
    """Test calldata normalisation."""

    def test_none_is_empty_calldata(self):
        assert to_hex_data(None) == "0x"

    def test_bytes(self):
        assert to_hex_data(b"\x01\xab") == "0x01ab"

    def test_prefix_added_and_lowercased(self):
        assert to_hex_data("ABCD") == "0xabcd"

    def test_invalid_hex_raises(self):
        with pytest.raises(ValidationError):
            to_hex_data("0xzz")

    def test_to_bytes(self):
        assert to_bytes("0x0102") == b"\x01\x02"
        assert to_bytes(b"\x03") == b"\x03"

    def test_is_empty_data(self):
        assert is_empty_data(None)
        assert is_empty_data("0x")
        assert is_empty_data(b"")
        assert not is_empty_data("0x00")


class TestAddresses:
    def test_zero_address_variants(self):
        assert is_zero_address(None)
        assert is_zero_address("")
        assert is_zero_address("0x")
        assert is_zero_address(ZERO_ADDRESS)
        assert not is_zero_address("0x0000000000000000000000000000000000000001")

    def test_same_address_ignores_case(self):
        assert same_address("0xABCDEF0000000000000000000000000000000001", "0xabcdef0000000000000000000000000000000001")
        assert not same_address(None, ZERO_ADDRESS)

    def test_address_or_zero(self):
        assert address_or_zero(None) == ZERO_ADDRESS
        assert address_or_zero("0x01") == "0x01"


def test_round_half_up():
    assert round_half_up(Decimal("101.5")) == 102
    assert round_half_up(Decimal("101.49")) == 101


def test_serialise_receipt_converts_bytes():
    receipt = {"transactionHash": b"\x12\x34", "logs": [{"topics": [b"\xff"]}], "status": 1}

    assert serialise_receipt(receipt) == {
        "transactionHash": "0x1234",
        "logs": [{"topics": ["0xff"]}],
        "status": 1,
    }
