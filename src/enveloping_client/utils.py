"""Utility functions for the enveloping relay client."""

from collections.abc import Mapping, Sequence
from decimal import ROUND_HALF_UP, Decimal
from typing import Any

from eth_typing import HexStr
from hexbytes import HexBytes
from web3 import Web3

from .constants import ZERO_ADDRESS
from .exceptions import ValidationError


def to_int(value: Any, field: str = "value") -> int:
    """Coerce ints, decimal strings and 0x-prefixed hex strings to int."""
    if isinstance(value, bool):
        raise ValidationError("Boolean is not a valid integer quantity", field=field, value=value)

    if isinstance(value, int):
        return value

    if isinstance(value, Decimal):
        if value != value.to_integral_value():
            raise ValidationError("Quantity must be an integer", field=field, value=value)
        return int(value)

    if isinstance(value, bytes | bytearray):
        return int.from_bytes(value, byteorder="big")

    if isinstance(value, str):
        text = value.strip()
        try:
            if text.lower().startswith("0x"):
                return int(text, 16) if len(text) > 2 else 0
            return int(text)
        except ValueError:
            raise ValidationError("Quantity must be an integer string", field=field, value=value)

    raise ValidationError(f"Unsupported quantity type {type(value)!r}", field=field, value=value)


def to_hex_data(value: Any, field: str = "data") -> str:
    """Return calldata as a lower-case 0x-prefixed hex string."""
    if value is None:
        return "0x"

    if isinstance(value, bytes | bytearray):
        return HexBytes(value).to_0x_hex()

    if isinstance(value, str):
        lower = value.lower()
        if not lower.startswith("0x"):
            lower = "0x" + lower
        try:
            bytes.fromhex(lower[2:])
        except ValueError:
            raise ValidationError("Data must be a hex string", field=field, value=value)
        return lower

    raise ValidationError(f"Unsupported data type {type(value)!r}", field=field, value=value)


def to_bytes(value: bytes | str) -> bytes:
    if isinstance(value, bytes | bytearray):
        return bytes(value)
    return Web3.to_bytes(hexstr=HexStr(to_hex_data(value)))


def to_checksum(value: str, field: str = "address") -> str:
    try:
        return Web3.to_checksum_address(value)
    except (TypeError, ValueError):
        raise ValidationError("Invalid address", field=field, value=value)


def is_address(value: Any) -> bool:
    return isinstance(value, str) and Web3.is_address(value)


def is_zero_address(value: str | None) -> bool:
    """True when the address is missing, empty or the zero address."""
    if not value or value.lower() == "0x":
        return True
    try:
        return int(value, 16) == 0
    except ValueError:
        return False


def same_address(left: str | None, right: str | None) -> bool:
    if left is None or right is None:
        return False
    return left.lower() == right.lower()


def is_empty_data(data: str | bytes | None) -> bool:
    if data is None:
        return True
    if isinstance(data, bytes | bytearray):
        return len(data) == 0
    return data.lower() in ("", "0x")


def round_half_up(value: Decimal) -> int:
    return int(value.quantize(Decimal(1), rounding=ROUND_HALF_UP))


def address_or_zero(value: str | None) -> str:
    return value if value else ZERO_ADDRESS


def serialise_receipt(receipt: Any) -> Any:
    """Serialise web3 receipt objects into JSON-friendly structures."""
    if receipt is None:
        return None
    if isinstance(receipt, Mapping):
        return {key: serialise_receipt(value) for key, value in receipt.items()}
    if isinstance(receipt, Sequence) and not isinstance(
        receipt, str | bytes | bytearray | HexBytes
    ):
        return [serialise_receipt(item) for item in receipt]
    if isinstance(receipt, bytes | bytearray | HexBytes):
        return HexBytes(receipt).to_0x_hex()
    return receipt
