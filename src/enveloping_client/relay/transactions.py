"""Decoding, broadcast and receipt handling of relay-signed transactions."""

from __future__ import annotations

import logging
from typing import Any

import rlp
from eth_account import Account
from hexbytes import HexBytes
from web3 import Web3

from ..exceptions import ValidationError
from ..types import RelayedTransaction
from ..utils import serialise_receipt
from .connections import ChainConnections

logger = logging.getLogger(__name__)

_LEGACY_FIELDS = ("nonce", "gasPrice", "gas", "to", "value", "data", "v", "r", "s")
_TYPED_FIELDS = {
    1: ("chainId", "nonce", "gasPrice", "gas", "to", "value", "data", "accessList", "v", "r", "s"),
    2: (
        "chainId",
        "nonce",
        "maxPriorityFeePerGas",
        "maxFeePerGas",
        "gas",
        "to",
        "value",
        "data",
        "accessList",
        "v",
        "r",
        "s",
    ),
}


def parse_signed_transaction(raw: str | bytes) -> RelayedTransaction:
    """Decode a raw signed transaction, legacy or EIP-2718 typed.

    ``from_address`` is ``None`` when no signer can be recovered and ``to``
    is ``None`` for contract creations.
    """

    payload = bytes(HexBytes(raw))
    if not payload:
        raise ValidationError("Empty signed transaction", field="signedTx", value=raw)

    try:
        if payload[0] >= 0xC0:
            names = _LEGACY_FIELDS
            items = rlp.decode(payload)
        elif payload[0] in _TYPED_FIELDS:
            names = _TYPED_FIELDS[payload[0]]
            items = rlp.decode(payload[1:])
        else:
            raise ValidationError(
                f"Unsupported transaction type {payload[0]}", field="signedTx", value=raw
            )
    except rlp.DecodingError as exc:
        raise ValidationError(
            "Signed transaction is not valid RLP",
            field="signedTx",
            value=raw,
            details={"error": str(exc)},
        ) from exc

    if len(items) != len(names):
        raise ValidationError("Unexpected signed transaction shape", field="signedTx", value=raw)
    fields = dict(zip(names, items))

    def quantity(name: str) -> int:
        return int.from_bytes(fields[name], byteorder="big")

    if "chainId" in fields:
        chain_id: int | None = quantity("chainId")
    else:
        v = quantity("v")
        chain_id = (v - 35) // 2 if v >= 35 else None

    gas_price = quantity("maxFeePerGas") if "maxFeePerGas" in fields else quantity("gasPrice")
    to = Web3.to_checksum_address(fields["to"]) if fields["to"] else None

    raw_hex = HexBytes(payload).to_0x_hex()
    return RelayedTransaction(
        hash=Web3.keccak(payload).to_0x_hex(),
        nonce=quantity("nonce"),
        to=to,
        from_address=_recover_sender(raw_hex),
        data=HexBytes(fields["data"]).to_0x_hex(),
        value=quantity("value"),
        gas=quantity("gas"),
        gas_price=gas_price,
        raw=raw_hex,
        chain_id=chain_id,
    )


def _recover_sender(raw: str) -> str | None:
    try:
        return Account.recover_transaction(raw)
    except Exception as exc:
        logger.debug("Unable to recover transaction sender: %s", exc)
        return None


class TransactionDispatcher:
    """Broadcast relay-signed transactions and wait for their receipts."""

    def __init__(
        self,
        connections: ChainConnections,
        *,
        receipt_timeout: float,
    ) -> None:
        self._connections = connections
        self._receipt_timeout = receipt_timeout

    def broadcast_if_unknown(self, transaction: RelayedTransaction) -> str:
        """Send ``transaction`` unless the network already knows its hash."""

        self._connections.ensure_connected()

        if self._connections.get_transaction(transaction.hash) is not None:
            logger.debug("Transaction %s already known by the network", transaction.hash)
            return transaction.hash

        tx_hash = self._connections.send_raw_transaction(transaction.raw)
        logger.info("Broadcast relayed transaction hash=%s", tx_hash)
        return tx_hash

    def wait_for_receipt(
        self, tx_hash: str, *, poll_latency: float, timeout: float | None = None
    ) -> dict[str, Any] | None:
        """Return the serialised receipt, or ``None`` once the timeout expires."""

        timeout = self._receipt_timeout if timeout is None else timeout
        receipt = self._connections.wait_for_receipt(
            tx_hash, timeout=timeout, poll_latency=poll_latency
        )
        if not receipt:
            logger.warning("No receipt for %s after %ss", tx_hash, timeout)
            return None

        logger.info(
            "Transaction confirmed hash=%s block=%s",
            tx_hash,
            _get(receipt, "blockNumber"),
        )
        return serialise_receipt(dict(receipt))


def _get(receipt: Any, key: str) -> Any:
    if isinstance(receipt, dict):
        return receipt.get(key)
    return getattr(receipt, key, None)
