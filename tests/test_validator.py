"""Tests for relay-signed transaction decoding and validation."""

from __future__ import annotations

from typing import Any

import pytest
from eth_account import Account
from eth_utils import to_checksum_address

from enveloping_client import abi
from enveloping_client.constants import ZERO_ADDRESS
from enveloping_client.exceptions import (
    DataTampered,
    NoRecipient,
    NonceExceeded,
    NoSigner,
    ValidationError,
    WrongRecipient,
    WrongWorker,
)
from enveloping_client.relay.config import EnvelopingConfig
from enveloping_client.relay.transactions import parse_signed_transaction
from enveloping_client.relay.validator import RelayedTransactionValidator
from enveloping_client.types import (
    EnvelopingMetadata,
    EnvelopingRequest,
    EnvelopingTxRequest,
    RelayData,
    RelayedTransaction,
    RelayRequestBody,
)

WORKER_KEY = "0x" + "33" * 32
WORKER = Account.from_key(WORKER_KEY).address
HUB = "0x00000000000000000000000000000000000000aa"
OTHER_HUB = "0x00000000000000000000000000000000000000ab"
CHAIN_ID = 33


def _config() -> EnvelopingConfig:
    return EnvelopingConfig.from_mapping(
        {
            "chain_id": CHAIN_ID,
            "rpc_url": "http://localhost:4444",
            "relay_hub_address": HUB,
            "relay_verifier_address": "0x00000000000000000000000000000000000000e1",
            "deploy_verifier_address": "0x00000000000000000000000000000000000000e2",
            "smart_wallet_factory_address": "0x00000000000000000000000000000000000000e3",
        }
    )


def _tx_request(relay_max_nonce: int = 5) -> EnvelopingTxRequest:
    request = EnvelopingRequest(
        request=RelayRequestBody(
            relay_hub=HUB,
            from_address="0x00000000000000000000000000000000000000bb",
            to="0x00000000000000000000000000000000000000cc",
            token_contract=ZERO_ADDRESS,
            value=0,
            gas=50_000,
            nonce=0,
            token_amount=0,
            token_gas=0,
            valid_until_time=1_700_000_000,
            data="0x1234",
        ),
        relay_data=RelayData(
            gas_price=60_000_000,
            fees_receiver="0x00000000000000000000000000000000000000f3",
            call_forwarder="0x00000000000000000000000000000000000000dd",
            call_verifier="0x00000000000000000000000000000000000000ee",
        ),
    )
    return EnvelopingTxRequest(
        relay_request=request,
        metadata=EnvelopingMetadata(
            signature="0x" + "11" * 65, relay_hub_address=HUB, relay_max_nonce=relay_max_nonce
        ),
    )


def _sign(tx_request: EnvelopingTxRequest, **overrides: Any) -> RelayedTransaction:
    transaction: dict[str, Any] = {
        "nonce": 5,
        "gasPrice": 60_000_000,
        "gas": 300_000,
        "to": HUB,
        "value": 0,
        "data": abi.encode_hub_call(tx_request.relay_request, tx_request.metadata.signature),
        "chainId": CHAIN_ID,
    }
    transaction.update(overrides)
    key = transaction.pop("key", WORKER_KEY)
    transaction["to"] = to_checksum_address(transaction["to"])
    signed = Account.sign_transaction(transaction, key)
    return parse_signed_transaction(signed.raw_transaction)


class TestParseSignedTransaction:
    def test_legacy_transaction(self):
        transaction = {
            "nonce": 5,
            "gasPrice": 60_000_000,
            "gas": 300_000,
            "to": to_checksum_address(HUB),
            "value": 0,
            "data": b"\x12\x34",
            "chainId": CHAIN_ID,
        }
        signed = Account.sign_transaction(transaction, WORKER_KEY)

        parsed = parse_signed_transaction(signed.raw_transaction.to_0x_hex())

        assert parsed.hash == signed.hash.to_0x_hex()
        assert parsed.from_address == WORKER
        assert parsed.to is not None and parsed.to.lower() == HUB
        assert parsed.nonce == 5
        assert parsed.gas_price == 60_000_000
        assert parsed.chain_id == CHAIN_ID
        assert parsed.data == "0x1234"

    def test_dynamic_fee_transaction(self):
        signed = Account.sign_transaction(
            {
                "type": 2,
                "nonce": 1,
                "maxFeePerGas": 80_000_000,
                "maxPriorityFeePerGas": 1,
                "gas": 21_000,
                "to": to_checksum_address(HUB),
                "value": 7,
                "data": b"",
                "chainId": CHAIN_ID,
            },
            WORKER_KEY,
        )

        parsed = parse_signed_transaction(signed.raw_transaction)

        assert parsed.hash == signed.hash.to_0x_hex()
        assert parsed.from_address == WORKER
        assert parsed.gas_price == 80_000_000
        assert parsed.value == 7
        assert parsed.data == "0x"

    def test_garbage_is_rejected(self):
        with pytest.raises(ValidationError):
            parse_signed_transaction("0xf8ffff")

    def test_empty_is_rejected(self):
        with pytest.raises(ValidationError):
            parse_signed_transaction("0x")


class TestValidator:
    def test_matching_transaction_passes(self):
        tx_request = _tx_request()
        transaction = _sign(tx_request)
        validator = RelayedTransactionValidator(_config())

        validator.validate(tx_request, transaction, WORKER)
        validator.validate(tx_request, transaction, WORKER.lower())

    def test_nonce_equal_to_max_is_accepted(self):
        tx_request = _tx_request(relay_max_nonce=5)

        RelayedTransactionValidator(_config()).validate(tx_request, _sign(tx_request, nonce=5), WORKER)

    def test_nonce_above_max(self):
        tx_request = _tx_request(relay_max_nonce=5)

        with pytest.raises(NonceExceeded) as excinfo:
            RelayedTransactionValidator(_config()).validate(
                tx_request, _sign(tx_request, nonce=7), WORKER
            )

        assert "Requested 5 got 7" in str(excinfo.value)

    def test_wrong_recipient(self):
        tx_request = _tx_request()

        with pytest.raises(WrongRecipient):
            RelayedTransactionValidator(_config()).validate(
                tx_request, _sign(tx_request, to=OTHER_HUB), WORKER
            )

    def test_tampered_data(self):
        tx_request = _tx_request()
        data = bytearray(abi.encode_hub_call(tx_request.relay_request, tx_request.metadata.signature))
        data[-1] ^= 0x01

        with pytest.raises(DataTampered):
            RelayedTransactionValidator(_config()).validate(
                tx_request, _sign(tx_request, data=bytes(data)), WORKER
            )

    def test_signed_by_another_worker(self):
        tx_request = _tx_request()

        with pytest.raises(WrongWorker):
            RelayedTransactionValidator(_config()).validate(
                tx_request, _sign(tx_request, key="0x" + "44" * 32), WORKER
            )

    def test_nonce_checked_before_recipient(self):
        tx_request = _tx_request(relay_max_nonce=1)

        with pytest.raises(NonceExceeded):
            RelayedTransactionValidator(_config()).validate(
                tx_request, _sign(tx_request, to=OTHER_HUB), WORKER
            )

    @pytest.mark.parametrize(
        ("to", "from_address", "error"),
        [(None, WORKER, NoRecipient), (HUB, None, NoSigner), (None, None, NoRecipient)],
    )
    def test_missing_recipient_or_signer(self, to, from_address, error):
        transaction = RelayedTransaction(
            hash="0x" + "00" * 32,
            nonce=0,
            to=to,
            from_address=from_address,
            data="0x",
            value=0,
            gas=0,
            gas_price=0,
            raw="0x",
        )

        with pytest.raises(error):
            RelayedTransactionValidator(_config()).validate(_tx_request(), transaction, WORKER)
