"""Tests for broadcasting relayed transactions and waiting on their receipts."""

from __future__ import annotations

from types import SimpleNamespace
from typing import Any, cast

import pytest
from web3.exceptions import TimeExhausted

from enveloping_client.exceptions import NetworkError
from enveloping_client.relay.config import EnvelopingConfig
from enveloping_client.relay.connections import ChainConnections
from enveloping_client.relay.transactions import TransactionDispatcher
from enveloping_client.types import RelayedTransaction

TX_HASH = "0x" + "ab" * 32


def _config() -> EnvelopingConfig:
    return EnvelopingConfig.from_mapping(
        {
            "chain_id": 33,
            "rpc_url": "http://localhost:4444",
            "relay_hub_address": "0x00000000000000000000000000000000000000aa",
            "relay_verifier_address": "0x00000000000000000000000000000000000000e1",
            "deploy_verifier_address": "0x00000000000000000000000000000000000000e2",
            "smart_wallet_factory_address": "0x00000000000000000000000000000000000000e3",
        }
    )


def _transaction() -> RelayedTransaction:
    return RelayedTransaction(
        hash=TX_HASH,
        nonce=1,
        to="0x00000000000000000000000000000000000000aa",
        from_address=None,
        data="0x",
        value=0,
        gas=21_000,
        gas_price=1,
        raw="0xf86c",
        chain_id=33,
    )


class FakeConnections:
    def __init__(self, receipt: Any = None, known: bool = False):
        self.receipt = receipt
        self.known = known
        self.connected_checks = 0
        self.sent: list[str] = []
        self.waits: list[tuple[str, float, float]] = []

    def ensure_connected(self) -> None:
        self.connected_checks += 1

    def get_transaction(self, tx_hash: str) -> Any:
        return {"hash": tx_hash} if self.known else None

    def send_raw_transaction(self, raw: str) -> str:
        self.sent.append(raw)
        return TX_HASH

    def wait_for_receipt(self, tx_hash: str, *, timeout: float, poll_latency: float) -> Any:
        self.waits.append((tx_hash, timeout, poll_latency))
        return self.receipt


def _dispatcher(connections: FakeConnections) -> TransactionDispatcher:
    return TransactionDispatcher(cast(ChainConnections, connections), receipt_timeout=30.0)


class TestBroadcast:
    def test_sends_unknown_transaction(self):
        connections = FakeConnections()

        assert _dispatcher(connections).broadcast_if_unknown(_transaction()) == TX_HASH
        assert connections.sent == ["0xf86c"]
        assert connections.connected_checks == 1

    def test_skips_transaction_already_on_chain(self):
        connections = FakeConnections(known=True)

        assert _dispatcher(connections).broadcast_if_unknown(_transaction()) == TX_HASH
        assert connections.sent == []


class TestWaitForReceipt:
    def test_serialises_receipt(self):
        connections = FakeConnections(receipt={"status": 1, "blockNumber": 7, "blockHash": b"\x01" * 32})

        receipt = _dispatcher(connections).wait_for_receipt(TX_HASH, poll_latency=0.5)

        assert receipt == {"status": 1, "blockNumber": 7, "blockHash": "0x" + "01" * 32}
        assert connections.waits == [(TX_HASH, 30.0, 0.5)]

    def test_timeout_override(self):
        connections = FakeConnections(receipt={"status": 1})

        _dispatcher(connections).wait_for_receipt(TX_HASH, poll_latency=2.0, timeout=90)

        assert connections.waits == [(TX_HASH, 90, 2.0)]

    def test_missing_receipt(self):
        assert _dispatcher(FakeConnections()).wait_for_receipt(TX_HASH, poll_latency=1.0) is None


class TestChainReceiptWait:
    def test_time_exhausted_returns_none(self):
        def wait_for_transaction_receipt(tx_hash, timeout, poll_latency):
            raise TimeExhausted("not mined")

        web3 = SimpleNamespace(eth=SimpleNamespace(wait_for_transaction_receipt=wait_for_transaction_receipt))
        connections = ChainConnections(_config(), web3=cast(Any, web3))

        assert connections.wait_for_receipt(TX_HASH, timeout=1, poll_latency=0.1) is None

    def test_passes_latency_through(self):
        calls: list[tuple[str, float, float]] = []

        def wait_for_transaction_receipt(tx_hash, timeout, poll_latency):
            calls.append((tx_hash, timeout, poll_latency))
            return {"status": 1}

        web3 = SimpleNamespace(eth=SimpleNamespace(wait_for_transaction_receipt=wait_for_transaction_receipt))
        connections = ChainConnections(_config(), web3=cast(Any, web3))

        assert connections.wait_for_receipt(TX_HASH, timeout=3, poll_latency=0.2) == {"status": 1}
        assert calls == [(TX_HASH, 3, 0.2)]

    def test_rpc_failure_is_network_error(self):
        def wait_for_transaction_receipt(tx_hash, timeout, poll_latency):
            raise ConnectionError("refused")

        web3 = SimpleNamespace(eth=SimpleNamespace(wait_for_transaction_receipt=wait_for_transaction_receipt))
        connections = ChainConnections(_config(), web3=cast(Any, web3))

        with pytest.raises(NetworkError):
            connections.wait_for_receipt(TX_HASH, timeout=1, poll_latency=0.1)

    def test_ensure_connected_requires_provider(self):
        with pytest.raises(NetworkError):
            ChainConnections(_config()).ensure_connected()
