"""Connection helpers for the enveloping relay client."""

from __future__ import annotations

import json
import logging
from collections.abc import Mapping
from typing import Any

from hexbytes import HexBytes
from web3 import HTTPProvider, Web3
from web3.exceptions import TimeExhausted, TransactionNotFound

from .. import abi
from ..exceptions import NetworkError, ValidationError
from ..types import RelayManagerData
from .config import EnvelopingConfig

logger = logging.getLogger(__name__)


class ChainConnections:
    """Manage the Web3 provider and the contract calls issued by the relay pipeline."""

    def __init__(self, config: EnvelopingConfig, web3: Web3 | None = None):
        self.config = config
        self._provider: HTTPProvider | None = None
        self._web3: Web3 | None = web3
        self._chain_id: int | None = None
        self._connected = web3 is not None

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------
    def connect(self) -> None:
        """Initialise the provider and check it serves the configured chain."""

        if self._web3 is None:
            provider = HTTPProvider(
                self.config.rpc_url, request_kwargs={"timeout": self.config.request_timeout}
            )
            web3 = Web3(provider)
            if not web3.is_connected():
                raise NetworkError("Unable to connect to RPC", endpoint=self.config.rpc_url)
            self._provider = provider
            self._web3 = web3

        chain_id = self._web3.eth.chain_id
        if self.config.chain_id and chain_id != self.config.chain_id:
            raise ValidationError(
                f"RPC serves chain {chain_id}, configuration expects {self.config.chain_id}",
                field="chain_id",
                value=chain_id,
            )
        self._chain_id = chain_id
        self._connected = True
        logger.info("Connected to RPC at %s (chain %s)", self.config.rpc_url, chain_id)

    def disconnect(self) -> None:
        self._provider = None
        self._web3 = None
        self._chain_id = None
        self._connected = False

    def is_connected(self) -> bool:
        return self._connected and self._web3 is not None

    def ensure_connected(self) -> None:
        if not self.is_connected():
            raise NetworkError("RPC provider is not connected", endpoint=self.config.rpc_url)

    # ------------------------------------------------------------------
    # Accessors
    # ------------------------------------------------------------------
    @property
    def web3(self) -> Web3:
        if self._web3 is None:
            raise NetworkError(
                "RPC provider not connected; call connect() first", endpoint=self.config.rpc_url
            )
        return self._web3

    @property
    def chain_id(self) -> int:
        if self._chain_id is None:
            self._chain_id = self.web3.eth.chain_id
        return self._chain_id

    # ------------------------------------------------------------------
    # Plain RPC
    # ------------------------------------------------------------------
    def gas_price(self) -> int:
        return int(self._rpc("eth_gasPrice", lambda: self.web3.eth.gas_price))

    def block_number(self) -> int:
        return int(self._rpc("eth_blockNumber", lambda: self.web3.eth.block_number))

    def transaction_count(self, address: str) -> int:
        checksum = Web3.to_checksum_address(address)
        return int(
            self._rpc("eth_getTransactionCount", lambda: self.web3.eth.get_transaction_count(checksum))
        )

    def balance(self, address: str) -> int:
        checksum = Web3.to_checksum_address(address)
        return int(self._rpc("eth_getBalance", lambda: self.web3.eth.get_balance(checksum)))

    def estimate_gas(self, transaction: Mapping[str, Any]) -> int:
        tx = _prepare_transaction(transaction)
        return int(self._rpc("eth_estimateGas", lambda: self.web3.eth.estimate_gas(tx)))  # type: ignore[arg-type]

    def call(self, transaction: Mapping[str, Any]) -> bytes:
        tx = _prepare_transaction(transaction)
        return bytes(self._rpc("eth_call", lambda: self.web3.eth.call(tx)))  # type: ignore[arg-type]

    def get_logs(self, filter_params: Mapping[str, Any]) -> list[Any]:
        return list(self._rpc("eth_getLogs", lambda: self.web3.eth.get_logs(filter_params)))  # type: ignore[arg-type]

    def get_transaction(self, tx_hash: str) -> Any | None:
        try:
            return self.web3.eth.get_transaction(tx_hash)  # type: ignore[arg-type]
        except TransactionNotFound:
            return None

    def wait_for_receipt(self, tx_hash: str, *, timeout: float, poll_latency: float) -> Any | None:
        """Block until the receipt is mined; ``None`` when ``timeout`` expires first."""

        def wait() -> Any | None:
            try:
                return self.web3.eth.wait_for_transaction_receipt(
                    tx_hash, timeout=timeout, poll_latency=poll_latency  # type: ignore[arg-type]
                )
            except TimeExhausted:
                return None

        return self._rpc("eth_getTransactionReceipt", wait)

    def send_raw_transaction(self, raw: str) -> str:
        tx_hash = self._rpc(
            "eth_sendRawTransaction", lambda: self.web3.eth.send_raw_transaction(HexBytes(raw))
        )
        return HexBytes(tx_hash).to_0x_hex()

    def send_transaction(self, transaction: Mapping[str, Any]) -> str:
        tx = _prepare_transaction(transaction)
        tx_hash = self._rpc("eth_sendTransaction", lambda: self.web3.eth.send_transaction(tx))  # type: ignore[arg-type]
        return HexBytes(tx_hash).to_0x_hex()

    def sign_typed_data(self, address: str, typed_data: Mapping[str, Any]) -> str:
        """Delegate EIP-712 signing to the node via ``eth_signTypedData_v4``."""

        payload = json.dumps(typed_data)
        signature = self._rpc(
            "eth_signTypedData_v4",
            lambda: self.web3.manager.request_blocking(
                "eth_signTypedData_v4", [address, payload]  # type: ignore[arg-type]
            ),
        )
        if isinstance(signature, bytes | bytearray):
            return HexBytes(signature).to_0x_hex()
        return str(signature)

    # ------------------------------------------------------------------
    # Contract reads
    # ------------------------------------------------------------------
    def forwarder_nonce(self, forwarder: str) -> int:
        (nonce,) = self._read(forwarder, abi.FORWARDER_NONCE)
        return int(nonce)

    def forwarder_owner(self, forwarder: str) -> bytes:
        (owner,) = self._read(forwarder, abi.FORWARDER_GET_OWNER)
        return bytes(owner)

    def factory_nonce(self, factory: str, owner: str) -> int:
        (nonce,) = self._read(factory, abi.FACTORY_NONCE, Web3.to_checksum_address(owner))
        return int(nonce)

    def smart_wallet_address(self, factory: str, owner: str, recoverer: str, index: int) -> str:
        (address,) = self._read(
            factory,
            abi.FACTORY_GET_SMART_WALLET_ADDRESS,
            Web3.to_checksum_address(owner),
            Web3.to_checksum_address(recoverer),
            index,
        )
        return Web3.to_checksum_address(address)

    def relay_info(self, relay_hub: str, manager: str) -> RelayManagerData:
        ((manager_address, currently_staked, registered, url),) = self._read(
            relay_hub, abi.GET_RELAY_INFO, Web3.to_checksum_address(manager)
        )
        return RelayManagerData(
            url=str(url).rstrip("/"),
            manager=Web3.to_checksum_address(manager_address),
            currently_staked=bool(currently_staked),
            registered=bool(registered),
        )

    def hub_registration_logs(self, relay_hub: str, from_block: int, to_block: int) -> list[Any]:
        topics = [[HexBytes(spec.topic).to_0x_hex() for spec in abi.HUB_REGISTRATION_EVENTS]]
        return self.get_logs(
            {
                "address": Web3.to_checksum_address(relay_hub),
                "fromBlock": from_block,
                "toBlock": to_block,
                "topics": topics,
            }
        )

    # ------------------------------------------------------------------
    # Internal wiring
    # ------------------------------------------------------------------
    def _read(self, address: str, spec: abi.FunctionSpec, *args: Any) -> tuple[Any, ...]:
        destination = Web3.to_checksum_address(address)
        result = self.call({"to": destination, "data": spec.encode(*args)})
        try:
            return spec.decode_output(result)
        except Exception as exc:
            raise NetworkError(
                f"Failed to decode {spec.name} response",
                endpoint=str(destination),
                details={"error": str(exc)},
            ) from exc

    def _rpc(self, method: str, call: Any) -> Any:
        try:
            return call()
        except NetworkError:
            raise
        except Exception as exc:
            raise NetworkError(
                f"RPC call {method} failed",
                endpoint=self.config.rpc_url,
                details={"method": method, "error": str(exc)},
            ) from exc


def _prepare_transaction(transaction: Mapping[str, Any]) -> dict[str, Any]:
    tx: dict[str, Any] = {}
    for key, value in transaction.items():
        if value is None:
            continue
        if key in ("to", "from"):
            value = Web3.to_checksum_address(value)
        elif key == "data" and isinstance(value, bytes | bytearray):
            value = HexBytes(value).to_0x_hex()
        tx[key] = value
    return tx
