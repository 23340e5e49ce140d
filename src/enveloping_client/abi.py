"""Contract call encoders and event decoders for the enveloping contracts."""

from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from typing import Any

from eth_abi import decode as abi_decode
from eth_abi import encode as abi_encode
from hexbytes import HexBytes
from web3 import Web3

from .types import EnvelopingRequest
from .utils import to_bytes

logger = logging.getLogger(__name__)

RELAY_DATA_TUPLE = "(uint256,address,address,address)"
RELAY_REQUEST_TUPLE = (
    "((address,address,address,address,uint256,uint256,uint256,uint256,uint256,uint256,bytes),"
    f"{RELAY_DATA_TUPLE})"
)
DEPLOY_REQUEST_TUPLE = (
    "((address,address,address,address,address,uint256,uint256,uint256,uint256,uint256,uint256,bytes),"
    f"{RELAY_DATA_TUPLE})"
)
RELAY_MANAGER_DATA_TUPLE = "(address,bool,bool,string)"


@dataclass(frozen=True)
class FunctionSpec:
    """Solidity function described by its name, input and output types."""

    name: str
    inputs: tuple[str, ...] = ()
    outputs: tuple[str, ...] = ()

    @property
    def signature(self) -> str:
        return f"{self.name}({','.join(self.inputs)})"

    @property
    def selector(self) -> bytes:
        return bytes(Web3.keccak(text=self.signature)[:4])

    def encode(self, *args: Any) -> bytes:
        encoded = abi_encode(list(self.inputs), list(args)) if self.inputs else b""
        return self.selector + encoded

    def decode_output(self, result: bytes) -> tuple[Any, ...]:
        if not self.outputs:
            return tuple()
        return tuple(abi_decode(list(self.outputs), bytes(result)))


RELAY_CALL = FunctionSpec("relayCall", (RELAY_REQUEST_TUPLE, "bytes"), ("bool",))
DEPLOY_CALL = FunctionSpec("deployCall", (DEPLOY_REQUEST_TUPLE, "bytes"))
GET_RELAY_INFO = FunctionSpec("getRelayInfo", ("address",), (RELAY_MANAGER_DATA_TUPLE,))
RELAY_VERIFY = FunctionSpec("verifyRelayedCall", (RELAY_REQUEST_TUPLE, "bytes"))
DEPLOY_VERIFY = FunctionSpec("verifyRelayedCall", (DEPLOY_REQUEST_TUPLE, "bytes"))
FORWARDER_NONCE = FunctionSpec("nonce", (), ("uint256",))
FORWARDER_GET_OWNER = FunctionSpec("getOwner", (), ("bytes32",))
FACTORY_NONCE = FunctionSpec("nonce", ("address",), ("uint256",))
FACTORY_GET_SMART_WALLET_ADDRESS = FunctionSpec(
    "getSmartWalletAddress", ("address", "address", "uint256"), ("address",)
)
ERC20_TRANSFER = FunctionSpec("transfer", ("address", "uint256"), ("bool",))


def encode_relay_call(request: EnvelopingRequest, signature: str | bytes) -> bytes:
    return RELAY_CALL.encode(request.as_abi_args(), to_bytes(signature))


def encode_deploy_call(request: EnvelopingRequest, signature: str | bytes) -> bytes:
    return DEPLOY_CALL.encode(request.as_abi_args(), to_bytes(signature))


def encode_hub_call(request: EnvelopingRequest, signature: str | bytes) -> bytes:
    """Encode ``deployCall`` or ``relayCall`` depending on the request variant."""

    if request.is_deploy:
        return encode_deploy_call(request, signature)
    return encode_relay_call(request, signature)


def encode_verify_relayed_call(request: EnvelopingRequest, signature: str | bytes) -> bytes:
    spec = DEPLOY_VERIFY if request.is_deploy else RELAY_VERIFY
    return spec.encode(request.as_abi_args(), to_bytes(signature))


def encode_erc20_transfer(recipient: str, amount: int) -> bytes:
    return ERC20_TRANSFER.encode(recipient, amount)


# ----------------------------------------------------------------------
# Events
# ----------------------------------------------------------------------
@dataclass(frozen=True)
class EventSpec:
    """Solidity event; ``inputs`` are ``(name, type, indexed)`` triples."""

    name: str
    inputs: tuple[tuple[str, str, bool], ...]

    @property
    def signature(self) -> str:
        return f"{self.name}({','.join(kind for _, kind, _ in self.inputs)})"

    @property
    def topic(self) -> bytes:
        return bytes(Web3.keccak(text=self.signature))

    def decode(self, topics: Sequence[bytes], data: bytes) -> dict[str, Any]:
        indexed = [(name, kind) for name, kind, is_indexed in self.inputs if is_indexed]
        plain = [(name, kind) for name, kind, is_indexed in self.inputs if not is_indexed]

        args: dict[str, Any] = {}
        for (name, kind), topic in zip(indexed, topics[1:]):
            (args[name],) = abi_decode([kind], topic)

        if plain:
            values = abi_decode([kind for _, kind in plain], data)
            for (name, _), value in zip(plain, values):
                args[name] = value
        return args


RELAY_SERVER_REGISTERED = EventSpec(
    "RelayServerRegistered",
    (("relayManager", "address", True), ("relayUrl", "string", False)),
)
RELAY_WORKERS_ADDED = EventSpec(
    "RelayWorkersAdded",
    (
        ("relayManager", "address", True),
        ("newRelayWorkers", "address[]", False),
        ("workersCount", "uint256", False),
    ),
)
TRANSACTION_RELAYED = EventSpec(
    "TransactionRelayed",
    (
        ("relayManager", "address", True),
        ("relayWorker", "address", False),
        ("relayRequestSigHash", "bytes32", False),
        ("relayedCallReturnValue", "bytes", False),
    ),
)
TRANSACTION_RELAYED_BUT_REVERTED = EventSpec(
    "TransactionRelayedButRevertedByRecipient",
    (
        ("relayManager", "address", True),
        ("relayWorker", "address", False),
        ("relayRequestSigHash", "bytes32", False),
        ("reason", "bytes", False),
    ),
)
DEPLOYED = EventSpec("Deployed", (("addr", "address", True), ("salt", "uint256", False)))

HUB_REGISTRATION_EVENTS = (RELAY_SERVER_REGISTERED, RELAY_WORKERS_ADDED)
RELAY_OUTCOME_EVENTS = (TRANSACTION_RELAYED_BUT_REVERTED, TRANSACTION_RELAYED, DEPLOYED)

_EVENTS_BY_TOPIC = {
    spec.topic: spec for spec in (*HUB_REGISTRATION_EVENTS, *RELAY_OUTCOME_EVENTS)
}


@dataclass(frozen=True)
class DecodedLog:
    name: str
    args: dict[str, Any]
    address: str | None = None


def decode_log(log: Mapping[str, Any]) -> DecodedLog | None:
    """Decode a known enveloping event, or ``None`` for anything else."""

    raw_topics = log.get("topics") or []
    if not raw_topics:
        return None

    topics = [bytes(HexBytes(topic)) for topic in raw_topics]
    spec = _EVENTS_BY_TOPIC.get(topics[0])
    if spec is None:
        return None

    data = bytes(HexBytes(log.get("data") or b""))
    try:
        args = spec.decode(topics, data)
    except Exception as exc:
        logger.debug("Unable to decode %s log: %s", spec.name, exc)
        return None
    return DecodedLog(name=spec.name, args=args, address=log.get("address"))


ERROR_STRING_SELECTOR = bytes.fromhex("08c379a0")


def decode_revert_reason(reason: bytes | str | None) -> str | None:
    """Turn an ``Error(string)`` payload into text; other payloads stay hex."""

    if reason is None:
        return None
    raw = bytes(HexBytes(reason))
    if raw.startswith(ERROR_STRING_SELECTOR):
        try:
            (message,) = abi_decode(["string"], raw[4:])
            return message
        except Exception:
            logger.debug("Revert payload is not a valid Error(string)")
    if not raw:
        return ""
    return HexBytes(raw).to_0x_hex()
