"""EIP-712 domain, type schema and message construction for enveloping requests."""

from __future__ import annotations

from typing import Any

from eth_abi import encode as abi_encode
from web3 import Web3

from .constants import DOMAIN_NAME, DOMAIN_VERSION
from .types import EnvelopingRequest

EIP712_DOMAIN_TYPE = [
    {"name": "name", "type": "string"},
    {"name": "version", "type": "string"},
    {"name": "chainId", "type": "uint256"},
    {"name": "verifyingContract", "type": "address"},
]

RELAY_DATA_TYPE = [
    {"name": "gasPrice", "type": "uint256"},
    {"name": "feesReceiver", "type": "address"},
    {"name": "callForwarder", "type": "address"},
    {"name": "callVerifier", "type": "address"},
]

RELAY_REQUEST_TYPE = [
    {"name": "relayHub", "type": "address"},
    {"name": "from", "type": "address"},
    {"name": "to", "type": "address"},
    {"name": "tokenContract", "type": "address"},
    {"name": "value", "type": "uint256"},
    {"name": "gas", "type": "uint256"},
    {"name": "nonce", "type": "uint256"},
    {"name": "tokenAmount", "type": "uint256"},
    {"name": "tokenGas", "type": "uint256"},
    {"name": "validUntilTime", "type": "uint256"},
    {"name": "data", "type": "bytes"},
    {"name": "relayData", "type": "RelayData"},
]

DEPLOY_REQUEST_TYPE = [
    {"name": "relayHub", "type": "address"},
    {"name": "from", "type": "address"},
    {"name": "to", "type": "address"},
    {"name": "tokenContract", "type": "address"},
    {"name": "recoverer", "type": "address"},
    {"name": "value", "type": "uint256"},
    {"name": "nonce", "type": "uint256"},
    {"name": "tokenAmount", "type": "uint256"},
    {"name": "tokenGas", "type": "uint256"},
    {"name": "validUntilTime", "type": "uint256"},
    {"name": "index", "type": "uint256"},
    {"name": "data", "type": "bytes"},
    {"name": "relayData", "type": "RelayData"},
]

PRIMARY_TYPE = "RelayRequest"


def get_domain(verifying_contract: str, chain_id: int) -> dict[str, Any]:
    return {
        "name": DOMAIN_NAME,
        "version": DOMAIN_VERSION,
        "chainId": chain_id,
        "verifyingContract": verifying_contract,
    }


def get_request_types(request: EnvelopingRequest) -> dict[str, list[dict[str, str]]]:
    return {
        "EIP712Domain": EIP712_DOMAIN_TYPE,
        PRIMARY_TYPE: DEPLOY_REQUEST_TYPE if request.is_deploy else RELAY_REQUEST_TYPE,
        "RelayData": RELAY_DATA_TYPE,
    }


def build_typed_data(request: EnvelopingRequest, chain_id: int) -> dict[str, Any]:
    """Return the full EIP-712 payload signed for ``request``.

    The forwarder named in ``relayData.callForwarder`` is the verifying
    contract, so the same request signed for another forwarder yields a
    different digest.
    """

    return {
        "types": get_request_types(request),
        "primaryType": PRIMARY_TYPE,
        "domain": get_domain(request.relay_data.call_forwarder, chain_id),
        "message": request.to_message(),
    }


def get_domain_separator_hash(verifying_contract: str, chain_id: int) -> str:
    """Hash of the EIP-712 domain as registered on the forwarder."""

    type_hash = Web3.keccak(
        text="EIP712Domain(string name,string version,uint256 chainId,address verifyingContract)"
    )
    encoded = abi_encode(
        ["bytes32", "bytes32", "bytes32", "uint256", "address"],
        [
            type_hash,
            Web3.keccak(text=DOMAIN_NAME),
            Web3.keccak(text=DOMAIN_VERSION),
            chain_id,
            verifying_contract,
        ],
    )
    return Web3.keccak(encoded).to_0x_hex()
