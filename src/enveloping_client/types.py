"""Type definitions and data models for the enveloping relay client."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, fields, replace
from enum import Enum
from typing import Any

from .constants import ZERO_ADDRESS
from .exceptions import ValidationError
from .utils import to_bytes, to_hex_data, to_int


class RequestKind(str, Enum):
    """Enveloping request variants."""

    RELAY = "relay"
    DEPLOY = "deploy"


class RelayOutcome(str, Enum):
    """On-chain outcome decoded from a relayed transaction receipt."""

    NO_LOGS = "no_logs"
    RELAYED = "relayed"
    DEPLOYED = "deployed"
    REVERTED_BY_RECIPIENT = "reverted_by_recipient"
    UNRECOGNIZED = "unrecognized"


RELAY_ONLY_KEYS = ("gas",)
DEPLOY_ONLY_KEYS = ("index", "recoverer")

# python attribute -> wire key
_WIRE_KEYS = {
    "relay_hub": "relayHub",
    "from_address": "from",
    "to": "to",
    "token_contract": "tokenContract",
    "recoverer": "recoverer",
    "value": "value",
    "gas": "gas",
    "nonce": "nonce",
    "token_amount": "tokenAmount",
    "token_gas": "tokenGas",
    "valid_until_time": "validUntilTime",
    "index": "index",
    "data": "data",
}

_QUANTITY_FIELDS = frozenset(
    {"value", "gas", "nonce", "token_amount", "token_gas", "valid_until_time", "index"}
)


def _body_values(body: Any) -> list[tuple[str, Any]]:
    return [(item.name, getattr(body, item.name)) for item in fields(body)]


def _body_to_message(body: Any) -> dict[str, Any]:
    return {_WIRE_KEYS[name]: value for name, value in _body_values(body)}


def _body_to_wire(body: Any) -> dict[str, Any]:
    return {
        _WIRE_KEYS[name]: str(value) if name in _QUANTITY_FIELDS else value
        for name, value in _body_values(body)
    }


def _body_as_tuple(body: Any) -> tuple[Any, ...]:
    return tuple(to_bytes(value) if name == "data" else value for name, value in _body_values(body))


def _body_from_wire(cls: type, data: Mapping[str, Any]) -> Any:
    kwargs: dict[str, Any] = {}
    for item in fields(cls):
        key = _WIRE_KEYS[item.name]
        if key not in data:
            raise ValidationError(f"Field `{key}` is missing in request body", field=key)
        raw = data[key]
        if item.name in _QUANTITY_FIELDS:
            kwargs[item.name] = to_int(raw, field=key)
        elif item.name == "data":
            kwargs[item.name] = to_hex_data(raw)
        else:
            kwargs[item.name] = raw
    return cls(**kwargs)


@dataclass(frozen=True)
class RelayData:
    """Relay economics block shared by relay and deploy requests."""

    gas_price: int
    fees_receiver: str
    call_forwarder: str
    call_verifier: str

    def to_message(self) -> dict[str, Any]:
        return {
            "gasPrice": self.gas_price,
            "feesReceiver": self.fees_receiver,
            "callForwarder": self.call_forwarder,
            "callVerifier": self.call_verifier,
        }

    def to_wire(self) -> dict[str, Any]:
        return {**self.to_message(), "gasPrice": str(self.gas_price)}

    def as_tuple(self) -> tuple[int, str, str, str]:
        return (self.gas_price, self.fees_receiver, self.call_forwarder, self.call_verifier)

    @classmethod
    def from_wire(cls, data: Mapping[str, Any]) -> RelayData:
        try:
            return cls(
                gas_price=to_int(data["gasPrice"], field="gasPrice"),
                fees_receiver=data["feesReceiver"],
                call_forwarder=data["callForwarder"],
                call_verifier=data["callVerifier"],
            )
        except KeyError as exc:
            raise ValidationError(
                f"Field `{exc.args[0]}` is missing in relay data", field=str(exc.args[0])
            ) from exc


@dataclass(frozen=True)
class RelayRequestBody:
    """Request body of a relayed call, in RelayHub struct order."""

    relay_hub: str
    from_address: str
    to: str
    token_contract: str
    value: int
    gas: int
    nonce: int
    token_amount: int
    token_gas: int
    valid_until_time: int
    data: str


@dataclass(frozen=True)
class DeployRequestBody:
    """Request body of a smart wallet deployment, in RelayHub struct order."""

    relay_hub: str
    from_address: str
    to: str
    token_contract: str
    recoverer: str
    value: int
    nonce: int
    token_amount: int
    token_gas: int
    valid_until_time: int
    index: int
    data: str


@dataclass(frozen=True)
class EnvelopingRequest:
    """A complete relay or deploy request; the body class is the variant tag."""

    request: RelayRequestBody | DeployRequestBody
    relay_data: RelayData

    @property
    def kind(self) -> RequestKind:
        if isinstance(self.request, DeployRequestBody):
            return RequestKind.DEPLOY
        return RequestKind.RELAY

    @property
    def is_deploy(self) -> bool:
        return self.kind is RequestKind.DEPLOY

    def to_message(self) -> dict[str, Any]:
        """Return the EIP-712 message value."""

        return {**_body_to_message(self.request), "relayData": self.relay_data.to_message()}

    def to_wire(self) -> dict[str, Any]:
        return {"request": _body_to_wire(self.request), "relayData": self.relay_data.to_wire()}

    def as_abi_args(self) -> tuple[tuple[Any, ...], tuple[int, str, str, str]]:
        return _body_as_tuple(self.request), self.relay_data.as_tuple()

    def with_request(self, **changes: Any) -> EnvelopingRequest:
        return EnvelopingRequest(request=replace(self.request, **changes), relay_data=self.relay_data)

    def with_relay_data(self, **changes: Any) -> EnvelopingRequest:
        return EnvelopingRequest(request=self.request, relay_data=replace(self.relay_data, **changes))

    def with_fees_receiver(self, fees_receiver: str) -> EnvelopingRequest:
        return self.with_relay_data(fees_receiver=fees_receiver)

    def with_token_gas(self, token_gas: int) -> EnvelopingRequest:
        return self.with_request(token_gas=token_gas)

    @classmethod
    def from_wire(cls, data: Mapping[str, Any], kind: RequestKind | None = None) -> EnvelopingRequest:
        """Parse the wire shape; without ``kind`` the variant is probed structurally."""

        body = data.get("request")
        relay_data = data.get("relayData")
        if not isinstance(body, Mapping) or not isinstance(relay_data, Mapping):
            raise ValidationError("Enveloping request needs `request` and `relayData` objects")

        if kind is None:
            kind = probe_request_kind(body)

        body_cls = DeployRequestBody if kind is RequestKind.DEPLOY else RelayRequestBody
        return cls(request=_body_from_wire(body_cls, body), relay_data=RelayData.from_wire(relay_data))


def probe_request_kind(body: Mapping[str, Any]) -> RequestKind:
    """Structural discrimination used only for untagged wire payloads."""

    if all(key in body for key in DEPLOY_ONLY_KEYS):
        return RequestKind.DEPLOY
    return RequestKind.RELAY


@dataclass(frozen=True)
class EnvelopingMetadata:
    signature: str
    relay_hub_address: str
    relay_max_nonce: int

    def to_wire(self) -> dict[str, Any]:
        return {
            "signature": self.signature,
            "relayHubAddress": self.relay_hub_address,
            "relayMaxNonce": self.relay_max_nonce,
        }


@dataclass(frozen=True)
class EnvelopingTxRequest:
    """Payload posted to a relay server."""

    relay_request: EnvelopingRequest
    metadata: EnvelopingMetadata

    def to_wire(self) -> dict[str, Any]:
        return {"relayRequest": self.relay_request.to_wire(), "metadata": self.metadata.to_wire()}

    @classmethod
    def from_wire(cls, data: Mapping[str, Any], kind: RequestKind | None = None) -> EnvelopingTxRequest:
        metadata = data.get("metadata") or {}
        return cls(
            relay_request=EnvelopingRequest.from_wire(data.get("relayRequest") or {}, kind),
            metadata=EnvelopingMetadata(
                signature=metadata.get("signature", "0x"),
                relay_hub_address=metadata.get("relayHubAddress", ZERO_ADDRESS),
                relay_max_nonce=to_int(metadata.get("relayMaxNonce", 0), field="relayMaxNonce"),
            ),
        )


@dataclass
class UserDefinedEnvelopingRequest:
    """Caller input; anything left as ``None`` is resolved by the client."""

    kind: RequestKind = RequestKind.RELAY
    from_address: str | None = None
    to: str | None = None
    data: str | None = None
    token_contract: str | None = None
    value: int | None = None
    token_amount: int | None = None
    token_gas: int | None = None
    nonce: int | None = None
    relay_hub: str | None = None
    valid_until_time: int | None = None
    gas: int | None = None
    index: int | None = None
    recoverer: str | None = None
    call_forwarder: str | None = None
    call_verifier: str | None = None
    gas_price: int | None = None

    @property
    def is_deploy(self) -> bool:
        return self.kind is RequestKind.DEPLOY

    @classmethod
    def from_mapping(
        cls, data: Mapping[str, Any], kind: RequestKind | None = None
    ) -> UserDefinedEnvelopingRequest:
        """Build from the nested ``{request, relayData}`` shape."""

        body = data.get("request") or {}
        relay_data = data.get("relayData") or {}
        if kind is None:
            kind = probe_request_kind(body)

        def quantity(key: str) -> int | None:
            raw = body.get(key)
            return None if raw is None else to_int(raw, field=key)

        gas_price = relay_data.get("gasPrice")
        return cls(
            kind=kind,
            from_address=body.get("from"),
            to=body.get("to"),
            data=body.get("data"),
            token_contract=body.get("tokenContract"),
            value=quantity("value"),
            token_amount=quantity("tokenAmount"),
            token_gas=quantity("tokenGas"),
            nonce=quantity("nonce"),
            relay_hub=body.get("relayHub"),
            valid_until_time=quantity("validUntilTime"),
            gas=quantity("gas"),
            index=quantity("index"),
            recoverer=body.get("recoverer"),
            call_forwarder=relay_data.get("callForwarder"),
            call_verifier=relay_data.get("callVerifier"),
            gas_price=None if gas_price is None else to_int(gas_price, field="gasPrice"),
        )


@dataclass(frozen=True)
class RequestConfig:
    """Per-call overrides for the relay pipeline."""

    force_gas_price: int | None = None
    force_gas_limit: int | None = None
    force_token_gas_limit: int | None = None
    use_enveloping: bool = True
    only_preferred_relays: bool | None = None
    ignore_transaction_receipt: bool = False
    receipt_timeout: float | None = None
    initial_backoff: float = 1.0
    internal_estimation_correction: int | None = None
    estimated_gas_correction_factor: int | float | str | None = None
    pre_deploy_sw_address: str | None = None


@dataclass(frozen=True)
class HubInfo:
    """Relay server self-reported state from ``/chain-info``."""

    relay_worker_address: str
    relay_manager_address: str
    relay_hub_address: str
    fees_receiver: str
    min_gas_price: int
    ready: bool
    version: str
    network_id: str | None = None
    chain_id: str | None = None

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> HubInfo:
        if not isinstance(data, Mapping):
            raise ValidationError("Relay responded without a body", field="hubInfo", value=data)

        ready = data.get("ready", False)
        if isinstance(ready, str):
            ready = ready.lower() == "true"

        return cls(
            relay_worker_address=str(data.get("relayWorkerAddress") or ""),
            relay_manager_address=str(data.get("relayManagerAddress") or ""),
            relay_hub_address=str(data.get("relayHubAddress") or ""),
            fees_receiver=str(data.get("feesReceiver") or ""),
            min_gas_price=to_int(data.get("minGasPrice") or 0, field="minGasPrice"),
            ready=bool(ready),
            version=str(data.get("version") or ""),
            network_id=None if data.get("networkId") is None else str(data["networkId"]),
            chain_id=None if data.get("chainId") is None else str(data["chainId"]),
        )


@dataclass(frozen=True)
class RelayManagerData:
    """Relay registry entry."""

    url: str
    manager: str = ""
    currently_staked: bool = False
    registered: bool = False

    @classmethod
    def from_value(cls, value: str | Mapping[str, Any] | RelayManagerData) -> RelayManagerData:
        if isinstance(value, RelayManagerData):
            return value
        if isinstance(value, str):
            return cls(url=value.rstrip("/"))
        if isinstance(value, Mapping) and value.get("url"):
            return cls(
                url=str(value["url"]).rstrip("/"),
                manager=str(value.get("manager") or ""),
                currently_staked=bool(value.get("currentlyStaked", False)),
                registered=bool(value.get("registered", False)),
            )
        raise ValidationError("Relay entry needs a url", field="preferred_relays", value=value)


@dataclass(frozen=True)
class RelayFailureInfo:
    last_error_time: float
    relay_manager: str
    relay_url: str


@dataclass(frozen=True)
class RelayInfo:
    """A relay selected for a request."""

    hub_info: HubInfo
    manager_data: RelayManagerData


@dataclass(frozen=True)
class RelayedTransaction:
    """Decoded relay-signed transaction."""

    hash: str
    nonce: int
    to: str | None
    from_address: str | None
    data: str
    value: int
    gas: int
    gas_price: int | None
    raw: str
    chain_id: int | None = None


@dataclass(frozen=True)
class RelayEstimation:
    gas_price: str
    estimation: str
    required_token_amount: str
    required_native_amount: str
    exchange_rate: str

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> RelayEstimation:
        return cls(
            gas_price=str(data.get("gasPrice", "")),
            estimation=str(data.get("estimation", "")),
            required_token_amount=str(data.get("requiredTokenAmount", "")),
            required_native_amount=str(data.get("requiredNativeAmount", "")),
            exchange_rate=str(data.get("exchangeRate", "")),
        )


@dataclass(frozen=True)
class RelayStatus:
    """Structured classification of a relayed transaction receipt."""

    outcome: RelayOutcome
    transaction_relayed: bool = False
    relay_reverted_on_recipient: bool = False
    reason: str | None = None


@dataclass
class RelayingResult:
    transaction: RelayedTransaction
    receipt: dict[str, Any] | None = None
    status: RelayStatus | None = None
    relay_url: str | None = None
