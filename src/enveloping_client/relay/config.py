"""Configuration containers for the enveloping relay client."""

from __future__ import annotations

import os
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field, replace
from typing import Any

from web3 import Web3

from ..constants import ZERO_ADDRESS
from ..exceptions import ConfigurationError
from ..types import RelayManagerData

DEFAULT_REQUEST_TIMEOUT = 10.0
DEFAULT_RECEIPT_TIMEOUT = 120.0
DEFAULT_GAS_PRICE_FACTOR_PERCENT = 0
DEFAULT_MIN_GAS_PRICE = 60_000_000  # 0.06 GWei
DEFAULT_MAX_RELAY_NONCE_GAP = 3
DEFAULT_SLICE_SIZE = 3
DEFAULT_RELAY_TIMEOUT_GRACE_SEC = 1800
DEFAULT_LOOKUP_WINDOW_BLOCKS = 60000
DEFAULT_LOOKUP_WINDOW_PARTS = 1
DEFAULT_REQUEST_VALID_SECONDS = 172800

ENV_PREFIX = "ENVELOPING_"

_ADDRESS_FIELDS = (
    "relay_hub_address",
    "relay_verifier_address",
    "deploy_verifier_address",
    "smart_wallet_factory_address",
    "forwarder_address",
)


@dataclass(frozen=True)
class EnvelopingConfig:
    """Aggregated configuration passed to every relay client component."""

    chain_id: int
    rpc_url: str
    relay_hub_address: str
    relay_verifier_address: str
    deploy_verifier_address: str
    smart_wallet_factory_address: str
    preferred_relays: tuple[RelayManagerData, ...] = field(default_factory=tuple)
    forwarder_address: str = ZERO_ADDRESS
    only_preferred_relays: bool = False
    relay_lookup_window_parts: int = DEFAULT_LOOKUP_WINDOW_PARTS
    relay_lookup_window_blocks: int = DEFAULT_LOOKUP_WINDOW_BLOCKS
    gas_price_factor_percent: float = DEFAULT_GAS_PRICE_FACTOR_PERCENT
    min_gas_price: int = DEFAULT_MIN_GAS_PRICE
    max_relay_nonce_gap: int = DEFAULT_MAX_RELAY_NONCE_GAP
    slice_size: int = DEFAULT_SLICE_SIZE
    relay_timeout_grace: float = DEFAULT_RELAY_TIMEOUT_GRACE_SEC
    request_valid_seconds: int = DEFAULT_REQUEST_VALID_SECONDS
    request_timeout: float = DEFAULT_REQUEST_TIMEOUT
    receipt_timeout: float = DEFAULT_RECEIPT_TIMEOUT

    def with_defaults(self) -> EnvelopingConfig:
        """Return a copy with checksummed addresses and normalised relay entries."""

        addresses: dict[str, str] = {}
        for name in _ADDRESS_FIELDS:
            value = getattr(self, name)
            if not value:
                addresses[name] = ZERO_ADDRESS
                continue
            try:
                addresses[name] = Web3.to_checksum_address(value)
            except (TypeError, ValueError) as exc:
                raise ConfigurationError(
                    f"Invalid address configured for {name}", field=name, value=value
                ) from exc

        relays = tuple(RelayManagerData.from_value(entry) for entry in self.preferred_relays)

        if self.slice_size < 1:
            raise ConfigurationError(
                "slice_size must be positive", field="slice_size", value=self.slice_size
            )
        if self.relay_lookup_window_parts < 1:
            raise ConfigurationError(
                "relay_lookup_window_parts must be positive",
                field="relay_lookup_window_parts",
                value=self.relay_lookup_window_parts,
            )

        return replace(
            self,
            rpc_url=self.rpc_url.rstrip("/"),
            preferred_relays=relays,
            **addresses,
        )

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> EnvelopingConfig:
        """Build a config from a plain mapping using the dataclass field names."""

        known = {name for name in cls.__dataclass_fields__}
        unknown = set(data) - known
        if unknown:
            raise ConfigurationError(
                f"Unknown configuration keys: {', '.join(sorted(unknown))}",
                field="config",
                value=sorted(unknown),
            )

        values = dict(data)
        relays = values.get("preferred_relays") or ()
        if isinstance(relays, str):
            relays = [relays]
        values["preferred_relays"] = tuple(
            RelayManagerData.from_value(entry) for entry in _as_sequence(relays)
        )

        try:
            return cls(**values).with_defaults()
        except TypeError as exc:
            raise ConfigurationError(
                "Incomplete enveloping configuration", field="config", details={"error": str(exc)}
            ) from exc

    @classmethod
    def from_env(
        cls, environ: Mapping[str, str] | None = None, prefix: str = ENV_PREFIX
    ) -> EnvelopingConfig:
        """Read ``ENVELOPING_*`` variables; relay URLs are comma separated."""

        env = os.environ if environ is None else environ

        def required(name: str) -> str:
            value = env.get(prefix + name)
            if not value:
                raise ConfigurationError(
                    f"{prefix + name} not found in environment variables", field=name.lower()
                )
            return value

        values: dict[str, Any] = {
            "chain_id": int(required("CHAIN_ID")),
            "rpc_url": required("RPC_URL"),
            "relay_hub_address": required("RELAY_HUB_ADDRESS"),
            "relay_verifier_address": required("RELAY_VERIFIER_ADDRESS"),
            "deploy_verifier_address": required("DEPLOY_VERIFIER_ADDRESS"),
            "smart_wallet_factory_address": required("SMART_WALLET_FACTORY_ADDRESS"),
            "preferred_relays": [
                url.strip() for url in required("PREFERRED_RELAYS").split(",") if url.strip()
            ],
        }

        optional: dict[str, type] = {
            "forwarder_address": str,
            "relay_lookup_window_parts": int,
            "relay_lookup_window_blocks": int,
            "gas_price_factor_percent": float,
            "min_gas_price": int,
            "max_relay_nonce_gap": int,
            "slice_size": int,
            "relay_timeout_grace": float,
            "request_valid_seconds": int,
            "request_timeout": float,
            "receipt_timeout": float,
        }
        for name, caster in optional.items():
            raw = env.get(prefix + name.upper())
            if raw:
                try:
                    values[name] = caster(raw)
                except ValueError as exc:
                    raise ConfigurationError(
                        f"Invalid value for {prefix + name.upper()}", field=name, value=raw
                    ) from exc

        only_preferred = env.get(prefix + "ONLY_PREFERRED_RELAYS")
        if only_preferred:
            values["only_preferred_relays"] = only_preferred.lower() in ("1", "true", "yes")

        return cls.from_mapping(values)


def _as_sequence(value: Any) -> Sequence[Any]:
    if isinstance(value, list | tuple):
        return value
    return [value]
