"""Enveloping relay client - meta-transactions through RIF relay servers.

This library builds and signs enveloping requests, picks a ready relay
server, submits the request and verifies the transaction the relay
signed before trusting it.
"""

from .base import EnvelopingClientBase
from .events import EnvelopingEvent, EnvelopingEventEmitter
from .exceptions import (
    ConfigurationError,
    DataTampered,
    EnvelopingError,
    GasEstimationError,
    InvalidKeypair,
    MissingSmartWalletAddress,
    NetworkError,
    NoRecipient,
    NoRelayAvailable,
    NonceExceeded,
    NoSigner,
    RelayResponseError,
    RelayRevertedError,
    SignatureMismatch,
    SigningError,
    UnsupportedForDeploy,
    ValidationError,
    WrongRecipient,
    WrongWorker,
)
from .relay import EnvelopingConfig, RelayClient
from .typed_data import build_typed_data, get_domain
from .types import (
    DeployRequestBody,
    EnvelopingMetadata,
    EnvelopingRequest,
    EnvelopingTxRequest,
    HubInfo,
    RelayData,
    RelayedTransaction,
    RelayEstimation,
    RelayFailureInfo,
    RelayInfo,
    RelayingResult,
    RelayManagerData,
    RelayOutcome,
    RelayRequestBody,
    RelayStatus,
    RequestConfig,
    RequestKind,
    UserDefinedEnvelopingRequest,
)

__version__ = "0.1.0"

__all__ = [
    # Clients and configuration
    "EnvelopingClientBase",
    "RelayClient",
    "EnvelopingConfig",
    "EnvelopingEvent",
    "EnvelopingEventEmitter",
    # Types and enums
    "RequestKind",
    "RelayOutcome",
    "RelayData",
    "RelayRequestBody",
    "DeployRequestBody",
    "EnvelopingRequest",
    "EnvelopingMetadata",
    "EnvelopingTxRequest",
    "UserDefinedEnvelopingRequest",
    "RequestConfig",
    "HubInfo",
    "RelayManagerData",
    "RelayFailureInfo",
    "RelayInfo",
    "RelayedTransaction",
    "RelayEstimation",
    "RelayStatus",
    "RelayingResult",
    # Typed data
    "build_typed_data",
    "get_domain",
    # Exceptions
    "EnvelopingError",
    "ConfigurationError",
    "NetworkError",
    "ValidationError",
    "SigningError",
    "InvalidKeypair",
    "SignatureMismatch",
    "GasEstimationError",
    "UnsupportedForDeploy",
    "MissingSmartWalletAddress",
    "NoRelayAvailable",
    "RelayResponseError",
    "NoRecipient",
    "NoSigner",
    "NonceExceeded",
    "WrongRecipient",
    "DataTampered",
    "WrongWorker",
    "RelayRevertedError",
]
