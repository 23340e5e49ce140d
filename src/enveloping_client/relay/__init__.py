"""Relay pipeline components: selection, signing, gas, submission and checks."""

from .accounts import AccountManager
from .client import RelayClient
from .config import EnvelopingConfig
from .connections import ChainConnections
from .gas import (
    GasEstimator,
    apply_gas_correction_factor,
    apply_internal_estimation_correction,
    estimate_max_possible_with_linear_fit,
)
from .http import RelayHttpClient
from .known_relays import KnownRelaysManager, default_relay_score, split_range
from .receipts import classify_receipt
from .selection import RelaySelectionManager
from .transactions import TransactionDispatcher, parse_signed_transaction
from .validator import RelayedTransactionValidator

__all__ = [
    "AccountManager",
    "ChainConnections",
    "EnvelopingConfig",
    "GasEstimator",
    "KnownRelaysManager",
    "RelayClient",
    "RelayHttpClient",
    "RelaySelectionManager",
    "RelayedTransactionValidator",
    "TransactionDispatcher",
    "apply_gas_correction_factor",
    "apply_internal_estimation_correction",
    "classify_receipt",
    "default_relay_score",
    "estimate_max_possible_with_linear_fit",
    "parse_signed_transaction",
    "split_range",
]
