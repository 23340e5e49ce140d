"""Protocol constants for the enveloping relay client."""

from decimal import Decimal
from enum import Enum

ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"

# EIP-712 domain used by the smart wallet forwarders
DOMAIN_NAME = "RSK Enveloping Transaction"
DOMAIN_VERSION = "2"

# Linear fit of relayCall cost against the destination call gas
# y = a0 + a1 * x
SUBSIDIZED_FIT_SLOPE = Decimal("1.067")
SUBSIDIZED_FIT_INTERCEPT = Decimal("85090.977")
TOKEN_PAYMENT_FIT_SLOPE = Decimal("1.1114")
TOKEN_PAYMENT_FIT_INTERCEPT = Decimal("72530.9611")

ESTIMATED_GAS_CORRECTION_FACTOR = Decimal(1)

# An internal call skips the 21000 intrinsic cost and part of the calldata cost
INTERNAL_TRANSACTION_ESTIMATED_CORRECTION = 18500
INTERNAL_TRANSACTION_NO_DATA_CORRECTION = 10500

DEFAULT_SCORE_BASE = 0.9


class RelayPath(str, Enum):
    """Relay server HTTP endpoints."""

    CHAIN_INFO = "/chain-info"
    RELAY = "/relay"
    ESTIMATE = "/estimate"
