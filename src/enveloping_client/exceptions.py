"""Exception hierarchy for the enveloping relay client."""

from typing import Any


class EnvelopingError(Exception):
    """Base exception for all enveloping client errors."""

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


class ConfigurationError(EnvelopingError):
    """Raised when a request or the client configuration is incomplete."""

    def __init__(
        self,
        message: str,
        field: str | None = None,
        value: Any | None = None,
        details: dict | None = None,
    ):
        super().__init__(message, details)
        self.field = field
        self.value = value


class NetworkError(EnvelopingError):
    """Raised when an RPC or relay server call fails."""

    def __init__(
        self,
        message: str,
        endpoint: str | None = None,
        status_code: int | None = None,
        details: dict | None = None,
    ):
        super().__init__(message, details)
        self.endpoint = endpoint
        self.status_code = status_code


class ValidationError(EnvelopingError):
    """Raised when received or decoded data is malformed."""

    def __init__(
        self,
        message: str,
        field: str | None = None,
        value: Any | None = None,
        details: dict | None = None,
    ):
        super().__init__(message, details)
        self.field = field
        self.value = value


class SigningError(EnvelopingError):
    """Raised when a request cannot be signed for an address."""

    def __init__(self, message: str, address: str | None = None, details: dict | None = None):
        super().__init__(message, details)
        self.address = address


class InvalidKeypair(SigningError):
    """Raised when a private key does not derive the declared address."""


class SignatureMismatch(SigningError):
    """Raised when the recovered signer differs from the request sender."""

    def __init__(self, sender: str, recovered: str):
        super().__init__(
            "Internal RelayClient exception: signature is not correct: "
            f"sender={sender}, recovered={recovered}",
            address=sender,
            details={"recovered": recovered},
        )
        self.sender = sender
        self.recovered = recovered


class GasEstimationError(EnvelopingError):
    """Raised when a gas estimation strategy cannot be applied."""


class UnsupportedForDeploy(GasEstimationError):
    """Raised when linear-fit estimation is requested for a deploy request."""

    def __init__(self) -> None:
        super().__init__("LinearFit estimation not implemented for deployments")


class MissingSmartWalletAddress(GasEstimationError):
    """Raised when a deploy token estimation lacks the pre-computed wallet address."""

    def __init__(self) -> None:
        super().__init__(
            "Missing smart wallet address in requestConfig. Should be calculated "
            "before estimating the gas cost for a deploy transaction"
        )


class NoRelayAvailable(EnvelopingError):
    """Raised when no relay server accepted or could serve the request."""

    def __init__(self, message: str = "No relay available", errors: dict | None = None):
        super().__init__(message, details={"errors": errors or {}})
        self.errors = errors or {}


class RelayResponseError(EnvelopingError):
    """Base class for rejected relay-signed transactions."""


class NoRecipient(RelayResponseError):
    def __init__(self) -> None:
        super().__init__("Transaction has no recipient address")


class NoSigner(RelayResponseError):
    def __init__(self) -> None:
        super().__init__("Transaction has no signer")


class NonceExceeded(RelayResponseError):
    def __init__(self, relay_max_nonce: int, nonce: int):
        super().__init__(
            "Relay used a tx nonce higher than requested. "
            f"Requested {relay_max_nonce} got {nonce}",
            details={"relay_max_nonce": relay_max_nonce, "nonce": nonce},
        )
        self.relay_max_nonce = relay_max_nonce
        self.nonce = nonce


class WrongRecipient(RelayResponseError):
    def __init__(self, expected: str, actual: str):
        super().__init__(
            "Transaction recipient must be the RelayHubAddress",
            details={"expected": expected, "actual": actual},
        )


class DataTampered(RelayResponseError):
    def __init__(self) -> None:
        super().__init__("Relay request Encoded data must be the same as Transaction data")


class WrongWorker(RelayResponseError):
    def __init__(self, expected: str, actual: str):
        super().__init__(
            "Transaction sender address must be the same as configured relayWorker address",
            details={"expected": expected, "actual": actual},
        )


class RelayRevertedError(EnvelopingError):
    """Raised when a relayed transaction was reverted by its destination."""

    def __init__(self, transaction_hash: str, reason: str | None):
        super().__init__(
            "Transaction Relayed but reverted on recipient - "
            f"TxHash: {transaction_hash} , Reason: {reason}",
            details={"transaction_hash": transaction_hash, "reason": reason},
        )
        self.transaction_hash = transaction_hash
        self.reason = reason
