"""Checks applied to the transaction a relay signed for us."""

from __future__ import annotations

import logging

from .. import abi
from ..exceptions import (
    DataTampered,
    NoRecipient,
    NonceExceeded,
    NoSigner,
    WrongRecipient,
    WrongWorker,
)
from ..types import EnvelopingTxRequest, RelayedTransaction
from ..utils import same_address, to_bytes
from .config import EnvelopingConfig

logger = logging.getLogger(__name__)


class RelayedTransactionValidator:
    """Reject relay-signed transactions that do not carry exactly our request."""

    def __init__(self, config: EnvelopingConfig):
        self._config = config

    def validate(
        self,
        tx_request: EnvelopingTxRequest,
        transaction: RelayedTransaction,
        relay_worker: str,
    ) -> None:
        """Raise the first failing check; returning means the relay behaved."""

        if not transaction.to:
            raise NoRecipient()
        if not transaction.from_address:
            raise NoSigner()

        relay_max_nonce = tx_request.metadata.relay_max_nonce
        if transaction.nonce > relay_max_nonce:
            raise NonceExceeded(relay_max_nonce, transaction.nonce)

        if not same_address(transaction.to, self._config.relay_hub_address):
            raise WrongRecipient(self._config.relay_hub_address, transaction.to)

        expected = abi.encode_hub_call(tx_request.relay_request, tx_request.metadata.signature)
        if to_bytes(transaction.data) != expected:
            raise DataTampered()

        if not same_address(transaction.from_address, relay_worker):
            raise WrongWorker(relay_worker, transaction.from_address)

        logger.debug("Relayed transaction %s passed validation", transaction.hash)
