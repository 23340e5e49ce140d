"""Local wallets and EIP-712 signing of enveloping requests."""

from __future__ import annotations

import logging
from typing import cast

from eth_account import Account
from eth_account.messages import encode_typed_data
from eth_account.signers.local import LocalAccount

from ..exceptions import (
    ConfigurationError,
    InvalidKeypair,
    SignatureMismatch,
    SigningError,
)
from ..typed_data import build_typed_data
from ..types import EnvelopingRequest
from ..utils import is_zero_address, same_address
from .connections import ChainConnections

logger = logging.getLogger(__name__)


class AccountManager:
    """Hold local keypairs and sign requests, falling back to the RPC signer."""

    def __init__(self, connections: ChainConnections, chain_id: int | None = None):
        self._connections = connections
        self._chain_id = chain_id
        self._accounts: dict[str, LocalAccount] = {}

    @property
    def chain_id(self) -> int:
        if self._chain_id is None:
            self._chain_id = self._connections.chain_id
        return self._chain_id

    def add_account(self, private_key: str, address: str) -> LocalAccount:
        try:
            account = cast(LocalAccount, Account.from_key(private_key))
        except (TypeError, ValueError) as exc:
            raise InvalidKeypair(
                "Invalid private key", address=address, details={"error": str(exc)}
            ) from exc

        if not same_address(account.address, address):
            raise InvalidKeypair(
                "Invalid keypair: private key does not match the address",
                address=address,
                details={"derived": account.address},
            )

        self._accounts[account.address.lower()] = account
        logger.info("Added local account %s", account.address)
        return account

    def get_accounts(self) -> list[str]:
        return [account.address for account in self._accounts.values()]

    def remove_account(self, address: str) -> bool:
        return self._accounts.pop(address.lower(), None) is not None

    def sign(self, request: EnvelopingRequest, signer_key: str | None = None) -> str:
        """Sign ``request`` and check the recovered signer is ``request.from``.

        The signer is the explicit ``signer_key`` when given, otherwise a
        local wallet holding ``from``, otherwise the node through
        ``eth_signTypedData_v4``.
        """

        relay_data = request.relay_data
        if is_zero_address(relay_data.call_forwarder):
            raise ConfigurationError(
                "Invalid callForwarder address", field="callForwarder", value=relay_data.call_forwarder
            )
        if is_zero_address(relay_data.call_verifier):
            raise ConfigurationError(
                "Invalid callVerifier address", field="callVerifier", value=relay_data.call_verifier
            )

        sender = request.request.from_address
        typed_data = build_typed_data(request, self.chain_id)

        try:
            if signer_key is not None:
                signature = self._sign_locally(cast(LocalAccount, Account.from_key(signer_key)), typed_data)
            elif sender.lower() in self._accounts:
                signature = self._sign_locally(self._accounts[sender.lower()], typed_data)
            else:
                logger.debug("No local wallet for %s, delegating to the provider", sender)
                signature = self._connections.sign_typed_data(sender, typed_data)
        except SigningError:
            raise
        except Exception as exc:
            raise SigningError(
                f"Failed to sign relayed transaction for {sender}",
                address=sender,
                details={"error": str(exc)},
            ) from exc

        recovered = recover_signer(typed_data, signature)
        if not same_address(recovered, sender):
            logger.error("Signature check failed: sender=%s recovered=%s", sender, recovered)
            raise SignatureMismatch(sender, recovered)

        logger.info("Request signed for %s", sender)
        return signature

    @staticmethod
    def _sign_locally(account: LocalAccount, typed_data: dict) -> str:
        signed = account.sign_message(encode_typed_data(full_message=typed_data))
        return signed.signature.to_0x_hex()


def recover_signer(typed_data: dict, signature: str) -> str:
    try:
        return Account.recover_message(encode_typed_data(full_message=typed_data), signature=signature)
    except Exception as exc:
        raise SigningError(
            "Unable to recover the request signer",
            details={"signature": signature, "error": str(exc)},
        ) from exc
