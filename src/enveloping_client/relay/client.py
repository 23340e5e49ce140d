"""Enveloping relay client: build, sign, relay and check meta-transactions."""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from decimal import Decimal
from typing import Any, cast

import requests
from web3 import Web3

from .. import abi
from ..base import EnvelopingClientBase
from ..constants import ZERO_ADDRESS
from ..events import EnvelopingEvent, EnvelopingEventEmitter, EventListener
from ..exceptions import (
    ConfigurationError,
    EnvelopingError,
    NetworkError,
    NoRelayAvailable,
    RelayRevertedError,
    ValidationError,
)
from ..types import (
    DeployRequestBody,
    EnvelopingMetadata,
    EnvelopingRequest,
    EnvelopingTxRequest,
    HubInfo,
    RelayData,
    RelayedTransaction,
    RelayEstimation,
    RelayInfo,
    RelayingResult,
    RelayOutcome,
    RelayRequestBody,
    RequestConfig,
    UserDefinedEnvelopingRequest,
)
from ..utils import address_or_zero, is_address, is_zero_address, round_half_up, to_hex_data
from .accounts import AccountManager
from .config import EnvelopingConfig
from .connections import ChainConnections
from .gas import GasEstimator
from .http import RelayHttpClient
from .known_relays import KnownRelaysManager, RelayFilter, ScoreCalculator
from .receipts import classify_receipt
from .selection import PingFilter, RelaySelectionManager
from .transactions import TransactionDispatcher, parse_signed_transaction
from .validator import RelayedTransactionValidator

logger = logging.getLogger(__name__)


class RelayClient(EnvelopingClientBase):
    """Relay enveloping requests through the first ready relay server."""

    def __init__(
        self,
        config: EnvelopingConfig,
        *,
        connections: ChainConnections | None = None,
        session: requests.Session | None = None,
        http_client: RelayHttpClient | None = None,
        known_relays: KnownRelaysManager | None = None,
        account_manager: AccountManager | None = None,
        gas_estimator: GasEstimator | None = None,
        validator: RelayedTransactionValidator | None = None,
        dispatcher: TransactionDispatcher | None = None,
        relay_filter: RelayFilter | None = None,
        score_calculator: ScoreCalculator | None = None,
        ping_filter: PingFilter | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._config = config.with_defaults()
        self._session = session or requests.Session()
        self._connections = connections or ChainConnections(self._config)
        self._http = http_client or RelayHttpClient(
            self._session, request_timeout=self._config.request_timeout
        )
        self._known_relays = known_relays or KnownRelaysManager(
            self._connections, self._config, relay_filter, score_calculator, clock=clock
        )
        self._accounts = account_manager or AccountManager(
            self._connections, self._config.chain_id or None
        )
        self._gas = gas_estimator or GasEstimator(self._connections)
        self._validator = validator or RelayedTransactionValidator(self._config)
        self._dispatcher = dispatcher or TransactionDispatcher(
            self._connections, receipt_timeout=self._config.receipt_timeout
        )
        self._events = EnvelopingEventEmitter()
        self._ping_filter = ping_filter
        self._clock = clock

    # ------------------------------------------------------------------
    # Connection management
    # ------------------------------------------------------------------
    def connect(self) -> None:
        try:
            self._connections.connect()
        except EnvelopingError:
            self.disconnect()
            raise
        self._events.emit(EnvelopingEvent.INIT)

    def disconnect(self) -> None:
        self._connections.disconnect()

    def is_connected(self) -> bool:
        return self._connections.is_connected()

    # ------------------------------------------------------------------
    # Accounts, relays and listeners
    # ------------------------------------------------------------------
    def add_account(self, private_key: str, address: str) -> None:
        self._accounts.add_account(private_key, address)

    def refresh_relays(self) -> None:
        self._events.emit(EnvelopingEvent.REFRESH_RELAYS)
        self._known_relays.refresh()
        self._events.emit(EnvelopingEvent.REFRESHED_RELAYS)

    def register_event_listener(self, listener: EventListener) -> None:
        self._events.register_event_listener(listener)

    def unregister_event_listener(self, listener: EventListener) -> None:
        self._events.unregister_event_listener(listener)

    # ------------------------------------------------------------------
    # Core actions
    # ------------------------------------------------------------------
    def relay_transaction(
        self,
        request: UserDefinedEnvelopingRequest,
        request_config: RequestConfig | None = None,
        signer_key: str | None = None,
    ) -> RelayingResult:
        request_config = request_config or RequestConfig()
        details = self._get_enveloping_request_details(request, request_config)
        logger.debug("Relaying %s request through hub %s", details.kind.value, details.request.relay_hub)

        selection = self._selection_manager(details, request_config)
        failures: dict[str, str] = {}

        relay = self._select_next_relay(selection)
        while relay is not None:
            url = relay.manager_data.url
            tx_request = self._prepare_http_request(relay.hub_info, details, request_config, signer_key)

            if self._verify_enveloping_request(relay.hub_info, tx_request, request_config):
                transaction = self._attempt_relay_transaction(relay, tx_request, failures)
                if transaction is not None:
                    logger.info("Relayed transaction %s through %s", transaction.hash, url)
                    return self._finalize(transaction, url, request_config)
            else:
                failures[url] = "client verification failed"

            relay = self._select_next_relay(selection)

        errors = {url: str(exc) for url, exc in selection.errors.items()}
        errors.update(failures)
        raise NoRelayAvailable("Transaction was not relayed: no relay accepted the request", errors)

    def estimate_transaction(
        self,
        request: UserDefinedEnvelopingRequest,
        request_config: RequestConfig | None = None,
        signer_key: str | None = None,
    ) -> RelayEstimation:
        request_config = request_config or RequestConfig()
        details = self._get_enveloping_request_details(request, request_config)

        selection = self._selection_manager(details, request_config)
        relay = self._select_next_relay(selection)
        if relay is None:
            errors = {url: str(exc) for url, exc in selection.errors.items()}
            raise NoRelayAvailable(errors=errors)

        tx_request = self._prepare_http_request(relay.hub_info, details, request_config, signer_key)
        return self._http.estimate_max_possible_gas(relay.manager_data.url, tx_request)

    def estimate_max_possible_gas(
        self,
        tx_request: EnvelopingTxRequest,
        relay_worker: str,
        request_config: RequestConfig | None = None,
    ) -> int:
        request_config = request_config or RequestConfig()
        return self._gas.estimate_max_possible_gas(
            tx_request,
            relay_worker,
            self._pre_deploy_address(tx_request.relay_request, request_config),
            correction=request_config.internal_estimation_correction,
            factor=request_config.estimated_gas_correction_factor,
        )

    def send_transaction(
        self,
        request: UserDefinedEnvelopingRequest,
        request_config: RequestConfig | None = None,
        signer_key: str | None = None,
    ) -> RelayingResult | dict[str, Any]:
        """Relay ``request``, or send it as a plain transaction when enveloping is off."""

        request_config = request_config or RequestConfig()
        if request_config.use_enveloping:
            return self.relay_transaction(request, request_config, signer_key)

        if not request.from_address:
            raise ConfigurationError("Field `from` is not defined in request body.", field="from")

        transaction = {
            "from": request.from_address,
            "to": request.to,
            "data": request.data,
            "value": request.value,
            "gas": request_config.force_gas_limit or request.gas,
            "gasPrice": request_config.force_gas_price or request.gas_price,
        }
        tx_hash = self._connections.send_transaction(transaction)
        logger.info("Sent plain transaction hash=%s", tx_hash)

        receipt = None
        if not request_config.ignore_transaction_receipt:
            receipt = self._dispatcher.wait_for_receipt(
                tx_hash,
                poll_latency=request_config.initial_backoff,
                timeout=request_config.receipt_timeout,
            )
        return {"tx_hash": tx_hash, "receipt": receipt}

    def get_smart_wallet_address(self, owner: str, index: int, recoverer: str | None = None) -> str:
        return self._connections.smart_wallet_address(
            self._config.smart_wallet_factory_address, owner, address_or_zero(recoverer), index
        )

    def is_smart_wallet_owner(self, smart_wallet: str, owner: str) -> bool:
        owner_hash = Web3.solidity_keccak(["address"], [Web3.to_checksum_address(owner)])
        return self._connections.forwarder_owner(smart_wallet) == bytes(owner_hash)

    # ------------------------------------------------------------------
    # Request assembly
    # ------------------------------------------------------------------
    def _get_enveloping_request_details(
        self, request: UserDefinedEnvelopingRequest, request_config: RequestConfig
    ) -> EnvelopingRequest:
        is_deploy = request.is_deploy

        call_forwarder = request.call_forwarder or (
            self._config.smart_wallet_factory_address if is_deploy else self._config.forwarder_address
        )
        if is_zero_address(call_forwarder):
            raise ConfigurationError(
                "Call forwarder is not defined in request data.", field="callForwarder"
            )

        call_verifier = request.call_verifier or (
            self._config.deploy_verifier_address if is_deploy else self._config.relay_verifier_address
        )
        if is_zero_address(call_verifier):
            raise ConfigurationError(
                "No call verifier present. Check your configuration.", field="callVerifier"
            )

        if not (self._config.preferred_relays or self._known_relays.discovered_relays):
            raise ConfigurationError(
                "Check that your configuration contains at least one preferred relay with url.",
                field="preferred_relays",
            )

        for name, value in (
            ("data", request.data),
            ("from", request.from_address),
            ("to", request.to),
            ("tokenContract", request.token_contract),
        ):
            if value is None or value == "":
                raise ConfigurationError(
                    f"Field `{name}` is not defined in request body.", field=name
                )

        relay_hub = request.relay_hub or self._config.relay_hub_address
        if is_zero_address(relay_hub):
            raise ConfigurationError(
                "No relay hub address has been given or configured", field="relayHub"
            )

        gas_price = request_config.force_gas_price or request.gas_price or self._calculate_gas_price()
        if not gas_price:
            raise ConfigurationError("Could not get gas price for request", field="gasPrice")
        logger.debug("Resolved gas price %s", gas_price)

        from_address = str(request.from_address)
        data = to_hex_data(request.data)

        nonce = request.nonce
        if nonce is None:
            if is_deploy:
                nonce = self._connections.factory_nonce(call_forwarder, from_address)
            else:
                nonce = self._connections.forwarder_nonce(call_forwarder)
        logger.debug("Resolved nonce %s", nonce)

        valid_until_time = request.valid_until_time
        if valid_until_time is None:
            valid_until_time = round(self._clock()) + self._config.request_valid_seconds

        relay_data = RelayData(
            gas_price=int(gas_price),
            fees_receiver=ZERO_ADDRESS,
            call_forwarder=call_forwarder,
            call_verifier=call_verifier,
        )

        if is_deploy:
            deploy_body = DeployRequestBody(
                relay_hub=relay_hub,
                from_address=from_address,
                to=str(request.to),
                token_contract=str(request.token_contract),
                recoverer=address_or_zero(request.recoverer),
                value=request.value or 0,
                nonce=int(nonce),
                token_amount=request.token_amount or 0,
                token_gas=request.token_gas or 0,
                valid_until_time=valid_until_time,
                index=request.index or 0,
                data=data,
            )
            return EnvelopingRequest(request=deploy_body, relay_data=relay_data)

        gas_limit = request_config.force_gas_limit or request.gas
        if gas_limit is None:
            gas_limit = self._gas.estimate_internal_call_gas(
                data,
                call_forwarder,
                str(request.to),
                int(gas_price),
                correction=request_config.internal_estimation_correction,
                factor=request_config.estimated_gas_correction_factor,
            )
        if not gas_limit:
            raise ConfigurationError(
                "Gas limit value (`gas`) is required in a relay request.", field="gas"
            )

        relay_body = RelayRequestBody(
            relay_hub=relay_hub,
            from_address=from_address,
            to=str(request.to),
            token_contract=str(request.token_contract),
            value=request.value or 0,
            gas=int(gas_limit),
            nonce=int(nonce),
            token_amount=request.token_amount or 0,
            token_gas=request.token_gas or 0,
            valid_until_time=valid_until_time,
            data=data,
        )
        return EnvelopingRequest(request=relay_body, relay_data=relay_data)

    def _calculate_gas_price(self) -> int:
        network_gas_price = self._connections.gas_price()
        factor = Decimal(1) + Decimal(str(self._config.gas_price_factor_percent))
        gas_price = round_half_up(Decimal(network_gas_price) * factor)
        return max(gas_price, self._config.min_gas_price)

    def _prepare_http_request(
        self,
        hub_info: HubInfo,
        request: EnvelopingRequest,
        request_config: RequestConfig,
        signer_key: str | None,
    ) -> EnvelopingTxRequest:
        fees_receiver = hub_info.fees_receiver
        if is_zero_address(fees_receiver) or not is_address(fees_receiver):
            raise ValidationError(
                "FeesReceiver has to be a valid non-zero address",
                field="feesReceiver",
                value=fees_receiver,
            )

        relay_max_nonce = (
            self._connections.transaction_count(hub_info.relay_worker_address)
            + self._config.max_relay_nonce_gap
        )

        updated = request.with_fees_receiver(fees_receiver)
        token_gas = request_config.force_token_gas_limit or updated.request.token_gas
        if not token_gas:
            token_gas = self._gas.estimate_token_transfer_gas(
                updated,
                self._pre_deploy_address(updated, request_config),
                correction=request_config.internal_estimation_correction,
                factor=request_config.estimated_gas_correction_factor,
            )
        updated = updated.with_token_gas(int(token_gas))

        signature = self._accounts.sign(updated, signer_key)
        tx_request = EnvelopingTxRequest(
            relay_request=updated,
            metadata=EnvelopingMetadata(
                signature=signature,
                relay_hub_address=updated.request.relay_hub,
                relay_max_nonce=relay_max_nonce,
            ),
        )
        self._events.emit(EnvelopingEvent.SIGN_REQUEST)
        logger.info(
            "Created HTTP %s request for %s (relayMaxNonce=%s)",
            updated.kind.value,
            updated.request.from_address,
            relay_max_nonce,
        )
        return tx_request

    def _pre_deploy_address(
        self, request: EnvelopingRequest, request_config: RequestConfig
    ) -> str | None:
        if not request.is_deploy:
            return None
        if request_config.pre_deploy_sw_address:
            return request_config.pre_deploy_sw_address

        body = cast(DeployRequestBody, request.request)
        return self._connections.smart_wallet_address(
            request.relay_data.call_forwarder, body.from_address, body.recoverer, body.index
        )

    # ------------------------------------------------------------------
    # Relay selection and submission
    # ------------------------------------------------------------------
    def _selection_manager(
        self, request: EnvelopingRequest, request_config: RequestConfig
    ) -> RelaySelectionManager:
        return RelaySelectionManager(
            self._known_relays,
            self._http,
            self._config,
            call_verifier=request.relay_data.call_verifier,
            only_preferred_relays=request_config.only_preferred_relays,
            ping_filter=self._ping_filter,
            details=request.to_message(),
            clock=self._clock,
        ).init()

    def _select_next_relay(self, selection: RelaySelectionManager) -> RelayInfo | None:
        relay = selection.select_next_relay()
        if relay is not None:
            logger.info("Selected relay %s", relay.manager_data.url)
            self._events.emit(EnvelopingEvent.NEXT_RELAY, relay)
        return relay

    def _verify_enveloping_request(
        self, hub_info: HubInfo, tx_request: EnvelopingTxRequest, request_config: RequestConfig
    ) -> bool:
        """Dry-run the request against the worker balance, verifier and hub."""

        self._events.emit(EnvelopingEvent.VALIDATE_REQUEST)
        worker = hub_info.relay_worker_address
        request = tx_request.relay_request
        signature = tx_request.metadata.signature

        try:
            max_possible_gas = self.estimate_max_possible_gas(tx_request, worker, request_config)

            balance = self._connections.balance(worker)
            if balance // request.relay_data.gas_price < max_possible_gas:
                raise ValidationError(
                    "Worker does not have enough balance to pay", field="relayWorker", value=worker
                )

            self._connections.call(
                {
                    "to": request.relay_data.call_verifier,
                    "data": abi.encode_verify_relayed_call(request, signature),
                }
            )
            self._connections.call(
                {
                    "from": worker,
                    "to": tx_request.metadata.relay_hub_address,
                    "data": abi.encode_hub_call(request, signature),
                    "gasPrice": request.relay_data.gas_price,
                    "gas": max_possible_gas,
                }
            )
        except (NetworkError, ValidationError) as exc:
            logger.error("Client verification failed: %s", exc)
            return False
        return True

    def _attempt_relay_transaction(
        self,
        relay: RelayInfo,
        tx_request: EnvelopingTxRequest,
        failures: dict[str, str],
    ) -> RelayedTransaction | None:
        url = relay.manager_data.url
        self._events.emit(EnvelopingEvent.SEND_TO_RELAYER)
        logger.info("Attempting relay through %s", url)

        # a malformed answer only disqualifies this relay; RelayResponseError stays fatal
        try:
            signed_tx = self._http.relay_transaction(url, tx_request)
            transaction = parse_signed_transaction(signed_tx)
        except (NetworkError, ValidationError) as exc:
            self._record_relay_failure(relay, failures, exc)
            return None

        self._validator.validate(tx_request, transaction, relay.hub_info.relay_worker_address)
        self._events.emit(EnvelopingEvent.RELAYER_RESPONSE, transaction)

        try:
            self._dispatcher.broadcast_if_unknown(transaction)
        except NetworkError as exc:
            self._record_relay_failure(relay, failures, exc)
            return None
        return transaction

    def _record_relay_failure(
        self, relay: RelayInfo, failures: dict[str, str], exc: Exception
    ) -> None:
        url = relay.manager_data.url
        logger.warning("Relay %s failed: %s", url, exc)
        failures[url] = str(exc)
        self._known_relays.save_relay_failure(
            self._clock(), relay.hub_info.relay_manager_address, url
        )

    def _finalize(
        self, transaction: RelayedTransaction, relay_url: str, request_config: RequestConfig
    ) -> RelayingResult:
        if request_config.ignore_transaction_receipt:
            return RelayingResult(transaction=transaction, relay_url=relay_url)

        receipt = self._dispatcher.wait_for_receipt(
            transaction.hash,
            poll_latency=request_config.initial_backoff,
            timeout=request_config.receipt_timeout,
        )
        status = classify_receipt(receipt)
        logger.info("Relayed transaction %s outcome: %s", transaction.hash, status.outcome.value)

        if status.outcome is RelayOutcome.REVERTED_BY_RECIPIENT:
            raise RelayRevertedError(transaction.hash, status.reason)

        return RelayingResult(
            transaction=transaction, receipt=receipt, status=status, relay_url=relay_url
        )

    # ------------------------------------------------------------------
    # Accessors
    # ------------------------------------------------------------------
    @property
    def config(self) -> EnvelopingConfig:
        return self._config

    @property
    def known_relays(self) -> KnownRelaysManager:
        return self._known_relays

    @property
    def accounts(self) -> AccountManager:
        return self._accounts
