"""Gas estimation for enveloping requests."""

from __future__ import annotations

import logging
from decimal import ROUND_DOWN, Decimal

from .. import abi
from ..constants import (
    ESTIMATED_GAS_CORRECTION_FACTOR,
    INTERNAL_TRANSACTION_ESTIMATED_CORRECTION,
    INTERNAL_TRANSACTION_NO_DATA_CORRECTION,
    SUBSIDIZED_FIT_INTERCEPT,
    SUBSIDIZED_FIT_SLOPE,
    TOKEN_PAYMENT_FIT_INTERCEPT,
    TOKEN_PAYMENT_FIT_SLOPE,
)
from ..exceptions import ConfigurationError, MissingSmartWalletAddress, UnsupportedForDeploy
from ..types import EnvelopingRequest, EnvelopingTxRequest
from ..utils import is_empty_data, is_zero_address, round_half_up, to_int
from .connections import ChainConnections

logger = logging.getLogger(__name__)

Factor = int | float | str | Decimal | None


def apply_gas_correction_factor(estimation: int, factor: Factor = None) -> int:
    """Scale ``estimation`` by ``factor``; the result is rounded half up."""

    correction = ESTIMATED_GAS_CORRECTION_FACTOR if factor is None else Decimal(str(factor))
    if correction == 1:
        return int(estimation)
    return round_half_up(Decimal(int(estimation)) * correction)


def apply_internal_estimation_correction(estimation: int, correction: int | None = None) -> int:
    """Subtract the internal call discount, leaving small estimates untouched."""

    discount = INTERNAL_TRANSACTION_ESTIMATED_CORRECTION if correction is None else int(correction)
    if estimation > discount:
        return int(estimation) - discount
    return int(estimation)


def internal_correction_for(data: str | bytes | None, correction: int | None = None) -> int:
    if correction is not None:
        return int(correction)
    if is_empty_data(data):
        return INTERNAL_TRANSACTION_NO_DATA_CORRECTION
    return INTERNAL_TRANSACTION_ESTIMATED_CORRECTION


def estimate_max_possible_with_linear_fit(
    relay_call_gas: int, token_payment_gas: int, factor: Factor = None
) -> int:
    """Closed-form cost of a ``relayCall`` given the destination call gas.

    With no token payment the subsidized fit applies,
    ``1.067 * x + 85090.977``; otherwise
    ``1.1114 * (x + token) + 72530.9611``. The cost is truncated before
    the correction factor is applied.
    """

    if token_payment_gas == 0:
        cost = SUBSIDIZED_FIT_SLOPE * Decimal(relay_call_gas) + SUBSIDIZED_FIT_INTERCEPT
    else:
        cost = (
            TOKEN_PAYMENT_FIT_SLOPE * Decimal(relay_call_gas + token_payment_gas)
            + TOKEN_PAYMENT_FIT_INTERCEPT
        )
    truncated = int(cost.quantize(Decimal(1), rounding=ROUND_DOWN))
    return apply_gas_correction_factor(truncated, factor)


class GasEstimator:
    """Estimate internal call, token payment and full relay gas."""

    def __init__(self, connections: ChainConnections):
        self._connections = connections

    def estimate_internal_call_gas(
        self,
        data: str,
        from_address: str,
        to: str,
        gas_price: int | None = None,
        *,
        correction: int | None = None,
        factor: Factor = None,
    ) -> int:
        estimation = self._connections.estimate_gas(
            {"from": from_address, "to": to, "data": data, "gasPrice": gas_price}
        )
        corrected = apply_internal_estimation_correction(
            estimation, internal_correction_for(data, correction)
        )
        result = apply_gas_correction_factor(corrected, factor)
        logger.debug("Internal call gas for %s: raw=%s corrected=%s", to, estimation, result)
        return result

    def estimate_token_transfer_gas(
        self,
        request: EnvelopingRequest,
        pre_deploy_sw_address: str | None = None,
        *,
        correction: int | None = None,
        factor: Factor = None,
    ) -> int:
        body = request.request
        relay_data = request.relay_data

        if is_zero_address(body.token_contract) or to_int(body.token_amount, "tokenAmount") == 0:
            return 0

        if request.is_deploy:
            if is_zero_address(pre_deploy_sw_address):
                raise MissingSmartWalletAddress()
            token_origin = str(pre_deploy_sw_address)
        else:
            token_origin = relay_data.call_forwarder
            if is_zero_address(token_origin):
                raise ConfigurationError(
                    "Missing call forwarder in a relay request", field="callForwarder"
                )

        calldata = abi.encode_erc20_transfer(relay_data.fees_receiver, body.token_amount)
        estimation = self._connections.estimate_gas(
            {
                "from": token_origin,
                "to": body.token_contract,
                "data": calldata,
                "gasPrice": relay_data.gas_price,
            }
        )
        corrected = apply_internal_estimation_correction(
            estimation, internal_correction_for(calldata, correction)
        )
        result = apply_gas_correction_factor(corrected, factor)
        logger.debug("Token transfer gas from %s: %s", token_origin, result)
        return result

    def standard_max_possible_gas(
        self,
        tx_request: EnvelopingTxRequest,
        relay_worker: str,
        token_gas: int = 0,
        factor: Factor = None,
    ) -> int:
        """Estimate the populated hub call as sent by ``relay_worker``."""

        request = tx_request.relay_request
        calldata = abi.encode_hub_call(request, tx_request.metadata.signature)
        estimation = self._connections.estimate_gas(
            {
                "from": relay_worker,
                "to": request.request.relay_hub,
                "data": calldata,
                "gasPrice": request.relay_data.gas_price,
            }
        )
        return apply_gas_correction_factor(estimation + token_gas, factor)

    def linear_fit_max_possible_gas(
        self,
        request: EnvelopingRequest,
        token_gas: int = 0,
        *,
        correction: int | None = None,
        factor: Factor = None,
    ) -> int:
        if request.is_deploy:
            raise UnsupportedForDeploy()

        body = request.request
        internal = self.estimate_internal_call_gas(
            body.data,
            body.from_address,
            body.to,
            request.relay_data.gas_price,
            correction=correction,
            factor=factor,
        )
        # factor already applied to the internal estimate
        return estimate_max_possible_with_linear_fit(internal, token_gas)

    def estimate_max_possible_gas(
        self,
        tx_request: EnvelopingTxRequest,
        relay_worker: str,
        pre_deploy_sw_address: str | None = None,
        *,
        correction: int | None = None,
        factor: Factor = None,
    ) -> int:
        """Standard estimation once signed, linear fit before that."""

        request = tx_request.relay_request
        token_gas = self.estimate_token_transfer_gas(
            request, pre_deploy_sw_address, correction=correction, factor=factor
        )

        if _has_signature(tx_request.metadata.signature):
            return self.standard_max_possible_gas(tx_request, relay_worker, token_gas, factor)
        return self.linear_fit_max_possible_gas(
            request, token_gas, correction=correction, factor=factor
        )


def _has_signature(signature: str | None) -> bool:
    if not signature:
        return False
    stripped = signature.lower().removeprefix("0x")
    return bool(stripped) and int(stripped, 16) != 0
