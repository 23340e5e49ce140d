"""HTTP transport to relay servers."""

from __future__ import annotations

import json
import logging
from collections.abc import Mapping
from typing import Any

import requests

from ..constants import RelayPath
from ..exceptions import NetworkError, ValidationError
from ..types import EnvelopingTxRequest, HubInfo, RelayEstimation
from .config import DEFAULT_REQUEST_TIMEOUT

logger = logging.getLogger(__name__)


class RelayHttpClient:
    """Talk to the ``/chain-info``, ``/relay`` and ``/estimate`` relay endpoints."""

    def __init__(
        self,
        session: requests.Session | None = None,
        *,
        request_timeout: float = DEFAULT_REQUEST_TIMEOUT,
    ) -> None:
        self._session = session or requests.Session()
        self._request_timeout = request_timeout

    def get_chain_info(self, relay_url: str, verifier: str = "") -> HubInfo:
        url = relay_url.rstrip("/") + RelayPath.CHAIN_INFO.value
        params = {"verifier": verifier} if verifier else None
        payload = self._request("GET", url, params=params)

        if isinstance(payload, Mapping) and payload.get("message") and "ready" not in payload:
            raise NetworkError(
                f"Relay responded with an error: {payload['message']}",
                endpoint=url,
                details={"response": dict(payload)},
            )

        hub_info = HubInfo.from_dict(payload)
        logger.info("hubInfo from %s: %s", relay_url, payload)
        return hub_info

    def relay_transaction(self, relay_url: str, request: EnvelopingTxRequest) -> str:
        url = relay_url.rstrip("/") + RelayPath.RELAY.value
        payload = self._request("POST", url, body=request.to_wire())
        if not isinstance(payload, Mapping):
            raise ValidationError("Relay returned a non-object response", field="body", value=payload)

        signed_tx = payload.get("signedTx")
        error = payload.get("error")
        logger.info("relayTransaction response from %s: signedTx=%s error=%s", url, signed_tx, error)

        if error:
            raise NetworkError(f"Got error response from relay: {error}", endpoint=url)
        if not signed_tx:
            raise ValidationError(
                "Got invalid response from relay: signedTx field missing.", field="signedTx"
            )
        return str(signed_tx)

    def estimate_max_possible_gas(
        self, relay_url: str, request: EnvelopingTxRequest
    ) -> RelayEstimation:
        url = relay_url.rstrip("/") + RelayPath.ESTIMATE.value
        payload = self._request("POST", url, body=request.to_wire())
        logger.info("estimation response from %s: %s", url, payload)

        if not isinstance(payload, Mapping):
            raise ValidationError("Relay returned a non-object response", field="body", value=payload)
        if payload.get("error"):
            raise NetworkError(
                f"Got error response from estimate relay: {payload['error']}", endpoint=url
            )
        return RelayEstimation.from_dict(payload)

    def close(self) -> None:
        self._session.close()

    # ------------------------------------------------------------------
    # Internal wiring
    # ------------------------------------------------------------------
    def _request(
        self,
        method: str,
        url: str,
        *,
        params: Mapping[str, str] | None = None,
        body: Mapping[str, Any] | None = None,
    ) -> Any:
        logger.debug("Relay request %s %s", method, url)
        try:
            if method == "GET":
                response = self._session.get(url, params=params, timeout=self._request_timeout)
            else:
                response = self._session.post(url, json=body, timeout=self._request_timeout)
            response.raise_for_status()
        except requests.RequestException as exc:
            response_obj = getattr(exc, "response", None)
            raise NetworkError(
                f"Relay request to {url} failed",
                endpoint=url,
                status_code=getattr(response_obj, "status_code", None),
                details={"error": str(exc)},
            ) from exc

        try:
            return response.json()
        except (ValueError, json.JSONDecodeError) as exc:
            raise NetworkError(
                "Relay responded with invalid JSON",
                endpoint=url,
                status_code=response.status_code,
                details={"error": str(exc)},
            ) from exc
