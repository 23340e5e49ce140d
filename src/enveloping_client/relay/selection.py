"""Race relay availability pings to pick a relay for a request."""

from __future__ import annotations

import logging
import time
from collections.abc import Callable, Mapping
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from typing import Any

from ..exceptions import NetworkError, ValidationError
from ..types import HubInfo, RelayInfo, RelayManagerData
from .config import EnvelopingConfig
from .http import RelayHttpClient
from .known_relays import KnownRelaysManager

logger = logging.getLogger(__name__)

PingFilter = Callable[[HubInfo, Mapping[str, Any]], None]


class RelaySelectionManager:
    """Walk the ranked relay tiers in slices until one relay reports ready.

    A relay is pinged at most once per manager instance: errored and
    not-ready relays are dropped, and so is the winner, so
    :meth:`select_next_relay` never returns the same relay twice.
    """

    def __init__(
        self,
        known_relays: KnownRelaysManager,
        http_client: RelayHttpClient,
        config: EnvelopingConfig,
        *,
        call_verifier: str = "",
        only_preferred_relays: bool | None = None,
        ping_filter: PingFilter | None = None,
        details: Mapping[str, Any] | None = None,
        clock: Callable[[], float] = time.time,
    ):
        self._known_relays = known_relays
        self._http = http_client
        self._config = config
        self._call_verifier = call_verifier
        self._only_preferred = (
            config.only_preferred_relays if only_preferred_relays is None else only_preferred_relays
        )
        self._ping_filter = ping_filter
        self._details = dict(details or {})
        self._clock = clock

        self._remaining: list[list[RelayManagerData]] = []
        self._initialized = False
        self.errors: dict[str, Exception] = {}

    def init(self) -> RelaySelectionManager:
        self._remaining = [
            list(tier) for tier in self._known_relays.get_relays_sorted_for_transaction(self._details)
        ]
        if self._only_preferred:
            logger.info("Only using preferred relays")
            self._remaining = self._remaining[:1]
        self._initialized = True
        return self

    def relays_left(self) -> list[RelayManagerData]:
        return [relay for tier in self._remaining for relay in tier]

    def select_next_relay(self) -> RelayInfo | None:
        """Return the first ready relay, or ``None`` once every candidate is tried."""

        while True:
            relays = self._next_slice()
            if not relays:
                return None
            selected = self._next_relay_internal(relays)
            if selected is not None:
                return selected

    # ------------------------------------------------------------------
    # Internal wiring
    # ------------------------------------------------------------------
    def _next_slice(self) -> list[RelayManagerData]:
        if not self._initialized:
            raise ValidationError("init() not called", field="init")
        for tier in self._remaining:
            if tier:
                return tier[: self._config.slice_size]
        return []

    def _next_relay_internal(self, relays: list[RelayManagerData]) -> RelayInfo | None:
        logger.info("nextRelay: find fastest relay from %s", [relay.url for relay in relays])
        winner, errors = self._race_to_success(relays)
        self._handle_race_results(relays, winner, errors)

        if winner is None:
            logger.info("No race winner found for relays %s", [relay.url for relay in relays])
            return None

        hub_info, relay = winner
        manager = hub_info.relay_manager_address
        if relay.registered and relay.manager and relay.manager.lower() == manager.lower():
            return RelayInfo(hub_info=hub_info, manager_data=relay)

        active = self._known_relays.get_relay_data_for_managers([manager]) if manager else []
        if len(active) != 1:
            error = ValidationError(
                f"Unexpected amount of active relays for manager address: {manager}",
                field="relayManagerAddress",
                value=manager,
            )
            logger.warning("Discarding relay %s: %s", relay.url, error)
            self.errors[relay.url] = error
            self._known_relays.save_relay_failure(self._clock(), manager, relay.url)
            return None

        # keep the url the relay was reached through
        return RelayInfo(hub_info=hub_info, manager_data=_with_url(active[0], relay.url))

    def _race_to_success(
        self, relays: list[RelayManagerData]
    ) -> tuple[tuple[HubInfo, RelayManagerData] | None, dict[str, Exception]]:
        """Ping ``relays`` concurrently; the first ready answer wins.

        Pings that have not started when a winner is found are cancelled and
        answers arriving later are ignored.
        """

        errors: dict[str, Exception] = {}
        executor = ThreadPoolExecutor(max_workers=len(relays), thread_name_prefix="relay-ping")
        try:
            pending: dict[Future, RelayManagerData] = {
                executor.submit(self._ping, relay): relay for relay in relays
            }
            while pending:
                done, _ = wait(pending, return_when=FIRST_COMPLETED)
                for future in done:
                    relay = pending.pop(future)
                    try:
                        return (future.result(), relay), errors
                    except Exception as exc:
                        logger.warning("Relay %s failed ping: %s", relay.url, exc)
                        errors[relay.url] = exc
            return None, errors
        finally:
            executor.shutdown(wait=False, cancel_futures=True)

    def _ping(self, relay: RelayManagerData) -> HubInfo:
        logger.info("getRelayAddressPing URL: %s", relay.url)
        hub_info = self._http.get_chain_info(relay.url, self._call_verifier)
        if not hub_info.ready:
            raise NetworkError(f"Relay not ready {hub_info}", endpoint=relay.url)
        if self._ping_filter is not None:
            self._ping_filter(hub_info, self._details)
        return hub_info

    def _handle_race_results(
        self,
        relays: list[RelayManagerData],
        winner: tuple[HubInfo, RelayManagerData] | None,
        errors: dict[str, Exception],
    ) -> None:
        self.errors.update(errors)
        now = self._clock()
        for relay in relays:
            if relay.url in errors:
                self._known_relays.save_relay_failure(now, relay.manager, relay.url)

        dropped = set(errors)
        if winner is not None:
            dropped.add(winner[1].url)
        self._remaining = [
            [relay for relay in tier if relay.url not in dropped] for tier in self._remaining
        ]


def _with_url(relay: RelayManagerData, url: str) -> RelayManagerData:
    if relay.url == url:
        return relay
    return RelayManagerData(
        url=url,
        manager=relay.manager,
        currently_staked=relay.currently_staked,
        registered=relay.registered,
    )
