"""Registry of candidate relay servers, configured and discovered on chain."""

from __future__ import annotations

import logging
import time
from collections.abc import Callable, Iterable, Mapping, Sequence
from typing import Any

from .. import abi
from ..constants import DEFAULT_SCORE_BASE
from ..exceptions import NetworkError
from ..types import RelayFailureInfo, RelayManagerData
from .config import EnvelopingConfig
from .connections import ChainConnections

logger = logging.getLogger(__name__)

RelayFilter = Callable[[RelayManagerData], bool]
ScoreCalculator = Callable[[RelayManagerData, Mapping[str, Any], Sequence[RelayFailureInfo]], float]


def default_relay_score(
    relay: RelayManagerData,
    details: Mapping[str, Any],
    failures: Sequence[RelayFailureInfo],
) -> float:
    """Higher is better; every recent failure costs ten percent."""

    return DEFAULT_SCORE_BASE ** len(failures)


def accept_all_relays(relay: RelayManagerData) -> bool:
    return True


def split_range(from_block: int, to_block: int, parts: int) -> list[tuple[int, int]]:
    """Split the inclusive block range into at most ``parts`` contiguous chunks."""

    parts = max(1, parts)
    total = to_block - from_block + 1
    if total <= 0:
        return []

    size = -(-total // parts)
    ranges: list[tuple[int, int]] = []
    start = from_block
    while start <= to_block:
        ranges.append((start, min(to_block, start + size - 1)))
        start += size
    return ranges


class KnownRelaysManager:
    """Keep the two ranked tiers of relays and their recent failures."""

    def __init__(
        self,
        connections: ChainConnections,
        config: EnvelopingConfig,
        relay_filter: RelayFilter | None = None,
        score_calculator: ScoreCalculator | None = None,
        clock: Callable[[], float] = time.time,
    ):
        self._connections = connections
        self._config = config
        self._relay_filter = relay_filter or accept_all_relays
        self._score_calculator = score_calculator or default_relay_score
        self._clock = clock

        self.latest_scanned_block = 0
        self.preferred_relays: list[RelayManagerData] = list(config.preferred_relays)
        self.discovered_relays: list[RelayManagerData] = []
        self._failures: dict[str, list[RelayFailureInfo]] = {}

    # ------------------------------------------------------------------
    # Refresh
    # ------------------------------------------------------------------
    def refresh(self) -> None:
        self._refresh_failures()
        managers = self._fetch_recently_active_managers()
        self.preferred_relays = [
            RelayManagerData(url=relay.url) for relay in self._config.preferred_relays
        ]
        self.discovered_relays = self.get_relay_data_for_managers(managers)
        logger.debug(
            "Relay refresh done: %s preferred, %s discovered",
            len(self.preferred_relays),
            len(self.discovered_relays),
        )

    def get_relay_data_for_managers(self, managers: Iterable[str]) -> list[RelayManagerData]:
        active: list[RelayManagerData] = []
        for manager in managers:
            try:
                relay = self._connections.relay_info(self._config.relay_hub_address, manager)
            except NetworkError as exc:
                logger.warning("Unable to read relay info for manager %s: %s", manager, exc)
                continue
            if not (relay.registered and relay.currently_staked):
                logger.debug("Skipping inactive relay manager %s", manager)
                continue
            if self._relay_filter(relay):
                active.append(relay)
        return active

    def _fetch_recently_active_managers(self) -> list[str]:
        to_block = self._connections.block_number()
        from_block = max(0, to_block - self._config.relay_lookup_window_blocks)

        managers: dict[str, None] = {}
        events = 0
        for start, end in split_range(from_block, to_block, self._config.relay_lookup_window_parts):
            logger.debug("Scanning hub events in blocks %s-%s", start, end)
            for log in self._connections.hub_registration_logs(
                self._config.relay_hub_address, start, end
            ):
                decoded = abi.decode_log(log)
                if decoded is None or "relayManager" not in decoded.args:
                    continue
                events += 1
                managers[decoded.args["relayManager"]] = None

        logger.info("Found %s relay registration events, %s unique managers", events, len(managers))
        self.latest_scanned_block = to_block
        return list(managers)

    def _refresh_failures(self) -> None:
        now = self._clock()
        grace = self._config.relay_timeout_grace
        kept: dict[str, list[RelayFailureInfo]] = {}
        for url, failures in self._failures.items():
            recent = [failure for failure in failures if now - failure.last_error_time < grace]
            if recent:
                kept[url] = recent
        self._failures = kept

    # ------------------------------------------------------------------
    # Ranking
    # ------------------------------------------------------------------
    def get_relays_sorted_for_transaction(
        self, details: Mapping[str, Any] | None = None
    ) -> list[list[RelayManagerData]]:
        """Return ``[preferred, discovered]``; only the second tier is ranked."""

        details = details or {}
        scored = [
            (self._score_calculator(relay, details, self.failures_for(relay.url)), relay)
            for relay in self.discovered_relays
        ]
        # sorted() is stable, equal scores keep discovery order
        ranked = [relay for _, relay in sorted(scored, key=lambda item: item[0], reverse=True)]
        return [list(self.preferred_relays), ranked]

    def save_relay_failure(self, last_error_time: float, relay_manager: str, relay_url: str) -> None:
        self._failures.setdefault(relay_url, []).append(
            RelayFailureInfo(
                last_error_time=last_error_time, relay_manager=relay_manager, relay_url=relay_url
            )
        )

    def failures_for(self, relay_url: str) -> list[RelayFailureInfo]:
        return list(self._failures.get(relay_url, ()))
