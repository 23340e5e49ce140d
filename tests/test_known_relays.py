"""Tests for the relay registry and its failure-decayed ranking."""

from __future__ import annotations

from typing import Any, cast

import pytest
from eth_abi import encode as abi_encode

from enveloping_client import abi
from enveloping_client.relay.config import EnvelopingConfig
from enveloping_client.relay.connections import ChainConnections
from enveloping_client.relay.known_relays import (
    KnownRelaysManager,
    default_relay_score,
    split_range,
)
from enveloping_client.types import RelayFailureInfo, RelayManagerData

HUB = "0x00000000000000000000000000000000000000aa"
MANAGER_A = "0x00000000000000000000000000000000000000a1"
MANAGER_B = "0x00000000000000000000000000000000000000b1"
MANAGER_C = "0x00000000000000000000000000000000000000c1"


def _config(**overrides: Any) -> EnvelopingConfig:
    values: dict[str, Any] = {
        "chain_id": 33,
        "rpc_url": "http://localhost:4444",
        "relay_hub_address": HUB,
        "relay_verifier_address": "0x00000000000000000000000000000000000000e1",
        "deploy_verifier_address": "0x00000000000000000000000000000000000000e2",
        "smart_wallet_factory_address": "0x00000000000000000000000000000000000000e3",
        "preferred_relays": ("http://preferred-1", "http://preferred-2"),
    }
    values.update(overrides)
    return EnvelopingConfig.from_mapping(values)


def _registered_log(manager: str, url: str) -> dict[str, Any]:
    return {
        "address": HUB,
        "topics": [abi.RELAY_SERVER_REGISTERED.topic, abi_encode(["address"], [manager])],
        "data": abi_encode(["string"], [url]),
    }


def _workers_added_log(manager: str) -> dict[str, Any]:
    return {
        "address": HUB,
        "topics": [abi.RELAY_WORKERS_ADDED.topic, abi_encode(["address"], [manager])],
        "data": abi_encode(["address[]", "uint256"], [[MANAGER_C], 1]),
    }


class FakeChain:
    def __init__(self, latest_block: int, logs: list[dict[str, Any]], relays: dict[str, RelayManagerData]):
        self.latest_block = latest_block
        self.logs = logs
        self.relays = relays
        self.ranges: list[tuple[int, int]] = []

    def block_number(self) -> int:
        return self.latest_block

    def hub_registration_logs(self, relay_hub: str, from_block: int, to_block: int) -> list[Any]:
        self.ranges.append((from_block, to_block))
        return self.logs if from_block == self.ranges[0][0] else []

    def relay_info(self, relay_hub: str, manager: str) -> RelayManagerData:
        return self.relays[manager.lower()]


def _active(manager: str, url: str, **flags: bool) -> RelayManagerData:
    return RelayManagerData(
        url=url,
        manager=manager,
        currently_staked=flags.get("staked", True),
        registered=flags.get("registered", True),
    )


class TestSplitRange:
    def test_even_split(self):
        assert split_range(0, 99, 4) == [(0, 24), (25, 49), (50, 74), (75, 99)]

    def test_uneven_split_covers_range(self):
        assert split_range(0, 10, 3) == [(0, 3), (4, 7), (8, 10)]

    def test_single_block(self):
        assert split_range(5, 5, 3) == [(5, 5)]

    def test_single_part(self):
        assert split_range(40_000, 100_000, 1) == [(40_000, 100_000)]


def test_default_score_decays_with_failures():
    relay = RelayManagerData(url="http://relay")
    failures = [RelayFailureInfo(0.0, "", "http://relay")] * 2

    assert default_relay_score(relay, {}, []) == 1
    assert default_relay_score(relay, {}, failures) == pytest.approx(0.81)


class TestRefresh:
    def test_discovers_active_managers_over_window_parts(self):
        chain = FakeChain(
            100_000,
            [
                _registered_log(MANAGER_A, "http://a"),
                _workers_added_log(MANAGER_A),
                _registered_log(MANAGER_B, "http://b"),
                _registered_log(MANAGER_C, "http://c"),
            ],
            {
                MANAGER_A: _active(MANAGER_A, "http://a"),
                MANAGER_B: _active(MANAGER_B, "http://b", staked=False),
                MANAGER_C: _active(MANAGER_C, "http://c"),
            },
        )
        manager = KnownRelaysManager(
            cast(ChainConnections, chain),
            _config(relay_lookup_window_parts=2),
            relay_filter=lambda relay: relay.url != "http://c",
        )

        manager.refresh()

        assert chain.ranges == [(40_000, 70_000), (70_001, 100_000)]
        assert [relay.url for relay in manager.discovered_relays] == ["http://a"]
        assert [relay.url for relay in manager.preferred_relays] == [
            "http://preferred-1",
            "http://preferred-2",
        ]
        assert manager.latest_scanned_block == 100_000

    def test_window_starts_at_genesis(self):
        chain = FakeChain(100, [], {})
        manager = KnownRelaysManager(cast(ChainConnections, chain), _config())

        manager.refresh()

        assert chain.ranges == [(0, 100)]
        assert manager.discovered_relays == []

    def test_old_failures_are_evicted_lazily(self):
        now = [10_000.0]
        manager = KnownRelaysManager(
            cast(ChainConnections, FakeChain(0, [], {})),
            _config(relay_timeout_grace=1800),
            clock=lambda: now[0],
        )
        manager.save_relay_failure(1_000.0, MANAGER_A, "http://a")
        manager.save_relay_failure(9_000.0, MANAGER_A, "http://a")

        assert len(manager.failures_for("http://a")) == 2

        manager.refresh()

        assert [failure.last_error_time for failure in manager.failures_for("http://a")] == [9_000.0]

    def test_relays_without_recent_failures_are_dropped(self):
        manager = KnownRelaysManager(
            cast(ChainConnections, FakeChain(0, [], {})),
            _config(relay_timeout_grace=1800),
            clock=lambda: 10_000.0,
        )
        manager.save_relay_failure(1_000.0, MANAGER_A, "http://a")
        manager.save_relay_failure(9_500.0, MANAGER_B, "http://b")

        manager.refresh()

        assert manager.failures_for("http://a") == []
        assert list(manager._failures) == ["http://b"]


class TestSorting:
    def test_preferred_first_discovered_ranked_by_failures(self):
        manager = KnownRelaysManager(cast(ChainConnections, FakeChain(0, [], {})), _config())
        manager.discovered_relays = [
            _active(MANAGER_A, "http://a"),
            _active(MANAGER_B, "http://b"),
            _active(MANAGER_C, "http://c"),
        ]
        manager.save_relay_failure(1.0, MANAGER_A, "http://a")
        manager.save_relay_failure(2.0, MANAGER_A, "http://a")
        manager.save_relay_failure(3.0, MANAGER_B, "http://b")

        preferred, discovered = manager.get_relays_sorted_for_transaction({})

        assert [relay.url for relay in preferred] == ["http://preferred-1", "http://preferred-2"]
        assert [relay.url for relay in discovered] == ["http://c", "http://b", "http://a"]

    def test_ties_keep_discovery_order(self):
        manager = KnownRelaysManager(cast(ChainConnections, FakeChain(0, [], {})), _config())
        manager.discovered_relays = [_active(MANAGER_A, "http://a"), _active(MANAGER_B, "http://b")]

        _, discovered = manager.get_relays_sorted_for_transaction()

        assert [relay.url for relay in discovered] == ["http://a", "http://b"]

    def test_custom_score_calculator(self):
        manager = KnownRelaysManager(
            cast(ChainConnections, FakeChain(0, [], {})),
            _config(),
            score_calculator=lambda relay, details, failures: 1 if relay.url == details["favourite"] else 0,
        )
        manager.discovered_relays = [_active(MANAGER_A, "http://a"), _active(MANAGER_B, "http://b")]

        _, discovered = manager.get_relays_sorted_for_transaction({"favourite": "http://b"})

        assert discovered[0].url == "http://b"
