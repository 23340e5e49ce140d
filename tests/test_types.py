"""Tests for request data models and their wire format."""

from dataclasses import FrozenInstanceError

import pytest

from enveloping_client.constants import ZERO_ADDRESS
from enveloping_client.exceptions import ValidationError
from enveloping_client.types import (
    DeployRequestBody,
    EnvelopingMetadata,
    EnvelopingRequest,
    EnvelopingTxRequest,
    HubInfo,
    RelayData,
    RelayManagerData,
    RelayRequestBody,
    RequestKind,
    UserDefinedEnvelopingRequest,
    probe_request_kind,
)

HUB = "0x00000000000000000000000000000000000000AA"
SENDER = "0x00000000000000000000000000000000000000bb"
TARGET = "0x00000000000000000000000000000000000000CC"
FORWARDER = "0x00000000000000000000000000000000000000dd"
VERIFIER = "0x00000000000000000000000000000000000000EE"


def _relay_data() -> RelayData:
    return RelayData(
        gas_price=60_000_000,
        fees_receiver=ZERO_ADDRESS,
        call_forwarder=FORWARDER,
        call_verifier=VERIFIER,
    )


def _relay_request() -> EnvelopingRequest:
    body = RelayRequestBody(
        relay_hub=HUB,
        from_address=SENDER,
        to=TARGET,
        token_contract=ZERO_ADDRESS,
        value=0,
        gas=50_000,
        nonce=3,
        token_amount=0,
        token_gas=0,
        valid_until_time=1_700_000_000,
        data="0xdeadbeef",
    )
    return EnvelopingRequest(request=body, relay_data=_relay_data())


def _deploy_request() -> EnvelopingRequest:
    body = DeployRequestBody(
        relay_hub=HUB,
        from_address=SENDER,
        to=ZERO_ADDRESS,
        token_contract=ZERO_ADDRESS,
        recoverer=ZERO_ADDRESS,
        value=0,
        nonce=0,
        token_amount=0,
        token_gas=0,
        valid_until_time=1_700_000_000,
        index=1,
        data="0x",
    )
    return EnvelopingRequest(request=body, relay_data=_relay_data())


class TestEnvelopingRequest:
    def test_kind_follows_body_class(self):
        assert _relay_request().kind is RequestKind.RELAY
        assert _deploy_request().kind is RequestKind.DEPLOY
        assert _deploy_request().is_deploy

    def test_wire_format_stringifies_quantities(self):
        wire = _relay_request().to_wire()

        assert wire["request"]["from"] == SENDER
        assert wire["request"]["gas"] == "50000"
        assert wire["request"]["nonce"] == "3"
        assert wire["request"]["validUntilTime"] == "1700000000"
        assert wire["request"]["data"] == "0xdeadbeef"
        assert wire["relayData"]["gasPrice"] == "60000000"
        assert "index" not in wire["request"]

    def test_message_keeps_integers(self):
        message = _relay_request().to_message()

        assert message["gas"] == 50_000
        assert message["relayData"]["gasPrice"] == 60_000_000

    def test_from_wire_probes_deploy_structurally(self):
        wire = _deploy_request().to_wire()

        parsed = EnvelopingRequest.from_wire(wire)

        assert parsed == _deploy_request()

    def test_explicit_kind_beats_stray_keys(self):
        wire = _relay_request().to_wire()
        wire["request"]["index"] = "0"
        wire["request"]["recoverer"] = ZERO_ADDRESS

        assert probe_request_kind(wire["request"]) is RequestKind.DEPLOY
        parsed = EnvelopingRequest.from_wire(wire, kind=RequestKind.RELAY)
        assert parsed == _relay_request()

    def test_missing_field_raises(self):
        wire = _relay_request().to_wire()
        del wire["request"]["gas"]

        with pytest.raises(ValidationError) as excinfo:
            EnvelopingRequest.from_wire(wire, kind=RequestKind.RELAY)
        assert excinfo.value.field == "gas"

    def test_copies_are_new_instances(self):
        request = _relay_request()

        updated = request.with_fees_receiver(TARGET).with_token_gas(21_000)

        assert request.relay_data.fees_receiver == ZERO_ADDRESS
        assert request.request.token_gas == 0
        assert updated.relay_data.fees_receiver == TARGET
        assert updated.request.token_gas == 21_000

    def test_frozen(self):
        with pytest.raises(FrozenInstanceError):
            _relay_request().request.nonce = 9  # type: ignore[misc]


def test_tx_request_wire_keeps_max_nonce_numeric():
    tx_request = EnvelopingTxRequest(
        relay_request=_relay_request(),
        metadata=EnvelopingMetadata(signature="0x01", relay_hub_address=HUB, relay_max_nonce=7),
    )

    wire = tx_request.to_wire()

    assert wire["metadata"] == {"signature": "0x01", "relayHubAddress": HUB, "relayMaxNonce": 7}
    assert EnvelopingTxRequest.from_wire(wire) == tx_request


def test_user_request_from_mapping():
    request = UserDefinedEnvelopingRequest.from_mapping(
        {
            "request": {"from": SENDER, "to": TARGET, "data": "0x", "index": "2", "recoverer": ZERO_ADDRESS},
            "relayData": {"callForwarder": FORWARDER, "gasPrice": "0x10"},
        }
    )

    assert request.is_deploy
    assert request.index == 2
    assert request.gas_price == 16
    assert request.call_verifier is None


def test_hub_info_from_dict():
    info = HubInfo.from_dict(
        {
            "relayWorkerAddress": SENDER,
            "relayManagerAddress": TARGET,
            "relayHubAddress": HUB,
            "feesReceiver": FORWARDER,
            "minGasPrice": "6000000",
            "ready": "true",
            "version": "2.0.1",
            "chainId": 33,
        }
    )

    assert info.ready is True
    assert info.min_gas_price == 6_000_000
    assert info.chain_id == "33"


def test_relay_manager_data_from_value():
    assert RelayManagerData.from_value("http://relay:8090/").url == "http://relay:8090"
    assert RelayManagerData.from_value({"url": "http://r", "registered": True}).registered
    with pytest.raises(ValidationError):
        RelayManagerData.from_value({"manager": SENDER})
