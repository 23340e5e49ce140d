"""Relay a smart wallet call through the configured relay servers."""

import logging
import os

from dotenv import load_dotenv

from enveloping_client import (
    EnvelopingConfig,
    EnvelopingEvent,
    RelayClient,
    RequestConfig,
    UserDefinedEnvelopingRequest,
)

load_dotenv()

logging.basicConfig(level=os.getenv("LOGLEVEL", "INFO"))


def print_event(event: EnvelopingEvent, *args) -> None:
    print(f"  -> {event.value}")


def example_relay_transaction():
    """Relay a call from the owner's smart wallet, paying no fee."""

    private_key = os.getenv("PRIVATE_KEY")
    if not private_key:
        raise ValueError("PRIVATE_KEY not found in environment variables")
    smart_wallet = os.getenv("SMART_WALLET_ADDRESS")
    if not smart_wallet:
        raise ValueError("SMART_WALLET_ADDRESS not found in environment variables")

    config = EnvelopingConfig.from_env()
    client = RelayClient(config)
    client.connect()
    client.register_event_listener(print_event)

    owner = os.getenv("ACCOUNT_ADDRESS")
    if owner:
        client.add_account(private_key, owner)
        print(f"Owner of {smart_wallet}: {client.is_smart_wallet_owner(smart_wallet, owner)}")

    client.refresh_relays()

    request = UserDefinedEnvelopingRequest(
        from_address=owner,
        to=os.getenv("DESTINATION_CONTRACT", config.relay_hub_address),
        data=os.getenv("DESTINATION_CALLDATA", "0x"),
        token_contract=os.getenv("TOKEN_CONTRACT", "0x0000000000000000000000000000000000000000"),
        token_amount=int(os.getenv("TOKEN_AMOUNT", "0")),
        call_forwarder=smart_wallet,
    )

    result = client.relay_transaction(request, RequestConfig(receipt_timeout=60), signer_key=private_key)

    print("Transaction relayed!")
    print(f"Relay: {result.relay_url}")
    print(f"Tx Hash: {result.transaction.hash}")
    if result.status is not None:
        print(f"Outcome: {result.status.outcome.value}")

    client.disconnect()


def main():
    """Run examples."""
    print("=" * 50)
    print("Enveloping Client - Example 01")
    print("Relay a smart wallet call")
    print("=" * 50)

    example_relay_transaction()


if __name__ == "__main__":
    main()
