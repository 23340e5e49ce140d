"""Deploy a smart wallet through a relay, paying the fee in tokens."""

import logging
import os

from dotenv import load_dotenv

from enveloping_client import (
    EnvelopingConfig,
    RelayClient,
    RequestConfig,
    RequestKind,
    UserDefinedEnvelopingRequest,
)
from enveloping_client.constants import ZERO_ADDRESS

load_dotenv()

logging.basicConfig(level=os.getenv("LOGLEVEL", "INFO"))


def example_deploy_smart_wallet():
    private_key = os.getenv("PRIVATE_KEY")
    owner = os.getenv("ACCOUNT_ADDRESS")
    if not private_key or not owner:
        raise ValueError("PRIVATE_KEY and ACCOUNT_ADDRESS must be set in environment variables")

    index = int(os.getenv("SMART_WALLET_INDEX", "0"))

    client = RelayClient(EnvelopingConfig.from_env())
    client.connect()
    client.add_account(private_key, owner)

    smart_wallet = client.get_smart_wallet_address(owner, index)
    print(f"Smart wallet for {owner} at index {index}: {smart_wallet}")

    request = UserDefinedEnvelopingRequest(
        kind=RequestKind.DEPLOY,
        from_address=owner,
        to=ZERO_ADDRESS,
        data="0x",
        token_contract=os.getenv("TOKEN_CONTRACT", ZERO_ADDRESS),
        token_amount=int(os.getenv("TOKEN_AMOUNT", "0")),
        index=index,
    )

    # Token gas for a deploy is paid from the not yet deployed wallet
    request_config = RequestConfig(pre_deploy_sw_address=smart_wallet)

    estimation = client.estimate_transaction(request, request_config)
    print(f"Relay estimation: {estimation.estimation} gas at {estimation.gas_price} wei")

    result = client.relay_transaction(request, request_config)
    print(f"Deploy relayed: {result.transaction.hash}")
    if result.status is not None:
        print(f"Outcome: {result.status.outcome.value}")

    client.disconnect()


def main():
    """Run examples."""
    print("=" * 50)
    print("Enveloping Client - Example 02")
    print("Deploy a smart wallet")
    print("=" * 50)

    example_deploy_smart_wallet()


if __name__ == "__main__":
    main()
