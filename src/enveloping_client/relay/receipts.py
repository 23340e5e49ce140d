"""Classification of relayed transaction receipts."""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any

from .. import abi
from ..types import RelayOutcome, RelayStatus

logger = logging.getLogger(__name__)


def classify_receipt(receipt: Mapping[str, Any] | None) -> RelayStatus:
    """Derive the relay outcome from the RelayHub events in ``receipt``.

    Never raises; logs that cannot be decoded are skipped.
    """

    logs = (receipt or {}).get("logs") or []
    if not logs:
        logger.info("Receipt has no logs, possibly a non-enveloping transaction")
        return RelayStatus(outcome=RelayOutcome.NO_LOGS)

    decoded = [entry for entry in (_safe_decode(log) for log in logs) if entry is not None]
    by_name = {entry.name: entry for entry in reversed(decoded)}

    reverted = by_name.get(abi.TRANSACTION_RELAYED_BUT_REVERTED.name)
    if reverted is not None:
        reason = abi.decode_revert_reason(reverted.args.get("reason"))
        logger.info("Transaction relayed but reverted on recipient: %s", reason)
        return RelayStatus(
            outcome=RelayOutcome.REVERTED_BY_RECIPIENT,
            transaction_relayed=True,
            relay_reverted_on_recipient=True,
            reason=reason,
        )

    if abi.TRANSACTION_RELAYED.name in by_name:
        return RelayStatus(outcome=RelayOutcome.RELAYED, transaction_relayed=True)

    if abi.DEPLOYED.name in by_name:
        return RelayStatus(outcome=RelayOutcome.DEPLOYED, transaction_relayed=True)

    logger.info("Unrecognized receipt events, possibly a non-enveloping transaction")
    return RelayStatus(outcome=RelayOutcome.UNRECOGNIZED)


def _safe_decode(log: Any) -> abi.DecodedLog | None:
    if not isinstance(log, Mapping):
        return None
    try:
        return abi.decode_log(log)
    except Exception as exc:
        logger.debug("Skipping undecodable log: %s", exc)
        return None
