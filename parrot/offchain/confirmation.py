"""
Effect confirmation by state polling.

A submission receipt only says the ledger took the envelope. Whether the
authorized effect happened is read back from ledger state: the signer's
nonce moves past the envelope's nonce exactly when the ledger accepted it.
"""

from __future__ import annotations

from typing import Any, Optional

from parrot.keys import Identity
from parrot.offchain.ledger import LedgerClient, SubmissionReceipt
from parrot.offchain.nonce import get_nonce
from parrot.offchain.observability import OffchainLayer, get_logger
from parrot.offchain.resilience import PollPolicy, wait_until

logger = get_logger("confirmation", OffchainLayer.CONFIRMATION)


async def wait_for_nonce_advance(
    client: LedgerClient,
    identity: Any,
    past_nonce: int,
    policy: Optional[PollPolicy] = None,
) -> int:
    """Wait until `identity`'s nonce is greater than `past_nonce`; return it."""
    who = Identity.parse(identity)
    nonce = await wait_until(
        lambda: get_nonce(client, who),
        lambda n: n > past_nonce,
        policy,
        what=f"nonce of {who.address} to pass {past_nonce}",
    )
    logger.debug("Nonce advanced", signer=who.address, past_nonce=past_nonce, nonce=nonce)
    return nonce


async def wait_for_balance_change(
    client: LedgerClient,
    identity: Any,
    before: int,
    token_id: Optional[int] = None,
    policy: Optional[PollPolicy] = None,
) -> int:
    """Wait until `identity`'s balance differs from `before`; return the new balance."""
    who = Identity.parse(identity)
    label = "native" if token_id is None else f"token {token_id}"
    balance = await wait_until(
        lambda: client.query_balance(who, token_id),
        lambda b: b != before,
        policy,
        what=f"{label} balance of {who.address} to change from {before}",
    )
    logger.debug("Balance changed", account=who.address, token=label, before=before, after=balance)
    return balance


async def confirm_receipt(
    client: LedgerClient,
    receipt: SubmissionReceipt,
    policy: Optional[PollPolicy] = None,
) -> int:
    """Confirm the operation behind `receipt` took effect; returns the signer's new nonce."""
    nonce = await wait_for_nonce_advance(client, receipt.signer, receipt.nonce, policy)
    logger.info("Submission confirmed", tx_hash=receipt.tx_hash, signer=receipt.signer.address, nonce=nonce)
    return nonce
