"""
Replay-counter retrieval.

The nonce is owned by the ledger; the client only reads it. Nothing is
cached: the counter can advance through operations this process never
sees, so every authorization re-reads it.
"""

from __future__ import annotations

from typing import Any

from parrot.keys import Identity
from parrot.offchain.errors import NetworkError
from parrot.offchain.hardening import Validators
from parrot.offchain.ledger import TRANSPORT_ERRORS, LedgerClient
from parrot.offchain.observability import OffchainLayer, get_logger

logger = get_logger("nonce", OffchainLayer.NONCE)


async def get_nonce(client: LedgerClient, identity: Any) -> int:
    """Read `identity`'s current replay counter from the ledger.

    Raises `IdentityResolutionError` for an unresolvable identity and
    `NetworkError` when the read cannot complete or returns garbage.
    """
    who = Identity.parse(identity)
    try:
        value = await client.query_nonce(who)
    except TRANSPORT_ERRORS as ex:
        raise NetworkError("query_nonce", f"Nonce read for {who.address} failed: {ex}") from ex

    result = Validators.validate_nonce(value)
    if not result.is_valid:
        raise NetworkError(
            "query_nonce", f"Ledger returned a malformed nonce for {who.address}: {value!r}"
        )

    logger.debug("Read replay counter", signer=who.address, nonce=value)
    return value
