"""
Ledger client boundary.

The ledger is an external system: it owns balances, nonces and allowances,
verifies signatures, charges fees and executes swaps. This module defines
only what the off-chain client needs from it, as a `Protocol`, so any
transport (a node RPC client, `InMemoryLedger`, a test double) can be
injected.

Connection state is never ambient. A client object is passed explicitly to
every builder and submitter, and `ledger_session()` scopes its lifetime:

    async with ledger_session(client) as ledger:
        builder = AuthorizationBuilder(ledger)
        ...
"""

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, AsyncIterator, Optional, Protocol, TypeVar

from parrot.keys import Identity, KeyHandle
from parrot.offchain.config import get_config
from parrot.offchain.errors import NetworkError
from parrot.offchain.observability import OffchainLayer, get_logger

logger = get_logger("session", OffchainLayer.LEDGER)

# Exceptions a transport may raise for an undeliverable round trip. These are
# wrapped into NetworkError at the protocol boundary.
TRANSPORT_ERRORS = (ConnectionError, OSError, asyncio.TimeoutError)


class OperationKind(Enum):
    """Ledger entry point a signed envelope is submitted to."""
    DELEGATED_TRANSFER = "delegation.delegated_transfer"
    SWAP = "prc20.swap"


@dataclass(frozen=True)
class LedgerResponse:
    """Raw answer from a submission entry point.

    `accepted` False means the ledger rejected the operation; `reason` then
    holds its error code or message, unclassified.
    """
    tx_hash: str
    accepted: bool
    reason: Any = None
    fee: Optional[int] = None


@dataclass(frozen=True)
class SubmissionReceipt:
    """
    Proof that a submission was accepted by the ledger.

    A receipt does not by itself guarantee the authorized effect occurred;
    confirm it by polling ledger state (see `parrot.offchain.confirmation`).
    """
    tx_hash: str
    kind: OperationKind
    signer: Identity
    origin: Identity
    nonce: int
    fee: Optional[int] = None
    submitted_at: str = field(
        default_factory=lambda: datetime.now(timezone.utc).isoformat()
    )

    def to_dict(self) -> dict:
        return {
            "tx_hash": self.tx_hash,
            "kind": self.kind.value,
            "signer": self.signer.address,
            "origin": self.origin.address,
            "nonce": self.nonce,
            "fee": self.fee,
            "submitted_at": self.submitted_at,
        }


class LedgerClient(Protocol):
    """What the off-chain protocol consumes from the ledger."""

    async def connect(self) -> None:
        ...

    async def close(self) -> None:
        ...

    async def query_nonce(self, identity: Identity) -> int:
        ...

    async def query_balance(self, identity: Identity, token_id: Optional[int] = None) -> int:
        """Native balance when `token_id` is None, token balance otherwise."""
        ...

    async def query_allowance(self, owner: Identity, spender: Identity, token_id: int) -> int:
        ...

    async def submit_delegated_transfer(self, origin: KeyHandle, envelope: Any) -> LedgerResponse:
        ...

    async def submit_swap(self, origin: KeyHandle, envelope: Any) -> LedgerResponse:
        ...


C = TypeVar("C", bound=LedgerClient)


@asynccontextmanager
async def ledger_session(client: C, connect_timeout: Optional[float] = None) -> AsyncIterator[C]:
    """Connect `client`, yield it, and always close it on the way out.

    `connect_timeout` defaults to `ledger.connect_timeout_seconds`; a connect
    that outlasts it is a `NetworkError` like any refused connection.
    """
    if connect_timeout is None:
        connect_timeout = get_config().ledger.connect_timeout_seconds.get()
    try:
        await asyncio.wait_for(client.connect(), connect_timeout)
    except TRANSPORT_ERRORS as ex:
        raise NetworkError("connect", f"Cannot connect to ledger: {str(ex) or type(ex).__name__}") from ex
    logger.debug("Ledger session opened", client=type(client).__name__)
    try:
        yield client
    finally:
        await client.close()
        logger.debug("Ledger session closed", client=type(client).__name__)
