"""
Off-chain authorization workflow.

Chains the protocol stages for callers that hold both the signing key and a
ledger connection:

    authorize_*   nonce read -> build -> sign -> envelope
    execute       submit (as origin) -> optionally poll until the signer's
                  nonce advances

The stages stay independently usable; an air-gapped signer only needs
`authorize_*` (or the CLI's explicit-nonce signing), and a fee payer only
needs `execute`.

Every call runs under a fresh correlation id unless one is already set, so
the builder, signer and submitter log lines of one operation can be joined.
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Optional

from parrot.keys import Identity, KeyHandle
from parrot.offchain.authorization import AuthorizationBuilder
from parrot.offchain.confirmation import confirm_receipt
from parrot.offchain.envelope import SignedEnvelope, SignedOffer, SignedTransfer, build_envelope
from parrot.offchain.ledger import LedgerClient, SubmissionReceipt
from parrot.offchain.observability import (
    OffchainLayer,
    correlation_id_var,
    generate_correlation_id,
    get_logger,
)
from parrot.offchain.resilience import PollPolicy
from parrot.offchain.signer import KeyedLocks, Signer
from parrot.offchain.submitter import Submitter

logger = get_logger("workflow", OffchainLayer.WORKFLOW)


@asynccontextmanager
async def _correlated() -> AsyncIterator[str]:
    current = correlation_id_var.get()
    if current:
        yield current
        return
    token = correlation_id_var.set(generate_correlation_id())
    try:
        yield correlation_id_var.get()
    finally:
        correlation_id_var.reset(token)


class OffchainWorkflow:
    """
    Build, sign and submit off-chain authorizations.

    Example:
        workflow = OffchainWorkflow(ledger)
        offer = await workflow.authorize_swap(bob, 1, 100, 0, 200)
        receipt = await workflow.execute(offer, Submitter(ledger, alice))
    """

    def __init__(self, client: LedgerClient, signer: Optional[Signer] = None):
        self._client = client
        self._builder = AuthorizationBuilder(client)
        self._signer = signer or Signer()
        self._signer_locks = KeyedLocks()

    @property
    def builder(self) -> AuthorizationBuilder:
        return self._builder

    @property
    def signer(self) -> Signer:
        return self._signer

    @asynccontextmanager
    async def serialized(self, identity: Any) -> AsyncIterator[Identity]:
        """Hold the per-signer lock for a whole read-sign-submit-confirm sequence.

        The lock is not reentrant: do not nest `serialized()` for one signer.
        It is discarded once no caller holds or awaits it.
        """
        who = Identity.parse(identity)
        async with self._signer_locks.hold(who.public_key):
            yield who

    async def authorize_transfer(self, key: KeyHandle, destination: Any, amount: int) -> SignedTransfer:
        async with _correlated():
            authorization = await self._builder.build_transfer(key.identity, destination, amount)
            signature = await self._signer.sign(authorization, key)
            return build_envelope(authorization, signature, key.identity)

    async def authorize_swap(
        self,
        key: KeyHandle,
        offered_token: int,
        offered_amount: int,
        requested_token: int,
        requested_amount: int,
    ) -> SignedOffer:
        async with _correlated():
            offer = await self._builder.build_swap(
                key.identity, offered_token, offered_amount, requested_token, requested_amount,
            )
            signature = await self._signer.sign(offer, key)
            return build_envelope(offer, signature, key.identity)

    async def execute(
        self,
        envelope: SignedEnvelope,
        submitter: Submitter,
        confirm: bool = True,
        policy: Optional[PollPolicy] = None,
    ) -> SubmissionReceipt:
        """Submit `envelope` through `submitter`; with `confirm`, wait for the effect."""
        async with _correlated():
            receipt = await submitter.submit(envelope)
            if confirm:
                await confirm_receipt(self._client, receipt, policy or PollPolicy.from_config())
            logger.info(
                "Workflow completed",
                tx_hash=receipt.tx_hash, kind=receipt.kind.value, confirmed=confirm,
            )
            return receipt
