"""
Envelope submitter.

Runs on whichever party broadcasts the envelope and pays the fee (the
"origin"), which need not be the signer. The submitter adds nothing to the
envelope; it routes it to the matching ledger entry point and turns the
ledger's answer into either a `SubmissionReceipt` or one classified
exception:

    ledger says            raised
    ─────────────────────  ──────────────────────
    bad signature          SignatureRejected
    wrong nonce            NonceMismatch
    balance too low        InsufficientFunds
    allowance too low      InsufficientAllowance
    anything else          SubmissionRejected
    transport failure      NetworkError

Retries are governed solely by the `RetryPolicy` passed in; the default
makes one attempt.
"""

from __future__ import annotations

from typing import Optional

from parrot.keys import Identity, KeyHandle
from parrot.offchain.envelope import SignedEnvelope, SignedOffer, SignedTransfer
from parrot.offchain.errors import NetworkError, classify_rejection
from parrot.offchain.ledger import TRANSPORT_ERRORS, LedgerClient, LedgerResponse, OperationKind, SubmissionReceipt
from parrot.offchain.observability import OffchainLayer, get_correlation_id, get_logger
from parrot.offchain.resilience import RetryPolicy

logger = get_logger("submitter", OffchainLayer.SUBMITTER)


class Submitter:
    """
    Submits signed envelopes on behalf of `origin`.

    Example:
        submitter = Submitter(ledger, origin=alice)
        receipt = await submitter.submit(signed_offer)
    """

    def __init__(
        self,
        client: LedgerClient,
        origin: KeyHandle,
        retry: Optional[RetryPolicy] = None,
    ):
        self._client = client
        self._origin = origin
        self._retry = retry or RetryPolicy(max_attempts=1)

    @property
    def origin(self) -> Identity:
        return self._origin.identity

    @property
    def retry(self) -> RetryPolicy:
        return self._retry

    async def submit(self, envelope: SignedEnvelope) -> SubmissionReceipt:
        if isinstance(envelope, SignedTransfer):
            kind = OperationKind.DELEGATED_TRANSFER
            entry_point = self._client.submit_delegated_transfer
        elif isinstance(envelope, SignedOffer):
            kind = OperationKind.SWAP
            entry_point = self._client.submit_swap
        else:
            raise TypeError(f"Not a signed envelope: {type(envelope).__name__}")

        context = dict(
            kind=kind.value,
            signer=envelope.signer.address,
            origin=self.origin.address,
            nonce=envelope.nonce,
            correlation_id=get_correlation_id(),
        )

        async def _deliver() -> LedgerResponse:
            try:
                return await entry_point(self._origin, envelope)
            except TRANSPORT_ERRORS as ex:
                raise NetworkError(kind.value, f"Submission could not be delivered: {ex}") from ex

        try:
            response = await self._retry.execute(_deliver)
        except NetworkError:
            logger.error("Submission not delivered", error_code="NetworkError", **context)
            raise

        if not response.accepted:
            error = classify_rejection(response.reason, tx_hash=response.tx_hash or None)
            logger.warning(
                "Ledger rejected envelope",
                error_code=error.code, reason=error.reason, tx_hash=response.tx_hash, **context,
            )
            raise error

        if not response.tx_hash:
            raise NetworkError(kind.value, "Ledger response carried no transaction reference")

        receipt = SubmissionReceipt(
            tx_hash=response.tx_hash,
            kind=kind,
            signer=envelope.signer,
            origin=self.origin,
            nonce=envelope.nonce,
            fee=response.fee,
        )
        logger.info("Envelope accepted", tx_hash=receipt.tx_hash, fee=receipt.fee, **context)
        return receipt
