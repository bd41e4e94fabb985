"""
Parrot Off-chain Authorization Client

Lets a signer authorize one specific ledger effect (a native-currency
transfer, or a token swap) without submitting anything or paying a fee. A
signed envelope travels out of band to a second party, the origin, who
submits it, pays the fee, and in the swap case supplies the other leg.

Architecture
────────────

    ┌─────────────────────────────────────────────────────────────────────────┐
    │                      OFF-CHAIN AUTHORIZATION                             │
    │                                                                          │
    │  SIGNER'S SIDE                                                           │
    │    nonce.py          Replay counter read from the ledger                 │
    │    authorization.py  TransferAuthorization / SwapAuthorization, builder  │
    │    signer.py         Signature over the canonical 64/80-byte encoding    │
    │    envelope.py       SignedTransfer / SignedOffer, hex and JSON forms    │
    │                                                                          │
    │  ORIGIN'S SIDE                                                           │
    │    submitter.py      Routes envelopes, classifies ledger rejections      │
    │    confirmation.py   Polls ledger state until the effect is visible      │
    │    workflow.py       build -> sign -> envelope -> submit -> confirm      │
    │                                                                          │
    │  LEDGER BOUNDARY                                                         │
    │    ledger.py         LedgerClient protocol, receipts, sessions           │
    │    memory.py         In-memory reference ledger                          │
    │                                                                          │
    │  AMBIENT                                                                 │
    │    errors.py  hardening.py  resilience.py  config.py  observability.py   │
    │    cli.py                                                                │
    └─────────────────────────────────────────────────────────────────────────┘

Core Concepts
─────────────

    Authorization: The unsigned claim "signer allows this effect, as of nonce
    N". Its fixed-width little-endian encoding is exactly what gets signed.

    Nonce: Per-account replay counter kept by the ledger. An authorization is
    valid only while the signer's counter still equals its embedded nonce;
    any successful operation from the signer consumes it.

    Origin: The account that submits an envelope and pays its fee. It is not
    the signer. In a swap it is the counterparty.

Design Principles
─────────────────

    The ledger verifies. The client never checks a signature before
    submitting and never infers success; rejections are classified from the
    reason the ledger reports.

    One attempt by default. Resubmission happens only through an explicit
    `RetryPolicy`, and only after transport failures.

Copyright (c) 2026 Parrot Network. All rights reserved.
"""

__version__ = "0.3.0"

# Lazy imports to avoid circular dependencies
def __getattr__(name):
    """Lazy import off-chain modules on first access."""

    if name in ("TransferAuthorization", "SwapAuthorization", "AuthorizationBuilder"):
        from parrot.offchain import authorization
        return getattr(authorization, name)

    if name in ("Signer", "canonical_bytes", "verify_authorization"):
        from parrot.offchain import signer
        return getattr(signer, name)

    if name in ("SignedTransfer", "SignedOffer", "build_envelope", "encode_envelope",
                "decode_envelope", "envelope_to_dict", "envelope_from_dict",
                "envelope_to_hex", "envelope_from_hex"):
        from parrot.offchain import envelope
        return getattr(envelope, name)

    if name in ("Submitter",):
        from parrot.offchain import submitter
        return getattr(submitter, name)

    if name in ("get_nonce",):
        from parrot.offchain import nonce
        return getattr(nonce, name)

    if name in ("LedgerClient", "LedgerResponse", "SubmissionReceipt", "OperationKind",
                "ledger_session"):
        from parrot.offchain import ledger
        return getattr(ledger, name)

    if name in ("InMemoryLedger", "LedgerEvent"):
        from parrot.offchain import memory
        return getattr(memory, name)

    if name in ("OffchainWorkflow",):
        from parrot.offchain import workflow
        return getattr(workflow, name)

    if name in ("confirm_receipt", "wait_for_nonce_advance", "wait_for_balance_change"):
        from parrot.offchain import confirmation
        return getattr(confirmation, name)

    if name in ("OffchainError", "IdentityResolutionError", "SigningError", "NetworkError",
                "ConfirmationTimeout", "SubmissionRejected", "SignatureRejected",
                "NonceMismatch", "InsufficientFunds", "InsufficientAllowance",
                "classify_rejection"):
        from parrot.offchain import errors
        return getattr(errors, name)

    if name in ("RetryPolicy", "PollPolicy", "RetryExhaustedError", "wait_until"):
        from parrot.offchain import resilience
        return getattr(resilience, name)

    if name in ("get_config", "get_config_manager"):
        from parrot.offchain import config
        return getattr(config, name)

    if name in ("configure_logging",):
        from parrot.offchain import observability
        return getattr(observability, name)

    raise AttributeError(f"module 'parrot.offchain' has no attribute '{name}'")

__all__ = [
    "__version__",
    # Records and envelopes
    "TransferAuthorization",
    "SwapAuthorization",
    "AuthorizationBuilder",
    "Signer",
    "SignedTransfer",
    "SignedOffer",
    "build_envelope",
    "envelope_to_hex",
    "envelope_from_hex",
    # Submission
    "Submitter",
    "SubmissionReceipt",
    "OffchainWorkflow",
    "get_nonce",
    "confirm_receipt",
    # Ledger
    "LedgerClient",
    "InMemoryLedger",
    "ledger_session",
    # Errors
    "OffchainError",
    "IdentityResolutionError",
    "SigningError",
    "NetworkError",
    "ConfirmationTimeout",
    "SubmissionRejected",
    "SignatureRejected",
    "NonceMismatch",
    "InsufficientFunds",
    "InsufficientAllowance",
    # Policies
    "RetryPolicy",
    "PollPolicy",
]
