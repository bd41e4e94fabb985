"""
Off-chain Authorization Error Taxonomy

Every failure the protocol surfaces maps onto exactly one of these kinds.
Local failures (identity, signing) are raised before anything leaves the
signer's machine. Ledger rejections are never invented client-side: they are
classified from the reason the ledger reports.

    OffchainError
     ├─ IdentityResolutionError
     ├─ SigningError
     ├─ NetworkError                  transient, caller may retry
     ├─ ConfirmationTimeout           poll budget exhausted
     └─ SubmissionRejected            ledger said no
         ├─ SignatureRejected         rebuild and re-sign
         ├─ NonceMismatch             stale or consumed, rebuild with fresh nonce
         ├─ InsufficientFunds         economic, no retry without funding
         └─ InsufficientAllowance     economic, no retry without approval

Copyright (c) 2026 Parrot Network. All rights reserved.
"""

from __future__ import annotations

from typing import Any, Dict, Optional, Tuple, Type


class OffchainError(Exception):
    """Base class for off-chain authorization failures."""
    retryable: bool = False


class IdentityResolutionError(OffchainError):
    """An identity could not be resolved to a ledger account."""

    def __init__(self, value: Any, message: str = ""):
        self.value = value
        super().__init__(message or f"Cannot resolve identity: {value!r}")


class SigningError(OffchainError):
    """The key handle is invalid, locked, or unavailable."""
    pass


class NetworkError(OffchainError):
    """A round trip to the ledger could not complete."""
    retryable = True

    def __init__(self, operation: str, message: str = ""):
        self.operation = operation
        super().__init__(message or f"Ledger call '{operation}' failed")


class ConfirmationTimeout(OffchainError):
    """A confirmation predicate did not hold within the poll budget."""

    def __init__(self, what: str, polls: int, elapsed_seconds: float, last_value: Any = None):
        self.what = what
        self.polls = polls
        self.elapsed_seconds = elapsed_seconds
        self.last_value = last_value
        super().__init__(
            f"Timed out waiting for {what} after {polls} polls ({elapsed_seconds:.2f}s)"
        )


class SubmissionRejected(OffchainError):
    """The ledger refused a submitted envelope."""
    code = "Rejected"

    def __init__(self, reason: str, tx_hash: Optional[str] = None):
        self.reason = reason
        self.tx_hash = tx_hash
        super().__init__(f"{self.code}: {reason}")


class SignatureRejected(SubmissionRejected):
    code = "SignatureRejected"


class NonceMismatch(SubmissionRejected):
    code = "NonceMismatch"


class InsufficientFunds(SubmissionRejected):
    code = "InsufficientFunds"


class InsufficientAllowance(SubmissionRejected):
    code = "InsufficientAllowance"


# Reason strings as reported by the runtime modules. Pallet errors come back
# as their variant name; older modules report a bare string.
_EXACT_REASONS: Dict[str, Type[SubmissionRejected]] = {
    "InvalidSignature": SignatureRejected,
    "BadProof": SignatureRejected,
    "signature is invalid": SignatureRejected,
    "IncorrectNonce": NonceMismatch,
    "Stale": NonceMismatch,
    "Future": NonceMismatch,
    "Nonce is incorrect!": NonceMismatch,
    "InsufficientBalance": InsufficientFunds,
    "Payment": InsufficientFunds,
    "Offerer does not have enough tokens": InsufficientFunds,
    "Requestor does not have enough tokens": InsufficientFunds,
    "user does not have enough tokens": InsufficientFunds,
    "InsufficientAllowance": InsufficientAllowance,
    "Allowance does not exist.": InsufficientAllowance,
    "Not enough allowance.": InsufficientAllowance,
}

# Fallback substring matches, checked in order.
_REASON_FRAGMENTS: Tuple[Tuple[str, Type[SubmissionRejected]], ...] = (
    ("signature", SignatureRejected),
    ("nonce", NonceMismatch),
    ("allowance", InsufficientAllowance),
    ("not have enough", InsufficientFunds),
    ("insufficient", InsufficientFunds),
)


def classify_rejection(reason: Any, tx_hash: Optional[str] = None) -> SubmissionRejected:
    """Map a ledger-reported rejection reason onto the error taxonomy.

    Accepts either a bare reason string or a module error object of the form
    ``{"module": "delegation", "error": "IncorrectNonce"}``. Unrecognised
    reasons yield a plain `SubmissionRejected` carrying the raw reason.
    """
    if isinstance(reason, dict):
        text = str(reason.get("error") or reason.get("reason") or reason)
    else:
        text = str(reason or "").strip()

    kind = _EXACT_REASONS.get(text)
    if kind is None:
        lowered = text.lower()
        for fragment, candidate in _REASON_FRAGMENTS:
            if fragment in lowered:
                kind = candidate
                break

    return (kind or SubmissionRejected)(text, tx_hash=tx_hash)
