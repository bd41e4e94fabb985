"""
Signed envelopes.

An envelope bundles the claim (authorization), the proof (signature) and the
claimed identity (signer) into one immutable, self-describing value that can
be handed to any other party out of band.

Construction is pure data assembly. It never checks the signature: that is
the ledger's job, and a client-side check could disagree with it.

Binary form (for transport between parties):

    SignedTransfer  = TransferAuthorization (64) | MultiSignature (65) | signer (32)
    SignedOffer     = SwapAuthorization (80)     | MultiSignature (65) | signer (32)

A one-byte kind tag precedes the record in `encode_envelope()` output so a
receiver can decode without knowing the kind in advance.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Union

from parrot.codec import Reader, from_hex, to_hex
from parrot.keys import Identity, MultiSignature
from parrot.offchain.authorization import Authorization, SwapAuthorization, TransferAuthorization
from parrot.offchain.observability import OffchainLayer, get_logger

logger = get_logger("envelope", OffchainLayer.ENVELOPE)

KIND_TRANSFER = 0x01
KIND_OFFER = 0x02


@dataclass(frozen=True)
class SignedTransfer:
    """A delegated transfer, ready for a fee payer to submit."""
    authorization: TransferAuthorization
    signature: MultiSignature
    signer: Identity

    KIND = KIND_TRANSFER

    @property
    def nonce(self) -> int:
        return self.authorization.nonce

    def encode(self) -> bytes:
        return self.authorization.encode() + self.signature.encode() + self.signer.public_key


@dataclass(frozen=True)
class SignedOffer:
    """A swap offer, ready for a counterparty to accept by submitting it."""
    authorization: SwapAuthorization
    signature: MultiSignature
    signer: Identity

    KIND = KIND_OFFER

    @property
    def nonce(self) -> int:
        return self.authorization.nonce

    def encode(self) -> bytes:
        return self.authorization.encode() + self.signature.encode() + self.signer.public_key


SignedEnvelope = Union[SignedTransfer, SignedOffer]

_BY_KIND = {
    KIND_TRANSFER: (SignedTransfer, TransferAuthorization),
    KIND_OFFER: (SignedOffer, SwapAuthorization),
}


def build_envelope(authorization: Authorization, signature: MultiSignature, signer: Any) -> SignedEnvelope:
    """Bundle an authorization with its signature and claimed signer."""
    signer_id = Identity.parse(signer)
    if not isinstance(signature, MultiSignature):
        raise TypeError(f"signature must be a MultiSignature, got {type(signature).__name__}")

    if isinstance(authorization, TransferAuthorization):
        envelope: SignedEnvelope = SignedTransfer(authorization, signature, signer_id)
    elif isinstance(authorization, SwapAuthorization):
        envelope = SignedOffer(authorization, signature, signer_id)
    else:
        raise TypeError(f"Not an authorization record: {type(authorization).__name__}")

    logger.debug(
        "Built envelope", kind=type(envelope).__name__, signer=signer_id.address, nonce=envelope.nonce,
    )
    return envelope


# ---------------------------------------------------------------------------
# Transferable forms
# ---------------------------------------------------------------------------


def encode_envelope(envelope: SignedEnvelope) -> bytes:
    return bytes([envelope.KIND]) + envelope.encode()


def decode_envelope(data: bytes) -> SignedEnvelope:
    """Inverse of `encode_envelope`; rejects unknown kinds and trailing bytes."""
    r = Reader(data)
    kind = r.u8()
    if kind not in _BY_KIND:
        raise ValueError(f"Unknown envelope kind tag 0x{kind:02x}")
    envelope_cls, record_cls = _BY_KIND[kind]

    authorization = record_cls.decode(r.take(record_cls.ENCODED_LEN))
    scheme_tag = r.take(1)
    signature = MultiSignature.decode(scheme_tag + r.take(MultiSignature.encoded_length(scheme_tag[0]) - 1))
    signer = Identity(r.account_id())
    r.finish()
    return envelope_cls(authorization, signature, signer)


def envelope_to_dict(envelope: SignedEnvelope) -> Dict[str, Any]:
    """JSON-safe form; amounts as decimal strings, binary as 0x hex."""
    return {
        "kind": "transfer" if isinstance(envelope, SignedTransfer) else "offer",
        "authorization": envelope.authorization.to_dict(),
        "signature": envelope.signature.to_hex(),
        "signer": envelope.signer.address,
    }


def envelope_from_dict(data: Dict[str, Any]) -> SignedEnvelope:
    kind = data.get("kind")
    if kind == "transfer":
        authorization: Authorization = TransferAuthorization.from_dict(data["authorization"])
    elif kind == "offer":
        authorization = SwapAuthorization.from_dict(data["authorization"])
    else:
        raise ValueError(f"Unknown envelope kind: {kind!r}")
    signature = MultiSignature.decode(from_hex(data["signature"]))
    return build_envelope(authorization, signature, Identity.parse(data["signer"]))


def envelope_to_hex(envelope: SignedEnvelope) -> str:
    return to_hex(encode_envelope(envelope))


def envelope_from_hex(text: str) -> SignedEnvelope:
    return decode_envelope(from_hex(text))
