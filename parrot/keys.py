#!/usr/bin/env python3
"""parrot.keys

Ed25519 key handles, SS58 identities and the MultiSignature wrapper used by
every off-chain authorization.

Profile / invariants:
- An identity is the 32-byte Ed25519 public key. Its human form is an SS58
  address (network prefix 42, 2-byte blake2b-512 checksum over
  ``b"SS58PRE" || prefix || key``).
- A signature travels as a MultiSignature: one scheme tag byte followed by
  the raw 64-byte signature, so the verifier never has to guess the scheme.
- Key material never leaves the `Keypair`; callers only ever see
  `sign_bytes()` and the public identity.
"""

from __future__ import annotations

import hmac
import threading
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Optional, Protocol, Union

from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PrivateKey, Ed25519PublicKey

from parrot.codec import ACCOUNT_ID_LEN, b58decode, b58encode, blake2b_256, blake2b_512, from_hex, to_hex
from parrot.offchain.errors import IdentityResolutionError, SigningError


SS58_PREFIX = 42
_SS58_CONTEXT = b"SS58PRE"
_SS58_CHECKSUM_LEN = 2

ED25519_SIGNATURE_LEN = 64


# ---------------------------------------------------------------------------
# Identity
# ---------------------------------------------------------------------------


def _ss58_checksum(payload: bytes) -> bytes:
    return blake2b_512(_SS58_CONTEXT + payload)[:_SS58_CHECKSUM_LEN]


def ss58_encode(public_key: bytes, prefix: int = SS58_PREFIX) -> str:
    if len(public_key) != ACCOUNT_ID_LEN:
        raise ValueError(f"account id must be {ACCOUNT_ID_LEN} bytes, got {len(public_key)}")
    if not 0 <= prefix < 64:
        raise ValueError("only single-byte SS58 prefixes (0-63) are supported")
    payload = bytes([prefix]) + public_key
    return b58encode(payload + _ss58_checksum(payload))


def ss58_decode(address: str, expected_prefix: Optional[int] = SS58_PREFIX) -> bytes:
    decoded = b58decode(address)
    if len(decoded) != 1 + ACCOUNT_ID_LEN + _SS58_CHECKSUM_LEN:
        raise ValueError(f"unexpected SS58 payload length {len(decoded)}")
    payload, checksum = decoded[:-_SS58_CHECKSUM_LEN], decoded[-_SS58_CHECKSUM_LEN:]
    if not hmac.compare_digest(checksum, _ss58_checksum(payload)):
        raise ValueError("SS58 checksum mismatch")
    if expected_prefix is not None and payload[0] != expected_prefix:
        raise ValueError(f"SS58 prefix {payload[0]} does not match expected {expected_prefix}")
    return payload[1:]


@dataclass(frozen=True)
class Identity:
    """A ledger account, identified by its Ed25519 public key."""
    public_key: bytes

    def __post_init__(self):
        if not isinstance(self.public_key, bytes) or len(self.public_key) != ACCOUNT_ID_LEN:
            raise IdentityResolutionError(
                self.public_key, f"Identity must wrap {ACCOUNT_ID_LEN} raw bytes"
            )

    @property
    def address(self) -> str:
        return ss58_encode(self.public_key)

    @classmethod
    def from_public_key(cls, public_key: bytes) -> "Identity":
        return cls(bytes(public_key))

    @classmethod
    def from_address(cls, address: str) -> "Identity":
        try:
            return cls(ss58_decode(address))
        except ValueError as ex:
            raise IdentityResolutionError(address, f"Invalid SS58 address {address!r}: {ex}") from ex

    @classmethod
    def parse(cls, value: Any) -> "Identity":
        """Resolve an Identity, SS58 address, ``0x`` hex key or raw 32 bytes."""
        if isinstance(value, Identity):
            return value
        if isinstance(value, (bytes, bytearray)):
            return cls(bytes(value))
        if isinstance(value, str):
            text = value.strip()
            if text.startswith(("0x", "0X")):
                try:
                    return cls(from_hex(text))
                except ValueError as ex:
                    raise IdentityResolutionError(value, f"Invalid hex account id: {ex}") from ex
            return cls.from_address(text)
        identity = getattr(value, "identity", None)
        if isinstance(identity, Identity):
            return identity
        raise IdentityResolutionError(value)

    def to_hex(self) -> str:
        return to_hex(self.public_key)

    def __str__(self) -> str:
        return self.address

    def __repr__(self) -> str:
        return f"Identity({self.address})"


# ---------------------------------------------------------------------------
# MultiSignature
# ---------------------------------------------------------------------------


class SignatureScheme(Enum):
    """Scheme tag carried in front of every signature."""
    ED25519 = 0
    SR25519 = 1
    ECDSA = 2


_SCHEME_LENGTHS = {
    SignatureScheme.ED25519: 64,
    SignatureScheme.SR25519: 64,
    SignatureScheme.ECDSA: 65,
}


@dataclass(frozen=True)
class MultiSignature:
    """A scheme-tagged signature, opaque to everything except the verifier."""
    scheme: SignatureScheme
    raw: bytes

    def __post_init__(self):
        expected = _SCHEME_LENGTHS[self.scheme]
        if len(self.raw) != expected:
            raise ValueError(f"{self.scheme.name} signature must be {expected} bytes, got {len(self.raw)}")

    def encode(self) -> bytes:
        return bytes([self.scheme.value]) + self.raw

    @classmethod
    def decode(cls, data: bytes) -> "MultiSignature":
        if not data:
            raise ValueError("empty signature")
        try:
            scheme = SignatureScheme(data[0])
        except ValueError as ex:
            raise ValueError(f"unknown signature scheme tag {data[0]}") from ex
        return cls(scheme=scheme, raw=bytes(data[1:]))

    @classmethod
    def encoded_length(cls, scheme_tag: int) -> int:
        return 1 + _SCHEME_LENGTHS[SignatureScheme(scheme_tag)]

    def to_hex(self) -> str:
        return to_hex(self.encode())


def verify_signature(identity: Identity, data: bytes, signature: MultiSignature) -> bool:
    """Check `signature` over `data` against `identity`.

    Only Ed25519 is verifiable client-side; other schemes return False rather
    than guessing.
    """
    if signature.scheme is not SignatureScheme.ED25519:
        return False
    try:
        Ed25519PublicKey.from_public_bytes(identity.public_key).verify(signature.raw, data)
    except (InvalidSignature, ValueError):
        return False
    return True


# ---------------------------------------------------------------------------
# Key handles
# ---------------------------------------------------------------------------


class KeyHandle(Protocol):
    """Anything that can sign on behalf of exactly one identity."""

    @property
    def identity(self) -> Identity:
        ...

    def sign_bytes(self, data: bytes) -> MultiSignature:
        ...


class Keypair:
    """
    In-process Ed25519 key handle.

    A keypair can be locked, after which every signing attempt raises
    `SigningError` until it is unlocked again. `wipe()` drops the private key
    for good.

    Example:
        bob = Keypair.from_uri("//Bob")
        sig = bob.sign_bytes(payload)
        assert verify_signature(bob.identity, payload, sig)
    """

    def __init__(self, private_key: Ed25519PrivateKey, name: str = ""):
        self._private_key: Optional[Ed25519PrivateKey] = private_key
        raw_pub = private_key.public_key().public_bytes(
            encoding=serialization.Encoding.Raw,
            format=serialization.PublicFormat.Raw,
        )
        self._identity = Identity(raw_pub)
        self._locked = False
        self._lock = threading.Lock()
        self.name = name

    @classmethod
    def generate(cls, name: str = "") -> "Keypair":
        return cls(Ed25519PrivateKey.generate(), name=name)

    @classmethod
    def from_seed(cls, seed: bytes, name: str = "") -> "Keypair":
        if len(seed) != 32:
            raise SigningError(f"Ed25519 seed must be 32 bytes, got {len(seed)}")
        return cls(Ed25519PrivateKey.from_private_bytes(bytes(seed)), name=name)

    @classmethod
    def from_uri(cls, uri: str) -> "Keypair":
        """Derive a development key from a secret URI such as ``//Alice``.

        The seed is blake2b-256 of the URI; this is for local development
        and tests only.
        """
        if not uri or not uri.startswith("//"):
            raise SigningError(f"Unsupported secret URI {uri!r} (expected //Name)")
        return cls.from_seed(blake2b_256(uri.encode("utf-8")), name=uri[2:])

    @property
    def identity(self) -> Identity:
        return self._identity

    @property
    def address(self) -> str:
        return self._identity.address

    @property
    def locked(self) -> bool:
        return self._locked or self._private_key is None

    def lock(self) -> None:
        with self._lock:
            self._locked = True

    def unlock(self) -> None:
        with self._lock:
            if self._private_key is None:
                raise SigningError("Key material has been wiped")
            self._locked = False

    def wipe(self) -> None:
        with self._lock:
            self._private_key = None
            self._locked = True

    def sign_bytes(self, data: bytes) -> MultiSignature:
        with self._lock:
            if self._private_key is None:
                raise SigningError(f"Key for {self.address} is unavailable")
            if self._locked:
                raise SigningError(f"Key for {self.address} is locked")
            raw = self._private_key.sign(bytes(data))
        return MultiSignature(SignatureScheme.ED25519, raw)

    def __repr__(self) -> str:
        label = f"{self.name}, " if self.name else ""
        return f"Keypair({label}{self.address})"


DEV_NAMES = ("Alice", "Bob", "Charlie", "Dave")


def dev_keyring(names: Union[List[str], tuple] = DEV_NAMES) -> Dict[str, Keypair]:
    """Well-known development accounts keyed by name."""
    return {name: Keypair.from_uri(f"//{name}") for name in names}
