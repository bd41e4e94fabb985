"""
Authorization signer.

Signs the canonical bytes of an authorization with the signer's key handle.
The scheme is fixed (Ed25519, carried as a tagged MultiSignature); the
signature bytes themselves are whatever the scheme produces.

Use of a single signing key is serialized: concurrent `sign()` calls for the
same public key queue on one lock, so key stores that are not reentrant
(hardware tokens, remote signers) are never driven concurrently.
"""

from __future__ import annotations

import asyncio
import inspect
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Dict, List

from parrot.keys import Identity, KeyHandle, MultiSignature, verify_signature
from parrot.offchain.authorization import Authorization, SwapAuthorization, TransferAuthorization
from parrot.offchain.errors import SigningError
from parrot.offchain.observability import OffchainLayer, get_logger

logger = get_logger("signer", OffchainLayer.SIGNER)


def canonical_bytes(authorization: Authorization) -> bytes:
    """The exact bytes a signature over `authorization` covers."""
    if not isinstance(authorization, (TransferAuthorization, SwapAuthorization)):
        raise TypeError(f"Not an authorization record: {type(authorization).__name__}")
    return authorization.encode()


def verify_authorization(authorization: Authorization, signature: MultiSignature, signer: Any) -> bool:
    """Independent verification of `signature` over `authorization` for `signer`.

    The submission path never calls this; the ledger is the verifier. It is
    here for inspection tooling and for parties that want to check an
    envelope before paying to submit it.
    """
    return verify_signature(Identity.parse(signer), canonical_bytes(authorization), signature)


class KeyedLocks:
    """
    One `asyncio.Lock` per 32-byte public key, created on first use and
    dropped once no task holds or waits for it.

    Keying by public key means any object exposing an `identity` works as a
    key handle, hashable or not.
    """

    def __init__(self):
        self._entries: Dict[bytes, List[Any]] = {}

    def __len__(self) -> int:
        return len(self._entries)

    @asynccontextmanager
    async def hold(self, public_key: bytes) -> AsyncIterator[None]:
        entry = self._entries.setdefault(public_key, [asyncio.Lock(), 0])
        entry[1] += 1
        try:
            async with entry[0]:
                yield
        finally:
            entry[1] -= 1
            if entry[1] == 0:
                del self._entries[public_key]


class Signer:
    """
    Produces signatures over canonical authorization bytes.

    Example:
        signer = Signer()
        signature = await signer.sign(offer, bob_keypair)
    """

    def __init__(self):
        self._locks = KeyedLocks()

    async def sign(self, authorization: Authorization, key_handle: KeyHandle) -> MultiSignature:
        payload = canonical_bytes(authorization)

        sign_bytes = getattr(key_handle, "sign_bytes", None)
        identity = getattr(key_handle, "identity", None)
        if not callable(sign_bytes) or not isinstance(identity, Identity):
            raise SigningError(f"Invalid key handle: {type(key_handle).__name__}")

        async with self._locks.hold(identity.public_key):
            try:
                signature = sign_bytes(payload)
                if inspect.isawaitable(signature):
                    signature = await signature
            except SigningError:
                logger.warning("Key handle refused to sign", signer=identity.address)
                raise
            except (ValueError, TypeError, OSError) as ex:
                raise SigningError(f"Signing with {identity.address} failed: {ex}") from ex

        if not isinstance(signature, MultiSignature):
            raise SigningError(f"Key handle returned {type(signature).__name__}, expected MultiSignature")

        logger.info(
            "Signed authorization",
            signer=identity.address,
            kind=type(authorization).__name__,
            nonce=authorization.nonce,
        )
        return signature
