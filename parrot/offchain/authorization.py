"""
Authorization records and their builder.

An authorization is the unsigned claim "signer allows this one effect, as of
replay counter N". There is one concrete, statically typed record per
operation kind:

    TransferAuthorization   amount u128 | destination [32] | nonce u128     64 bytes
    SwapAuthorization       offered_token u128 | offered_amount u128 |
                            requested_token u128 | requested_amount u128 |
                            nonce u128                                      80 bytes

The byte layout above is the canonical signing input. It is produced by
`encode()` from an explicit field table, so reordering dataclass fields can
never change what gets signed.
"""

from __future__ import annotations

import dataclasses
from dataclasses import dataclass
from typing import Any, ClassVar, Dict, Tuple, Union

from parrot.codec import Reader, encode_account_id, encode_u128
from parrot.keys import Identity
from parrot.offchain.hardening import ValidationError, Validators
from parrot.offchain.ledger import LedgerClient
from parrot.offchain.nonce import get_nonce
from parrot.offchain.observability import OffchainLayer, get_logger, timed_operation

logger = get_logger("authorization", OffchainLayer.BUILDER)


@dataclass(frozen=True)
class TransferAuthorization:
    """Signer authorizes moving `amount` of the native currency to `destination`, once."""
    amount: int
    destination: Identity
    nonce: int

    FIELDS: ClassVar[Tuple[str, ...]] = ("amount", "destination", "nonce")
    ENCODED_LEN: ClassVar[int] = 16 + 32 + 16

    def __post_init__(self):
        Validators.validate_amount(self.amount).raise_if_invalid()
        Validators.validate_nonce(self.nonce).raise_if_invalid()
        if not isinstance(self.destination, Identity):
            object.__setattr__(self, "destination", Identity.parse(self.destination))

    def encode(self) -> bytes:
        return (
            encode_u128(self.amount, "amount")
            + encode_account_id(self.destination.public_key, "destination")
            + encode_u128(self.nonce, "nonce")
        )

    @classmethod
    def decode(cls, data: bytes) -> "TransferAuthorization":
        r = Reader(data)
        amount = r.u128()
        destination = Identity(r.account_id())
        nonce = r.u128()
        r.finish()
        return cls(amount=amount, destination=destination, nonce=nonce)

    def with_nonce(self, nonce: int) -> "TransferAuthorization":
        return dataclasses.replace(self, nonce=nonce)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "amount": str(self.amount),
            "destination": self.destination.address,
            "nonce": str(self.nonce),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "TransferAuthorization":
        return cls(
            amount=_int_field(data, "amount"),
            destination=Identity.parse(data["destination"]),
            nonce=_int_field(data, "nonce"),
        )


@dataclass(frozen=True)
class SwapAuthorization:
    """Signer offers `offered_amount` of `offered_token` for `requested_amount` of `requested_token`, once."""
    offered_token: int
    offered_amount: int
    requested_token: int
    requested_amount: int
    nonce: int

    FIELDS: ClassVar[Tuple[str, ...]] = (
        "offered_token", "offered_amount", "requested_token", "requested_amount", "nonce",
    )
    ENCODED_LEN: ClassVar[int] = 16 * 5

    def __post_init__(self):
        Validators.validate_token_id(self.offered_token, "offered_token").raise_if_invalid()
        Validators.validate_amount(self.offered_amount, "offered_amount").raise_if_invalid()
        Validators.validate_token_id(self.requested_token, "requested_token").raise_if_invalid()
        Validators.validate_amount(self.requested_amount, "requested_amount").raise_if_invalid()
        Validators.validate_nonce(self.nonce).raise_if_invalid()

    def encode(self) -> bytes:
        return b"".join(encode_u128(getattr(self, name), name) for name in self.FIELDS)

    @classmethod
    def decode(cls, data: bytes) -> "SwapAuthorization":
        r = Reader(data)
        values = {name: r.u128() for name in cls.FIELDS}
        r.finish()
        return cls(**values)

    def with_nonce(self, nonce: int) -> "SwapAuthorization":
        return dataclasses.replace(self, nonce=nonce)

    def to_dict(self) -> Dict[str, Any]:
        return {name: str(getattr(self, name)) for name in self.FIELDS}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SwapAuthorization":
        return cls(**{name: _int_field(data, name) for name in cls.FIELDS})


Authorization = Union[TransferAuthorization, SwapAuthorization]


def _int_field(data: Dict[str, Any], name: str) -> int:
    # Amounts travel as decimal strings so JSON consumers never round them.
    value = data[name]
    if isinstance(value, str):
        if not (value.isascii() and value.isdigit()):
            raise ValidationError(name, "must be a string of decimal digits", value)
        return int(value, 10)
    return value


class AuthorizationBuilder:
    """
    Assembles unsigned authorizations from the signer's current nonce.

    Each build performs exactly one nonce read. The read is not atomic with
    the later submission: sign and submit promptly, and serialize builds for
    one signer (see `OffchainWorkflow.serialized`) when issuing several.
    """

    def __init__(self, client: LedgerClient):
        self._client = client

    @timed_operation(logger, "build_transfer")
    async def build_transfer(self, signer: Any, destination: Any, amount: int) -> TransferAuthorization:
        signer_id = Identity.parse(signer)
        dest = Identity.parse(destination)
        Validators.validate_amount(amount).raise_if_invalid()

        nonce = await get_nonce(self._client, signer_id)
        authorization = TransferAuthorization(amount=amount, destination=dest, nonce=nonce)
        logger.info(
            "Built transfer authorization",
            signer=signer_id.address, destination=dest.address, amount=amount, nonce=nonce,
        )
        return authorization

    @timed_operation(logger, "build_swap")
    async def build_swap(
        self,
        signer: Any,
        offered_token: int,
        offered_amount: int,
        requested_token: int,
        requested_amount: int,
    ) -> SwapAuthorization:
        signer_id = Identity.parse(signer)
        Validators.validate_token_id(offered_token, "offered_token").raise_if_invalid()
        Validators.validate_amount(offered_amount, "offered_amount").raise_if_invalid()
        Validators.validate_token_id(requested_token, "requested_token").raise_if_invalid()
        Validators.validate_amount(requested_amount, "requested_amount").raise_if_invalid()

        nonce = await get_nonce(self._client, signer_id)
        offer = SwapAuthorization(
            offered_token=offered_token,
            offered_amount=offered_amount,
            requested_token=requested_token,
            requested_amount=requested_amount,
            nonce=nonce,
        )
        logger.info(
            "Built swap offer",
            signer=signer_id.address,
            offered=f"{offered_amount}@{offered_token}",
            requested=f"{requested_amount}@{requested_token}",
            nonce=nonce,
        )
        return offer
