"""
Authorization record and builder tests.

The canonical encoding is the signing input, so these tests pin it byte for
byte. A change here is a protocol change.

Run with: pytest tests/test_authorization.py -v
"""

import asyncio

import pytest

from parrot.codec import U128_MAX
from parrot.keys import Identity
from parrot.offchain.authorization import (
    AuthorizationBuilder,
    SwapAuthorization,
    TransferAuthorization,
)
from parrot.offchain.errors import IdentityResolutionError, NetworkError
from parrot.offchain.hardening import ValidationError

DEST = Identity(bytes(range(32)))


def _u128(n: int) -> str:
    return n.to_bytes(16, "little").hex()


# =============================================================================
# CANONICAL ENCODING
# =============================================================================

class TestTransferEncoding:
    """amount | destination | nonce, 64 bytes."""

    def test_field_order_and_width(self):
        auth = TransferAuthorization(amount=1000, destination=DEST, nonce=7)
        expected = _u128(1000) + bytes(range(32)).hex() + _u128(7)
        assert auth.encode().hex() == expected
        assert len(auth.encode()) == TransferAuthorization.ENCODED_LEN == 64

    def test_encoding_is_stable(self):
        a = TransferAuthorization(amount=5, destination=DEST, nonce=1)
        b = TransferAuthorization(amount=5, destination=DEST.address, nonce=1)
        assert a == b
        assert a.encode() == b.encode()

    def test_each_field_changes_the_bytes(self):
        base = TransferAuthorization(amount=5, destination=DEST, nonce=1)
        other_dest = Identity(b"\x01" * 32)
        variants = [
            TransferAuthorization(amount=6, destination=DEST, nonce=1),
            TransferAuthorization(amount=5, destination=other_dest, nonce=1),
            base.with_nonce(2),
        ]
        for v in variants:
            assert v.encode() != base.encode()

    def test_decode_inverts_encode(self):
        auth = TransferAuthorization(amount=U128_MAX, destination=DEST, nonce=U128_MAX)
        assert TransferAuthorization.decode(auth.encode()) == auth

    def test_decode_rejects_wrong_length(self):
        auth = TransferAuthorization(amount=1, destination=DEST, nonce=0)
        with pytest.raises(ValueError):
            TransferAuthorization.decode(auth.encode()[:-1])
        with pytest.raises(ValueError):
            TransferAuthorization.decode(auth.encode() + b"\x00")


class TestSwapEncoding:
    """offered_token | offered_amount | requested_token | requested_amount | nonce, 80 bytes."""

    def test_field_order_and_width(self):
        offer = SwapAuthorization(
            offered_token=1, offered_amount=100, requested_token=0, requested_amount=200, nonce=3,
        )
        expected = _u128(1) + _u128(100) + _u128(0) + _u128(200) + _u128(3)
        assert offer.encode().hex() == expected
        assert len(offer.encode()) == SwapAuthorization.ENCODED_LEN == 80

    def test_swapping_legs_changes_the_bytes(self):
        offer = SwapAuthorization(1, 100, 0, 200, 0)
        mirrored = SwapAuthorization(0, 200, 1, 100, 0)
        assert offer.encode() != mirrored.encode()

    def test_dict_form_uses_decimal_strings(self):
        offer = SwapAuthorization(1, U128_MAX, 0, 200, 3)
        data = offer.to_dict()
        assert data["offered_amount"] == str(U128_MAX)
        assert SwapAuthorization.from_dict(data) == offer


class TestRecordValidation:
    """Values that would not survive the 128-bit wire width are refused."""

    def test_amount_overflow(self):
        with pytest.raises(ValidationError) as exc:
            TransferAuthorization(amount=U128_MAX + 1, destination=DEST, nonce=0)
        assert exc.value.field == "amount"

    def test_negative_amount(self):
        with pytest.raises(ValidationError):
            SwapAuthorization(1, -1, 0, 1, 0)

    def test_bool_and_float_amounts(self):
        with pytest.raises(ValidationError):
            TransferAuthorization(amount=True, destination=DEST, nonce=0)
        with pytest.raises(ValidationError):
            SwapAuthorization(1, 1.5, 0, 1, 0)

    def test_nonce_overflow(self):
        with pytest.raises(ValidationError) as exc:
            SwapAuthorization(1, 1, 0, 1, U128_MAX + 1)
        assert exc.value.field == "nonce"

    def test_zero_amount_is_encodable(self):
        assert TransferAuthorization(amount=0, destination=DEST, nonce=0).encode()[:16] == b"\x00" * 16

    def test_bad_destination(self):
        with pytest.raises(IdentityResolutionError):
            TransferAuthorization(amount=1, destination="nope", nonce=0)

    @pytest.mark.parametrize("text", ["1_000", " 5", "5\n", "+5", "-5", "", "\u0661\u0662", "0x10"])
    def test_decimal_strings_only(self, text):
        data = TransferAuthorization(amount=5, destination=DEST, nonce=0).to_dict()
        data["amount"] = text
        with pytest.raises(ValidationError) as exc:
            TransferAuthorization.from_dict(data)
        assert exc.value.field == "amount"

        offer = SwapAuthorization(1, 1, 0, 1, 0).to_dict()
        offer["nonce"] = text
        with pytest.raises(ValidationError) as exc:
            SwapAuthorization.from_dict(offer)
        assert exc.value.field == "nonce"


# =============================================================================
# BUILDER
# =============================================================================

class TestAuthorizationBuilder:
    """Nonce read plus record assembly."""

    def test_transfer_uses_current_nonce(self, ledger, keyring):
        bob, charlie = keyring["Bob"], keyring["Charlie"]
        builder = AuthorizationBuilder(ledger)

        auth = asyncio.run(builder.build_transfer(bob.identity, charlie.address, 1000))
        assert auth == TransferAuthorization(amount=1000, destination=charlie.identity, nonce=0)

    def test_swap_tracks_nonce_changes(self, ledger, keyring):
        bob, alice = keyring["Bob"], keyring["Alice"]
        builder = AuthorizationBuilder(ledger)

        asyncio.run(ledger.transfer(bob, alice.identity, 1))
        offer = asyncio.run(builder.build_swap(bob, 1, 100, 0, 200))
        assert offer.nonce == 1
        assert (offer.offered_token, offer.offered_amount) == (1, 100)
        assert (offer.requested_token, offer.requested_amount) == (0, 200)

    def test_invalid_input_fails_before_network(self, ledger, keyring):
        builder = AuthorizationBuilder(ledger)
        ledger.fail_next(1)
        with pytest.raises(ValidationError):
            asyncio.run(builder.build_swap(keyring["Bob"], 1, U128_MAX + 1, 0, 1))
        # The injected failure was not consumed by the rejected build.
        with pytest.raises(NetworkError):
            asyncio.run(builder.build_transfer(keyring["Bob"], keyring["Alice"], 1))

    def test_unresolvable_signer(self, ledger):
        builder = AuthorizationBuilder(ledger)
        with pytest.raises(IdentityResolutionError):
            asyncio.run(builder.build_transfer("garbage", DEST, 1))

    def test_disconnected_ledger(self, ledger, keyring):
        asyncio.run(ledger.close())
        builder = AuthorizationBuilder(ledger)
        with pytest.raises(NetworkError):
            asyncio.run(builder.build_transfer(keyring["Bob"], DEST, 1))
