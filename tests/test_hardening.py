"""
Input validator tests.

Run with: pytest tests/test_hardening.py -v
"""

from decimal import Decimal

import pytest

from parrot.codec import U128_MAX
from parrot.offchain.hardening import ValidationError, ValidationResult, Validators


class TestIntegerValidators:

    @pytest.mark.parametrize("value", [0, 1, U128_MAX])
    def test_accepts_u128_range(self, value):
        assert Validators.validate_amount(value).unwrap() == value

    @pytest.mark.parametrize("value,message", [
        (-1, "Below minimum"),
        (U128_MAX + 1, "128-bit"),
        (True, "Expected int"),
        (1.0, "Expected int"),
        (Decimal(1), "Expected int"),
        ("1", "Expected int"),
    ])
    def test_refuses(self, value, message):
        result = Validators.validate_nonce(value)
        assert not result.is_valid
        assert message in result.error.message
        with pytest.raises(ValidationError) as exc:
            result.raise_if_invalid()
        assert exc.value.field == "nonce"

    def test_custom_bounds(self):
        assert Validators.validate_uint(5, "n", min_value=1, max_value=10).is_valid
        result = Validators.validate_uint(11, "n", max_value=10)
        assert "Above maximum (10)" in str(result.error)

    def test_field_name_carried(self):
        result = Validators.validate_token_id(-3, "requested_token")
        assert result.error.field == "requested_token"
        assert result.error.value == -3


class TestBytesValidator:

    def test_hex_and_raw(self):
        assert Validators.validate_bytes("0xabcd", "data").unwrap() == b"\xab\xcd"
        assert Validators.validate_bytes("ABCD", "data").unwrap() == b"\xab\xcd"
        assert Validators.validate_bytes(bytearray(b"\x01"), "data").unwrap() == b"\x01"

    def test_exact_length(self):
        assert Validators.validate_bytes(b"\x00" * 32, "key", 32, 32).is_valid
        result = Validators.validate_bytes(b"\x00" * 31, "key", 32, 32)
        assert "exactly 32 bytes, got 31" in result.error.message

    def test_bounds(self):
        assert "Too short" in Validators.validate_bytes(b"", "d", min_length=1).error.message
        assert "Too long" in Validators.validate_bytes(b"abc", "d", max_length=2).error.message

    def test_rejects_non_bytes(self):
        assert "Not a hex string" in Validators.validate_bytes("0xzz", "d").error.message
        assert "Expected bytes" in Validators.validate_bytes(7, "d").error.message

    def test_result_constructors(self):
        assert ValidationResult.ok(3).unwrap() == 3
        with pytest.raises(ValidationError, match="x: nope"):
            ValidationResult.refuse("x", "nope", None).unwrap()
