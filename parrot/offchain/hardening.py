"""
Off-chain Validation and Hardening

Input validation for everything that ends up inside a signed record.
All inputs are untrusted until validated; a value that would not survive the
fixed-width encoding is rejected here with a field-level error instead of
surfacing later as an opaque codec failure.

Security Model:
    - Amounts are Python ints; floats, Decimals and bools are refused
    - Nothing is ever truncated to fit the 128-bit wire width
    - Key material and account ids are checked for exact length

Copyright (c) 2026 Parrot Network. All rights reserved.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Optional

from parrot.codec import U128_MAX


class ValidationError(ValueError):
    """A single field failed validation.

    `field` names the offending input as the caller knows it (``amount``,
    ``offered_token``, ``key``); `value` is the rejected input.
    """

    def __init__(self, field: str, message: str, value: Any = None):
        self.field = field
        self.message = message
        self.value = value
        super().__init__(f"{field}: {message}")


@dataclass(frozen=True)
class ValidationResult:
    """Outcome of one validator: the normalized value, or the reason it was refused."""
    value: Any = None
    error: Optional[ValidationError] = None

    @property
    def is_valid(self) -> bool:
        return self.error is None

    def raise_if_invalid(self) -> None:
        if self.error is not None:
            raise self.error

    def unwrap(self) -> Any:
        self.raise_if_invalid()
        return self.value

    @classmethod
    def ok(cls, value: Any) -> "ValidationResult":
        return cls(value=value)

    @classmethod
    def refuse(cls, field_name: str, message: str, value: Any) -> "ValidationResult":
        return cls(error=ValidationError(field_name, message, value))


class Validators:
    """Validators for the values carried by authorization records."""

    MAX_U128 = U128_MAX

    @classmethod
    def validate_uint(
        cls,
        value: Any,
        field_name: str,
        min_value: int = 0,
        max_value: Optional[int] = None,
    ) -> ValidationResult:
        """An int in ``[min_value, max_value]``; the upper bound defaults to u128."""
        if isinstance(value, bool) or not isinstance(value, int):
            return ValidationResult.refuse(field_name, f"Expected int, got {type(value).__name__}", value)

        upper = cls.MAX_U128 if max_value is None else max_value
        if value < min_value:
            return ValidationResult.refuse(field_name, f"Below minimum ({min_value})", value)
        if value > upper:
            if upper == cls.MAX_U128:
                return ValidationResult.refuse(field_name, "Exceeds 128-bit ledger magnitude", value)
            return ValidationResult.refuse(field_name, f"Above maximum ({upper})", value)
        return ValidationResult.ok(value)

    @classmethod
    def validate_amount(cls, value: Any, field_name: str = "amount") -> ValidationResult:
        return cls.validate_uint(value, field_name)

    @classmethod
    def validate_token_id(cls, value: Any, field_name: str = "token_id") -> ValidationResult:
        return cls.validate_uint(value, field_name)

    @classmethod
    def validate_nonce(cls, value: Any, field_name: str = "nonce") -> ValidationResult:
        return cls.validate_uint(value, field_name)

    @classmethod
    def validate_bytes(
        cls,
        value: Any,
        field_name: str,
        min_length: int = 0,
        max_length: Optional[int] = None,
    ) -> ValidationResult:
        """Raw bytes, or a hex string with optional ``0x`` prefix, of bounded length.

        Pass equal bounds for fixed-size material such as a 32-byte seed.
        """
        raw = value
        if isinstance(value, str):
            digits = value[2:] if value[:2] in ("0x", "0X") else value
            try:
                raw = bytes.fromhex(digits)
            except ValueError:
                return ValidationResult.refuse(field_name, "Not a hex string", value)
        elif isinstance(value, (bytearray, memoryview)):
            raw = bytes(value)

        if not isinstance(raw, bytes):
            return ValidationResult.refuse(field_name, f"Expected bytes, got {type(value).__name__}", value)

        if min_length == max_length and len(raw) != min_length:
            return ValidationResult.refuse(
                field_name, f"Expected exactly {min_length} bytes, got {len(raw)}", value,
            )
        if len(raw) < min_length:
            return ValidationResult.refuse(field_name, f"Too short (min {min_length} bytes)", value)
        if max_length is not None and len(raw) > max_length:
            return ValidationResult.refuse(field_name, f"Too long (max {max_length} bytes)", value)
        return ValidationResult.ok(raw)
