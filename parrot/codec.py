#!/usr/bin/env python3
"""parrot.codec

Fixed-width binary encoding shared by every signed record in the Parrot
client, plus the base58 / blake2b helpers used for SS58 addresses.

Profile / invariants:
- unsigned integers are little-endian and fixed width (u8, u32, u128)
- account ids are exactly 32 raw bytes
- field order is defined by each record's `FIELDS` table, never by incidental
  dataclass layout
- encoders reject values that do not fit the wire width; nothing is ever
  truncated or wrapped

These are the bytes that get signed, so any change here is a protocol change.
"""

from __future__ import annotations

import hashlib
from typing import Any

U8_MAX = (1 << 8) - 1
U32_MAX = (1 << 32) - 1
U128_MAX = (1 << 128) - 1

ACCOUNT_ID_LEN = 32


# Base58 implementation (no external deps)
B58_ALPHABET = b"123456789ABCDEFGHJKLMNPQRSTUVWXYZabcdefghijkmnopqrstuvwxyz"
B58_MAP = {c: i for i, c in enumerate(B58_ALPHABET)}


def b58decode(s: str) -> bytes:
    if isinstance(s, str):
        s_bytes = s.encode("ascii")
    else:
        s_bytes = s
    num = 0
    for c in s_bytes:
        if c not in B58_MAP:
            raise ValueError("Invalid base58 character")
        num = num * 58 + B58_MAP[c]
    n_pad = 0
    for c in s_bytes:
        if c == B58_ALPHABET[0]:
            n_pad += 1
        else:
            break
    full = num.to_bytes((num.bit_length() + 7) // 8, "big") if num else b""
    return b"\x00" * n_pad + full


def b58encode(b: bytes) -> str:
    n_pad = 0
    for c in b:
        if c == 0:
            n_pad += 1
        else:
            break
    num = int.from_bytes(b, "big")
    out = bytearray()
    while num > 0:
        num, rem = divmod(num, 58)
        out.append(B58_ALPHABET[rem])
    out.extend(B58_ALPHABET[0] for _ in range(n_pad))
    out.reverse()
    return out.decode("ascii")


def blake2b_512(data: bytes) -> bytes:
    return hashlib.blake2b(data, digest_size=64).digest()


def blake2b_256(data: bytes) -> bytes:
    return hashlib.blake2b(data, digest_size=32).digest()


# ---------------------------------------------------------------------------
# Fixed-width integers
# ---------------------------------------------------------------------------


def _check_uint(value: Any, max_value: int, name: str) -> int:
    # bool is an int subclass; a True amount is always a caller bug.
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValueError(f"{name} must be an int, got {type(value).__name__}")
    if value < 0:
        raise ValueError(f"{name} must be non-negative, got {value}")
    if value > max_value:
        raise ValueError(f"{name} does not fit in {max_value.bit_length()} bits: {value}")
    return value


def encode_u8(value: int, name: str = "u8") -> bytes:
    return _check_uint(value, U8_MAX, name).to_bytes(1, "little")


def encode_u32(value: int, name: str = "u32") -> bytes:
    return _check_uint(value, U32_MAX, name).to_bytes(4, "little")


def encode_u128(value: int, name: str = "u128") -> bytes:
    return _check_uint(value, U128_MAX, name).to_bytes(16, "little")


def encode_account_id(raw: bytes, name: str = "account_id") -> bytes:
    if not isinstance(raw, (bytes, bytearray)):
        raise ValueError(f"{name} must be bytes, got {type(raw).__name__}")
    if len(raw) != ACCOUNT_ID_LEN:
        raise ValueError(f"{name} must be {ACCOUNT_ID_LEN} bytes, got {len(raw)}")
    return bytes(raw)


class Reader:
    """Cursor over an encoded buffer.

    Decoding is strict: reading past the end raises, and callers are expected
    to call `finish()` so trailing garbage is rejected instead of ignored.
    """

    def __init__(self, data: bytes):
        self._data = bytes(data)
        self._pos = 0

    @property
    def remaining(self) -> int:
        return len(self._data) - self._pos

    def take(self, n: int) -> bytes:
        if n < 0 or self._pos + n > len(self._data):
            raise ValueError(
                f"truncated input: need {n} bytes at offset {self._pos}, have {self.remaining}"
            )
        chunk = self._data[self._pos : self._pos + n]
        self._pos += n
        return chunk

    def u8(self) -> int:
        return self.take(1)[0]

    def u32(self) -> int:
        return int.from_bytes(self.take(4), "little")

    def u128(self) -> int:
        return int.from_bytes(self.take(16), "little")

    def account_id(self) -> bytes:
        return self.take(ACCOUNT_ID_LEN)

    def finish(self) -> None:
        if self.remaining:
            raise ValueError(f"{self.remaining} trailing bytes after decoded record")


def to_hex(b: bytes) -> str:
    return "0x" + bytes(b).hex()


def from_hex(s: str) -> bytes:
    s = str(s).strip()
    if s.startswith(("0x", "0X")):
        s = s[2:]
    return bytes.fromhex(s)
