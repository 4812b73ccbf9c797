"""Offset-tracking reader over fixed-layout account buffers."""

from __future__ import annotations

import struct
from typing import Callable, TypeVar

import base58

from .errors import DecodeError

T = TypeVar("T")

PUBKEY_LENGTH = 32

_U16 = struct.Struct("<H")
_U64 = struct.Struct("<Q")
_I64 = struct.Struct("<q")


def validate_address(address: str) -> str:
    """Return ``address`` unchanged if it is a base58 encoded 32-byte key."""

    if not isinstance(address, str) or not address:
        raise ValueError("address must be a non-empty base58 string")
    try:
        raw = base58.b58decode(address)
    except ValueError as exc:
        raise ValueError(f"address {address!r} is not valid base58") from exc
    if len(raw) != PUBKEY_LENGTH:
        raise ValueError(f"address {address!r} does not decode to {PUBKEY_LENGTH} bytes")
    return address


class ByteReader:
    """Sequential little-endian reader that raises ``DecodeError`` on overrun."""

    __slots__ = ("_data", "_offset")

    def __init__(self, data: bytes, offset: int = 0) -> None:
        self._data = memoryview(bytes(data))
        self._offset = offset

    @property
    def offset(self) -> int:
        return self._offset

    @property
    def remaining(self) -> int:
        return len(self._data) - self._offset

    def skip(self, length: int) -> None:
        self.read_bytes(length)

    def read_bytes(self, length: int) -> bytes:
        end = self._offset + length
        if length < 0 or end > len(self._data):
            raise DecodeError(
                f"need {length} bytes at offset {self._offset}, buffer has {len(self._data)}"
            )
        chunk = self._data[self._offset : end].tobytes()
        self._offset = end
        return chunk

    def read_u8(self) -> int:
        return self.read_bytes(1)[0]

    def read_bool(self) -> bool:
        return self.read_u8() != 0

    def read_u16(self) -> int:
        return _U16.unpack(self.read_bytes(_U16.size))[0]

    def read_u64(self) -> int:
        return _U64.unpack(self.read_bytes(_U64.size))[0]

    def read_i64(self) -> int:
        return _I64.unpack(self.read_bytes(_I64.size))[0]

    def read_pubkey(self) -> str:
        return base58.b58encode(self.read_bytes(PUBKEY_LENGTH)).decode("ascii")

    def read_fixed_string(self, length: int) -> str:
        raw = self.read_bytes(length).rstrip(b"\x00")
        try:
            return raw.decode("utf-8")
        except UnicodeDecodeError as exc:
            raise DecodeError(f"invalid UTF-8 in {length}-byte string field") from exc

    def read_optional(self, read_value: Callable[[], T]) -> T | None:
        """Read a 1-byte presence tag and, when non-zero, the tagged value."""

        if self.read_u8() == 0:
            return None
        return read_value()


__all__ = ["ByteReader", "PUBKEY_LENGTH", "validate_address"]
