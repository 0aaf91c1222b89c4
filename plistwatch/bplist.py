"""Reading and writing of binary property lists (the ``bplist00`` format)."""

from __future__ import annotations

import struct
from collections.abc import Mapping, Sequence
from datetime import datetime, timedelta, timezone
from typing import Any

__all__ = ["UID", "BinaryPlistError", "dumps", "loads"]

_MAGIC = b"bplist"
_HEADER = b"bplist00"
_TRAILER = struct.Struct(">5xBBBQQQ")
_APPLE_EPOCH = datetime(2001, 1, 1, tzinfo=timezone.utc)
_ONE_SECOND = timedelta(seconds=1)

_UINT64 = 1 << 64
_SIGNED_HIGH_BITS = _UINT64 - 1
_INT64_MAX = (1 << 63) - 1

_TAG_NULL = 0x00
_TAG_BOOL_FALSE = 0x08
_TAG_BOOL_TRUE = 0x09
_TAG_INTEGER = 0x10
_TAG_REAL = 0x20
_TAG_DATE = 0x30
_TAG_DATA = 0x40
_TAG_ASCII_STRING = 0x50
_TAG_UTF16_STRING = 0x60
_TAG_UID = 0x80
_TAG_ARRAY = 0xA0
_TAG_DICTIONARY = 0xD0


class UID(int):
    """A keyed-archiver object reference: an unsigned 64-bit integer."""

    def __new__(cls, value: int = 0) -> "UID":
        self = super().__new__(cls, value)
        if not 0 <= self < _UINT64:
            raise ValueError(f"UID out of range: {int(self)}")
        return self

    def __repr__(self) -> str:
        return f"UID({int(self)})"


class BinaryPlistError(ValueError):
    """Raised when a binary property list cannot be parsed."""


# ---------------------------------------------------------------- writing


def _minimum_int_size(n: int) -> int:
    if n <= 0xFF:
        return 1
    if n <= 0xFFFF:
        return 2
    if n <= 0xFFFFFFFF:
        return 4
    return 8


def _int_tag(signed: bool, n: int) -> bytes:
    if n <= 0xFF:
        return bytes([_TAG_INTEGER, n])
    if n <= 0xFFFF:
        return bytes([_TAG_INTEGER | 0x1]) + n.to_bytes(2, "big")
    if n <= 0xFFFFFFFF:
        return bytes([_TAG_INTEGER | 0x2]) + n.to_bytes(4, "big")
    if n > _INT64_MAX and not signed:
        # 64-bit values are signed in format 00, so a large unsigned
        # value is stored as a 128-bit integer with a zero high half.
        return bytes([_TAG_INTEGER | 0x4]) + bytes(8) + n.to_bytes(8, "big")
    return bytes([_TAG_INTEGER | 0x3]) + n.to_bytes(8, "big")


def _encode_int(n: int) -> bytes:
    if n < 0:
        if n < -(1 << 63):
            raise OverflowError(f"integer {n} does not fit in 64 bits")
        return _int_tag(True, n + _UINT64)
    if n >= _UINT64:
        raise OverflowError(f"integer {n} does not fit in 64 bits")
    return _int_tag(False, n)


def _counted_tag(tag: int, count: int) -> bytes:
    if count >= 0xF:
        return bytes([tag | 0xF]) + _int_tag(False, count)
    return bytes([tag | count])


def _encode_string(s: str) -> bytes:
    if s.isascii():
        return _counted_tag(_TAG_ASCII_STRING, len(s)) + s.encode("ascii")
    encoded = s.encode("utf-16-be", errors="surrogatepass")
    return _counted_tag(_TAG_UTF16_STRING, len(encoded) // 2) + encoded


def _apple_seconds(when: datetime) -> float:
    if when.tzinfo is None:
        when = when.replace(tzinfo=timezone.utc)
    return (when - _APPLE_EPOCH) / _ONE_SECOND


def _encode_uid(u: UID) -> bytes:
    nbytes = _minimum_int_size(u)
    return bytes([_TAG_UID | (nbytes - 1)]) + int(u).to_bytes(nbytes, "big")


def _unique_key(value: Any) -> tuple | None:
    """Key under which equal scalars share one object, or None."""
    if isinstance(value, str):
        return ("s", value)
    if isinstance(value, (bytes, bytearray, memoryview)):
        return ("d", bytes(value))
    if isinstance(value, bool) or isinstance(value, UID):
        return None
    if isinstance(value, int):
        return ("i", value)
    if isinstance(value, float):
        return ("r", struct.pack(">d", value))
    if isinstance(value, datetime):
        return ("t", _apple_seconds(value))
    return None


def _encode_scalar(value: Any) -> bytes:
    if isinstance(value, bool):
        return bytes([_TAG_BOOL_TRUE if value else _TAG_BOOL_FALSE])
    if isinstance(value, UID):
        return _encode_uid(value)
    if isinstance(value, int):
        return _encode_int(value)
    if isinstance(value, float):
        return bytes([_TAG_REAL | 0x3]) + struct.pack(">d", value)
    if isinstance(value, str):
        return _encode_string(value)
    if isinstance(value, (bytes, bytearray, memoryview)):
        data = bytes(value)
        return _counted_tag(_TAG_DATA, len(data)) + data
    if isinstance(value, datetime):
        return bytes([_TAG_DATE | 0x3]) + struct.pack(">d", _apple_seconds(value))
    raise TypeError(f"cannot encode {type(value).__name__} in a property list")


class _Generator:
    def __init__(self) -> None:
        # Each entry is either the encoded bytes of a scalar or a
        # (tag, count, references) triple for a container.
        self.objects: list[bytes | tuple[int, int, list[int]] | None] = []
        self.unique: dict[tuple, int] = {}

    def flatten(self, value: Any) -> int:
        key = _unique_key(value)
        if key is not None and key in self.unique:
            return self.unique[key]

        index = len(self.objects)
        if isinstance(value, Mapping):
            items = []
            for k, v in value.items():
                if not isinstance(k, str):
                    raise TypeError(f"dictionary keys must be strings, not {type(k).__name__}")
                if v is not None:
                    items.append((k, v))
            items.sort(key=lambda item: item[0])
            self.objects.append(None)
            key_refs = [self.flatten(k) for k, _ in items]
            value_refs = [self.flatten(v) for _, v in items]
            self.objects[index] = (_TAG_DICTIONARY, len(items), key_refs + value_refs)
        elif isinstance(value, Sequence) and not isinstance(
            value, (str, bytes, bytearray, memoryview)
        ):
            self.objects.append(None)
            refs = [self.flatten(v) for v in value if v is not None]
            self.objects[index] = (_TAG_ARRAY, len(refs), refs)
        else:
            self.objects.append(_encode_scalar(value))
            if key is not None:
                self.unique[key] = index
        return index

    def generate(self, root: Any) -> bytes:
        top = self.flatten(root)
        ref_size = _minimum_int_size(len(self.objects))

        out = bytearray(_HEADER)
        offsets = []
        for entry in self.objects:
            offsets.append(len(out))
            if isinstance(entry, bytes):
                out += entry
            else:
                tag, count, refs = entry
                out += _counted_tag(tag, count)
                for ref in refs:
                    out += ref.to_bytes(ref_size, "big")

        offset_size = _minimum_int_size(len(out))
        table_offset = len(out)
        for offset in offsets:
            out += offset.to_bytes(offset_size, "big")
        out += _TRAILER.pack(0, offset_size, ref_size, len(self.objects), top, table_offset)
        return bytes(out)


def dumps(value: Any) -> bytes:
    """Encode a value as a binary property list.

    Dictionaries (string keys), sequences, strings, booleans, integers,
    floats, bytes, datetimes and UIDs are supported.  ``None`` inside a
    container is dropped; a ``None`` root is an error.
    """
    if value is None:
        raise ValueError("no root element to encode")
    return _Generator().generate(value)


# ---------------------------------------------------------------- reading


class _Parser:
    def __init__(self, data: bytes) -> None:
        self.buffer = bytes(data)
        self.cache: dict[int, Any] = {}
        self.containers: list[int] = []

    def _byte(self, off: int) -> int:
        if off >= len(self.buffer):
            raise BinaryPlistError(f"unexpected end of data at 0x{off:x}")
        return self.buffer[off]

    def _bytes(self, off: int, n: int) -> bytes:
        if off + n > len(self.buffer):
            raise BinaryPlistError(f"unexpected end of data at 0x{off:x}")
        return self.buffer[off : off + n]

    def _sized_int(self, off: int, nbytes: int) -> tuple[int, int, int]:
        """Read a big-endian integer; return (low 64 bits, high 64 bits, next offset)."""
        if nbytes in (1, 2, 4):
            lo, hi = int.from_bytes(self._bytes(off, nbytes), "big"), 0
        elif nbytes == 8:
            lo = int.from_bytes(self._bytes(off, 8), "big")
            hi = _SIGNED_HIGH_BITS if lo >> 63 else 0
        elif nbytes == 16:
            raw = self._bytes(off, 16)
            hi, lo = int.from_bytes(raw[:8], "big"), int.from_bytes(raw[8:], "big")
        else:
            raise BinaryPlistError("illegal integer size")
        return lo, hi, off + nbytes

    def parse(self) -> Any:
        buf = self.buffer
        if len(buf) < 40:
            raise BinaryPlistError("not enough data")
        if buf[:6] != _MAGIC:
            raise BinaryPlistError("incomprehensible magic")
        version = ((buf[6] - 0x30) * 10 + (buf[7] - 0x30)) & 0xFF
        if version > 1:
            raise BinaryPlistError(f"unexpected version {version}")

        self.trailer_offset = len(buf) - 32
        (
            _sort_version,
            self.offset_size,
            self.ref_size,
            self.num_objects,
            top,
            self.table_offset,
        ) = _TRAILER.unpack_from(buf, self.trailer_offset)
        self._validate_trailer(top)
        return self._object(top)

    def _validate_trailer(self, top: int) -> None:
        table, trailer = self.table_offset, self.trailer_offset
        table_end = table + self.offset_size * self.num_objects
        if table >= trailer:
            raise BinaryPlistError(
                f"offset table beyond beginning of trailer (0x{table:x}, trailer@0x{trailer:x})"
            )
        if table < 9:
            raise BinaryPlistError(f"offset table begins inside header (0x{table:x})")
        if trailer > table_end:
            raise BinaryPlistError("garbage between offset table and trailer")
        if table_end > trailer:
            raise BinaryPlistError("offset table isn't long enough to address every object")
        if self.num_objects > 1 << (8 * self.ref_size):
            raise BinaryPlistError(
                f"more objects ({self.num_objects}) than object ref size "
                f"({self.ref_size} bytes) can support"
            )
        if self.offset_size < 8 and (1 << (8 * self.offset_size)) <= table:
            raise BinaryPlistError("offset size isn't big enough to address entire file")
        if top >= self.num_objects:
            raise BinaryPlistError(
                f"top object #{top} is out of range (only {self.num_objects} exist)"
            )

    def _object(self, index: int) -> Any:
        if index >= self.num_objects:
            raise BinaryPlistError(f"invalid object#{index} (max {self.num_objects})")
        if index in self.cache:
            return self.cache[index]
        off, _, _ = self._sized_int(self.table_offset + index * self.offset_size, self.offset_size)
        if off > self.table_offset - 1:
            raise BinaryPlistError(
                f"object#{index} starts beyond beginning of object table "
                f"(0x{off:x}, table@0x{self.table_offset:x})"
            )
        value = self._parse_tag(off)
        self.cache[index] = value
        return value

    def _parse_tag(self, off: int) -> Any:
        tag = self._byte(off)
        kind, low = tag & 0xF0, tag & 0x0F

        if kind == _TAG_NULL and low in (_TAG_BOOL_TRUE, _TAG_BOOL_FALSE):
            return low == _TAG_BOOL_TRUE
        if kind == _TAG_INTEGER:
            lo, hi, _ = self._sized_int(off + 1, 1 << low)
            if hi == _SIGNED_HIGH_BITS and lo >> 63:
                return lo - _UINT64
            return lo
        if kind == _TAG_REAL:
            nbytes = 1 << low
            if nbytes == 4:
                return struct.unpack(">f", self._bytes(off + 1, 4))[0]
            if nbytes == 8:
                return struct.unpack(">d", self._bytes(off + 1, 8))[0]
            raise BinaryPlistError("illegal float size")
        if kind == _TAG_DATE:
            seconds = struct.unpack(">d", self._bytes(off + 1, 8))[0]
            try:
                return _APPLE_EPOCH + timedelta(seconds=seconds)
            except (OverflowError, ValueError) as exc:
                raise BinaryPlistError(f"date@0x{off:x} out of range") from exc
        if kind == _TAG_DATA:
            return self._sized_block(off, 1, "data")
        if kind == _TAG_ASCII_STRING:
            return self._sized_block(off, 1, "ascii string").decode("latin-1")
        if kind == _TAG_UTF16_STRING:
            raw = self._sized_block(off, 2, "utf16 string")
            return raw.decode("utf-16-be", errors="replace")
        if kind == _TAG_UID:
            lo, _, _ = self._sized_int(off + 1, low + 1)
            return UID(lo)
        if kind == _TAG_DICTIONARY:
            return self._parse_dictionary(off)
        if kind == _TAG_ARRAY:
            return self._parse_array(off)
        raise BinaryPlistError(f"unexpected atom 0x{tag:02x} at offset 0x{off:x}")

    def _count(self, off: int) -> tuple[int, int]:
        count = self._byte(off) & 0x0F
        if count == 0xF:
            inner = self._byte(off + 1)
            count, _, start = self._sized_int(off + 2, 1 << (inner & 0xF))
            return count, start
        return count, off + 1

    def _sized_block(self, off: int, unit: int, what: str) -> bytes:
        count, start = self._count(off)
        size = count * unit
        if start + size > self.table_offset:
            raise BinaryPlistError(
                f"{what}@0x{off:x} too long ({size} bytes, max is {self.table_offset - start})"
            )
        return self.buffer[start : start + size]

    def _object_list(self, off: int, count: int) -> list[Any]:
        if off + count * self.ref_size > self.table_offset:
            raise BinaryPlistError(
                f"list@0x{off:x} length ({count}) puts its end beyond the "
                f"offset table at 0x{self.table_offset:x}"
            )
        objects = []
        for _ in range(count):
            oid, _, off = self._sized_int(off, self.ref_size)
            objects.append(self._object(oid))
        return objects

    def _push(self, off: int) -> None:
        if off in self.containers:
            chain = "".join(f"0x{v:x} > " for v in self.containers)
            raise BinaryPlistError(
                f"self-referential collection@0x{off:x} ({chain}0x{off:x}) cannot be deserialized"
            )
        self.containers.append(off)

    def _parse_dictionary(self, off: int) -> dict[str, Any]:
        self._push(off)
        try:
            count, start = self._count(off)
            objects = self._object_list(start, count * 2)
            keys = objects[:count]
            for i, key in enumerate(keys):
                if not isinstance(key, str):
                    raise BinaryPlistError(
                        f"dictionary@0x{off:x} contains non-string key at index {i}"
                    )
            return dict(zip(keys, objects[count:]))
        finally:
            self.containers.pop()

    def _parse_array(self, off: int) -> list[Any]:
        self._push(off)
        try:
            count, start = self._count(off)
            return self._object_list(start, count)
        finally:
            self.containers.pop()


def loads(data: bytes) -> Any:
    """Decode a binary property list into Python values.

    Raises BinaryPlistError if the document is malformed.
    """
    try:
        return _Parser(data).parse()
    except (IndexError, struct.error) as exc:
        raise BinaryPlistError(str(exc)) from exc