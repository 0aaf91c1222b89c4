"""Encoding and decoding of property lists.

Binary documents are detected by their ``bplist`` magic; everything else
is read as an XML property list.  Values map onto Python types as follows:
dictionaries (string keys), lists, strings, booleans, integers, floats,
bytes, timezone-aware datetimes and :class:`~plistwatch.bplist.UID`.
"""

from __future__ import annotations

import base64
import enum
import io
import plistlib
from collections.abc import Iterator, Mapping, Sequence
from datetime import datetime, timezone
from typing import Any, BinaryIO
from xml.parsers.expat import ExpatError
from xml.sax.saxutils import escape

from .bplist import UID, BinaryPlistError
from .bplist import dumps as _bplist_dumps
from .bplist import loads as _bplist_loads

__all__ = [
    "PlistFormat",
    "PlistError",
    "Decoder",
    "Encoder",
    "unmarshal",
    "marshal",
    "marshal_indent",
]

_XML_HEADER = plistlib.dumps("", fmt=plistlib.FMT_XML).split(b"<plist", 1)[0]
_XML_ENTITIES = {"\r": "&#13;"}
_UID_KEY = "CF$UID"


class PlistFormat(enum.IntEnum):
    """Property list formats."""

    INVALID = 0
    AUTOMATIC = 0
    XML = 1
    BINARY = 2
    OPENSTEP = 3
    GNUSTEP = 4


class PlistError(ValueError):
    """Raised when a property list cannot be decoded or encoded."""


# ---------------------------------------------------------------- decoding


def _normalise(value: Any) -> Any:
    if isinstance(value, dict):
        if len(value) == 1 and _UID_KEY in value:
            ref = value[_UID_KEY]
            if isinstance(ref, int) and not isinstance(ref, bool) and 0 <= ref < 1 << 64:
                return UID(ref)
        return {key: _normalise(item) for key, item in value.items()}
    if isinstance(value, list):
        return [_normalise(item) for item in value]
    if isinstance(value, datetime) and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _parse_xml(data: bytes) -> Any:
    try:
        value = plistlib.loads(data, fmt=plistlib.FMT_XML)
    except (
        ExpatError,
        ValueError,
        TypeError,
        KeyError,
        IndexError,
        AttributeError,
        OverflowError,
    ) as exc:
        raise PlistError(f"plist: error parsing XML property list: {exc}") from exc
    if value is None:
        raise PlistError("plist: error parsing XML property list: no root element")
    return _normalise(value)


class Decoder:
    """Reads a property list from a stream.

    After a successful :meth:`decode`, :attr:`format` holds the detected format.
    """

    def __init__(self, stream: BinaryIO) -> None:
        self.stream = stream
        self.format = PlistFormat.INVALID

    def decode(self) -> Any:
        """Read the whole stream and return the decoded value."""
        data = self.stream.read()
        if isinstance(data, str):
            data = data.encode("utf-8")
        if data[:6] == b"bplist":
            try:
                value = _bplist_loads(data)
            except BinaryPlistError as exc:
                raise PlistError(f"plist: error parsing binary property list: {exc}") from exc
            self.format = PlistFormat.BINARY
            return value
        value = _parse_xml(data)
        self.format = PlistFormat.XML
        return value


def unmarshal(data: bytes) -> tuple[Any, PlistFormat]:
    """Decode a property list document; return the value and its format."""
    decoder = Decoder(io.BytesIO(data))
    value = decoder.decode()
    return value, decoder.format


# ---------------------------------------------------------------- encoding


def _xml_date(when: datetime) -> str:
    if when.tzinfo is None:
        when = when.replace(tzinfo=timezone.utc)
    when = when.astimezone(timezone.utc)
    return (
        f"{when.year:04d}-{when.month:02d}-{when.day:02d}"
        f"T{when.hour:02d}:{when.minute:02d}:{when.second:02d}Z"
    )


def _xml_elements(value: Any, depth: int) -> Iterator[tuple[int, str]]:
    if isinstance(value, bool):
        yield depth, "<true/>" if value else "<false/>"
    elif isinstance(value, UID):
        yield depth, "<dict>"
        yield depth + 1, f"<key>{_UID_KEY}</key>"
        yield depth + 1, f"<integer>{int(value)}</integer>"
        yield depth, "</dict>"
    elif isinstance(value, int):
        if not -(1 << 63) <= value < 1 << 64:
            raise OverflowError(f"integer {value} does not fit in 64 bits")
        yield depth, f"<integer>{value}</integer>"
    elif isinstance(value, float):
        yield depth, f"<real>{value!r}</real>"
    elif isinstance(value, str):
        yield depth, f"<string>{escape(value, _XML_ENTITIES)}</string>"
    elif isinstance(value, (bytes, bytearray, memoryview)):
        yield depth, f"<data>{base64.b64encode(bytes(value)).decode('ascii')}</data>"
    elif isinstance(value, datetime):
        yield depth, f"<date>{_xml_date(value)}</date>"
    elif isinstance(value, Mapping):
        for key in value:
            if not isinstance(key, str):
                raise TypeError(f"dictionary keys must be strings, not {type(key).__name__}")
        items = sorted(
            ((k, v) for k, v in value.items() if v is not None), key=lambda item: item[0]
        )
        if not items:
            yield depth, "<dict/>"
            return
        yield depth, "<dict>"
        for key, item in items:
            yield depth + 1, f"<key>{escape(key, _XML_ENTITIES)}</key>"
            yield from _xml_elements(item, depth + 1)
        yield depth, "</dict>"
    elif isinstance(value, Sequence):
        present = [item for item in value if item is not None]
        if not present:
            yield depth, "<array/>"
            return
        yield depth, "<array>"
        for item in present:
            yield from _xml_elements(item, depth + 1)
        yield depth, "</array>"
    else:
        raise TypeError(f"cannot encode {type(value).__name__} in a property list")


def _xml_document(value: Any, indent: str) -> bytes:
    parts = [(0, '<plist version="1.0">'), *_xml_elements(value, 1), (0, "</plist>")]
    if indent:
        body = "\n".join(indent * depth + text for depth, text in parts)
    else:
        body = "".join(text for _, text in parts)
    return _XML_HEADER + body.encode("utf-8")


def marshal_indent(value: Any, format: PlistFormat | int, indent: str) -> bytes:
    """Encode ``value`` in ``format``; XML elements go on their own lines when indented."""
    if value is None:
        raise PlistError("plist: no root element to encode")
    try:
        fmt = PlistFormat(format)
    except ValueError as exc:
        raise PlistError(f"plist: unknown format {format!r}") from exc
    try:
        if fmt == PlistFormat.AUTOMATIC or fmt == PlistFormat.BINARY:
            return _bplist_dumps(value)
        if fmt == PlistFormat.XML:
            return _xml_document(value, indent)
    except (TypeError, OverflowError) as exc:
        raise PlistError(f"plist: {exc}") from exc
    raise PlistError(f"plist: cannot encode {fmt.name} property lists")


def marshal(value: Any, format: PlistFormat | int) -> bytes:
    """Encode ``value`` as a property list in ``format``."""
    return marshal_indent(value, format, "")


class Encoder:
    """Writes property lists to a binary stream."""

    def __init__(
        self,
        stream: BinaryIO,
        format: PlistFormat | int = PlistFormat.XML,
        indent: str = "",
    ) -> None:
        self.stream = stream
        self.format = format
        self.indent = indent

    def encode(self, value: Any) -> None:
        """Encode ``value`` and write it to the stream."""
        self.stream.write(marshal_indent(value, self.format, self.indent))