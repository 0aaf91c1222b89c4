"""Human-readable rendering of decoded property list values."""

from __future__ import annotations

import io
import math
from collections.abc import Iterator, Mapping, Sequence
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, TextIO

from .bplist import UID

__all__ = ["pretty_print", "format_value"]


def _format_float(x: float) -> str:
    if math.isnan(x):
        return "NaN"
    if math.isinf(x):
        return "+Inf" if x > 0 else "-Inf"
    if x == 0:
        return "-0" if math.copysign(1.0, x) < 0 else "0"
    sign = "-" if x < 0 else ""
    parts = Decimal(repr(abs(x))).as_tuple()
    point = len(parts.digits) + parts.exponent
    digits = "".join(map(str, parts.digits)).rstrip("0") or "0"
    exponent = point - 1
    if exponent < -4 or exponent >= 6:
        mantissa = digits[0] + ("." + digits[1:] if len(digits) > 1 else "")
        return f"{sign}{mantissa}e{'+' if exponent >= 0 else '-'}{abs(exponent):02d}"
    if point <= 0:
        return f"{sign}0.{'0' * -point}{digits}"
    if point >= len(digits):
        return sign + digits + "0" * (point - len(digits))
    return f"{sign}{digits[:point]}.{digits[point:]}"


def _format_time(when: datetime) -> str:
    if when.tzinfo is None:
        when = when.replace(tzinfo=timezone.utc)
    text = (
        f"{when.year:04d}-{when.month:02d}-{when.day:02d} "
        f"{when.hour:02d}:{when.minute:02d}:{when.second:02d}"
    )
    if when.microsecond:
        text += "." + f"{when.microsecond:06d}".rstrip("0")
    total = int(when.utcoffset().total_seconds())
    sign = "+" if total >= 0 else "-"
    hours, minutes = divmod(abs(total) // 60, 60)
    offset = f"{sign}{hours:02d}{minutes:02d}"
    return f"{text} {offset} {when.tzname() or offset}"


def _hexdump(data: bytes, depth: str) -> Iterator[str]:
    for row in range(0, len(data), 16):
        chunk = data[row : row + 16]
        if row:
            yield depth
        yield f"{row & 0xFFFFFFFF:08x}  "
        for pos in range(16):
            yield f"{chunk[pos]:02x} " if pos < len(chunk) else "   "
            if pos in (7, 15):
                yield " "
        text = "".join(chr(b) if 32 <= b <= 126 else "." for b in chunk).ljust(16, ".")
        yield f"|{text}|\n"


def _labelled(label: str, item: Any, depth: str) -> Iterator[str]:
    yield f"  {depth}{label}: "
    yield from _chunks(item, depth + "  " + " " * (len(label.encode("utf-8")) + 2))


def _chunks(value: Any, depth: str) -> Iterator[str]:
    if isinstance(value, Mapping):
        yield "{\n"
        for key in sorted(k for k in value if isinstance(k, str)):
            yield from _labelled(key, value[key], depth)
        yield f"{depth}}}\n"
    elif isinstance(value, UID):
        yield f"#{int(value)}\n"
    elif isinstance(value, bool):
        yield "true\n" if value else "false\n"
    elif isinstance(value, int):
        yield f"{value}\n"
    elif isinstance(value, float):
        yield _format_float(value) + "\n"
    elif isinstance(value, str):
        yield value + "\n"
    elif isinstance(value, datetime):
        yield _format_time(value) + "\n"
    elif isinstance(value, (bytes, bytearray, memoryview)):
        yield from _hexdump(bytes(value), depth)
    elif isinstance(value, Sequence):
        yield "(\n"
        for index, item in enumerate(value):
            yield from _labelled(f"[{index}]", item, depth)
        yield f"{depth})\n"
    else:
        yield f"{value!r}\n"


def pretty_print(stream: TextIO, value: Any) -> None:
    """Write an indented, human-readable rendering of ``value`` to ``stream``."""
    for chunk in _chunks(value, ""):
        stream.write(chunk)


def format_value(value: Any) -> str:
    """Return the text :func:`pretty_print` would write for ``value``."""
    buffer = io.StringIO()
    pretty_print(buffer, value)
    return buffer.getvalue()