"""Command-line viewer and converter for property lists.

Reads a property list (or a JSON/YAML document), optionally descends into it
along a keypath, and writes the selected value in another format.
"""

from __future__ import annotations

import argparse
import base64
import enum
import json
import os
import re
import struct
import sys
from collections.abc import Iterator, Mapping
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

import yaml

from .codec import Decoder, PlistError, PlistFormat, marshal_indent, unmarshal
from .prettyprint import format_value

__all__ = ["KeypathWalker", "main"]


class _Output(enum.Enum):
    PRETTY = "pretty"
    JSON = "json"
    YAML = "yaml"
    RAW = "raw"


_FORMATS: dict[str, PlistFormat | _Output] = {
    "x": PlistFormat.XML,
    "xml": PlistFormat.XML,
    "xml1": PlistFormat.XML,
    "b": PlistFormat.BINARY,
    "bin": PlistFormat.BINARY,
    "binary": PlistFormat.BINARY,
    "binary1": PlistFormat.BINARY,
    "o": PlistFormat.OPENSTEP,
    "os": PlistFormat.OPENSTEP,
    "openstep": PlistFormat.OPENSTEP,
    "step": PlistFormat.OPENSTEP,
    "g": PlistFormat.GNUSTEP,
    "gs": PlistFormat.GNUSTEP,
    "gnustep": PlistFormat.GNUSTEP,
    "pretty": _Output.PRETTY,
    "json": _Output.JSON,
    "yaml": _Output.YAML,
    "r": _Output.RAW,
    "raw": _Output.RAW,
}

# Tokeniser states.
_NORMAL, _INDEX, _DOLLAR, _SUBEXPR = range(4)

_MISSING = object()
_INT_PATTERN = re.compile(r"[+-]?[0-9]+")


def _atoi(text: str) -> int:
    if not _INT_PATTERN.fullmatch(text):
        raise ValueError(f"invalid index {text!r}")
    return int(text)


@dataclass
class KeypathWalker:
    """Descends into decoded property list values along a keypath.

    A keypath is a ``/``-separated list of dictionary keys, ``[i]`` indexes,
    ``[i:j]`` slices and ``!`` (decode the current data value as a nested
    property list).  ``$(keypath)`` is replaced by the string or integer found
    at that keypath, evaluated from the root value.
    """

    root: Any = field(default=_MISSING, repr=False)

    def _evaluate(self, subexpr: str) -> str:
        if self.root is _MISSING:
            raise ValueError(f"Dynamic subexpression {subexpr} has no root value")
        try:
            result = KeypathWalker(root=self.root).walk(self.root, subexpr)
        except ValueError as exc:
            raise ValueError(f"Dynamic subexpression {subexpr} failed: {exc}") from exc
        if isinstance(result, str):
            return result
        if isinstance(result, int) and not isinstance(result, bool) and result >= 0:
            return str(result)
        raise ValueError(
            f"Dynamic subexpression {subexpr} evaluated to non-string/non-int."
        )

    def _split(self, data: str) -> tuple[int, str]:
        """Scan one token from ``data``; return (characters consumed, token)."""
        mode = old_mode = _NORMAL
        depth = 0
        tok: list[str] = []
        subexpr: list[str] = []
        advance = 0
        for ch in data:
            advance += 1
            if mode == _NORMAL and ch == "/":
                if tok:
                    break
                continue
            if mode == _NORMAL and ch == "[":
                if tok:
                    advance -= 1
                    break
                tok.append(ch)
                mode = _INDEX
                continue
            if mode == _INDEX and ch == "]":
                tok.append(ch)
                break
            if mode == _NORMAL and ch == "!":
                if not tok:
                    tok.append("!")
                else:
                    advance -= 1
                break
            if mode in (_NORMAL, _INDEX) and ch == "$":
                old_mode, mode = mode, _DOLLAR
                continue
            if mode == _DOLLAR:
                if ch == "(":
                    mode = _SUBEXPR
                    depth += 1
                    subexpr = []
                else:
                    tok.append("$" + ch)
                    mode = _NORMAL
                continue
            if mode == _SUBEXPR and ch == "(":
                subexpr.append(ch)
                depth += 1
                continue
            if mode == _SUBEXPR and ch == ")":
                depth -= 1
                if depth == 0:
                    tok.append(self._evaluate("".join(subexpr)))
                    mode = old_mode
                else:
                    subexpr.append(ch)
                continue
            if mode == _SUBEXPR:
                subexpr.append(ch)
                continue
            tok.append(ch)
        return advance, "".join(tok)

    def tokens(self, keypath: str) -> Iterator[str]:
        """Yield the non-empty tokens of ``keypath``."""
        pos = 0
        while pos < len(keypath):
            advance, token = self._split(keypath[pos:])
            pos += advance
            if token:
                yield token

    @staticmethod
    def _index(current: Any, spec: str) -> Any:
        if not isinstance(current, (list, tuple, str, bytes, bytearray)):
            raise ValueError("keypath attempted to index non-indexable with " + spec)
        if ":" in spec:
            start_text, _, stop_text = spec.partition(":")
            start = _atoi(start_text) if start_text else 0
            stop = _atoi(stop_text) if stop_text else 0
            if start < 0 or stop > len(current) or start > stop:
                raise ValueError(
                    "keypath attempted to index outside of indexable with " + spec
                )
            return current[start:stop]
        try:
            idx = _atoi(spec)
        except ValueError:
            idx = 0
        if not 0 <= idx < len(current):
            raise ValueError("keypath attempted to index outside of indexable with " + spec)
        return current[idx]

    def walk(self, value: Any, keypath: str) -> Any:
        """Return the part of ``value`` that ``keypath`` selects.

        Raises ValueError if the keypath does not fit the value.
        """
        if keypath == "":
            return value
        if self.root is _MISSING:
            self.root = value
        current = value
        for token in self.tokens(keypath):
            if token.startswith("["):
                current = self._index(current, token[1:-1])
            elif token.startswith("!"):
                if not isinstance(current, (bytes, bytearray)):
                    raise ValueError("Attempted to subplist non-data.")
                try:
                    current, _ = unmarshal(bytes(current))
                except PlistError:
                    current = None
            else:
                if not isinstance(current, Mapping):
                    raise ValueError(
                        "keypath attempted to descend into non-map using key " + token
                    )
                if token not in current:
                    raise ValueError(f"keypath key {token} not found")
                current = current[token]
        return current


# ---------------------------------------------------------------- output


def _plain(value: Any) -> Any:
    """Convert UIDs to plain integers throughout ``value``."""
    if isinstance(value, Mapping):
        return {key: _plain(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [_plain(item) for item in value]
    if isinstance(value, int) and not isinstance(value, bool):
        return int(value)
    return value


def _rfc3339(when: datetime) -> str:
    if when.tzinfo is None:
        when = when.replace(tzinfo=timezone.utc)
    text = when.strftime("%Y-%m-%dT%H:%M:%S")
    if when.microsecond:
        text += "." + f"{when.microsecond:06d}".rstrip("0")
    offset = when.utcoffset()
    total = int(offset.total_seconds()) if offset is not None else 0
    if total == 0:
        return text + "Z"
    sign = "+" if total > 0 else "-"
    hours, minutes = divmod(abs(total) // 60, 60)
    return f"{text}{sign}{hours:02d}:{minutes:02d}"


def _json_default(obj: Any) -> Any:
    if isinstance(obj, (bytes, bytearray)):
        return base64.b64encode(bytes(obj)).decode("ascii")
    if isinstance(obj, datetime):
        return _rfc3339(obj)
    raise TypeError(f"cannot encode {type(obj).__name__} as JSON")


_JSON_ESCAPES = (
    ("&", "\\u0026"),
    ("<", "\\u003c"),
    (">", "\\u003e"),
    ("\u2028", "\\u2028"),
    ("\u2029", "\\u2029"),
)


def _to_json(value: Any, indent: bool) -> str:
    text = json.dumps(
        _plain(value),
        default=_json_default,
        sort_keys=True,
        ensure_ascii=False,
        allow_nan=False,
        indent="\t" if indent else None,
        separators=None if indent else (",", ":"),
    )
    for char, replacement in _JSON_ESCAPES:
        text = text.replace(char, replacement)
    return text


def _raw_bytes(value: Any) -> bytes:
    if isinstance(value, str):
        return value.encode("utf-8")
    if isinstance(value, (bytes, bytearray)):
        return bytes(value)
    if isinstance(value, bool):
        return bytes([value])
    if isinstance(value, int):
        return int(value).to_bytes(8, "little", signed=value < 0)
    if isinstance(value, float):
        return struct.pack("<d", value)
    return b""


def _render(value: Any, fmt: PlistFormat | _Output, indent: bool) -> bytes:
    if isinstance(fmt, PlistFormat):
        return marshal_indent(value, fmt, "\t" if indent else "")
    if fmt is _Output.PRETTY:
        return format_value(value).encode("utf-8")
    if fmt is _Output.JSON:
        return _to_json(value, indent).encode("utf-8")
    if fmt is _Output.YAML:
        return yaml.safe_dump(_plain(value), allow_unicode=True).encode("utf-8")
    return _raw_bytes(value)


def _load(filename: str) -> Any:
    ext = os.path.splitext(filename)[1].lower()
    with open(filename, "rb") as stream:
        if ext in (".json", ".yaml", ".yml"):
            return yaml.safe_load(stream)
        return Decoder(stream).decode()


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="ply", description="View and convert property lists."
    )
    parser.add_argument(
        "-c",
        "--convert",
        default="pretty",
        metavar="<format>",
        help="convert the property list to a new format (c=list for list)",
    )
    parser.add_argument(
        "-k", "--key", default="/", metavar="<keypath>", help="A keypath!"
    )
    parser.add_argument(
        "-o", "--out", default="", metavar="<filename>", help="output filename"
    )
    parser.add_argument(
        "-I",
        "--indent",
        action="store_true",
        help="indent indentable output formats (xml, openstep, gnustep, json)",
    )
    parser.add_argument("files", nargs="*", metavar="<file>")
    return parser


def main(argv: list[str] | None = None) -> int:
    """Run the command; return the exit status."""
    parser = _build_parser()
    try:
        opts = parser.parse_args(argv)
    except SystemExit as exc:
        return exc.code if isinstance(exc.code, int) else 1

    if opts.convert == "list":
        print("Supported output formats:", file=sys.stderr)
        print(", ".join(sorted(_FORMATS)), file=sys.stderr)
        return 0

    if not opts.files:
        parser.print_help(sys.stderr)
        return 1

    filename = opts.files[0]
    keypath = opts.key
    if not keypath:
        name, sep, rest = filename.partition(":")
        if sep:
            filename, keypath = name, rest

    try:
        value = _load(filename)
    except (OSError, PlistError, yaml.YAMLError) as exc:
        print(exc, file=sys.stderr)
        return 1

    convert = opts.convert.lower()
    fmt = _FORMATS.get(convert)
    if fmt is None:
        print(f"unknown output format {convert}", file=sys.stderr)
        return 1

    output = opts.out
    is_plist = isinstance(fmt, PlistFormat)
    to_stdout = output == "-" or (not is_plist and output == "")
    if is_plist and output == "":
        output = filename

    try:
        selected = KeypathWalker().walk(value, keypath)
        payload = _render(selected, fmt, opts.indent)
    except (ValueError, TypeError, OverflowError) as exc:
        print(exc, file=sys.stderr)
        return 1

    if to_stdout:
        if fmt is not _Output.RAW:
            payload += b"\n"
        sys.stdout.flush()
        sys.stdout.buffer.write(payload)
        sys.stdout.buffer.flush()
        return 0

    try:
        with open(output, "wb") as stream:
            stream.write(payload)
    except OSError as exc:
        print(exc, file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())