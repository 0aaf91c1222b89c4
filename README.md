# plistwatch

A library and command-line tool for reading, writing and converting
property lists in the binary (`bplist00`) and XML forms.

## Install

```
pip install .
```

## Library use

```python
from plistwatch.codec import PlistFormat, marshal, marshal_indent, unmarshal

data = marshal({"name": "example", "count": 3}, PlistFormat.BINARY)
value, fmt = unmarshal(data)          # fmt is PlistFormat.BINARY

print(marshal_indent(value, PlistFormat.XML, "\t").decode())
```

`unmarshal(data)` detects the format (documents starting with `bplist` are
binary, anything else is read as XML) and returns the decoded value together
with its `PlistFormat`. A document that cannot be decoded raises
`PlistError`.

Values map onto Python types as follows: dictionaries (string keys) become
`dict`, arrays `list`, data `bytes`, dates timezone-aware `datetime`, and
keyed-archiver references `plistwatch.bplist.UID`. When encoding, `None`
inside a container is dropped and a `None` root is an error; dictionary keys
are written in sorted order.

`marshal(value, format)` and `marshal_indent(value, format, indent)` encode to
`PlistFormat.XML`, `PlistFormat.BINARY` or `PlistFormat.AUTOMATIC` (which
chooses binary). With a non-empty indent, each XML element goes on its own
line.

For streams there are `Decoder(stream).decode()`, which also sets the
decoder's `format` attribute, and `Encoder(stream, format, indent).encode(value)`.

For the binary form alone, `plistwatch.bplist` has `dumps` and `loads`.
A malformed binary document raises `BinaryPlistError`.

`plistwatch.prettyprint.format_value(value)` returns a readable, indented tree
of any decoded value, with dictionary keys sorted and binary data shown as a
hex dump; `pretty_print(stream, value)` writes the same text to a stream.

## Command line

```
ply [-c FORMAT] [-k KEYPATH] [-o OUTPUT] [-I] FILE
```

The input file is read as a property list, or as JSON/YAML when its name ends
in `.json`, `.yaml` or `.yml`.

- `-c`: output format: `xml`, `binary`, `pretty` (the default), `json`,
  `yaml` or `raw`, plus short aliases such as `x`, `b` and `r`. Pass
  `-c list` to see every accepted name.
- `-k`: a keypath selecting part of the document (default `/`), for example
  `/items[0]/name`, `/items[1:3]`, or `/payload!` to decode embedded plist
  data. `$(keypath)` is replaced by the string or integer found at that
  keypath from the root. With `-k ""`, a keypath may be given after a colon
  in the file name, as in `file.plist:/items`.
- `-o`: output file; `-` writes to standard output.
- `-I`: indent the output where the format allows it (XML, JSON).

When a plist format is chosen and `-o` is not given, the input file is
rewritten in place. Other formats go to standard output by default.

```
plist-tabler NAME CHARSET
```

Prints a declaration of NAME as four 64-bit masks marking the characters of
CHARSET; characters must lie within the first 256 code points.

## What it does not do

The OpenStep and GNUstep text forms are not supported. `PlistFormat.OPENSTEP`
and `PlistFormat.GNUSTEP` exist, but encoding to them raises `PlistError`,
and text documents in those forms are not recognised when decoding. The
`ply` formats `openstep`/`gnustep` (and their aliases) therefore fail with
an error.