import io
from datetime import datetime, timezone

import pytest

from plistwatch.bplist import UID
from plistwatch.codec import (
    Decoder,
    Encoder,
    PlistError,
    PlistFormat,
    marshal,
    marshal_indent,
    unmarshal,
)

INTERFACE_BPLIST = bytes([98, 112, 108, 105, 115, 116, 48, 48, 214, 1, 13, 17, 21, 25, 27, 2, 14, 18, 22, 26, 28, 88, 105, 110, 116, 97, 114, 114, 97, 121, 170, 3, 4, 5, 6, 7, 8, 9, 10, 11, 12, 16, 1, 16, 8, 16, 16, 16, 32, 16, 64, 16, 2, 16, 9, 16, 17, 16, 33, 16, 65, 86, 102, 108, 111, 97, 116, 115, 162, 15, 16, 34, 66, 0, 0, 0, 35, 64, 80, 0, 0, 0, 0, 0, 0, 88, 98, 111, 111, 108, 101, 97, 110, 115, 162, 19, 20, 9, 8, 87, 115, 116, 114, 105, 110, 103, 115, 162, 23, 24, 92, 72, 101, 108, 108, 111, 44, 32, 65, 83, 67, 73, 73, 105, 0, 72, 0, 101, 0, 108, 0, 108, 0, 111, 0, 44, 0, 32, 78, 22, 117, 76, 84, 100, 97, 116, 97, 68, 1, 2, 3, 4, 84, 100, 97, 116, 101, 51, 65, 184, 69, 117, 120, 0, 0, 0, 8, 21, 30, 41, 43, 45, 47, 49, 51, 53, 55, 57, 59, 61, 68, 71, 76, 85, 94, 97, 98, 99, 107, 110, 123, 142, 147, 152, 157, 0, 0, 0, 0, 0, 0, 1, 1, 0, 0, 0, 0, 0, 0, 0, 29, 0, 0, 0, 0, 0, 0, 0, 0, 0, 0, 0, 0, 0, 0, 0, 166])

BINARY_HELLO = bytes([98, 112, 108, 105, 115, 116, 48, 48, 85, 72, 101, 108, 108, 111, 8, 0, 0, 0, 0, 0, 0, 1, 1, 0, 0, 0, 0, 0, 0, 0, 1, 0, 0, 0, 0, 0, 0, 0, 0, 0, 0, 0, 0, 0, 0, 0, 14])

SPARSE_BUNDLE = {
    "CFBundleInfoDictionaryVersion": "6.0",
    "band-size": 8388608,
    "bundle-backingstore-version": 1,
    "diskimage-bundle-type": "com.apple.diskimage.sparsebundle",
    "size": 4 * 1048576 * 1024 * 1024,
}

XML_PREFIX = b'<?xml version="1.0" encoding="UTF-8"?>\n<!DOCTYPE plist PUBLIC "-//Apple//DTD PLIST 1.0//EN"'


def test_interface_decode():
    value = Decoder(io.BytesIO(INTERFACE_BPLIST)).decode()
    assert value == {
        "intarray": [1, 8, 16, 32, 64, 2, 9, 17, 33, 65],
        "floats": [32.0, 64.0],
        "booleans": [True, False],
        "strings": ["Hello, ASCII", "Hello, \u4e16\u754c"],
        "data": b"\x01\x02\x03\x04",
        "date": datetime(2013, 11, 27, 0, 34, tzinfo=timezone.utc),
    }


@pytest.mark.parametrize(
    "data, expected_format, expected_value",
    [
        (BINARY_HELLO, PlistFormat.BINARY, "Hello"),
        (b"<string>&lt;*I3&gt;</string>", PlistFormat.XML, "<*I3>"),
    ],
)
def test_format_detection(data, expected_format, expected_value):
    value, fmt = unmarshal(data)
    assert fmt == expected_format
    assert value == expected_value


@pytest.mark.parametrize("data", [b"bplist00", b"\x00"])
def test_format_detection_invalid(data):
    decoder = Decoder(io.BytesIO(data))
    with pytest.raises(PlistError):
        decoder.decode()
    assert decoder.format == PlistFormat.INVALID


def test_decode_sparse_bundle_example():
    document = b"""<?xml version="1.0" encoding="UTF-8"?>
<plist version="1.0">
	<dict>
		<key>CFBundleInfoDictionaryVersion</key>
		<string>6.0</string>
		<key>band-size</key>
		<integer>8388608</integer>
		<key>bundle-backingstore-version</key>
		<integer>1</integer>
		<key>diskimage-bundle-type</key>
		<string>com.apple.diskimage.sparsebundle</string>
		<key>size</key>
		<integer>4398046511104</integer>
	</dict>
</plist>"""
    decoder = Decoder(io.BytesIO(document))
    assert decoder.decode() == SPARSE_BUNDLE
    assert decoder.format == PlistFormat.XML


def test_encode_example_compact():
    stream = io.BytesIO()
    Encoder(stream).encode(SPARSE_BUNDLE)
    encoded = stream.getvalue()
    assert encoded.startswith(XML_PREFIX)
    body = encoded.split(b"\n", 2)[2]
    assert body == (
        b'<plist version="1.0"><dict><key>CFBundleInfoDictionaryVersion</key><string>6.0</string>'
        b"<key>band-size</key><integer>8388608</integer><key>bundle-backingstore-version</key>"
        b"<integer>1</integer><key>diskimage-bundle-type</key>"
        b"<string>com.apple.diskimage.sparsebundle</string><key>size</key>"
        b"<integer>4398046511104</integer></dict></plist>"
    )


def test_marshal_indent_example():
    encoded = marshal_indent(SPARSE_BUNDLE, PlistFormat.XML, "\t")
    assert encoded.startswith(XML_PREFIX)
    body = encoded.split(b"\n", 2)[2].decode()
    assert body.split("\n") == [
        '<plist version="1.0">',
        "\t<dict>",
        "\t\t<key>CFBundleInfoDictionaryVersion</key>",
        "\t\t<string>6.0</string>",
        "\t\t<key>band-size</key>",
        "\t\t<integer>8388608</integer>",
        "\t\t<key>bundle-backingstore-version</key>",
        "\t\t<integer>1</integer>",
        "\t\t<key>diskimage-bundle-type</key>",
        "\t\t<string>com.apple.diskimage.sparsebundle</string>",
        "\t\t<key>size</key>",
        "\t\t<integer>4398046511104</integer>",
        "\t</dict>",
        "</plist>",
    ]


ROUND_TRIP_VALUE = {
    "s": "h\u00e9llo <&>",
    "i": -5,
    "big": 2**63 + 1,
    "f": 1.5,
    "b": True,
    "d": b"\x00\x01\xff",
    "t": datetime(2013, 11, 27, 0, 34, tzinfo=timezone.utc),
    "a": [1, "two", [3]],
    "u": UID(9),
    "empty": {},
}


@pytest.mark.parametrize("fmt", [PlistFormat.XML, PlistFormat.BINARY])
def test_round_trip(fmt):
    value, detected = unmarshal(marshal(ROUND_TRIP_VALUE, fmt))
    assert detected == fmt
    assert value == ROUND_TRIP_VALUE


def test_automatic_format_is_binary():
    assert marshal([1, 2], PlistFormat.AUTOMATIC) == marshal([1, 2], PlistFormat.BINARY)


def test_indented_round_trip():
    value, _ = unmarshal(marshal_indent(ROUND_TRIP_VALUE, PlistFormat.XML, "  "))
    assert value == ROUND_TRIP_VALUE


def test_none_values_dropped():
    value, _ = unmarshal(marshal({"a": None, "b": [None, 1]}, PlistFormat.XML))
    assert value == {"b": [1]}


@pytest.mark.parametrize("fmt", [PlistFormat.XML, PlistFormat.BINARY])
def test_none_root_rejected(fmt):
    with pytest.raises(PlistError):
        marshal(None, fmt)


@pytest.mark.parametrize("fmt", [PlistFormat.XML, PlistFormat.BINARY])
def test_unencodable_value(fmt):
    with pytest.raises(PlistError):
        marshal({"a": object()}, fmt)


def test_text_formats_not_encodable():
    with pytest.raises(PlistError):
        marshal({"a": "b"}, PlistFormat.OPENSTEP)


def test_encoder_matches_marshal():
    stream = io.BytesIO()
    Encoder(stream, PlistFormat.BINARY).encode({"k": [1, 2.5]})
    assert stream.getvalue() == marshal({"k": [1, 2.5]}, PlistFormat.BINARY)


@pytest.mark.parametrize(
    "document",
    [
        b"<plist><dict><string>helo</string></dict></plist>",
        b"<plist><dict><key>helo</key></dict></plist>",
        b"<plist><integer>helo</integer></plist>",
        b"<plist><real>helo</real></plist>",
        b"<plist><date>*@&amp;%#helo</date></plist>",
        b"<plist><integer>10</plist>",
        b"<plist><dict><key>10</plist>",
        b"<plist>",
        b"<plist><array>",
        b"<plist/>",
        b"<pl",
        b"bplist00",
    ],
)
def test_invalid_documents(document):
    with pytest.raises(PlistError):
        unmarshal(document)