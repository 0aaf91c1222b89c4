import io
from datetime import datetime, timezone

from plistwatch.bplist import UID
from plistwatch.prettyprint import format_value, pretty_print


def test_string_is_printed_verbatim():
    assert format_value("hello world") == "hello world\n"


def test_booleans():
    assert [format_value(True), format_value(False)] == ["true\n", "false\n"]


def test_uid_uses_hash_prefix():
    assert format_value(UID(7)) == "#7\n"


def test_integers_print_plainly():
    assert format_value(4398046511104) == "4398046511104\n"
    assert format_value(-12) == "-12\n"


def test_integral_float_prints_like_integer():
    assert format_value(64.0) == format_value(64)


def test_large_float_round_trips_through_exponent_form():
    text = format_value(1e6).strip()
    assert "e" in text
    assert float(text) == 1e6


def test_fractional_float_round_trips():
    assert float(format_value(0.1).strip()) == 0.1
    assert float(format_value(-32.5).strip()) == -32.5


def test_simple_dictionary_layout():
    assert format_value({"a": "x"}) == "{\n  a: x\n}\n"


def test_dictionary_keys_sorted():
    lines = format_value({"zeta": 1, "alpha": 2, "mid": 3}).splitlines()
    keys = [line.strip().split(":")[0] for line in lines[1:-1]]
    assert keys == sorted(["zeta", "alpha", "mid"])


def test_list_entries_are_indexed():
    lines = format_value(["a", "b", "c"]).splitlines()
    assert lines[0] == "("
    assert lines[-1] == ")"
    assert [line.strip() for line in lines[1:-1]] == ["[0]: a", "[1]: b", "[2]: c"]


def test_nested_containers_close_at_their_own_depth():
    lines = format_value({"k": {"z": 1}}).splitlines()
    closers = [line for line in lines if line.strip() == "}"]
    assert len(closers) == 2
    assert len(closers[0]) > len(closers[1])


def test_hexdump_rows():
    data = bytes(range(20))
    lines = format_value(data).splitlines()
    assert len(lines) == 2
    assert lines[0].startswith(format(0, "08x"))
    assert lines[1].startswith(format(16, "08x"))
    assert all(line.endswith("|") for line in lines)
    assert len(lines[0]) == len(lines[1])


def test_hexdump_shows_printable_text():
    line = format_value(b"Hello").strip()
    assert line.endswith("|Hello" + "." * 11 + "|")
    assert "48 65 6c 6c 6f" in line


def test_empty_data_prints_nothing():
    assert format_value(b"") == ""


def test_datetime_in_utc():
    text = format_value(datetime(2013, 11, 27, 0, 34, tzinfo=timezone.utc))
    assert text.startswith("2013-11-27 00:34:00")
    assert text.endswith("UTC\n")


def test_pretty_print_writes_to_stream():
    value = {"list": [1, b"\x00\x01"], "name": "x"}
    stream = io.StringIO()
    pretty_print(stream, value)
    assert stream.getvalue() == format_value(value)