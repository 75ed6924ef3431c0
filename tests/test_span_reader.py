import struct

import pytest

from nnkern.span_reader import SpanReader


def test_read_scalars_in_order():
    reader = SpanReader(struct.pack("<Iif", 7, -3, 1.5))
    assert reader.read("I") == 7
    assert reader.read("i") == -3
    assert reader.read("f") == 1.5
    assert reader.empty()


def test_read_multi_field_record():
    reader = SpanReader(struct.pack("<ii", 4, 9))
    assert reader.read("ii") == (4, 9)


def test_read_array_round_trip():
    values = [0.5, -2.0, 8.25]
    reader = SpanReader(struct.pack("<3f", *values) + b"\xff")
    assert reader.read_array("f", 3) == values
    assert reader.remaining() == b"\xff"


def test_read_array_of_records():
    reader = SpanReader(struct.pack("<4i", 1, 2, 3, 4))
    assert reader.read_array("ii", 2) == [(1, 2), (3, 4)]


def test_peek_does_not_advance():
    reader = SpanReader(b"abcdef")
    assert reader.peek(3) == b"abc"
    assert reader.remaining() == b"abcdef"


def test_skip_advances():
    reader = SpanReader(b"abcdef")
    reader.skip(4)
    assert reader.remaining() == b"ef"


def test_read_past_end_raises():
    reader = SpanReader(b"\x01\x02")
    with pytest.raises(EOFError):
        reader.read("I")
    assert reader.remaining() == b"\x01\x02"


def test_skip_past_end_raises():
    with pytest.raises(EOFError):
        SpanReader(b"ab").skip(3)


def test_empty_on_fresh_empty_buffer():
    assert SpanReader(b"").empty() is True
    assert SpanReader(b"x").empty() is False