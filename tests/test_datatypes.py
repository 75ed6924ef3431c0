import struct

import numpy as np
import pytest

from nnkern.datatypes import (
    BinaryOp,
    DataType,
    FixedMul,
    MemoryRange,
    MemoryType,
    Padding,
    QuantParam,
    Scalar,
    ValueRange,
    almost_equal,
)


def test_padding_zero_sum():
    assert Padding.zero().sum() == 0
    assert Padding.zero() == Padding(0, 0)


def test_padding_sum_adds_both_sides():
    p = Padding(2, 3)
    assert p.sum() == p.before + p.after


def test_value_range_full_matches_float32():
    full = ValueRange.full()
    assert full.max == float(np.finfo(np.float32).max)
    assert full.min == -full.max


def test_value_range_equality():
    assert ValueRange(1.0, 2.0) == ValueRange(1.0, 2.0)
    assert not ValueRange(1.0, 2.0) == ValueRange(1.0, 3.0)


def test_enum_order_follows_declaration():
    assert BinaryOp(0) is BinaryOp.ADD
    assert DataType(0) is DataType.FLOAT32
    assert DataType(1) is DataType.UINT8


@pytest.mark.parametrize("value", [2.5, 0.5, 7.49, 3.0])
def test_rounded_mul_symmetric(value):
    assert FixedMul(value, 0).rounded_mul() == -FixedMul(-value, 0).rounded_mul()


def test_rounded_mul_half_away_from_zero():
    assert FixedMul(2.5, 0).rounded_mul() == 3
    assert FixedMul(-2.5, 0).rounded_mul() == -3


def test_almost_equal():
    assert almost_equal(QuantParam(1, 0.5), QuantParam(1, 0.5 + 1e-8))
    assert not almost_equal(QuantParam(1, 0.5), QuantParam(1, 0.501))
    assert not almost_equal(QuantParam(1, 0.5), QuantParam(2, 0.5))


def test_quant_param_exact_equality():
    assert QuantParam(3, 0.25) == QuantParam(3, 0.25)
    assert not QuantParam(3, 0.25) == QuantParam(3, 0.25 + 1e-8)


def test_scalar_float_round_trip():
    s = Scalar.of(1.5, DataType.FLOAT32)
    assert s.value() == 1.5
    assert s.storage == struct.pack("<f", 1.5)


def test_scalar_uint8_round_trip():
    s = Scalar.of(200, DataType.UINT8)
    assert s.value() == 200
    assert len(s.storage) == 4


def test_scalar_rejects_wrong_storage():
    with pytest.raises(ValueError):
        Scalar(DataType.FLOAT32, b"\0\0")


def test_memory_range_fields():
    r = MemoryRange(MemoryType.MAIN, DataType.UINT8, 16, 32)
    assert (r.memory_type, r.datatype, r.start, r.size) == (MemoryType.MAIN, DataType.UINT8, 16, 32)