import numpy as np
import pytest

from nnkern.datatypes import ValueRange
from nnkern.quantizer import Quantizer


def test_get_range_min_max():
    q = Quantizer()
    assert q.get_range([3.0, -1.5, 2.0]) == ValueRange(-1.5, 3.0)


def test_get_range_numpy_input():
    q = Quantizer()
    data = np.array([0.25, 4.0, -2.0], dtype=np.float32)
    assert q.get_range(data) == ValueRange(-2.0, 4.0)


def test_get_range_empty_raises():
    with pytest.raises(ValueError):
        Quantizer().get_range([])


def test_record_combines_ranges():
    q = Quantizer()
    q.record("a", ValueRange(-1.0, 1.0))
    q.record("a", ValueRange(0.0, 2.0))
    q.record("b", ValueRange(5.0, 6.0))
    assert q.get("a") == ValueRange(-1.0, 2.0)
    assert q.get("b") == ValueRange(5.0, 6.0)


def test_record_data():
    q = Quantizer()
    q.record_data("x", [1.0, 2.0])
    q.record_data("x", [-4.0, 0.0])
    assert q.get("x") == ValueRange(-4.0, 2.0)


def test_get_unknown_key_raises():
    with pytest.raises(KeyError):
        Quantizer().get("missing")


def test_quant_param_unit_range():
    param = Quantizer().get_quant_param(ValueRange(0.0, 1.0), 8)
    assert param.zero_point == 0
    assert param.scale == 2**8 - 1


@pytest.mark.parametrize("lo,hi", [(-1.0, 3.0), (-0.5, 0.5), (-10.0, 2.0)])
def test_quant_param_maps_range_ends(lo, hi):
    bits = 8
    param = Quantizer().get_quant_param(ValueRange(lo, hi), bits)
    assert round(lo * param.scale + param.zero_point) == 0
    assert round(hi * param.scale + param.zero_point) == 2**bits - 1


def test_quant_param_includes_zero():
    q = Quantizer()
    assert q.get_quant_param(ValueRange(2.0, 4.0), 8) == q.get_quant_param(ValueRange(0.0, 4.0), 8)
    assert q.get_quant_param(ValueRange(-4.0, -2.0), 8) == q.get_quant_param(ValueRange(-4.0, 0.0), 8)


@pytest.mark.parametrize("value", [0.5, 3.0, 0.0123, 1.75])
def test_fixed_mul_reconstructs_value(value):
    fm = Quantizer().get_fixed_mul(value, 8, 15, False)
    assert abs(fm.mul * 2.0**-fm.shift - value) <= 1.2e-7
    assert 0 <= fm.shift <= 15
    assert abs(fm.mul) < 2**8


def test_fixed_mul_zero():
    fm = Quantizer().get_fixed_mul(0.0, 8, 15, False)
    assert (fm.mul, fm.shift) == (0.0, 0)


def test_fixed_mul_signed_negative_raises():
    with pytest.raises(ValueError):
        Quantizer().get_fixed_mul(-0.5, 8, 15, True)


def test_fixed_mul_too_large_raises():
    with pytest.raises(ValueError):
        Quantizer().get_fixed_mul(1e6, 8, 15, False)