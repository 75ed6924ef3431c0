"""Calibration range tracking and quantisation parameter derivation."""

from __future__ import annotations

import math
from collections.abc import Hashable, Iterable

import numpy as np

from nnkern.datatypes import FLOAT32_EPSILON, FixedMul, QuantParam, ValueRange


def _round_half_away(value: float) -> int:
    return int(math.copysign(math.floor(abs(value) + 0.5), value))


def _combine(lhs: ValueRange, rhs: ValueRange) -> ValueRange:
    return ValueRange(min(lhs.min, rhs.min), max(lhs.max, rhs.max))


class Quantizer:
    """Collects observed value ranges per tensor and derives quantisation parameters."""

    def __init__(self) -> None:
        self._ranges: dict[Hashable, ValueRange] = {}

    def get_range(self, data: Iterable[float]) -> ValueRange:
        arr = np.asarray(list(data) if not hasattr(data, "__array__") else data, dtype=np.float32)
        if arr.size == 0:
            raise ValueError("Cannot compute the range of empty data")
        return ValueRange(float(arr.min()), float(arr.max()))

    def record(self, key: Hashable, value_range: ValueRange) -> None:
        """Widen the stored range of ``key`` to include ``value_range``."""
        current = self._ranges.get(key)
        self._ranges[key] = value_range if current is None else _combine(current, value_range)

    def record_data(self, key: Hashable, data: Iterable[float]) -> None:
        self.record(key, self.get_range(data))

    def get(self, key: Hashable) -> ValueRange:
        return self._ranges[key]

    def get_quant_param(self, value_range: ValueRange, bits: int) -> QuantParam:
        lo = np.float32(value_range.min)
        hi = np.float32(value_range.max)
        if hi < 0:
            hi = np.float32(0)
        if lo > 0:
            lo = np.float32(0)

        r = np.float32(hi - lo)
        if r < np.float32(0.001):
            r = np.float32(0.001)

        scale = np.float32(np.float32((1 << bits) - 1) / r)
        bias = _round_half_away(float(np.float32(-lo * scale)))
        if bias < 0:
            raise ValueError("Quantisation produced a negative zero point")
        return QuantParam(bias, float(scale))

    def get_fixed_mul(self, value: float, max_bits: int, max_shift: int, is_signed: bool) -> FixedMul:
        """Express ``value`` as mul * 2**-shift within the given bit budget."""
        if is_signed and value < 0:
            raise ValueError("Signed fixed multiplier requires a non-negative value")

        value = float(np.float32(value))
        bits = max_bits - 1 if is_signed else max_bits

        if abs(value) > 1:
            mantissa, mul_shift = math.frexp(value)
            shift = min(max_shift, bits - mul_shift)
            mul = mantissa * 2.0 ** (shift + mul_shift)
        elif value == 0:
            mul, shift = 0.0, 0
        else:
            mantissa, mul_shift = math.frexp(value)
            shift = min(max_shift + mul_shift, bits)
            mul = mantissa * 2.0**shift
            shift -= mul_shift

        mul = float(np.float32(mul))
        if not abs(mul) < 2.0**bits:
            raise ValueError("Fixed multiplier does not fit in the bit budget")
        if not 0 <= shift <= max_shift:
            raise ValueError("Fixed multiplier shift out of range")
        if abs(value - mul * 2.0**-shift) > FLOAT32_EPSILON:
            raise ValueError("Fixed multiplier cannot represent the value precisely")
        return FixedMul(mul, shift)