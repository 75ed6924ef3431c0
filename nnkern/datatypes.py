"""Core value types shared by kernels, quantizer and model format."""

from __future__ import annotations

import enum
import struct
from dataclasses import dataclass

FLOAT32_MAX = 3.4028234663852886e38
FLOAT32_EPSILON = 1.1920928955078125e-07


class DataType(enum.IntEnum):
    FLOAT32 = 0
    UINT8 = 1


@dataclass(frozen=True)
class Padding:
    """Padding applied before and after one axis."""

    before: int = 0
    after: int = 0

    def sum(self) -> int:
        return self.before + self.after

    @classmethod
    def zero(cls) -> Padding:
        return cls(0, 0)


@dataclass(frozen=True)
class ValueRange:
    """A closed interval of values."""

    min: float
    max: float

    @classmethod
    def full(cls) -> ValueRange:
        """The whole range representable by a 32-bit float."""
        return cls(-FLOAT32_MAX, FLOAT32_MAX)


class ReduceOp(enum.IntEnum):
    MEAN = 0
    MIN = 1
    MAX = 2
    SUM = 3


class BinaryOp(enum.IntEnum):
    ADD = 0
    SUB = 1
    MUL = 2
    DIV = 3
    MIN = 4
    MAX = 5


class UnaryOp(enum.IntEnum):
    ABS = 0
    CEIL = 1
    COS = 2
    EXP = 3
    FLOOR = 4
    LOG = 5
    NEG = 6
    RSQRT = 7
    SIN = 8
    SQUARE = 9


class ImageResizeMode(enum.IntEnum):
    BILINEAR = 0
    NEAREST_NEIGHBOR = 1


@dataclass(frozen=True)
class QuantParam:
    """Affine quantisation: q = round(x * scale + zero_point)."""

    zero_point: int
    scale: float


def _round_half_away(value: float) -> int:
    if value >= 0:
        return int(value + 0.5) if value + 0.5 != value else int(value)
    return -int(-value + 0.5)


@dataclass(frozen=True)
class FixedMul:
    """A multiplier expressed as mul * 2**-shift."""

    mul: float
    shift: int

    def rounded_mul(self) -> int:
        return _round_half_away(self.mul)


class MemoryType(enum.IntEnum):
    CONST = 0
    MAIN = 1
    K210_KPU = 2


_SCALAR_FORMATS = {DataType.FLOAT32: "<f", DataType.UINT8: "<B"}


@dataclass(frozen=True)
class Scalar:
    """A typed value held in four bytes of storage."""

    type: DataType
    storage: bytes = bytes(4)

    def __post_init__(self) -> None:
        if len(self.storage) != 4:
            raise ValueError("Scalar storage must be exactly 4 bytes")

    @classmethod
    def of(cls, value: float, datatype: DataType = DataType.FLOAT32) -> Scalar:
        packed = struct.pack(_SCALAR_FORMATS[DataType(datatype)], value)
        return cls(DataType(datatype), packed.ljust(4, b"\0"))

    def value(self) -> float | int:
        fmt = _SCALAR_FORMATS[self.type]
        return struct.unpack_from(fmt, self.storage)[0]


@dataclass(frozen=True)
class MemoryRange:
    """A typed region inside one of the memory pools."""

    memory_type: MemoryType
    datatype: DataType
    start: int
    size: int


def almost_equal(lhs: QuantParam, rhs: QuantParam) -> bool:
    """Equal zero points and scales within one float32 epsilon."""
    return lhs.zero_point == rhs.zero_point and abs(lhs.scale - rhs.scale) <= FLOAT32_EPSILON