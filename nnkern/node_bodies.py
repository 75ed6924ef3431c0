"""Binary bodies of the neutral runtime nodes."""

from __future__ import annotations

import itertools
import struct
from collections.abc import Callable
from dataclasses import dataclass, field, fields
from typing import Any

from nnkern.datatypes import (
    BinaryOp,
    DataType,
    ImageResizeMode,
    MemoryRange,
    MemoryType,
    Padding,
    QuantParam,
    ReduceOp,
    Scalar,
    UnaryOp,
    ValueRange,
)
from nnkern.span_reader import SpanReader


@dataclass(frozen=True)
class _Codec:
    fmt: str
    decode: Callable[[tuple], Any]
    encode: Callable[[Any], tuple]

    @property
    def count(self) -> int:
        layout = struct.Struct("<" + self.fmt)
        return len(layout.unpack(bytes(layout.size)))


def _scalar_codec(fmt: str) -> _Codec:
    return _Codec(fmt, lambda v: v[0], lambda x: (x,))


def _enum_codec(enum_type: type) -> _Codec:
    return _Codec("i", lambda v: enum_type(v[0]), lambda e: (int(e),))


def _decode_range(v: tuple) -> MemoryRange:
    return MemoryRange(MemoryType(v[0]), DataType(v[1]), v[2], v[3])


def _encode_range(r: MemoryRange) -> tuple:
    return (int(r.memory_type), int(r.datatype), r.start, r.size)


def _decode_paddings(v: tuple) -> tuple[Padding, ...]:
    return tuple(Padding(b, a) for b, a in zip(v[::2], v[1::2]))


def _encode_paddings(paddings) -> tuple:
    return tuple(x for p in paddings for x in (p.before, p.after))


_RANGE = _Codec("4I", _decode_range, _encode_range)
_SHAPE = _Codec("4i", tuple, tuple)
_I32 = _scalar_codec("i")
_U32 = _scalar_codec("I")
_F32 = _scalar_codec("f")
_BOOL = _scalar_codec("?")
_PADDING = _Codec("2i", lambda v: Padding(*v), lambda p: (p.before, p.after))
_PADDINGS = _Codec("8i", _decode_paddings, _encode_paddings)
_VALUE_RANGE = _Codec("2f", lambda v: ValueRange(*v), lambda r: (r.min, r.max))
_QUANT = _Codec("if", lambda v: QuantParam(*v), lambda q: (q.zero_point, q.scale))
_SCALAR = _Codec("I4s", lambda v: Scalar(DataType(v[0]), v[1]), lambda s: (int(s.type), s.storage))


def _wire(codec: _Codec):
    return field(metadata={"codec": codec})


class _Body:
    """Fixed-layout fields, packed in declaration order."""

    _padded = False

    @classmethod
    def _fixed_fields(cls) -> list:
        return [f for f in fields(cls) if "codec" in f.metadata]

    @classmethod
    def _fixed_format(cls) -> str:
        fmt = "<" + "".join(f.metadata["codec"].fmt for f in cls._fixed_fields())
        if cls._padded:
            pad = -struct.calcsize(fmt) % 4
            if pad:
                fmt += f"{pad}x"
        return fmt

    def _pack_fixed(self) -> bytes:
        values = [
            v
            for f in self._fixed_fields()
            for v in f.metadata["codec"].encode(getattr(self, f.name))
        ]
        return struct.pack(self._fixed_format(), *values)

    @classmethod
    def _unpack_fixed(cls, reader: SpanReader) -> dict[str, Any]:
        values = reader.read(cls._fixed_format())
        if not isinstance(values, tuple):
            values = (values,)
        it = iter(values)
        result = {}
        for f in cls._fixed_fields():
            codec = f.metadata["codec"]
            result[f.name] = codec.decode(tuple(itertools.islice(it, codec.count)))
        return result


class _SimpleBody(_Body):
    """A body written as one plain record, padded to four-byte alignment."""

    _padded = True


@dataclass
class BinaryOptions(_SimpleBody):
    input_a: MemoryRange = _wire(_RANGE)
    input_b: MemoryRange = _wire(_RANGE)
    output: MemoryRange = _wire(_RANGE)
    binary_op: BinaryOp = _wire(_enum_codec(BinaryOp))
    in_a_shape: tuple = _wire(_SHAPE)
    in_b_shape: tuple = _wire(_SHAPE)
    out_shape: tuple = _wire(_SHAPE)
    fused_activation: ValueRange = _wire(_VALUE_RANGE)

    def serialize(self) -> bytes:
        return self._pack_fixed()

    @classmethod
    def deserialize(cls, reader: SpanReader) -> BinaryOptions:
        return cls(**cls._unpack_fixed(reader))


@dataclass
class ConcatOptions(_Body):
    output: MemoryRange = _wire(_RANGE)
    inner_size: int = _wire(_U32)
    outer_size: int = _wire(_U32)
    inputs: tuple = ()
    dims: tuple = ()

    def __post_init__(self) -> None:
        self.inputs = tuple(self.inputs)
        self.dims = tuple(self.dims)
        if len(self.inputs) != len(self.dims):
            raise ValueError("Concat needs one dimension per input")

    @property
    def inputs_count(self) -> int:
        return len(self.inputs)

    def serialize(self) -> bytes:
        ranges = b"".join(struct.pack("<4I", *_encode_range(r)) for r in self.inputs)
        return (
            self._pack_fixed()
            + struct.pack("<I", self.inputs_count)
            + ranges
            + struct.pack(f"<{self.inputs_count}i", *self.dims)
        )

    @classmethod
    def deserialize(cls, reader: SpanReader) -> ConcatOptions:
        header = cls._unpack_fixed(reader)
        count = reader.read("I")
        inputs = tuple(_decode_range(r) for r in reader.read_array("4I", count))
        dims = tuple(reader.read_array("i", count))
        return cls(inputs=inputs, dims=dims, **header)


@dataclass
class Conv2dOptions(_Body):
    input: MemoryRange = _wire(_RANGE)
    output: MemoryRange = _wire(_RANGE)
    in_shape: tuple = _wire(_SHAPE)
    groups: int = _wire(_I32)
    out_channels: int = _wire(_I32)
    padding_h: Padding = _wire(_PADDING)
    padding_w: Padding = _wire(_PADDING)
    filter_h: int = _wire(_I32)
    filter_w: int = _wire(_I32)
    stride_h: int = _wire(_I32)
    stride_w: int = _wire(_I32)
    dilation_h: int = _wire(_I32)
    dilation_w: int = _wire(_I32)
    fused_activation: ValueRange = _wire(_VALUE_RANGE)
    weights: tuple = ()
    bias: tuple = ()

    def __post_init__(self) -> None:
        self.in_shape = tuple(self.in_shape)
        self.weights = tuple(self.weights)
        self.bias = tuple(self.bias)

    @property
    def weights_count(self) -> int:
        """Number of weights implied by the shape, channels, groups and filter."""
        return self.out_channels * self.in_shape[1] // self.groups * self.filter_h * self.filter_w

    def serialize(self) -> bytes:
        if len(self.weights) != self.weights_count:
            raise ValueError(f"Expected {self.weights_count} weights, got {len(self.weights)}")
        if len(self.bias) != self.out_channels:
            raise ValueError(f"Expected {self.out_channels} biases, got {len(self.bias)}")
        return (
            self._pack_fixed()
            + struct.pack(f"<{len(self.weights)}f", *self.weights)
            + struct.pack(f"<{len(self.bias)}f", *self.bias)
        )

    @classmethod
    def deserialize(cls, reader: SpanReader) -> Conv2dOptions:
        header = cls._unpack_fixed(reader)
        body = cls(**header)
        body.weights = tuple(reader.read_array("f", body.weights_count))
        body.bias = tuple(reader.read_array("f", body.out_channels))
        return body


@dataclass
class DequantizeOptions(_SimpleBody):
    input: MemoryRange = _wire(_RANGE)
    output: MemoryRange = _wire(_RANGE)
    quant_param: QuantParam = _wire(_QUANT)

    def serialize(self) -> bytes:
        return self._pack_fixed()

    @classmethod
    def deserialize(cls, reader: SpanReader) -> DequantizeOptions:
        return cls(**cls._unpack_fixed(reader))


@dataclass
class MatmulOptions(_Body):
    input_a: MemoryRange = _wire(_RANGE)
    input_b: MemoryRange = _wire(_RANGE)
    output: MemoryRange = _wire(_RANGE)
    a_rows: int = _wire(_I32)
    a_cols: int = _wire(_I32)
    b_cols: int = _wire(_I32)
    fused_activation: ValueRange = _wire(_VALUE_RANGE)
    bias: tuple = ()

    def __post_init__(self) -> None:
        self.bias = tuple(self.bias)

    def serialize(self) -> bytes:
        if len(self.bias) != self.b_cols:
            raise ValueError(f"Expected {self.b_cols} biases, got {len(self.bias)}")
        return self._pack_fixed() + struct.pack(f"<{len(self.bias)}f", *self.bias)

    @classmethod
    def deserialize(cls, reader: SpanReader) -> MatmulOptions:
        header = cls._unpack_fixed(reader)
        bias = tuple(reader.read_array("f", header["b_cols"]))
        return cls(bias=bias, **header)


@dataclass
class MemoryCopyOptions(_SimpleBody):
    input: MemoryRange = _wire(_RANGE)
    output: MemoryRange = _wire(_RANGE)

    def serialize(self) -> bytes:
        return self._pack_fixed()

    @classmethod
    def deserialize(cls, reader: SpanReader) -> MemoryCopyOptions:
        return cls(**cls._unpack_fixed(reader))


@dataclass
class PadOptions(_SimpleBody):
    input: MemoryRange = _wire(_RANGE)
    output: MemoryRange = _wire(_RANGE)
    in_shape: tuple = _wire(_SHAPE)
    paddings: tuple = _wire(_PADDINGS)
    pad_value: Scalar = _wire(_SCALAR)

    def serialize(self) -> bytes:
        return self._pack_fixed()

    @classmethod
    def deserialize(cls, reader: SpanReader) -> PadOptions:
        return cls(**cls._unpack_fixed(reader))


@dataclass
class QuantizeOptions(_SimpleBody):
    input: MemoryRange = _wire(_RANGE)
    output: MemoryRange = _wire(_RANGE)
    quant_param: QuantParam = _wire(_QUANT)

    def serialize(self) -> bytes:
        return self._pack_fixed()

    @classmethod
    def deserialize(cls, reader: SpanReader) -> QuantizeOptions:
        return cls(**cls._unpack_fixed(reader))


@dataclass
class ReduceOptions(_SimpleBody):
    input: MemoryRange = _wire(_RANGE)
    output: MemoryRange = _wire(_RANGE)
    reduce_op: ReduceOp = _wire(_enum_codec(ReduceOp))
    in_shape: tuple = _wire(_SHAPE)
    out_shape: tuple = _wire(_SHAPE)
    init_value: float = _wire(_F32)

    def serialize(self) -> bytes:
        return self._pack_fixed()

    @classmethod
    def deserialize(cls, reader: SpanReader) -> ReduceOptions:
        return cls(**cls._unpack_fixed(reader))


@dataclass
class ReduceWindow2dOptions(_SimpleBody):
    input: MemoryRange = _wire(_RANGE)
    output: MemoryRange = _wire(_RANGE)
    reduce_op: ReduceOp = _wire(_enum_codec(ReduceOp))
    in_shape: tuple = _wire(_SHAPE)
    padding_h: Padding = _wire(_PADDING)
    padding_w: Padding = _wire(_PADDING)
    filter_h: int = _wire(_I32)
    filter_w: int = _wire(_I32)
    stride_h: int = _wire(_I32)
    stride_w: int = _wire(_I32)
    dilation_h: int = _wire(_I32)
    dilation_w: int = _wire(_I32)
    init_value: float = _wire(_F32)
    fused_activation: ValueRange = _wire(_VALUE_RANGE)

    def serialize(self) -> bytes:
        return self._pack_fixed()

    @classmethod
    def deserialize(cls, reader: SpanReader) -> ReduceWindow2dOptions:
        return cls(**cls._unpack_fixed(reader))


@dataclass
class ResizeImageOptions(_SimpleBody):
    input: MemoryRange = _wire(_RANGE)
    output: MemoryRange = _wire(_RANGE)
    in_shape: tuple = _wire(_SHAPE)
    out_h: int = _wire(_I32)
    out_w: int = _wire(_I32)
    mode: ImageResizeMode = _wire(_enum_codec(ImageResizeMode))
    align_corners: bool = _wire(_BOOL)

    def serialize(self) -> bytes:
        return self._pack_fixed()

    @classmethod
    def deserialize(cls, reader: SpanReader) -> ResizeImageOptions:
        return cls(**cls._unpack_fixed(reader))


@dataclass
class SoftmaxOptions(_SimpleBody):
    input: MemoryRange = _wire(_RANGE)
    output: MemoryRange = _wire(_RANGE)
    inner_size: int = _wire(_I32)
    outer_size: int = _wire(_I32)
    beta: float = _wire(_F32)

    def serialize(self) -> bytes:
        return self._pack_fixed()

    @classmethod
    def deserialize(cls, reader: SpanReader) -> SoftmaxOptions:
        return cls(**cls._unpack_fixed(reader))


@dataclass
class TransposeOptions(_SimpleBody):
    input: MemoryRange = _wire(_RANGE)
    output: MemoryRange = _wire(_RANGE)
    in_shape: tuple = _wire(_SHAPE)
    perm: tuple = _wire(_SHAPE)

    def serialize(self) -> bytes:
        return self._pack_fixed()

    @classmethod
    def deserialize(cls, reader: SpanReader) -> TransposeOptions:
        return cls(**cls._unpack_fixed(reader))


@dataclass
class StridedSliceOptions(_SimpleBody):
    input: MemoryRange = _wire(_RANGE)
    output: MemoryRange = _wire(_RANGE)
    in_shape: tuple = _wire(_SHAPE)
    begin: tuple = _wire(_SHAPE)
    end: tuple = _wire(_SHAPE)
    strides: tuple = _wire(_SHAPE)
    begin_mask: int = _wire(_I32)
    end_mask: int = _wire(_I32)
    ellipsis_mask: int = _wire(_I32)
    new_axis_mask: int = _wire(_I32)
    shrink_axis_mask: int = _wire(_I32)

    def serialize(self) -> bytes:
        return self._pack_fixed()

    @classmethod
    def deserialize(cls, reader: SpanReader) -> StridedSliceOptions:
        return cls(**cls._unpack_fixed(reader))


@dataclass
class UnaryOptions(_SimpleBody):
    input: MemoryRange = _wire(_RANGE)
    output: MemoryRange = _wire(_RANGE)
    unary_op: UnaryOp = _wire(_enum_codec(UnaryOp))

    def serialize(self) -> bytes:
        return self._pack_fixed()

    @classmethod
    def deserialize(cls, reader: SpanReader) -> UnaryOptions:
        return cls(**cls._unpack_fixed(reader))