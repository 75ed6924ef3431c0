import pytest

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
from nnkern.node_bodies import (
    BinaryOptions,
    ConcatOptions,
    Conv2dOptions,
    DequantizeOptions,
    MatmulOptions,
    MemoryCopyOptions,
    PadOptions,
    QuantizeOptions,
    ReduceOptions,
    ReduceWindow2dOptions,
    ResizeImageOptions,
    SoftmaxOptions,
    StridedSliceOptions,
    TransposeOptions,
    UnaryOptions,
)
from nnkern.span_reader import SpanReader

IN = MemoryRange(MemoryType.MAIN, DataType.FLOAT32, 0, 64)
OUT = MemoryRange(MemoryType.MAIN, DataType.FLOAT32, 64, 64)
CONST = MemoryRange(MemoryType.CONST, DataType.UINT8, 8, 16)


def _round_trip(body):
    reader = SpanReader(body.serialize())
    restored = type(body).deserialize(reader)
    assert reader.empty()
    return restored


SIMPLE_BODIES = [
    BinaryOptions(IN, CONST, OUT, BinaryOp.DIV, (1, 2, 2, 4), (1, 1, 1, 4), (1, 2, 2, 4),
                  ValueRange(0.0, 6.0)),
    DequantizeOptions(CONST, OUT, QuantParam(12, 0.5)),
    MemoryCopyOptions(IN, OUT),
    PadOptions(IN, OUT, (1, 3, 4, 4),
               (Padding(0, 0), Padding(0, 0), Padding(1, 2), Padding(2, 1)),
               Scalar.of(1.5)),
    QuantizeOptions(IN, CONST, QuantParam(3, 2.0)),
    ReduceOptions(IN, OUT, ReduceOp.MEAN, (1, 3, 4, 4), (1, 3, 1, 1), 0.0),
    ReduceWindow2dOptions(IN, OUT, ReduceOp.MAX, (1, 3, 8, 8), Padding(0, 1), Padding(1, 0),
                          2, 2, 2, 2, 1, 1, -3.0, ValueRange.full()),
    ResizeImageOptions(IN, OUT, (1, 3, 4, 4), 8, 8, ImageResizeMode.NEAREST_NEIGHBOR, True),
    SoftmaxOptions(IN, OUT, 10, 2, 0.25),
    TransposeOptions(IN, OUT, (1, 4, 4, 3), (0, 3, 1, 2)),
    StridedSliceOptions(IN, OUT, (1, 4, 4, 3), (0, 0, 0, 0), (1, 4, 4, 3), (1, 2, 2, 1),
                        0, 1, 0, 0, 2),
    UnaryOptions(IN, OUT, UnaryOp.RSQRT),
]


@pytest.mark.parametrize("body", SIMPLE_BODIES, ids=lambda b: type(b).__name__)
def test_simple_body_round_trip(body):
    assert _round_trip(body) == body


@pytest.mark.parametrize("body", SIMPLE_BODIES, ids=lambda b: type(b).__name__)
def test_simple_body_is_four_byte_aligned(body):
    data = body.serialize()
    assert len(data) % 4 == 0
    reader = SpanReader(data)
    assert type(body).deserialize(reader) == body
    assert reader.empty()


def test_unary_body_wire_layout():
    data = UnaryOptions(IN, OUT, UnaryOp.SQUARE).serialize()
    assert len(data) == 36
    assert data[-4:] == b"\x09\x00\x00\x00"


def test_resize_body_padded_after_bool():
    body = ResizeImageOptions(IN, OUT, (1, 3, 4, 4), 8, 8, ImageResizeMode.BILINEAR, True)
    data = body.serialize()
    assert len(data) == 64
    assert data[-4:] == b"\x01\x00\x00\x00"


def test_enum_fields_restored_as_enums():
    restored = _round_trip(BinaryOptions(IN, IN, OUT, BinaryOp.MAX, (1, 1, 1, 1), (1, 1, 1, 1),
                                         (1, 1, 1, 1), ValueRange.full()))
    assert restored.binary_op is BinaryOp.MAX
    assert restored.input_a.memory_type is MemoryType.MAIN


def test_pad_value_survives_round_trip():
    body = SIMPLE_BODIES[3]
    assert _round_trip(body).pad_value.value() == body.pad_value.value()


def test_concat_round_trip():
    body = ConcatOptions(OUT, 16, 2, (IN, CONST, IN), (1, 3, 2))
    restored = _round_trip(body)
    assert restored == body
    assert restored.inputs_count == 3


def test_concat_requires_matching_dims():
    with pytest.raises(ValueError):
        ConcatOptions(OUT, 16, 2, (IN, CONST), (1,))


def test_conv2d_round_trip():
    body = Conv2dOptions(IN, OUT, (1, 2, 3, 3), 1, 2, Padding(1, 1), Padding(0, 0),
                         1, 1, 1, 1, 1, 1, ValueRange(0.0, 6.0),
                         (0.5, -1.0, 2.0, 0.25), (1.0, -2.0))
    assert _round_trip(body) == body


def test_conv2d_grouped_weight_count_round_trip():
    body = Conv2dOptions(IN, OUT, (1, 4, 5, 5), 4, 4, Padding(1, 1), Padding(1, 1),
                         3, 3, 1, 1, 1, 1, ValueRange.full(),
                         tuple(float(i) for i in range(36)), (0.0, 1.0, 2.0, 3.0))
    restored = _round_trip(body)
    assert restored.weights == body.weights
    assert len(restored.weights) == restored.weights_count


def test_conv2d_rejects_wrong_weight_count():
    body = Conv2dOptions(IN, OUT, (1, 2, 3, 3), 1, 2, Padding(0, 0), Padding(0, 0),
                         1, 1, 1, 1, 1, 1, ValueRange.full(), (1.0, 2.0), (0.0, 0.0))
    with pytest.raises(ValueError):
        body.serialize()


def test_matmul_round_trip():
    body = MatmulOptions(IN, CONST, OUT, 2, 3, 4, ValueRange(-1.0, 1.0), (0.5, 1.5, -2.5, 4.0))
    assert _round_trip(body) == body


def test_matmul_rejects_wrong_bias_count():
    body = MatmulOptions(IN, CONST, OUT, 2, 3, 4, ValueRange.full(), (0.5,))
    with pytest.raises(ValueError):
        body.serialize()


def test_bodies_read_sequentially():
    first = UnaryOptions(IN, OUT, UnaryOp.EXP)
    second = MatmulOptions(IN, CONST, OUT, 1, 1, 2, ValueRange.full(), (1.0, 2.0))
    reader = SpanReader(first.serialize() + second.serialize())
    assert UnaryOptions.deserialize(reader) == first
    assert MatmulOptions.deserialize(reader) == second
    assert reader.empty()


def test_truncated_body_raises():
    data = SoftmaxOptions(IN, OUT, 10, 2, 1.0).serialize()[:-2]
    with pytest.raises(EOFError):
        SoftmaxOptions.deserialize(SpanReader(data))


def test_invalid_enum_value_raises():
    data = bytearray(UnaryOptions(IN, OUT, UnaryOp.ABS).serialize())
    data[-4] = 200
    with pytest.raises(ValueError):
        UnaryOptions.deserialize(SpanReader(bytes(data)))