# nnkern

Reference kernels and supporting pieces for a small neural-network inference
runtime, written in Python on top of NumPy. Kernels take array-like inputs
and return new NumPy arrays.

## What is inside

- `nnkern.datatypes`: the basic value types: `DataType`, `Padding`,
  `ValueRange`, `QuantParam`, `FixedMul`, `Scalar`, `MemoryRange`, the
  operator enums `ReduceOp`, `BinaryOp`, `UnaryOp`, `ImageResizeMode` and
  `MemoryType`, and `almost_equal` for comparing two `QuantParam` values
  within one float32 epsilon.
- `nnkern.fileio.read_file`: reads a whole binary file into `bytes`; raises
  `OSError` when the file cannot be opened.
- `nnkern.span_reader.SpanReader`: a cursor over a byte buffer that reads
  little-endian `struct`-formatted values (`read`, `read_array`, `peek`,
  `skip`, `remaining`, `empty`) and raises `EOFError` when the buffer runs out.
- `nnkern.quantizer.Quantizer`: collects value ranges per key (`record`,
  `record_data`, `get`) and derives quantization parameters
  (`get_quant_param`) and fixed-point multipliers (`get_fixed_mul`).
- `nnkern.k210`: row-layout, byte-size and pooling helpers for the K210 KPU
  memory format (`KpuLayout`, `KpuFilterType`, `KpuPoolType` and the
  `get_kpu_*` functions).
- `nnkern.kernels.neutral`: NCHW kernels computed in float32: `binary`,
  `concat`, `conv2d`, `matmul`, `pad`, `quantize`, `dequantize`, `reduce`,
  `unary`, `reduce_window2d`, `resize_nearest_neighbor`, `resize_bilinear`,
  `softmax`, `transpose`, `strided_slice`, plus `get_windowed_output_size`
  and `apply_activation`.
- `nnkern.kernels.cpu`: NHWC kernels: `conv2d`, `depthwise_conv2d`,
  `reduce_window2d`, `quantized_conv2d`, `quantized_depthwise_conv2d` and
  `mul_and_carry_shift`.
- `nnkern.model`: `ModelHeader` and `NodeHeader` with binary
  `serialize`/`deserialize`, the `ModelTarget` and `KernelCallResult` enums,
  and the `MODEL_IDENTIFIER` and `MODEL_VERSION` constants.
- `nnkern.node_bodies`: the option records of each runtime operator
  (`BinaryOptions`, `ConcatOptions`, `Conv2dOptions`, `DequantizeOptions`,
  `MatmulOptions`, `MemoryCopyOptions`, `PadOptions`, `QuantizeOptions`,
  `ReduceOptions`, `ReduceWindow2dOptions`, `ResizeImageOptions`,
  `SoftmaxOptions`, `TransposeOptions`, `StridedSliceOptions`,
  `UnaryOptions`), each with `serialize()` and `deserialize(reader)`.

## Installing

```
pip install .
```

For running the test suite:

```
pip install ".[test]"
pytest
```

## Examples

Calibrating a tensor and deriving its quantization parameters:

```python
from nnkern.quantizer import Quantizer

quantizer = Quantizer()
quantizer.record_data("conv1", [-1.0, 0.5, 2.0])
param = quantizer.get_quant_param(quantizer.get("conv1"), 8)
print(param.zero_point, param.scale)

fixed = quantizer.get_fixed_mul(0.75, 32, 31, False)
print(fixed.mul, fixed.shift)
```

Running a kernel:

```python
from nnkern.datatypes import UnaryOp
from nnkern.kernels import neutral

print(neutral.unary([1.0, 2.0, 3.0], UnaryOp.SQUARE))
print(neutral.transpose(range(24), (1, 2, 3, 4), (0, 3, 1, 2)).shape)
```

Writing and reading a node body:

```python
from nnkern.datatypes import DataType, MemoryRange, MemoryType, UnaryOp
from nnkern.node_bodies import UnaryOptions
from nnkern.span_reader import SpanReader

options = UnaryOptions(
    MemoryRange(MemoryType.MAIN, DataType.FLOAT32, 0, 16),
    MemoryRange(MemoryType.MAIN, DataType.FLOAT32, 16, 16),
    UnaryOp.EXP,
)
data = options.serialize()
assert UnaryOptions.deserialize(SpanReader(data)) == options
```

## What it does not do

The package provides building blocks only. It does not import models from
other frameworks, build or schedule a computation graph, allocate memory
pools, or run a whole compiled model node by node; there is no interpreter and
no command-line tool. Model and node headers and option records can be
serialized and read back, but nothing here dispatches them to kernels.