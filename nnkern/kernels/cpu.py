"""Reference kernels over NHWC tensors, including quantised convolutions."""

from __future__ import annotations

import math
from collections.abc import Callable, Sequence
from typing import Any, Union

import numpy as np
from numpy.typing import ArrayLike

from nnkern.datatypes import Padding, ReduceOp, ValueRange
from nnkern.kernels.neutral import apply_activation, get_windowed_output_size

BinaryFn = Callable[[np.ndarray, np.ndarray], Any]
WindowFn = Callable[[np.ndarray, int], Any]

_REDUCERS: dict[ReduceOp, BinaryFn] = {
    ReduceOp.MEAN: np.add,
    ReduceOp.MIN: np.minimum,
    ReduceOp.MAX: np.maximum,
    ReduceOp.SUM: np.add,
}


def _trunc_div(a: int, b: int) -> int:
    """Integer division truncating toward zero."""
    q = abs(a) // abs(b)
    return q if (a >= 0) == (b > 0) else -q


def _shape4(shape: Sequence[int]) -> tuple[int, int, int, int]:
    dims = tuple(int(d) for d in shape)
    if len(dims) != 4:
        raise ValueError(f"Expected a 4-dimensional shape, got {dims}")
    return dims  # type: ignore[return-value]


def _as_tensor(data: ArrayLike, shape: Sequence[int], dtype: Any) -> np.ndarray:
    arr = np.asarray(data, dtype=dtype).reshape(-1)
    expected = math.prod(shape)
    if arr.size != expected:
        raise ValueError(f"Expected {expected} elements for shape {tuple(shape)}, got {arr.size}")
    return arr.reshape(tuple(shape))


def _filter_range(
    out_index: int, stride: int, padding: Padding, dilation: int, filter_size: int, size: int
) -> tuple[np.ndarray, int, int]:
    """Input positions and filter taps of one output position that fall inside the input."""
    origin = out_index * stride - padding.before
    start = max(0, _trunc_div(-origin + dilation - 1, dilation))
    end = min(filter_size, _trunc_div(size - origin + dilation - 1, dilation))
    end = max(end, start)
    return origin + dilation * np.arange(start, end), start, end


def _output_extent(
    h: int,
    w: int,
    filter_h: int,
    filter_w: int,
    stride_h: int,
    stride_w: int,
    dilation_h: int,
    dilation_w: int,
    padding_h: Padding,
    padding_w: Padding,
) -> tuple[int, int]:
    out_h = max(0, get_windowed_output_size(h, filter_h, stride_h, dilation_h, padding_h))
    out_w = max(0, get_windowed_output_size(w, filter_w, stride_w, dilation_w, padding_w))
    return out_h, out_w


def _windows(
    h: int,
    w: int,
    out_h: int,
    out_w: int,
    filter_h: int,
    filter_w: int,
    stride_h: int,
    stride_w: int,
    dilation_h: int,
    dilation_w: int,
    padding_h: Padding,
    padding_w: Padding,
):
    """Yield (oy, ox, ys, (ky0, ky1), xs, (kx0, kx1)) for every output pixel."""
    rows = [_filter_range(oy, stride_h, padding_h, dilation_h, filter_h, h) for oy in range(out_h)]
    cols = [_filter_range(ox, stride_w, padding_w, dilation_w, filter_w, w) for ox in range(out_w)]
    for oy, (ys, ky0, ky1) in enumerate(rows):
        for ox, (xs, kx0, kx1) in enumerate(cols):
            yield oy, ox, ys, (ky0, ky1), xs, (kx0, kx1)


def mul_and_carry_shift(value, mul: int, shift: int):
    """Multiply then shift right by ``shift`` rounding half up; a negative shift shifts left."""
    scalar = np.ndim(value) == 0
    v = np.asarray(value, dtype=np.int64) * np.int64(mul)
    if shift > 0:
        v = v >> np.int64(shift - 1)
        v = np.where(v & 1, (v >> 1) + 1, v >> 1)
    elif shift < 0:
        v = v << np.int64(-shift)
    result = np.asarray(v, dtype=np.int64).astype(np.int32)
    return int(result) if scalar else result


def conv2d(
    input: ArrayLike,
    weights: ArrayLike,
    bias: ArrayLike,
    in_shape: Sequence[int],
    out_channels: int,
    filter_h: int,
    filter_w: int,
    stride_h: int,
    stride_w: int,
    dilation_h: int,
    dilation_w: int,
    padding_h: Padding,
    padding_w: Padding,
    fused_activation: ValueRange,
) -> np.ndarray:
    """2-D convolution over an NHWC tensor; weights are laid out as OHWI."""
    n, h, w, c = _shape4(in_shape)
    x = _as_tensor(input, (n, h, w, c), np.float32)
    kernel = _as_tensor(weights, (out_channels, filter_h, filter_w, c), np.float32)
    b = _as_tensor(bias, (out_channels,), np.float32)
    out_h, out_w = _output_extent(
        h, w, filter_h, filter_w, stride_h, stride_w, dilation_h, dilation_w, padding_h, padding_w
    )
    out = np.empty((n, out_h, out_w, out_channels), dtype=np.float32)

    for oy, ox, ys, (ky0, ky1), xs, (kx0, kx1) in _windows(
        h, w, out_h, out_w, filter_h, filter_w, stride_h, stride_w,
        dilation_h, dilation_w, padding_h, padding_w,
    ):
        patch = x[:, ys][:, :, xs]
        k = kernel[:, ky0:ky1, kx0:kx1, :]
        out[:, oy, ox, :] = np.einsum("nklc,oklc->no", patch, k) + b

    return apply_activation(out, fused_activation)


def depthwise_conv2d(
    input: ArrayLike,
    weights: ArrayLike,
    bias: ArrayLike,
    in_shape: Sequence[int],
    filter_h: int,
    filter_w: int,
    stride_h: int,
    stride_w: int,
    dilation_h: int,
    dilation_w: int,
    padding_h: Padding,
    padding_w: Padding,
    fused_activation: ValueRange,
) -> np.ndarray:
    """Depthwise 2-D convolution over an NHWC tensor; weights are laid out as CHW."""
    n, h, w, c = _shape4(in_shape)
    x = _as_tensor(input, (n, h, w, c), np.float32)
    kernel = _as_tensor(weights, (c, filter_h, filter_w), np.float32)
    b = _as_tensor(bias, (c,), np.float32)
    out_h, out_w = _output_extent(
        h, w, filter_h, filter_w, stride_h, stride_w, dilation_h, dilation_w, padding_h, padding_w
    )
    out = np.empty((n, out_h, out_w, c), dtype=np.float32)

    for oy, ox, ys, (ky0, ky1), xs, (kx0, kx1) in _windows(
        h, w, out_h, out_w, filter_h, filter_w, stride_h, stride_w,
        dilation_h, dilation_w, padding_h, padding_w,
    ):
        patch = x[:, ys][:, :, xs]
        k = kernel[:, ky0:ky1, kx0:kx1]
        out[:, oy, ox, :] = np.einsum("nklc,ckl->nc", patch, k) + b

    return apply_activation(out, fused_activation)


def _identity_window(value: np.ndarray, count: int) -> np.ndarray:
    return value


def _mean_window(value: np.ndarray, count: int) -> np.ndarray:
    return value / np.float32(count)


def reduce_window2d(
    input: ArrayLike,
    init_value: float,
    in_shape: Sequence[int],
    filter_h: int,
    filter_w: int,
    stride_h: int,
    stride_w: int,
    dilation_h: int,
    dilation_w: int,
    padding_h: Padding,
    padding_w: Padding,
    fused_activation: ValueRange,
    binary_op: Union[ReduceOp, BinaryFn],
    window_op: WindowFn | None,
) -> np.ndarray:
    """Pooling over an NHWC tensor; padded positions take no part.

    ``window_op(value, count)`` finishes each window. With a ``ReduceOp`` and no
    ``window_op``, MEAN divides by the count and the others pass the value through.
    """
    n, h, w, c = _shape4(in_shape)
    if isinstance(binary_op, ReduceOp):
        fn = _REDUCERS[binary_op]
    elif callable(binary_op):
        fn = binary_op
    else:
        raise TypeError("Expected a ReduceOp or a callable for reduce")
    if window_op is None:
        window_op = _mean_window if binary_op is ReduceOp.MEAN else _identity_window
    x = _as_tensor(input, (n, h, w, c), np.float32)
    out_h, out_w = _output_extent(
        h, w, filter_h, filter_w, stride_h, stride_w, dilation_h, dilation_w, padding_h, padding_w
    )
    out = np.empty((n, out_h, out_w, c), dtype=np.float32)

    with np.errstate(divide="ignore", invalid="ignore"):
        for oy, ox, ys, _, xs, _ in _windows(
            h, w, out_h, out_w, filter_h, filter_w, stride_h, stride_w,
            dilation_h, dilation_w, padding_h, padding_w,
        ):
            patch = x[:, ys][:, :, xs].reshape(n, -1, c)
            value = np.full((n, c), init_value, dtype=np.float32)
            for k in range(patch.shape[1]):
                value = fn(value, patch[:, k, :])
            out[:, oy, ox, :] = window_op(value, patch.shape[1])

    return apply_activation(out, fused_activation)


def _requantize(
    acc: np.ndarray, output_mul: int, output_shift: int, output_offset: int
) -> np.ndarray:
    value = mul_and_carry_shift(acc.astype(np.int32), output_mul, output_shift)
    value = value.astype(np.int64) + np.int64(output_offset)
    return np.clip(value, 0, 255).astype(np.uint8)


def quantized_conv2d(
    input: ArrayLike,
    weights: ArrayLike,
    bias: ArrayLike,
    in_shape: Sequence[int],
    out_channels: int,
    filter_h: int,
    filter_w: int,
    stride_h: int,
    stride_w: int,
    dilation_h: int,
    dilation_w: int,
    padding_h: Padding,
    padding_w: Padding,
    input_offset: int,
    filter_offset: int,
    output_mul: int,
    output_shift: int,
    output_offset: int,
) -> np.ndarray:
    """uint8 convolution over an NHWC tensor with OHWI weights and int32 bias."""
    n, h, w, c = _shape4(in_shape)
    x = _as_tensor(input, (n, h, w, c), np.uint8).astype(np.int64) - input_offset
    kernel = _as_tensor(weights, (out_channels, filter_h, filter_w, c), np.uint8).astype(np.int64)
    kernel -= filter_offset
    b = _as_tensor(bias, (out_channels,), np.int32).astype(np.int64)
    out_h, out_w = _output_extent(
        h, w, filter_h, filter_w, stride_h, stride_w, dilation_h, dilation_w, padding_h, padding_w
    )
    acc = np.empty((n, out_h, out_w, out_channels), dtype=np.int64)

    for oy, ox, ys, (ky0, ky1), xs, (kx0, kx1) in _windows(
        h, w, out_h, out_w, filter_h, filter_w, stride_h, stride_w,
        dilation_h, dilation_w, padding_h, padding_w,
    ):
        patch = x[:, ys][:, :, xs]
        k = kernel[:, ky0:ky1, kx0:kx1, :]
        acc[:, oy, ox, :] = np.einsum("nklc,oklc->no", patch, k) + b

    return _requantize(acc, output_mul, output_shift, output_offset)


def quantized_depthwise_conv2d(
    input: ArrayLike,
    weights: ArrayLike,
    bias: ArrayLike,
    in_shape: Sequence[int],
    filter_h: int,
    filter_w: int,
    stride_h: int,
    stride_w: int,
    dilation_h: int,
    dilation_w: int,
    padding_h: Padding,
    padding_w: Padding,
    input_offset: int,
    filter_offset: int,
    output_mul: int,
    output_shift: int,
    output_offset: int,
) -> np.ndarray:
    """uint8 depthwise convolution over an NHWC tensor with CHW weights and int32 bias."""
    n, h, w, c = _shape4(in_shape)
    x = _as_tensor(input, (n, h, w, c), np.uint8).astype(np.int64) - input_offset
    kernel = _as_tensor(weights, (c, filter_h, filter_w), np.uint8).astype(np.int64)
    kernel -= filter_offset
    b = _as_tensor(bias, (c,), np.int32).astype(np.int64)
    out_h, out_w = _output_extent(
        h, w, filter_h, filter_w, stride_h, stride_w, dilation_h, dilation_w, padding_h, padding_w
    )
    acc = np.empty((n, out_h, out_w, c), dtype=np.int64)

    for oy, ox, ys, (ky0, ky1), xs, (kx0, kx1) in _windows(
        h, w, out_h, out_w, filter_h, filter_w, stride_h, stride_w,
        dilation_h, dilation_w, padding_h, padding_w,
    ):
        patch = x[:, ys][:, :, xs]
        k = kernel[:, ky0:ky1, kx0:kx1]
        acc[:, oy, ox, :] = np.einsum("nklc,ckl->nc", patch, k) + b

    return _requantize(acc, output_mul, output_shift, output_offset)