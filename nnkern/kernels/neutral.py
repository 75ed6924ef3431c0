"""Reference kernels over NCHW tensors computed in 32-bit float."""

from __future__ import annotations

import math
from collections.abc import Callable, Sequence
from typing import Any, Union

import numpy as np
from numpy.typing import ArrayLike

from nnkern.datatypes import (
    BinaryOp,
    Padding,
    QuantParam,
    ReduceOp,
    Scalar,
    UnaryOp,
    ValueRange,
)

BinaryFn = Callable[[np.ndarray, np.ndarray], Any]
UnaryFn = Callable[[np.ndarray], Any]
WindowFn = Callable[[np.ndarray, int], Any]

_BINARY_FUNCS: dict[BinaryOp, BinaryFn] = {
    BinaryOp.ADD: np.add,
    BinaryOp.SUB: np.subtract,
    BinaryOp.MUL: np.multiply,
    BinaryOp.DIV: np.divide,
    BinaryOp.MIN: np.minimum,
    BinaryOp.MAX: np.maximum,
}

_REDUCERS: dict[ReduceOp, BinaryFn] = {
    ReduceOp.MEAN: np.add,
    ReduceOp.MIN: np.minimum,
    ReduceOp.MAX: np.maximum,
    ReduceOp.SUM: np.add,
}


def _rsqrt(a: np.ndarray) -> np.ndarray:
    return np.float32(1.0) / np.sqrt(a)


_UNARY_FUNCS: dict[UnaryOp, UnaryFn] = {
    UnaryOp.ABS: np.abs,
    UnaryOp.CEIL: np.ceil,
    UnaryOp.COS: np.cos,
    UnaryOp.EXP: np.exp,
    UnaryOp.FLOOR: np.floor,
    UnaryOp.LOG: np.log,
    UnaryOp.NEG: np.negative,
    UnaryOp.RSQRT: _rsqrt,
    UnaryOp.SIN: np.sin,
    UnaryOp.SQUARE: np.square,
}


def _cdiv(a: int, b: int) -> int:
    """Integer division truncating toward zero."""
    q = abs(a) // abs(b)
    return q if (a >= 0) == (b > 0) else -q


def _shape4(shape: Sequence[int]) -> tuple[int, int, int, int]:
    dims = tuple(int(d) for d in shape)
    if len(dims) != 4:
        raise ValueError(f"Expected a 4-dimensional shape, got {dims}")
    return dims  # type: ignore[return-value]


def _as_tensor(data: ArrayLike, shape: Sequence[int], dtype: Any = np.float32) -> np.ndarray:
    arr = np.asarray(data, dtype=dtype).reshape(-1)
    expected = math.prod(shape)
    if arr.size != expected:
        raise ValueError(f"Expected {expected} elements for shape {tuple(shape)}, got {arr.size}")
    return arr.reshape(tuple(shape))


def _resolve(op: Any, table: dict, enum_type: type, what: str) -> Callable:
    if isinstance(op, enum_type):
        try:
            return table[op]
        except KeyError:
            raise ValueError(f"Not supported {what}") from None
    if callable(op):
        return op
    raise TypeError(f"Expected a {enum_type.__name__} or a callable for {what}")


def _window(
    out_index: int, stride: int, padding: Padding, dilation: int, filter_size: int, size: int
) -> tuple[np.ndarray, int, int]:
    origin = out_index * stride - padding.before
    start = max(0, _cdiv(-origin + dilation - 1, dilation))
    end = min(filter_size, _cdiv(size - origin + dilation - 1, dilation))
    end = max(end, start)
    return origin + dilation * np.arange(start, end), start, end


def get_windowed_output_size(
    size: int, filter_size: int, stride: int, dilation: int, padding: Padding
) -> int:
    """Output extent of a sliding window over one padded axis."""
    effective = (filter_size - 1) * dilation + 1
    return _cdiv(size + padding.before + padding.after - effective + stride, stride)


def apply_activation(value: ArrayLike, activation: ValueRange) -> np.ndarray:
    """Clamp values into the activation range."""
    arr = np.asarray(value, dtype=np.float32)
    return np.clip(arr, np.float32(activation.min), np.float32(activation.max)).astype(
        np.float32, copy=False
    )


def binary(
    input_a: ArrayLike,
    input_b: ArrayLike,
    in_a_shape: Sequence[int],
    in_b_shape: Sequence[int],
    out_shape: Sequence[int],
    fused_activation: ValueRange,
    op: Union[BinaryOp, BinaryFn],
) -> np.ndarray:
    """Element-wise binary operation with broadcasting of size-1 dimensions."""
    fn = _resolve(op, _BINARY_FUNCS, BinaryOp, "binary")
    out_shape = _shape4(out_shape)
    a = _as_tensor(input_a, _shape4(in_a_shape))
    b = _as_tensor(input_b, _shape4(in_b_shape))
    try:
        a = np.broadcast_to(a, out_shape)
        b = np.broadcast_to(b, out_shape)
    except ValueError:
        raise ValueError(
            f"Shapes {a.shape} and {b.shape} cannot broadcast to {out_shape}"
        ) from None
    with np.errstate(divide="ignore", invalid="ignore", over="ignore"):
        result = np.asarray(fn(a, b), dtype=np.float32)
    return apply_activation(result, fused_activation)


def concat(
    inputs: Sequence[ArrayLike], concat_dims: Sequence[int], inner_size: int, outer_size: int
) -> np.ndarray:
    """Interleave inputs along the concatenation axis; returns a flat array."""
    arrays = [np.asarray(a).reshape(-1) for a in inputs]
    dims = list(concat_dims)
    if len(dims) != len(arrays):
        raise ValueError("Number of concat dims must match number of inputs")
    chunks = []
    for arr, dim in zip(arrays, dims):
        size = inner_size * dim
        if arr.size != size * outer_size:
            raise ValueError(f"Input of {arr.size} elements does not match {outer_size} x {size}")
        chunks.append(arr.reshape(outer_size, size))
    if not chunks:
        return np.empty(0)
    return np.concatenate(chunks, axis=1).reshape(-1)


def conv2d(
    input: ArrayLike,
    weights: ArrayLike,
    bias: ArrayLike,
    in_shape: Sequence[int],
    groups: int,
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
    """Grouped 2-D convolution over an NCHW tensor; weights are OIHW."""
    n, c, h, w = _shape4(in_shape)
    if groups <= 0 or c % groups or out_channels % groups:
        raise ValueError("Channels must be divisible by groups")
    g_ic = c // groups
    g_oc = out_channels // groups
    x = _as_tensor(input, (n, c, h, w))
    kernel = _as_tensor(weights, (out_channels, g_ic, filter_h, filter_w))
    b = _as_tensor(bias, (out_channels,))

    out_h = max(0, get_windowed_output_size(h, filter_h, stride_h, dilation_h, padding_h))
    out_w = max(0, get_windowed_output_size(w, filter_w, stride_w, dilation_w, padding_w))
    out = np.empty((n, out_channels, out_h, out_w), dtype=np.float32)

    for oy in range(out_h):
        ys, ky0, ky1 = _window(oy, stride_h, padding_h, dilation_h, filter_h, h)
        for ox in range(out_w):
            xs, kx0, kx1 = _window(ox, stride_w, padding_w, dilation_w, filter_w, w)
            patch = x[:, :, ys][:, :, :, xs]
            for g in range(groups):
                p = patch[:, g * g_ic:(g + 1) * g_ic]
                k = kernel[g * g_oc:(g + 1) * g_oc, :, ky0:ky1, kx0:kx1]
                out[:, g * g_oc:(g + 1) * g_oc, oy, ox] = np.einsum("nikl,oikl->no", p, k)

    out += b[None, :, None, None]
    return apply_activation(out, fused_activation)


def dequantize(input: ArrayLike, param: QuantParam) -> np.ndarray:
    """Map quantised integers back to float: (q - zero_point) / scale."""
    q = np.asarray(input)
    div = np.float32(1.0) / np.float32(param.scale)
    return ((q.astype(np.float32) - np.float32(param.zero_point)) * div).astype(np.float32)


def matmul(
    input_a: ArrayLike,
    input_b: ArrayLike,
    bias: ArrayLike,
    a_rows: int,
    a_cols: int,
    b_cols: int,
    fused_activation: ValueRange,
) -> np.ndarray:
    """Matrix product plus per-column bias, clamped to the activation range."""
    a = _as_tensor(input_a, (a_rows, a_cols))
    b = _as_tensor(input_b, (a_cols, b_cols))
    bv = _as_tensor(bias, (b_cols,))
    return apply_activation(a @ b + bv, fused_activation)


def pad(
    input: ArrayLike,
    in_shape: Sequence[int],
    paddings: Sequence[Padding],
    pad_value: Union[Scalar, float, int],
) -> np.ndarray:
    """Pad (or crop, for negative amounts) each of the four axes."""
    in_shape = _shape4(in_shape)
    pads = tuple(paddings)
    if len(pads) != 4:
        raise ValueError("Exactly four paddings are required")
    x = _as_tensor(input, in_shape, dtype=None)
    out_shape = tuple(d + p.sum() for d, p in zip(in_shape, pads))
    if any(d < 0 for d in out_shape):
        raise ValueError("Padding produces a negative dimension")
    value = pad_value.value() if isinstance(pad_value, Scalar) else pad_value
    out = np.full(out_shape, value, dtype=x.dtype)

    dst, src = [], []
    for out_dim, p in zip(out_shape, pads):
        lo = max(p.before, 0)
        hi = max(out_dim - max(p.after, 0), lo)
        dst.append(slice(lo, hi))
        src.append(slice(lo - p.before, hi - p.before))
    out[tuple(dst)] = x[tuple(src)]
    return out


def quantize(input: ArrayLike, param: QuantParam) -> np.ndarray:
    """Quantise floats to uint8 with round-half-away-from-zero and saturation."""
    x = np.asarray(input, dtype=np.float32)
    scaled = (x * np.float32(param.scale) + np.float32(param.zero_point)).astype(np.float64)
    rounded = np.sign(scaled) * np.floor(np.abs(scaled) + 0.5)
    info = np.iinfo(np.uint8)
    return np.clip(rounded, info.min, info.max).astype(np.uint8)


def reduce(
    input: ArrayLike,
    init_value: float,
    in_shape: Sequence[int],
    reduced_shape: Sequence[int],
    reducer: Union[ReduceOp, BinaryFn],
) -> np.ndarray:
    """Reduce every axis whose reduced extent is 1; MEAN also scales the sum."""
    in_shape = _shape4(in_shape)
    red_shape = _shape4(reduced_shape)
    for s, r in zip(in_shape, red_shape):
        if r not in (1, s):
            raise ValueError(f"Reduced shape {red_shape} does not match input {in_shape}")
    fn = _resolve(reducer, _REDUCERS, ReduceOp, "reduce")
    x = _as_tensor(input, in_shape)

    axes = [i for i, (s, r) in enumerate(zip(in_shape, red_shape)) if r == 1 and s != 1]
    kept = [i for i in range(4) if i not in axes]
    kept_dims = tuple(in_shape[i] for i in kept)
    block = x.transpose(kept + axes).reshape(kept_dims + (-1,))

    acc = np.full(kept_dims, init_value, dtype=np.float32)
    count = block.shape[-1]
    if isinstance(fn, np.ufunc):
        if count:
            acc = fn(acc, fn.reduce(block, axis=-1))
    else:
        for k in range(count):
            acc = fn(acc, block[..., k])
    result = np.asarray(acc, dtype=np.float32).reshape(red_shape)

    if reducer is ReduceOp.MEAN:
        result = (result * np.float32(result.size / x.size)).astype(np.float32)
    return result


def unary(input: ArrayLike, op: Union[UnaryOp, UnaryFn]) -> np.ndarray:
    """Apply a unary operation element-wise."""
    fn = _resolve(op, _UNARY_FUNCS, UnaryOp, "unary")
    x = np.asarray(input, dtype=np.float32)
    with np.errstate(divide="ignore", invalid="ignore", over="ignore"):
        return np.asarray(fn(x), dtype=np.float32)


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
    """Pooling over an NCHW tensor; padded positions take no part.

    ``window_op(value, count)`` finishes each window, ``count`` being the number
    of input elements it covered. With a ``ReduceOp`` and no ``window_op``,
    MEAN divides by the count and the others pass the value through.
    """
    n, c, h, w = _shape4(in_shape)
    fn = _resolve(binary_op, _REDUCERS, ReduceOp, "reduce")
    if window_op is None:
        window_op = _mean_window if binary_op is ReduceOp.MEAN else _identity_window
    x = _as_tensor(input, (n, c, h, w))

    out_h = max(0, get_windowed_output_size(h, filter_h, stride_h, dilation_h, padding_h))
    out_w = max(0, get_windowed_output_size(w, filter_w, stride_w, dilation_w, padding_w))
    out = np.empty((n, c, out_h, out_w), dtype=np.float32)

    with np.errstate(divide="ignore", invalid="ignore"):
        for oy in range(out_h):
            ys, _, _ = _window(oy, stride_h, padding_h, dilation_h, filter_h, h)
            for ox in range(out_w):
                xs, _, _ = _window(ox, stride_w, padding_w, dilation_w, filter_w, w)
                patch = x[:, :, ys][:, :, :, xs].reshape(n, c, -1)
                value = np.full((n, c), init_value, dtype=np.float32)
                for k in range(patch.shape[-1]):
                    value = fn(value, patch[..., k])
                out[:, :, oy, ox] = window_op(value, patch.shape[-1])

    return apply_activation(out, fused_activation)


def _check_out_size(out_h: int, out_w: int) -> None:
    if out_h <= 0 or out_w <= 0:
        raise ValueError("Output size must be positive")


def resize_nearest_neighbor(
    input: ArrayLike, in_shape: Sequence[int], out_h: int, out_w: int
) -> np.ndarray:
    """Nearest-neighbour resize of the two spatial axes; keeps the element type."""
    n, c, h, w = _shape4(in_shape)
    _check_out_size(out_h, out_w)
    x = _as_tensor(input, (n, c, h, w), dtype=None)
    hs = np.float32(h) / np.float32(out_h)
    ws = np.float32(w) / np.float32(out_w)
    ys = np.minimum(np.floor(np.arange(out_h, dtype=np.float32) * hs).astype(np.int64), h - 1)
    xs = np.minimum(np.floor(np.arange(out_w, dtype=np.float32) * ws).astype(np.int64), w - 1)
    return x[:, :, ys][:, :, :, xs]


def resize_bilinear(
    input: ArrayLike, in_shape: Sequence[int], out_h: int, out_w: int, align_corners: bool
) -> np.ndarray:
    """Bilinear resize of the two spatial axes."""
    n, c, h, w = _shape4(in_shape)
    _check_out_size(out_h, out_w)
    x = _as_tensor(input, (n, c, h, w))

    hs = np.float32(h) / np.float32(out_h)
    ws = np.float32(w) / np.float32(out_w)
    if align_corners and out_h > 1:
        hs = np.float32(h - 1) / np.float32(out_h - 1)
    if align_corners and out_w > 1:
        ws = np.float32(w - 1) / np.float32(out_w - 1)

    in_y = np.arange(out_h, dtype=np.float32) * hs
    in_x = np.arange(out_w, dtype=np.float32) * ws
    y0 = np.floor(in_y).astype(np.int64)
    x0 = np.floor(in_x).astype(np.int64)
    y1 = np.minimum(y0 + 1, h - 1)
    x1 = np.minimum(x0 + 1, w - 1)
    dy = (in_y - y0.astype(np.float32))[:, None]
    dx = (in_x - x0.astype(np.float32))[None, :]
    one = np.float32(1)

    v0 = x[:, :, y0][:, :, :, x0]
    v1 = x[:, :, y1][:, :, :, x0]
    v2 = x[:, :, y0][:, :, :, x1]
    v3 = x[:, :, y1][:, :, :, x1]
    a0 = (one - dy) * (one - dx)
    a1 = dy * (one - dx)
    a2 = (one - dy) * dx
    a3 = dy * dx
    return (v0 * a0 + v1 * a1 + v2 * a2 + v3 * a3).astype(np.float32)


def softmax(input: ArrayLike, beta: float, outer_size: int, inner_size: int) -> np.ndarray:
    """Softmax over the inner axis of an (outer, inner) tensor."""
    x = _as_tensor(input, (outer_size, inner_size))
    if inner_size == 0:
        raise ValueError("Softmax needs at least one element per row")
    peak = x.max(axis=1, keepdims=True)
    e = np.exp((x - peak) * np.float32(beta))
    return (e / e.sum(axis=1, keepdims=True)).astype(np.float32)


def transpose(input: ArrayLike, in_shape: Sequence[int], perm: Sequence[int]) -> np.ndarray:
    """Permute the four axes; output axis i is input axis perm[i]."""
    in_shape = _shape4(in_shape)
    perm = tuple(int(p) for p in perm)
    if sorted(perm) != [0, 1, 2, 3]:
        raise ValueError(f"Invalid permutation {perm}")
    x = _as_tensor(input, in_shape, dtype=None)
    return np.ascontiguousarray(x.transpose(perm))


def strided_slice(
    input: ArrayLike,
    in_shape: Sequence[int],
    begin: Sequence[int],
    end: Sequence[int],
    strides: Sequence[int],
) -> np.ndarray:
    """Take begin:end:stride on each axis; negative strides walk backwards."""
    in_shape = _shape4(in_shape)
    x = _as_tensor(input, in_shape, dtype=None)
    indices = []
    for dim, b, e, s in zip(in_shape, _shape4(begin), _shape4(end), _shape4(strides)):
        if s == 0:
            raise ValueError("Stride must not be zero")
        idx = np.arange(b, e, s, dtype=np.int64)
        if idx.size and (idx.min() < 0 or idx.max() >= dim):
            raise IndexError(f"Slice {b}:{e}:{s} out of range for dimension {dim}")
        indices.append(idx)
    return x[np.ix_(*indices)]