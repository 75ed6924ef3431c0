"""Layout and pooling helpers for the K210 KPU."""

from __future__ import annotations

import enum
from dataclasses import dataclass
from collections.abc import Sequence


@dataclass(frozen=True)
class KpuLayout:
    groups: int
    row_len: int
    row_pitch: int


class KpuFilterType(enum.Enum):
    FILTER_1X1 = "1x1"
    FILTER_3X3 = "3x3"


class KpuPoolType(enum.Enum):
    BYPASS = "bypass"
    MAX_2_S2 = "max_2_s2"
    MEAN_2_S2 = "mean_2_s2"
    MAX_4_S4 = "max_4_s4"
    MEAN_4_S4 = "mean_4_s4"
    LEFT_TOP_2_S2 = "left_top_2_s2"
    RIGHT_TOP_2_S2 = "right_top_2_s2"
    LEFT_TOP_4_S4 = "left_top_4_s4"
    MEAN_2_S1 = "mean_2_s1"
    MAX_2_S1 = "max_2_s1"


_FILTER_SIZES = {KpuFilterType.FILTER_1X1: 1, KpuFilterType.FILTER_3X3: 3}
_FILTER_PADDINGS = {KpuFilterType.FILTER_1X1: 0, KpuFilterType.FILTER_3X3: 1}

_POOL_SIZES = {
    KpuPoolType.BYPASS: 1,
    KpuPoolType.MAX_2_S2: 2,
    KpuPoolType.MEAN_2_S2: 2,
    KpuPoolType.LEFT_TOP_2_S2: 2,
    KpuPoolType.RIGHT_TOP_2_S2: 2,
    KpuPoolType.MAX_2_S1: 2,
    KpuPoolType.MEAN_2_S1: 2,
    KpuPoolType.MAX_4_S4: 4,
    KpuPoolType.MEAN_4_S4: 4,
    KpuPoolType.LEFT_TOP_4_S4: 4,
}

_POOL_STRIDES = {
    KpuPoolType.BYPASS: 1,
    KpuPoolType.MAX_2_S2: 2,
    KpuPoolType.MEAN_2_S2: 2,
    KpuPoolType.LEFT_TOP_2_S2: 2,
    KpuPoolType.RIGHT_TOP_2_S2: 2,
    KpuPoolType.MAX_2_S1: 1,
    KpuPoolType.MEAN_2_S1: 1,
    KpuPoolType.MAX_4_S4: 4,
    KpuPoolType.MEAN_4_S4: 4,
    KpuPoolType.LEFT_TOP_4_S4: 4,
}

_SELECT_POOL_OFFSETS = {
    KpuPoolType.LEFT_TOP_2_S2: (0, 0),
    KpuPoolType.RIGHT_TOP_2_S2: (0, 1),
    KpuPoolType.LEFT_TOP_4_S4: (0, 0),
}


def _lookup(table: dict, key, message: str):
    try:
        return table[key]
    except (KeyError, TypeError):
        raise ValueError(message) from None


def get_kpu_row_layout(width: int) -> KpuLayout:
    if width <= 16:
        return KpuLayout(groups=4, row_len=1, row_pitch=16)
    if width <= 32:
        return KpuLayout(groups=2, row_len=1, row_pitch=32)
    return KpuLayout(groups=1, row_len=(width + 63) // 64, row_pitch=64)


def get_kpu_filter_size(filter_type: KpuFilterType) -> int:
    return _lookup(_FILTER_SIZES, filter_type, "Invalid kpu filter")


def get_kpu_padding(filter_type: KpuFilterType) -> int:
    return _lookup(_FILTER_PADDINGS, filter_type, "Invalid kpu filter")


def get_kpu_rows(width: int, height: int, channels: int) -> int:
    """Number of 64-byte KPU rows needed for one feature map."""
    layout = get_kpu_row_layout(width)
    one_line_channels = min(channels, layout.groups)
    blocks = (channels + one_line_channels - 1) // one_line_channels
    return layout.row_len * height * blocks


def get_kpu_bytes(width: int, height: int, channels: int) -> int:
    return get_kpu_rows(width, height, channels) * 64


def get_kpu_shape_bytes(shape: Sequence[int]) -> int:
    """KPU bytes for an NCHW shape."""
    n, c, h, w = shape
    return get_kpu_bytes(w, h, c) * n


def get_kpu_pool_size(pool_type: KpuPoolType) -> int:
    return _lookup(_POOL_SIZES, pool_type, "Invalid kpu filter")


def get_kpu_filter_stride(pool_type: KpuPoolType) -> int:
    return _lookup(_POOL_STRIDES, pool_type, "Invalid kpu pool type")


def get_kpu_pool_output_size(size: int, pool_type: KpuPoolType) -> int:
    return size // get_kpu_filter_stride(pool_type)


def get_kpu_select_pool_offset(pool_type: KpuPoolType) -> tuple[int, int]:
    return _lookup(_SELECT_POOL_OFFSETS, pool_type, "Invalid kpu pool type")