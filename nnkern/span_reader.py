"""Sequential reader over a byte buffer."""

from __future__ import annotations

import struct

_BYTE_ORDER_CHARS = "@=<>!"


def _struct_for(fmt: str) -> struct.Struct:
    if not fmt or fmt[0] not in _BYTE_ORDER_CHARS:
        fmt = "<" + fmt
    return struct.Struct(fmt)


class SpanReader:
    """Reads little-endian values from the front of a buffer, consuming them."""

    def __init__(self, data: bytes | bytearray | memoryview) -> None:
        self._view = memoryview(data).cast("B")

    def empty(self) -> bool:
        return len(self._view) == 0

    def _take(self, count: int) -> memoryview:
        if count < 0:
            raise ValueError("Count must not be negative")
        if count > len(self._view):
            raise EOFError(f"Need {count} bytes but only {len(self._view)} remain")
        chunk, self._view = self._view[:count], self._view[count:]
        return chunk

    def read(self, fmt: str):
        """Read one struct-formatted record; a single field is returned bare."""
        layout = _struct_for(fmt)
        values = layout.unpack(self._take(layout.size))
        return values[0] if len(values) == 1 else values

    def read_array(self, fmt: str, count: int) -> list:
        """Read ``count`` consecutive records of the given format."""
        layout = _struct_for(fmt)
        chunk = self._take(layout.size * count)
        records = layout.iter_unpack(chunk) if layout.size else iter(())
        return [r[0] if len(r) == 1 else r for r in records]

    def peek(self, size: int) -> bytes:
        """Return the next ``size`` bytes without consuming them."""
        if size > len(self._view):
            raise EOFError(f"Need {size} bytes but only {len(self._view)} remain")
        return bytes(self._view[:size])

    def skip(self, count: int) -> None:
        self._take(count)

    def remaining(self) -> bytes:
        return bytes(self._view)