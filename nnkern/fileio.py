"""File helpers."""

from __future__ import annotations

import os


def read_file(filename: str | os.PathLike) -> bytes:
    """Return the whole content of a binary file."""
    try:
        with open(filename, "rb") as infile:
            return infile.read()
    except OSError as exc:
        raise OSError(f"Cannot open file: {os.fspath(filename)}") from exc