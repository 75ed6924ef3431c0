import pytest

from nnkern.fileio import read_file


def test_read_file_round_trip(tmp_path):
    data = bytes(range(256)) * 3
    path = tmp_path / "blob.bin"
    path.write_bytes(data)
    assert read_file(path) == data


def test_read_file_accepts_str_path(tmp_path):
    path = tmp_path / "a.bin"
    path.write_bytes(b"\x01\x02")
    assert read_file(str(path)) == b"\x01\x02"


def test_read_empty_file(tmp_path):
    path = tmp_path / "empty.bin"
    path.write_bytes(b"")
    assert read_file(path) == b""


def test_read_missing_file_raises(tmp_path):
    missing = tmp_path / "missing.bin"
    with pytest.raises(OSError, match="Cannot open file"):
        read_file(missing)