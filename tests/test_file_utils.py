from __future__ import annotations

import hashlib
from pathlib import Path

import pytest

from discarchive_tool.cancel import CancelToken, CancelledError
from discarchive_tool.file_utils import md5_file, remove_if_exists, sha1_file
from tests.conftest import write_bin


def test_md5_and_sha1_are_uppercase_hex(tmp_path: Path) -> None:
    data = write_bin(tmp_path / "t.bin", size=12_345)
    assert md5_file(tmp_path / "t.bin") == hashlib.md5(data).hexdigest().upper()
    assert sha1_file(tmp_path / "t.bin") == hashlib.sha1(data).hexdigest().upper()


def test_progress_reaches_one(tmp_path: Path) -> None:
    write_bin(tmp_path / "t.bin", size=10_000)
    fracs: list[float] = []
    md5_file(tmp_path / "t.bin", chunk_size=4096, progress_cb=fracs.append)
    assert fracs == sorted(fracs)
    assert fracs[-1] == 1.0
    assert len(fracs) >= 3


def test_empty_file(tmp_path: Path) -> None:
    p = tmp_path / "empty.bin"
    p.write_bytes(b"")
    assert md5_file(p) == "D41D8CD98F00B204E9800998ECF8427E"


def test_cancel_and_missing(tmp_path: Path) -> None:
    write_bin(tmp_path / "t.bin", size=100)
    token = CancelToken(check=lambda: True)
    with pytest.raises(CancelledError):
        md5_file(tmp_path / "t.bin", cancel_token=token)
    with pytest.raises(FileNotFoundError):
        md5_file(tmp_path / "nope.bin")


def test_remove_if_exists(tmp_path: Path) -> None:
    p = tmp_path / "x.chd"
    p.write_bytes(b"1")
    assert remove_if_exists(p) is True
    assert remove_if_exists(p) is False
