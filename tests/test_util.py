from __future__ import annotations

import json
import os
from dataclasses import dataclass
from pathlib import Path

import pytest

from discarchive_tool import util
from discarchive_tool.models import ArchivePolicy


@dataclass
class _D:
    a: int
    p: Path
    pol: ArchivePolicy


def test_to_jsonable_and_dumps_pretty(tmp_path: Path) -> None:
    obj = {
        "x": _D(a=1, p=tmp_path / "file.txt", pol=ArchivePolicy.SKIP_ALL),
        "lst": [Path("/tmp"), {"k": (1, 2)}],
    }
    js = util.to_jsonable(obj)
    assert js["x"]["a"] == 1
    assert isinstance(js["x"]["p"], str)
    assert js["x"]["pol"] == "skip_all"
    assert js["lst"][1]["k"] == [1, 2]

    back = json.loads(util.dumps_pretty(obj))
    assert back["x"]["a"] == 1


def test_safe_listdir_missing(tmp_path: Path) -> None:
    assert util.safe_listdir(tmp_path / "does_not_exist") == []


def test_env_bool(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("X", raising=False)
    assert util.env_bool("X", default=True) is True
    monkeypatch.setenv("X", "yes")
    assert util.env_bool("X") is True
    monkeypatch.setenv("X", "off")
    assert util.env_bool("X") is False


def _exe(path: Path) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text("", encoding="utf-8")
    return path


def test_detect_chdman_preference_order(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    tools = tmp_path / "tools"
    name = "chdman.exe" if os.name == "nt" else "chdman"
    in_tools = _exe(tools / name)
    configured = _exe(tmp_path / "cfg" / name)
    from_env = _exe(tmp_path / "env" / name)
    monkeypatch.setattr(util, "default_tools_dir", lambda: tools)
    monkeypatch.setattr(util.shutil, "which", lambda _n: None)

    monkeypatch.setenv("DISCARCHIVE_CHDMAN", str(from_env))
    assert util.detect_chdman_exe(str(configured)) == from_env

    monkeypatch.delenv("DISCARCHIVE_CHDMAN")
    assert util.detect_chdman_exe(str(configured)) == configured
    assert util.detect_chdman_exe("") == in_tools
    # A configured path that does not exist falls through.
    assert util.detect_chdman_exe(str(tmp_path / "nope")) == in_tools


def test_detect_chdman_path_lookup(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("DISCARCHIVE_CHDMAN", raising=False)
    monkeypatch.setattr(util, "default_tools_dir", lambda: tmp_path / "empty")
    monkeypatch.setattr(util.shutil, "which", lambda n: "/usr/bin/" + n if n == "chdman" else None)
    assert util.detect_chdman_exe() == Path("/usr/bin/chdman")

    monkeypatch.setattr(util.shutil, "which", lambda _n: None)
    assert util.detect_chdman_exe() is None
