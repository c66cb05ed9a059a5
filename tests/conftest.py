from __future__ import annotations

import hashlib
import os
from pathlib import Path
from typing import Optional, Sequence, Tuple

import pytest

from discarchive_tool.models import Configuration, Platform, Title


def write_bin(path: Path, *, size: int = 10_000, seed: int = 1) -> bytes:
    """Write deterministic pseudo-random track data and return it."""
    path.parent.mkdir(parents=True, exist_ok=True)
    data = bytes(((i * 31 + seed * 17) ^ (i >> 7)) & 0xFF for i in range(size))
    path.write_bytes(data)
    return data


def write_cue(path: Path, bin_names: Sequence[str]) -> None:
    """Write a minimal cue sheet listing bin_names in order."""
    path.parent.mkdir(parents=True, exist_ok=True)
    lines = []
    for i, name in enumerate(bin_names, start=1):
        lines.append(f'FILE "{name}" BINARY')
        mode = "MODE2/2352" if i == 1 else "AUDIO"
        lines.append(f"  TRACK {i:02d} {mode}")
        lines.append("    INDEX 01 00:00:00")
    path.write_text("\n".join(lines) + "\n", encoding="utf-8")


def make_cue_image(
    root: Path,
    *,
    name: str = "Tekken 3 (USA)",
    tracks: int = 2,
    size: int = 10_000,
    boot_line: Optional[bytes] = None,
) -> Tuple[Path, list[bytes]]:
    """Create <root>/<name>.cue plus `tracks` bin files. Returns (cue, bin payloads).

    boot_line is embedded in the first track, the way SYSTEM.CNF sits in a data track.
    """
    names = [f"{name} (Track {i}).bin" for i in range(1, tracks + 1)]
    payloads = []
    for i, bn in enumerate(names, start=1):
        payloads.append(write_bin(root / bn, size=size, seed=i))
    if boot_line is not None:
        first = root / names[0]
        data = payloads[0][:512] + boot_line + payloads[0][512:]
        first.write_bytes(data)
        payloads[0] = data
    cue = root / f"{name}.cue"
    write_cue(cue, names)
    return cue, payloads


def md5_upper(data: bytes) -> str:
    return hashlib.md5(data).hexdigest().upper()


def write_manifest(
    path: Path,
    *,
    title: str = "Tekken 3 (USA)",
    identifier: str = "SLUS-00402",
    description: str = "Fighting game.",
    track_lines: Sequence[str] = ("TRACK 01 MD5: AABB", "TRACK 02 MD5: CCDD"),
    chd_hash: str = "",
    include_id_marker: bool = True,
) -> Path:
    """Write a manifest laid out like the packaged template."""
    path.parent.mkdir(parents=True, exist_ok=True)
    lines = [f"# {title}", "", "**Game name:**", "", title, ""]
    if include_id_marker:
        lines += ["**Game ID:**", "", identifier, ""]
    lines += ["**CHD data SHA1:**", "", chd_hash, "", "**Hash:**", ""]
    for tl in track_lines:
        lines += [tl, ""]
    lines += ["**Description:**", "", description]
    path.write_text("\n".join(lines) + "\n", encoding="utf-8")
    return path


def make_config(out_root: Path, **overrides) -> Configuration:
    cfg = Configuration(output_directory=str(out_root))
    for k, v in overrides.items():
        setattr(cfg, k, v)
    return cfg


def make_title(
    source: Optional[Path] = None,
    *,
    identifier: str = "SLUS-00402",
    display_title: str = "Tekken 3 (USA)",
    platform: Platform = Platform.SonyPSX,
    modified: bool = True,
) -> Title:
    return Title(
        display_title=display_title,
        identifier=identifier,
        platform=platform,
        source_path=str(source) if source is not None else "",
        modified=modified,
    )


@pytest.fixture()
def fake_chdman(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """A fake chdman executable; behaviour is selected with FAKE_CHDMAN_* env vars."""
    if os.name == "nt":
        pytest.skip("fake chdman script needs a POSIX shebang")
    from tests.fixtures.fake_chdman import write_fake_chdman

    monkeypatch.delenv("FAKE_CHDMAN_MODE", raising=False)
    monkeypatch.delenv("FAKE_CHDMAN_INFO_ERROR", raising=False)
    monkeypatch.setenv("FAKE_CHDMAN_LOG", str(tmp_path / "chdman_calls.log"))
    monkeypatch.setenv("FAKE_CHDMAN_PIDFILE", str(tmp_path / "chdman.pid"))
    return write_fake_chdman(tmp_path / "bin")


def chdman_calls(tmp_path: Path) -> list[str]:
    p = tmp_path / "chdman_calls.log"
    if not p.exists():
        return []
    return [ln for ln in p.read_text(encoding="utf-8").splitlines() if ln.strip()]


def chdman_pid(tmp_path: Path) -> Tuple[int, int]:
    """(pid, process group) of the last fake `createcd` run."""
    pid, pgid = (tmp_path / "chdman.pid").read_text(encoding="utf-8").split()
    return int(pid), int(pgid)


def process_exited(pid: int) -> bool:
    try:
        os.kill(pid, 0)
    except ProcessLookupError:
        return True
    except PermissionError:
        return False
    return False
