#!/usr/bin/env python3
"""Release gate convenience runner.

Runs compileall + pytest, then ruff + mypy when they are installed, and can
package a code-only FULL_CODE zip under ./dist/.
"""

from __future__ import annotations

import argparse
import importlib.util
import re
import subprocess
import sys
import zipfile
from pathlib import Path

PACKAGE = "discarchive_tool"

_SKIP_TOP = {".git", ".venv", "venv", "build", "dist", "htmlcov", ".mypy_cache", ".ruff_cache", ".pytest_cache"}
_SKIP_DIRS = {"__pycache__", "logs", "tools"}
_SKIP_FILES = {".DS_Store", "Thumbs.db", "coverage.xml", ".coverage", "discarchive_settings.json"}
_SKIP_SUFFIXES = (".pyc", ".pyo", ".log", ".chd", ".bin", ".iso")


def _repo_root() -> Path:
    return Path(__file__).resolve().parents[1]


def _read_version(repo_root: Path) -> str:
    p = repo_root / PACKAGE / "__init__.py"
    m = re.search(r"__version__\s*=\s*['\"]([^'\"]+)['\"]", p.read_text(encoding="utf-8"))
    if not m:
        raise RuntimeError(f"Could not parse __version__ from {p}")
    return m.group(1)


def _have(module: str) -> bool:
    return importlib.util.find_spec(module) is not None


def _run(cmd: list[str], *, cwd: Path) -> None:
    print("[release_gate] " + " ".join(cmd))
    subprocess.run(cmd, cwd=str(cwd), check=True)


def _is_excluded(rel: Path) -> bool:
    parts = rel.parts
    if parts[0] in _SKIP_TOP:
        return True
    if any(p in _SKIP_DIRS or p.endswith(".egg-info") for p in parts[:-1]):
        return True
    name = parts[-1]
    return name in _SKIP_FILES or name.startswith(".coverage.") or name.endswith(_SKIP_SUFFIXES)


def _make_zip(repo_root: Path, out_zip: Path) -> int:
    out_zip.parent.mkdir(parents=True, exist_ok=True)
    out_zip.unlink(missing_ok=True)
    n = 0
    with zipfile.ZipFile(out_zip, "w", compression=zipfile.ZIP_DEFLATED) as zf:
        for p in sorted(repo_root.rglob("*")):
            if not p.is_file() or p == out_zip:
                continue
            rel = p.relative_to(repo_root)
            if _is_excluded(rel):
                continue
            zf.write(p, rel.as_posix())
            n += 1
    return n


def main(argv: list[str] | None = None) -> int:
    repo_root = _repo_root()

    ap = argparse.ArgumentParser(description="Release gate: checks + optional FULL_CODE zip")
    ap.add_argument("--no-zip", action="store_true", help="Skip creating the FULL_CODE zip.")
    ap.add_argument("--outdir", default="dist", help="Output directory for artifacts (default: dist)")
    args = ap.parse_args(argv)

    version = _read_version(repo_root)
    print(f"[release_gate] repo: {repo_root}")
    print(f"[release_gate] python: {sys.executable}")
    print(f"[release_gate] version: {version}")

    _run([sys.executable, "-B", "-m", "compileall", "-q", PACKAGE], cwd=repo_root)
    _run([sys.executable, "-m", "pytest", "-q"], cwd=repo_root)
    for tool, cmd in (("ruff", ["check", ".", "--force-exclude"]), ("mypy", [])):
        if _have(tool):
            _run([sys.executable, "-m", tool, *cmd], cwd=repo_root)
        else:
            print(f"[release_gate] {tool}: not installed, skipped (pip install -e .[dev])")

    if not args.no_zip:
        out_zip = (repo_root / args.outdir).resolve() / f"DiscArchive_v{version}_FULL_CODE.zip"
        n = _make_zip(repo_root, out_zip)
        print(f"[release_gate] full-code zip: {out_zip} ({n} files)")

    print("[release_gate] all good")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
