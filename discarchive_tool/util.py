from __future__ import annotations

import json
import os
import shutil
from dataclasses import asdict, is_dataclass
from enum import Enum
from pathlib import Path
from typing import Any, Optional, cast

from .constants import CHDMAN_NAME, ENV_CHDMAN, TOOLS_DIRNAME


def to_jsonable(obj: Any) -> Any:
    if is_dataclass(obj) and not isinstance(obj, type):
        return {k: to_jsonable(v) for k, v in asdict(cast(Any, obj)).items()}
    if isinstance(obj, Enum):
        return obj.value
    if isinstance(obj, Path):
        return str(obj)
    if isinstance(obj, dict):
        return {str(k): to_jsonable(v) for k, v in obj.items()}
    if isinstance(obj, (list, tuple)):
        return [to_jsonable(x) for x in obj]
    return obj


def dumps_pretty(obj: Any) -> str:
    return json.dumps(to_jsonable(obj), indent=2, sort_keys=True, ensure_ascii=False)


def safe_listdir(p: Path) -> list[Path]:
    try:
        return list(p.iterdir())
    except FileNotFoundError:
        return []
    except PermissionError:
        return []


def env_bool(name: str, default: bool = False) -> bool:
    val = os.environ.get(name)
    if val is None:
        return default
    return val.strip().lower() in {"1", "true", "yes", "y", "on"}


def find_app_root(start: Path | None = None) -> Path:
    """Best-effort app root finder.

    Prefers a folder that contains a tools/ folder or README.md (portable zip use-case),
    otherwise falls back to the current working directory.
    """
    try:
        cur = (start or Path(__file__).resolve().parent)
        cur = cur if isinstance(cur, Path) else Path(str(cur))
        for _ in range(8):
            if (cur / TOOLS_DIRNAME).is_dir() or (cur / "README.md").is_file():
                return cur
            if cur.parent == cur:
                break
            cur = cur.parent
    except OSError:
        pass
    try:
        return Path.cwd()
    except OSError:
        return Path(__file__).resolve().parent


def default_tools_dir() -> Path:
    """Return the recommended tools folder: <app_root>/tools."""
    return find_app_root(Path(__file__).resolve().parent) / TOOLS_DIRNAME


def _exe_names() -> list[str]:
    return [CHDMAN_NAME + ".exe", CHDMAN_NAME] if os.name == "nt" else [CHDMAN_NAME, CHDMAN_NAME + ".exe"]


def detect_chdman_exe(configured: str = "") -> Optional[Path]:
    """Locate chdman.

    Preference order:
      1) DISCARCHIVE_CHDMAN environment variable
      2) configured path (settings / --chdman)
      3) <app_root>/tools/chdman(.exe)
      4) PATH lookup (shutil.which)
    """
    for cand in (os.environ.get(ENV_CHDMAN, ""), configured):
        s = str(cand or "").strip()
        if s:
            p = Path(s).expanduser()
            if p.is_file():
                return p

    d = default_tools_dir()
    entries = [pp for pp in safe_listdir(d) if pp.is_file()]
    for nm in _exe_names():
        for pp in entries:
            if pp.name.lower() == nm:
                return pp

    for nm in _exe_names():
        hit = shutil.which(nm)
        if hit:
            return Path(hit)
    return None
