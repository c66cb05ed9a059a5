from __future__ import annotations

import json
from dataclasses import asdict, fields
from enum import Enum
from pathlib import Path
from typing import Any, Dict

from .constants import SETTINGS_FILE
from .models import ArchivePolicy, Configuration


def _settings_path() -> Path:
    # Store alongside the tool (portable)
    return Path(__file__).resolve().parent / SETTINGS_FILE


def _load_settings() -> dict:
    p = _settings_path()
    if not p.exists():
        return {}
    try:
        data = json.loads(p.read_text(encoding="utf-8"))
    except (OSError, ValueError):
        return {}
    return data if isinstance(data, dict) else {}


def _save_settings(data: dict) -> None:
    p = _settings_path()
    p.write_text(json.dumps(data, indent=2, sort_keys=True), encoding="utf-8")


def _coerce_bool(val: Any) -> bool:
    if isinstance(val, str):
        return val.strip().lower() in {"1", "true", "yes", "y", "on"}
    return bool(val)


def config_from_dict(data: Dict[str, Any]) -> Configuration:
    """Build a Configuration; unknown keys are ignored, bad values fall back to defaults."""
    cfg = Configuration()
    for f in fields(Configuration):
        if f.name not in data:
            continue
        cur = getattr(cfg, f.name)
        val = data[f.name]
        if isinstance(cur, ArchivePolicy):
            try:
                val = ArchivePolicy(str(val))
            except ValueError:
                continue
        elif isinstance(cur, bool):
            val = _coerce_bool(val)
        else:
            val = "" if val is None else str(val)
        setattr(cfg, f.name, val)
    return cfg


def config_to_dict(cfg: Configuration) -> Dict[str, Any]:
    out: Dict[str, Any] = {}
    for k, v in asdict(cfg).items():
        out[k] = v.value if isinstance(v, Enum) else v
    return out


def load_configuration() -> Configuration:
    return config_from_dict(_load_settings())


def save_configuration(cfg: Configuration) -> None:
    _save_settings(config_to_dict(cfg))


def set_option(cfg: Configuration, key: str, value: str) -> Configuration:
    """Return a copy of cfg with one option changed (string value, as typed on a CLI)."""
    names = {f.name for f in fields(Configuration)}
    k = key.strip().replace("-", "_")
    if k not in names:
        raise KeyError(f"Unknown setting: {key}")
    data = config_to_dict(cfg)
    data[k] = value
    new = config_from_dict(data)
    if k == "archive_policy" and new.archive_policy.value != value:
        raise ValueError(f"Invalid archive_policy: {value} (choose: {', '.join(p.value for p in ArchivePolicy)})")
    return new
