from __future__ import annotations

import json
from pathlib import Path

import pytest

from discarchive_tool import settings
from discarchive_tool.models import ArchivePolicy, Configuration


@pytest.fixture()
def settings_file(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    p = tmp_path / "discarchive_settings.json"
    monkeypatch.setattr(settings, "_settings_path", lambda: p)
    return p


def test_missing_or_corrupt_file_gives_defaults(settings_file: Path) -> None:
    assert settings.load_configuration() == Configuration()
    settings_file.write_text("{not json", encoding="utf-8")
    assert settings.load_configuration() == Configuration()
    settings_file.write_text("[1, 2]", encoding="utf-8")
    assert settings.load_configuration() == Configuration()


def test_save_and_load_round_trip(settings_file: Path) -> None:
    cfg = Configuration(
        output_directory="/archive",
        archive_policy=ArchivePolicy.REGENERATE_ALL,
        overwrite_manifests=True,
        id_as_archive_name=True,
        tool_path="/opt/chdman",
    )
    settings.save_configuration(cfg)
    raw = json.loads(settings_file.read_text(encoding="utf-8"))
    assert raw["archive_policy"] == "regenerate_all"
    assert settings.load_configuration() == cfg


def test_unknown_keys_and_bad_values_ignored() -> None:
    cfg = settings.config_from_dict(
        {"bogus": 1, "archive_policy": "sometimes", "only_modified": "yes", "output_directory": None}
    )
    assert cfg.archive_policy == ArchivePolicy.GENERATE_MISSING
    assert cfg.only_modified is True
    assert cfg.output_directory == ""


def test_set_option() -> None:
    cfg = settings.set_option(Configuration(), "archive-policy", "skip_all")
    assert cfg.archive_policy == ArchivePolicy.SKIP_ALL
    cfg = settings.set_option(cfg, "enable_logging", "false")
    assert cfg.enable_logging is False
    with pytest.raises(KeyError):
        settings.set_option(cfg, "nope", "1")
    with pytest.raises(ValueError):
        settings.set_option(cfg, "archive_policy", "never")
