from __future__ import annotations

from pathlib import Path, PurePath
from typing import Optional, Union

from .constants import ARCHIVE_SUFFIX, ISO_SUFFIX, MANIFEST_FILE
from .models import Configuration, Platform, Title


def output_dir(title: Title, config: Configuration) -> Path:
    """<output_root>/<platform>/<identifier>"""
    return Path(config.output_directory) / title.platform.name / title.identifier


def manifest_path(title: Title, config: Configuration) -> Path:
    return output_dir(title, config) / MANIFEST_FILE


def archive_name(title: Title, config: Configuration) -> str:
    if config.id_as_archive_name or not str(title.source_path or "").strip():
        return f"{title.identifier.upper()}{ARCHIVE_SUFFIX}"
    return Path(title.source_path).with_suffix(ARCHIVE_SUFFIX).name


def archive_path(title: Title, config: Configuration) -> Path:
    return output_dir(title, config) / archive_name(title, config)


def is_single_file_image(source_path: Union[str, Path]) -> bool:
    return str(source_path).lower().endswith(ISO_SUFFIX)


def platform_from_manifest_path(path: Union[str, PurePath]) -> Optional[Platform]:
    """Match the segment three levels up from the manifest (file counted as the first)."""
    parts = PurePath(path).parts
    if len(parts) < 3:
        return None
    return Platform.parse(parts[-3])
