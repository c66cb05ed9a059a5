from __future__ import annotations

import logging
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Sequence, Tuple

from .constants import (
    CHDMAN_INFO_ARGS,
    CHDMAN_VERSION_RE,
    INFO_LINE_DATA_SHA1,
    INFO_LINE_FILE_VERSION,
    INFO_LINE_SHA1,
    INFO_LINE_VERSION,
)
from .convert import _no_window_flags
from .errors import InspectionError
from .models import ArchiveMetadata, Configuration, Title
from .paths import archive_path

_LOG = logging.getLogger("discarchive_tool.inspect")


@dataclass(frozen=True)
class ArchiveInfo:
    tool_version: str
    format_version: int
    full_file_hash: str
    content_hash: str


def _after_last_colon(line: str) -> str:
    return line.split(":")[-1].strip()


def parse_archive_info(lines: Sequence[str]) -> ArchiveInfo:
    """Parse `chdman info` stdout.

    Binds to the fixed layout of chdman's output: version banner on line 0,
    `File Version:` on line 2, `SHA1:` on line 11 and `Data SHA1:` on line 12.
    Raises InspectionError if the output does not have that shape.
    """
    need = max(INFO_LINE_VERSION, INFO_LINE_FILE_VERSION, INFO_LINE_SHA1, INFO_LINE_DATA_SHA1) + 1
    if len(lines) < need:
        raise InspectionError(f"Unexpected chdman info output ({len(lines)} lines, expected {need}+)")

    m = CHDMAN_VERSION_RE.search(lines[INFO_LINE_VERSION])
    if not m:
        raise InspectionError(f"Unrecognised chdman version line: {lines[INFO_LINE_VERSION]!r}")
    try:
        fmt = int(_after_last_colon(lines[INFO_LINE_FILE_VERSION]))
    except ValueError as e:
        raise InspectionError(f"Bad file version line: {lines[INFO_LINE_FILE_VERSION]!r}") from e

    return ArchiveInfo(
        tool_version=m.group(1),
        format_version=fmt,
        full_file_hash=_after_last_colon(lines[INFO_LINE_SHA1]).upper(),
        content_hash=_after_last_colon(lines[INFO_LINE_DATA_SHA1]).upper(),
    )


def apply_archive_info(meta: ArchiveMetadata, info: ArchiveInfo) -> None:
    meta.tool_version = info.tool_version
    meta.format_version = info.format_version
    meta.full_file_hash = info.full_file_hash
    meta.content_hash = info.content_hash


def run_info(tool_exe: Path, chd_path: Path) -> Tuple[List[str], List[str]]:
    """Run `chdman info` and return (stdout_lines, stderr_lines)."""
    exe = Path(tool_exe)
    if not exe.is_file():
        raise InspectionError(f"chdman not found: {exe}")
    cmd = [str(exe)] + [a.format(str(chd_path)) for a in CHDMAN_INFO_ARGS]
    try:
        cp = subprocess.run(
            cmd,
            stdin=subprocess.DEVNULL,
            capture_output=True,
            text=True,
            encoding="utf-8",
            errors="replace",
            creationflags=_no_window_flags(),
        )
    except OSError as e:
        raise InspectionError(f"Failed to start chdman: {e}") from e
    return cp.stdout.splitlines(), cp.stderr.splitlines()


def inspect_archive_file(
    chd_path: Path,
    tool_exe: Path,
    *,
    logger: Optional[logging.Logger] = None,
) -> Optional[ArchiveInfo]:
    """Query an archive; returns None when the file does not exist."""
    log = logger or _LOG
    p = Path(chd_path)
    log.debug("Loading chdman info from %s", p)
    if not p.is_file():
        return None
    out, err = run_info(tool_exe, p)
    if err:
        log.error("Failed to load chdman info from %s\n%s", p, "\n".join(err))
        raise InspectionError("\n".join(err))
    return parse_archive_info(out)


def inspect_archive(
    title: Title,
    config: Configuration,
    tool_exe: Path,
    *,
    logger: Optional[logging.Logger] = None,
) -> bool:
    """Populate title.archive from `chdman info`. No-op (False) if the archive is missing."""
    info = inspect_archive_file(archive_path(title, config), tool_exe, logger=logger)
    if info is None:
        return False
    apply_archive_info(title.archive, info)
    title.archive_exists = True
    (logger or _LOG).debug("Loaded chdman info for %s", title.identifier)
    return True
