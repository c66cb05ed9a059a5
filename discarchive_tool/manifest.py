"""README manifest generation and recovery.

A manifest is the persisted state of one title. It is rendered from a template
by literal token substitution and read back by locating anchor markers
(`**Game name:**`, `**Game ID:**`, `**Hash:**`, `**Description:**`) and taking
the lines around them.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional, Sequence

from .constants import (
    ID_WINDOW_LINES,
    LEGACY_TRACK_LINE_PREFIX,
    MARKER_DESCRIPTION,
    MARKER_HASH,
    MARKER_ID,
    MARKER_TITLE,
    MANIFEST_TEMPLATE_FILE,
    TEMPLATES_DIRNAME,
    TOKEN_ARCHIVE_HASH,
    TOKEN_DESCRIPTION,
    TOKEN_ID,
    TOKEN_TITLE,
    TOKEN_TRACK_HASHES,
    TRACK_HASH_RE,
    TRACK_LINE_PREFIX,
)
from .errors import ManifestParseError
from .models import Configuration, Platform, Title, TrackHash
from .paths import manifest_path, platform_from_manifest_path

_LOG = logging.getLogger("discarchive_tool.manifest")


def default_template_path() -> Path:
    return Path(__file__).resolve().parent / TEMPLATES_DIRNAME / MANIFEST_TEMPLATE_FILE


def template_path_for(config: Configuration) -> Path:
    tp = str(config.template_path or "").strip()
    return Path(tp) if tp else default_template_path()


# ---------------------------------------------------------------------------
# Generation
# ---------------------------------------------------------------------------


def format_track_hashes(track_hashes: Sequence[TrackHash]) -> str:
    # Blank line between entries so each renders on its own line in markdown.
    return "\n\n".join(f"TRACK {int(no):02d} MD5: {digest}" for no, digest in track_hashes)


def render_manifest(template: str, title: Title) -> str:
    """Replace every placeholder token in a single pass.

    Substituted values are never re-scanned, so a title containing a token
    string is written verbatim.
    """
    values: Dict[str, str] = {
        TOKEN_TITLE: title.display_title,
        TOKEN_ID: title.identifier,
        TOKEN_ARCHIVE_HASH: title.archive.content_hash,
        TOKEN_TRACK_HASHES: format_track_hashes(title.archive.track_hashes),
        TOKEN_DESCRIPTION: title.description,
    }
    pattern = re.compile("|".join(re.escape(tok) for tok in values))
    return pattern.sub(lambda m: values[m.group(0)], template)


def generate_manifest(
    title: Title,
    config: Configuration,
    *,
    logger: Optional[logging.Logger] = None,
) -> bool:
    """Write the title's README. Returns False when an existing one is kept."""
    log = logger or _LOG
    out = manifest_path(title, config)
    log.debug("Manifest path: %s", out)
    if out.exists() and not config.overwrite_manifests:
        log.debug("Manifest exists and overwrite is off: %s", out)
        return False

    template = template_path_for(config).read_text(encoding="utf-8")
    out.parent.mkdir(parents=True, exist_ok=True)
    out.write_text(render_manifest(template, title), encoding="utf-8")
    title.manifest_exists = True
    log.debug("Manifest generated for %s", title.identifier)
    return True


# ---------------------------------------------------------------------------
# Recovery
# ---------------------------------------------------------------------------


@dataclass
class ManifestFields:
    """Fields recovered from a manifest. None means "not recovered"."""

    title: Optional[str] = None
    identifier: Optional[str] = None
    description: Optional[str] = None
    track_hashes: Optional[List[TrackHash]] = None
    errors: List[str] = field(default_factory=list)


def _find(lines: Sequence[str], marker: str) -> int:
    for i, line in enumerate(lines):
        if marker in line:
            return i
    return -1


def parse_track_line(line: str) -> TrackHash:
    m = TRACK_HASH_RE.match(line.strip())
    if not m:
        raise ManifestParseError(f"Malformed track line: {line!r}")
    return int(m.group(1)), m.group(2).strip()


def _parse_title(lines: Sequence[str]) -> Optional[str]:
    start = _find(lines, MARKER_TITLE)
    end = _find(lines, MARKER_ID)
    if start < 0 or end < 0 or end <= start:
        raise ManifestParseError("title markers not found")
    return "".join(lines[start + 1:end]).strip()


def _parse_identifier(lines: Sequence[str]) -> str:
    idx = _find(lines, MARKER_ID)
    if idx < 0:
        raise ManifestParseError("game id marker not found")
    return "".join(lines[idx + 1:idx + 1 + ID_WINDOW_LINES]).strip()


def _parse_description(lines: Sequence[str]) -> str:
    idx = _find(lines, MARKER_DESCRIPTION)
    if idx < 0:
        raise ManifestParseError("description marker not found")
    return "\n".join(lines[idx + 1:]).strip()


def _parse_track_hashes(lines: Sequence[str]) -> List[TrackHash]:
    h = _find(lines, MARKER_HASH)
    if h < 0:
        raise ManifestParseError("hash marker not found")
    d = _find(lines, MARKER_DESCRIPTION)
    end = d - 1 if d > h else len(lines)
    out: List[TrackHash] = []
    for line in lines[h + 1:end]:
        s = line.strip()
        if not (s.startswith(TRACK_LINE_PREFIX) or s.startswith(LEGACY_TRACK_LINE_PREFIX)):
            continue
        out.append(parse_track_line(s))
    return out


def parse_manifest(lines: Sequence[str]) -> ManifestFields:
    """Recover title/id/description/track hashes from manifest lines.

    Never raises: a field whose markers are missing (or whose track lines do
    not parse) is left as None and the reason is appended to `errors`.
    """
    fields = ManifestFields()
    for attr, fn in (
        ("title", _parse_title),
        ("identifier", _parse_identifier),
        ("description", _parse_description),
        ("track_hashes", _parse_track_hashes),
    ):
        try:
            setattr(fields, attr, fn(lines))
        except ManifestParseError as e:
            fields.errors.append(f"{attr}: {e}")
    return fields


def read_manifest(path: Path) -> ManifestFields:
    p = Path(path)
    return parse_manifest(p.read_text(encoding="utf-8", errors="replace").splitlines())


def apply_manifest(
    title: Title,
    path: Path,
    *,
    logger: Optional[logging.Logger] = None,
) -> bool:
    """Refresh a title from an existing manifest file.

    Local edits win: the title is only recovered when the title is unmodified,
    and the description only when it is also empty. Track hashes are only
    recovered when none are loaded yet. Returns False if the file is missing.
    """
    log = logger or _LOG
    p = Path(path)
    log.debug("Loading existing data from %s for %s", p, title.display_title or title.identifier)
    if not p.is_file():
        title.manifest_exists = False
        return False

    fields = read_manifest(p)
    for err in fields.errors:
        log.error("Failed to load %s from %s", err, p)

    title.manifest_exists = True
    if fields.title and not title.modified:
        title.display_title = fields.title
    if fields.description is not None and not title.modified and not title.description.strip():
        title.description = fields.description
    if fields.track_hashes is not None and not title.archive.track_hashes:
        for no, digest in fields.track_hashes:
            title.archive.set_track_hash(no, digest)
    if fields.identifier and not title.identifier:
        title.assign_identifier(fields.identifier)
    if title.platform == Platform.UnknownFormat:
        plat = platform_from_manifest_path(p)
        if plat is not None:
            title.platform = plat
    return True
