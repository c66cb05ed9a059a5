from __future__ import annotations

import logging
from pathlib import Path
from typing import Callable, List, Optional

from .cancel import CancelToken
from .constants import CUE_FILE_RE, HASH_CHUNK_SIZE
from .file_utils import md5_file
from .models import Configuration, Title, TrackHash
from .paths import is_single_file_image, manifest_path

_LOG = logging.getLogger("discarchive_tool.tracks")

# (track_no, track_count, file_fraction, overall_fraction)
HashProgressCb = Callable[[int, int, float, float], None]


def enumerate_tracks(source_path: str | Path) -> List[Path]:
    """Return the raw data files making up one title, in listing order.

    A single-file image yields itself. A track sheet yields every
    `FILE "<name>" BINARY` entry resolved against the sheet's folder.
    Raises OSError when the source cannot be read.
    """
    src = Path(source_path)
    if is_single_file_image(src):
        if not src.is_file():
            raise FileNotFoundError(f"Image not found: {src}")
        return [src.resolve()]

    base = src.resolve().parent
    out: List[Path] = []
    with src.open("r", encoding="utf-8", errors="replace") as f:
        for line in f:
            m = CUE_FILE_RE.search(line.strip())
            if not m:
                continue
            out.append((base / m.group(1)).resolve())
    return out


def compute_track_hashes(
    title: Title,
    config: Configuration,
    *,
    progress_cb: Optional[HashProgressCb] = None,
    cancel_token: Optional[CancelToken] = None,
    chunk_size: int = HASH_CHUNK_SIZE,
    logger: Optional[logging.Logger] = None,
) -> List[TrackHash]:
    """Hash every track of a title (MD5), replacing title.archive.track_hashes.

    Skipped (existing hashes kept) when a manifest already exists and
    manifests are not being overwritten.
    """
    log = logger or _LOG
    mp = manifest_path(title, config)
    if mp.exists() and not config.overwrite_manifests:
        log.debug("Manifest exists, keeping track hashes: %s", mp)
        return list(title.archive.track_hashes)
    if not str(title.source_path or "").strip():
        log.debug("No source image for %s, nothing to hash", title.identifier)
        return list(title.archive.track_hashes)

    files = enumerate_tracks(title.source_path)
    log.debug("Track files for %s: %s", title.identifier, ", ".join(str(p) for p in files))
    if cancel_token is not None:
        cancel_token.raise_if_cancelled("Cancelled")

    title.archive.track_hashes.clear()
    count = len(files)
    for i, f in enumerate(files):
        if cancel_token is not None:
            cancel_token.raise_if_cancelled("Cancelled")
        track_no = i + 1
        log.debug("Calculating md5 for track %d: %s", track_no, f)

        def _file_progress(frac: float, _no: int = track_no, _i: int = i) -> None:
            if progress_cb is not None:
                progress_cb(_no, count, frac, (_i + frac) / count)

        digest = md5_file(f, chunk_size=chunk_size, progress_cb=_file_progress, cancel_token=cancel_token)
        title.archive.set_track_hash(track_no, digest)

    return list(title.archive.track_hashes)
