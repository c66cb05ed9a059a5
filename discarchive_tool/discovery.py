from __future__ import annotations

import logging
import os
import re
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Iterator, List, Optional, Protocol, Sequence, Tuple

from .cancel import CancelToken
from .constants import ARCHIVE_SUFFIX, MANIFEST_FILE, SOURCE_SUFFIXES
from .errors import DiscoveryError, InspectionError, ProcessingError
from .inspect import inspect_archive_file, apply_archive_info
from .manifest import apply_manifest
from .models import Configuration, Platform, Title
from .paths import archive_path, manifest_path, output_dir
from .tracks import enumerate_tracks

_LOG = logging.getLogger("discarchive_tool.discovery")


# ---------------------------------------------------------------------------
# Disc inspection seam
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class DiscInfo:
    title: str
    serial: Optional[str]
    platform: Platform


class DiscInspector(Protocol):
    def scan(self, image_path: Path) -> DiscInfo: ...


# SYSTEM.CNF boot line, e.g. `BOOT = cdrom:\SLUS_001.23;1` or `BOOT2 = cdrom0:\SLES_512.34;1`
_BOOT_RE = re.compile(rb"BOOT(2?)\s*=\s*cdrom0?:\\*([A-Z]{4})[_-](\d{3})\.(\d{2})")
_NAME_SERIAL_RE = re.compile(r"\b([A-Z]{4})[-_ ]?(\d{3})\.?(\d{2})\b")


class BootFileDiscInspector:
    """Best-effort serial detection for PlayStation images.

    Looks for the SYSTEM.CNF boot line in the first bytes of the data track,
    then falls back to a serial-shaped token in the file name. The title is
    always the image file stem.
    """

    def __init__(self, scan_bytes: int = 32 * 1024 * 1024, chunk_size: int = 1024 * 1024) -> None:
        self._scan_bytes = int(scan_bytes)
        self._chunk_size = int(chunk_size)

    def _scan_boot_line(self, data_file: Path) -> Optional[Tuple[str, Platform]]:
        tail = b""
        read = 0
        with data_file.open("rb") as f:
            while read < self._scan_bytes:
                chunk = f.read(self._chunk_size)
                if not chunk:
                    break
                read += len(chunk)
                buf = tail + chunk
                m = _BOOT_RE.search(buf)
                if m:
                    serial = f"{m.group(2).decode()}-{m.group(3).decode()}{m.group(4).decode()}"
                    return serial, (Platform.SonyPS2 if m.group(1) else Platform.SonyPSX)
                tail = buf[-64:]
        return None

    def scan(self, image_path: Path) -> DiscInfo:
        p = Path(image_path)
        hit: Optional[Tuple[str, Platform]] = None
        try:
            tracks = enumerate_tracks(p)
            if tracks:
                hit = self._scan_boot_line(tracks[0])
        except OSError as e:
            _LOG.debug("Boot scan failed for %s: %s", p, e)

        if hit is None:
            m = _NAME_SERIAL_RE.search(p.stem.upper())
            if m:
                hit = (f"{m.group(1)}-{m.group(2)}{m.group(3)}", Platform.UnknownFormat)

        if hit is None:
            return DiscInfo(title=p.stem, serial=None, platform=Platform.UnknownFormat)
        return DiscInfo(title=p.stem, serial=hit[0], platform=hit[1])


# ---------------------------------------------------------------------------
# Worklist
# ---------------------------------------------------------------------------


class Worklist:
    """Ordered titles, unique by identifier. Additions are serialised."""

    def __init__(self, titles: Sequence[Title] = ()) -> None:
        self._titles: List[Title] = []
        self._lock = threading.Lock()
        for t in titles:
            self.upsert(t)

    def __len__(self) -> int:
        return len(self._titles)

    def __iter__(self) -> Iterator[Title]:
        return iter(self.snapshot())

    def snapshot(self) -> List[Title]:
        with self._lock:
            return list(self._titles)

    def _find_locked(self, identifier: str) -> Optional[Title]:
        for t in self._titles:
            if t.identifier == identifier:
                return t
        return None

    def find(self, identifier: str) -> Optional[Title]:
        with self._lock:
            return self._find_locked(identifier)

    def upsert(self, title: Title) -> Tuple[Title, bool]:
        """Add a title, or update the existing one with the same identifier in place.

        Returns (title_in_list, created).
        """
        with self._lock:
            existing = self._find_locked(title.identifier)
            if existing is None:
                self._titles.append(title)
                return title, True
            existing.display_title = title.display_title
            existing.platform = title.platform
            existing.source_path = title.source_path
            return existing, False

    def add_if_missing(self, title: Title) -> bool:
        with self._lock:
            if self._find_locked(title.identifier) is not None:
                return False
            self._titles.append(title)
            return True

    def remove(self, identifier: str) -> bool:
        with self._lock:
            t = self._find_locked(identifier)
            if t is None:
                return False
            self._titles.remove(t)
            return True

    def clear(self) -> None:
        with self._lock:
            self._titles.clear()


# ---------------------------------------------------------------------------
# Directory scans
# ---------------------------------------------------------------------------


def _walk_files(root: Path, keep: Callable[[str], bool]) -> List[Path]:
    out: List[Path] = []
    for cur, dirnames, filenames in os.walk(str(root)):
        dirnames.sort()
        for fn in sorted(filenames):
            if keep(fn):
                out.append(Path(cur) / fn)
    return out


def find_source_images(directory: Path) -> List[Path]:
    """Recursively list .cue/.iso files under a folder."""
    return _walk_files(Path(directory), lambda fn: fn.lower().endswith(SOURCE_SUFFIXES))


def find_manifests(directory: Path) -> List[Path]:
    return _walk_files(Path(directory), lambda fn: fn == MANIFEST_FILE)


def _locate_archive(title: Title, config: Configuration) -> Path:
    p = archive_path(title, config)
    if p.exists() or str(title.source_path or "").strip():
        return p
    # Recovered from a manifest only: the archive may carry the image's name.
    try:
        found = sorted(output_dir(title, config).glob(f"*{ARCHIVE_SUFFIX}"))
    except OSError:
        found = []
    return found[0] if found else p


def load_existing_data(
    title: Title,
    config: Configuration,
    *,
    manifest_file: Optional[Path] = None,
    tool_exe: Optional[Path] = None,
    logger: Optional[logging.Logger] = None,
) -> None:
    """Refresh a title from what is already on disk under the output root.

    Applies manifest recovery, then recomputes the archive flag and, when a
    chdman path is given, reloads archive info. Raises InspectionError.
    """
    log = logger or _LOG
    if not str(config.output_directory or "").strip():
        return

    mp = Path(manifest_file) if manifest_file is not None else manifest_path(title, config)
    apply_manifest(title, mp, logger=log)

    if not title.identifier:
        title.archive_exists = False
        return
    chd = _locate_archive(title, config)
    if not chd.exists():
        title.archive_exists = False
        return
    title.archive_exists = True
    if tool_exe is not None:
        info = inspect_archive_file(chd, tool_exe, logger=log)
        if info is not None:
            apply_archive_info(title.archive, info)


def add_title_to_worklist(
    image_path: Path,
    config: Configuration,
    worklist: Worklist,
    inspector: DiscInspector,
    *,
    tool_exe: Optional[Path] = None,
    logger: Optional[logging.Logger] = None,
) -> Title:
    """Catalogue one source image. Raises DiscoveryError when it has no identifier.

    An existing archive that chdman cannot read is logged; the title stays listed.
    """
    log = logger or _LOG
    p = Path(image_path)
    log.debug("Adding title from %s", p)
    info = inspector.scan(p)
    if not info.serial:
        log.error("Failed to add title from %s: identifier not present in image", p)
        raise DiscoveryError(str(p), "Identifier not present in image")

    title = Title(
        display_title=p.stem if config.title_from_filename else (info.title or p.stem),
        platform=info.platform,
        source_path=str(p),
    )
    title.assign_identifier(info.serial)
    entry, created = worklist.upsert(title)
    if not created:
        log.debug("Title already listed: %s, updated", entry.identifier)

    entry.modified = True
    try:
        load_existing_data(entry, config, tool_exe=tool_exe, logger=log)
    except InspectionError as e:
        # Listed and modified, so the batch revisits the archive and reports the failure there.
        log.error("Existing archive for %s could not be inspected: %s", entry.identifier, e)
    return entry


def scan_sources(
    directories: Sequence[Path],
    config: Configuration,
    worklist: Worklist,
    inspector: DiscInspector,
    *,
    tool_exe: Optional[Path] = None,
    cancel_token: Optional[CancelToken] = None,
    log_cb: Optional[Callable[[str], None]] = None,
    logger: Optional[logging.Logger] = None,
) -> List[ProcessingError]:
    """Add every image found under the folders. Per-item failures are returned, not raised."""
    log = logger or _LOG
    errors: List[ProcessingError] = []
    images: List[Path] = []
    for d in directories:
        if cancel_token is not None:
            cancel_token.raise_if_cancelled("Cancelled")
        if log_cb is not None:
            log_cb(f"[scan] {d}")
        images.extend(find_source_images(Path(d)))

    for img in images:
        if cancel_token is not None:
            cancel_token.raise_if_cancelled("Cancelled")
        try:
            t = add_title_to_worklist(img, config, worklist, inspector, tool_exe=tool_exe, logger=log)
            if log_cb is not None:
                log_cb(f"[scan] {t.identifier}: {t.display_title}")
        except ProcessingError as e:
            errors.append(e)
        except OSError as e:
            log.error("Failed to read %s: %s", img, e)
            errors.append(DiscoveryError(str(img), f"Unreadable image ({e})"))
    return errors


def scan_manifests(
    output_root: Path,
    config: Configuration,
    worklist: Worklist,
    *,
    tool_exe: Optional[Path] = None,
    logger: Optional[logging.Logger] = None,
) -> List[Title]:
    """Recover titles from README manifests under an output root.

    Titles whose identifier is already listed are left untouched.
    """
    log = logger or _LOG
    root = Path(output_root)
    if not root.is_dir():
        return []
    added: List[Title] = []
    for readme in find_manifests(root):
        title = Title()
        try:
            load_existing_data(title, config, manifest_file=readme, tool_exe=tool_exe, logger=log)
        except ProcessingError as e:
            log.error("Failed to load archive info for %s: %s", readme, e)
        if not title.identifier:
            log.error("No identifier recovered from %s", readme)
            continue
        if worklist.add_if_missing(title):
            added.append(title)
    return added
