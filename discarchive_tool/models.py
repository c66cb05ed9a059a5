from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional, Tuple


class Platform(str, Enum):
    """Known disc formats. Names double as output-path segments."""

    UnknownFormat = "UnknownFormat"
    AudioCD = "AudioCD"
    SonyPSX = "SonyPSX"
    SonyPS2 = "SonyPS2"
    SonyPSP = "SonyPSP"
    SegaCD = "SegaCD"
    SegaSaturn = "SegaSaturn"
    SegaDreamcast = "SegaDreamcast"
    PCEngineCD = "PCEngineCD"
    PCFX = "PCFX"
    NeoGeoCD = "NeoGeoCD"
    Panasonic3DO = "Panasonic3DO"
    PhilipsCDi = "PhilipsCDi"
    AmigaCD = "AmigaCD"

    @classmethod
    def parse(cls, value: str) -> Optional["Platform"]:
        """Exact name match, or None."""
        try:
            return cls[str(value or "").strip()]
        except KeyError:
            return None


class ArchivePolicy(str, Enum):
    SKIP_ALL = "skip_all"
    GENERATE_MISSING = "generate_missing"
    REGENERATE_ALL = "regenerate_all"


TrackHash = Tuple[int, str]


@dataclass
class ArchiveMetadata:
    tool_version: str = ""
    format_version: int = 0
    content_hash: str = ""
    full_file_hash: str = ""
    track_hashes: List[TrackHash] = field(default_factory=list)

    def set_track_hash(self, track_no: int, digest: str) -> None:
        """Insert or replace a track entry, keeping track numbers unique."""
        for i, (no, _old) in enumerate(self.track_hashes):
            if no == track_no:
                self.track_hashes[i] = (track_no, digest)
                return
        self.track_hashes.append((track_no, digest))


@dataclass
class Title:
    """One catalogued disc image (the unit of batch work)."""

    display_title: str = ""
    identifier: str = ""
    platform: Platform = Platform.UnknownFormat
    source_path: str = ""
    description: str = ""
    manifest_exists: bool = False
    archive_exists: bool = False
    modified: bool = False
    archive: ArchiveMetadata = field(default_factory=ArchiveMetadata)

    def assign_identifier(self, identifier: str) -> bool:
        """Set the identifier once. Returns False if one is already assigned."""
        if self.identifier:
            return False
        self.identifier = str(identifier or "").strip()
        return bool(self.identifier)

    def edit(self, *, title: Optional[str] = None, description: Optional[str] = None) -> None:
        """Apply a user edit; edited titles are picked up by only-modified batches."""
        if title is not None:
            self.display_title = title
            self.modified = True
        if description is not None:
            self.description = description
            self.modified = True


@dataclass
class Configuration:
    output_directory: str = ""
    archive_policy: ArchivePolicy = ArchivePolicy.GENERATE_MISSING
    overwrite_manifests: bool = False
    only_modified: bool = False
    title_from_filename: bool = False
    id_as_archive_name: bool = False
    tool_path: str = ""
    template_path: str = ""
    post_processor: str = ""
    enable_logging: bool = True
