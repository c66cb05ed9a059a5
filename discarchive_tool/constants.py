from __future__ import annotations

import re

# ---------------------------------------------------------------------------
# Shared constants
# ---------------------------------------------------------------------------

# App folders
LOGS_DIRNAME = "logs"
TOOLS_DIRNAME = "tools"
TEMPLATES_DIRNAME = "templates"

# Environment variables
ENV_LOG_LEVEL = "DISCARCHIVE_LOG_LEVEL"
ENV_LOG_TO_CONSOLE = "DISCARCHIVE_LOG_TO_CONSOLE"
ENV_CHDMAN = "DISCARCHIVE_CHDMAN"

# ---------------------------------------------------------------------------
# External compressor (chdman)
# ---------------------------------------------------------------------------

CHDMAN_NAME = "chdman"
ARCHIVE_SUFFIX = ".chd"

# Argument templates; {0}/{1} are substituted with paths.
CHDMAN_CONVERT_ARGS = ("createcd", "-i", "{0}", "-o", "{1}", "-f")
CHDMAN_INFO_ARGS = ("info", "-i", "{0}")

CHDMAN_VERSION_RE = re.compile(r"chdman - MAME Compressed Hunks of Data \(CHD\) manager (\d\.\d+) \(.+\)")
CHDMAN_PROGRESS_RE = re.compile(r"Compressing, (.+?)% complete\.\.\. \(ratio=.*\)")
CHDMAN_COMPLETE = "Compression complete"
CHDMAN_ERROR_MARKER = "Error"

# Fixed line indices in `chdman info` output.
INFO_LINE_VERSION = 0
INFO_LINE_FILE_VERSION = 2
INFO_LINE_SHA1 = 11
INFO_LINE_DATA_SHA1 = 12

# ---------------------------------------------------------------------------
# Track sheets / images
# ---------------------------------------------------------------------------

CUE_SUFFIX = ".cue"
ISO_SUFFIX = ".iso"
SOURCE_SUFFIXES = (CUE_SUFFIX, ISO_SUFFIX)
CUE_FILE_RE = re.compile(r'FILE "(.+)" BINARY')

HASH_CHUNK_SIZE = 4096

# ---------------------------------------------------------------------------
# Manifest (README.md)
# ---------------------------------------------------------------------------

MANIFEST_FILE = "README.md"
MANIFEST_TEMPLATE_FILE = "README-template.md"

MARKER_TITLE = "**Game name:**"
MARKER_ID = "**Game ID:**"
MARKER_HASH = "**Hash:**"
MARKER_DESCRIPTION = "**Description:**"

# Lines following the ID marker that may hold the identifier.
ID_WINDOW_LINES = 3

TOKEN_TITLE = "#gameTitle#"
TOKEN_ID = "#gameId#"
TOKEN_ARCHIVE_HASH = "#chdHash#"
TOKEN_TRACK_HASHES = "#binHashes#"
TOKEN_DESCRIPTION = "#description#"

TRACK_LINE_PREFIX = "TRACK"
LEGACY_TRACK_LINE_PREFIX = "BIN (TRACK"
TRACK_HASH_RE = re.compile(r"^(?:BIN \()?TRACK (\d{2})\)?\s.*?MD5:\s*(\S+)")

# ---------------------------------------------------------------------------
# Batch steps (labels shown in progress output)
# ---------------------------------------------------------------------------

STEP_CONVERT = 1
STEP_HASH = 2
STEP_INSPECT = 3
STEP_MANIFEST = 4
STEP_POSTPROCESS = 5

STEPS = (
    "",
    "Conversion to CHD",
    "Calculating tracks MD5",
    "Getting CHD info",
    "Generating README",
    "Post-processing",
)

# Settings
SETTINGS_FILE = "discarchive_settings.json"
