from __future__ import annotations

import os
import stat
import sys
from pathlib import Path

# Values printed by `info`; lower-case on purpose (the inspector upper-cases them).
FAKE_SHA1 = "0123456789abcdef0123456789abcdef01234567"
FAKE_DATA_SHA1 = "89abcdef0123456789abcdef0123456789abcdef"
FAKE_VERSION = "0.262"

# Modes (FAKE_CHDMAN_MODE):
#   complete  progress lines (one out of order), then the completion marker
#   error     one progress line, then an "Error ..." line, exit 1
#   nonzero   writes the archive, prints to stdout and exits 3 without a marker
#   slow      writes a partial archive and keeps reporting progress for ~30s
# FAKE_CHDMAN_INFO_ERROR=blank makes `info` print an empty stderr line but succeed.
# FAKE_CHDMAN_PIDFILE receives "<pid> <pgid>" of the createcd process.
_SCRIPT = r'''
import os
import sys
import time


def _log():
    p = os.environ.get("FAKE_CHDMAN_LOG")
    if p:
        with open(p, "a", encoding="utf-8") as f:
            f.write(" ".join(sys.argv[1:]) + "\n")


def _record_pid():
    p = os.environ.get("FAKE_CHDMAN_PIDFILE")
    if p:
        with open(p, "w", encoding="utf-8") as f:
            f.write("%d %d\n" % (os.getpid(), os.getpgid(0)))


def _arg(flag):
    return sys.argv[sys.argv.index(flag) + 1]


def _progress(pct):
    sys.stderr.write("Compressing, %s%% complete... (ratio=48.1%%)\n" % pct)
    sys.stderr.flush()


def createcd():
    mode = os.environ.get("FAKE_CHDMAN_MODE", "complete")
    _record_pid()
    src, dst = _arg("-i"), _arg("-o")
    if mode == "error":
        _progress("5.0")
        sys.stderr.write("Error opening input file (%s)\n" % src)
        sys.stderr.flush()
        return 1
    with open(dst, "wb") as f:
        f.write(b"MComprHD")
        if mode == "slow":
            f.flush()
            for i in range(600):
                _progress("%.1f" % (i / 10.0))
                time.sleep(0.05)
            return 0
        with open(src, "rb") as s:
            f.write(s.read())
    if mode == "nonzero":
        sys.stdout.write("chdman - fake\nout of disk space\n")
        return 3
    for pct in ("10.0", "35.5", "20.0", "80.2"):
        _progress(pct)
    sys.stderr.write("Compression complete ... final ratio = 48.1%\n")
    return 0


def info():
    path = _arg("-i")
    if os.environ.get("FAKE_CHDMAN_INFO_ERROR") == "blank":
        sys.stderr.write("\n")
    elif os.environ.get("FAKE_CHDMAN_INFO_ERROR"):
        sys.stderr.write("Error opening CHD file (%s): invalid CHD\n" % path)
        return 1
    lines = [
        "chdman - MAME Compressed Hunks of Data (CHD) manager @VERSION@ (mame0262)",
        "Input file:   %s" % path,
        "File Version: 5",
        "Logical size: 1,234 bytes",
        "Hunk Size:    19,584 bytes",
        "Total Hunks:  1",
        "Unit Size:    2,448 bytes",
        "Total Units:  1",
        "Compression:  cd_lzma (CD LZMA), cd_zlib (CD Deflate), cd_flac (CD FLAC)",
        "CHD size:     900 bytes",
        "Ratio:        72.9%",
        "SHA1:         @SHA1@",
        "Data SHA1:    @DATA_SHA1@",
        "Metadata:     Tag='CHT2'  Index=0  Length=90 bytes",
    ]
    sys.stdout.write("\n".join(lines) + "\n")
    return 0


_log()
if sys.argv[1] == "createcd":
    sys.exit(createcd())
if sys.argv[1] == "info":
    sys.exit(info())
sys.exit(2)
'''


def write_fake_chdman(folder: Path) -> Path:
    """Write an executable `chdman` script run by the current interpreter."""
    folder.mkdir(parents=True, exist_ok=True)
    body = (
        _SCRIPT.replace("@VERSION@", FAKE_VERSION)
        .replace("@SHA1@", FAKE_SHA1)
        .replace("@DATA_SHA1@", FAKE_DATA_SHA1)
    )
    exe = folder / "chdman"
    exe.write_text(f"#!{sys.executable}\n{body}", encoding="utf-8")
    exe.chmod(exe.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
    assert os.access(exe, os.X_OK)
    return exe
