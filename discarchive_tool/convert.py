from __future__ import annotations

import logging
import os
import queue
import subprocess
import threading
from pathlib import Path
from typing import IO, Callable, List, Optional, Sequence

from .cancel import CancelToken
from .constants import (
    CHDMAN_COMPLETE,
    CHDMAN_CONVERT_ARGS,
    CHDMAN_ERROR_MARKER,
    CHDMAN_PROGRESS_RE,
)
from .errors import ConversionError
from .file_utils import remove_if_exists
from .models import ArchivePolicy, Configuration, Title
from .paths import archive_path

_LOG = logging.getLogger("discarchive_tool.convert")

# convert_to_archive outcomes
CONVERTED = "converted"
SKIPPED = "skipped"
CANCELLED = "cancelled"


def parse_progress_line(line: str) -> Optional[float]:
    """Return the percentage from a chdman progress line, or None."""
    m = CHDMAN_PROGRESS_RE.search(line)
    if not m:
        return None
    try:
        # chdman always prints '.' as the decimal separator.
        return float(m.group(1).strip())
    except ValueError:
        return None


def _no_window_flags(*, new_group: bool = False) -> int:
    flags = 0
    if os.name == "nt":
        flags |= int(getattr(subprocess, "CREATE_NO_WINDOW", 0) or 0)
        if new_group:
            flags |= int(getattr(subprocess, "CREATE_NEW_PROCESS_GROUP", 0) or 0)
    return flags


def _spawn(cmd: Sequence[str]) -> subprocess.Popen:
    # Text mode gives universal newlines, so chdman's '\r' progress updates arrive as lines.
    # Own process group: a terminal Ctrl+C must only reach this process, which stops chdman via the token.
    return subprocess.Popen(
        list(cmd),
        stdin=subprocess.DEVNULL,
        stdout=subprocess.PIPE,
        stderr=subprocess.PIPE,
        text=True,
        encoding="utf-8",
        errors="replace",
        creationflags=_no_window_flags(new_group=True),
        start_new_session=(os.name != "nt"),
    )


def _start_reader(stream: IO[str], sink: "queue.Queue[Optional[str]]", name: str) -> threading.Thread:
    def _reader() -> None:
        try:
            for raw in iter(stream.readline, ""):
                sink.put(raw.rstrip("\r\n"))
        except (OSError, ValueError):
            pass
        finally:
            sink.put(None)

    t = threading.Thread(target=_reader, name=name, daemon=True)
    t.start()
    return t


def _drain(q: "queue.Queue[Optional[str]]") -> List[str]:
    out: List[str] = []
    while True:
        try:
            item = q.get_nowait()
        except queue.Empty:
            break
        if item is not None:
            out.append(item)
    return out


def _kill(proc: subprocess.Popen) -> None:
    try:
        if proc.poll() is None:
            proc.kill()
        proc.wait(timeout=5)
    except (OSError, subprocess.TimeoutExpired):
        pass


def convert_to_archive(
    title: Title,
    config: Configuration,
    tool_exe: Path,
    *,
    progress_cb: Optional[Callable[[float], None]] = None,
    cancel_token: Optional[CancelToken] = None,
    log_cb: Optional[Callable[[str], None]] = None,
    logger: Optional[logging.Logger] = None,
    poll_interval: float = 0.10,
) -> str:
    """Create the title's CHD with `chdman createcd`.

    Returns CONVERTED, SKIPPED (policy/existing archive/no source) or CANCELLED.
    Cancellation kills chdman and deletes the partial archive; it is not an error.
    Raises ConversionError on a chdman error line or a non-zero exit.
    """
    log = logger or _LOG
    if config.archive_policy == ArchivePolicy.SKIP_ALL:
        log.debug("Archive generation disabled, skipping %s", title.identifier)
        return SKIPPED

    dst = archive_path(title, config)
    log.debug("Archive path: %s", dst)
    if dst.exists() and config.archive_policy != ArchivePolicy.REGENERATE_ALL:
        log.debug("Archive exists, skipping: %s", dst)
        return SKIPPED
    if not str(title.source_path or "").strip():
        log.debug("No source image for %s, skipping conversion", title.identifier)
        return SKIPPED

    if cancel_token is not None and cancel_token.cancelled():
        return CANCELLED

    exe = Path(tool_exe)
    if not exe.is_file():
        raise ConversionError(f"chdman not found: {exe}")

    dst.parent.mkdir(parents=True, exist_ok=True)
    cmd = [str(exe)] + [a.format(str(title.source_path), str(dst)) for a in CHDMAN_CONVERT_ARGS]
    log.debug("Executing chdman: %s", " ".join(cmd))
    if log_cb is not None:
        log_cb(f"Converting: {title.source_path} -> {dst}")

    try:
        proc = _spawn(cmd)
    except OSError as e:
        raise ConversionError(f"Failed to start chdman: {e}") from e
    assert proc.stdout is not None and proc.stderr is not None

    err_q: "queue.Queue[Optional[str]]" = queue.Queue()
    out_q: "queue.Queue[Optional[str]]" = queue.Queue()
    t_err = _start_reader(proc.stderr, err_q, "discarchive_chdman_stderr")
    t_out = _start_reader(proc.stdout, out_q, "discarchive_chdman_stdout")

    last = 0.0

    def _report(pct: float) -> None:
        nonlocal last
        if pct < last:
            return
        last = pct
        if progress_cb is not None:
            progress_cb(pct)

    try:
        while True:
            if cancel_token is not None and cancel_token.cancelled():
                log.debug("Cancelled, killing chdman")
                if log_cb is not None:
                    log_cb("Cancelled: terminating chdman...")
                _kill(proc)
                remove_if_exists(dst)
                return CANCELLED

            try:
                line = err_q.get(timeout=poll_interval)
            except queue.Empty:
                continue
            if line is None:
                break

            if CHDMAN_COMPLETE in line:
                _report(100.0)
                break
            if CHDMAN_ERROR_MARKER in line:
                log.error("chdman error: %s", line)
                _report(100.0)
                _kill(proc)
                raise ConversionError(line)

            pct = parse_progress_line(line)
            if pct is None:
                if line.strip():
                    log.debug("chdman: %s", line)
                continue
            _report(min(pct, 99.9))

        rc = proc.wait()
        t_out.join(timeout=5)
        t_err.join(timeout=1)
        if rc != 0:
            out_lines = _drain(out_q)
            log.error("chdman exited with code %s", rc)
            raise ConversionError("\n".join(out_lines) or f"chdman exited with code {rc}")
    finally:
        if proc.poll() is None:
            _kill(proc)
        for stream in (proc.stdout, proc.stderr):
            try:
                stream.close()
            except OSError:
                pass

    title.archive_exists = True
    log.debug("Finished conversion: %s", dst)
    return CONVERTED
