"""Batch orchestration (UI-agnostic).

Each title runs Convert -> HashTracks -> Inspect -> GenerateManifest ->
[post-process] -> mark clean, strictly in that order; titles run one after
another in worklist order. Conversion/inspection errors stop the whole batch.
Cancellation is polled between titles, between stages and inside the chdman
read loop, and ends the batch with `cancelled=True` instead of an exception.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Callable, List, Optional, Sequence, Tuple

from .app_logging import batch_logger, release_batch_logger
from .cancel import CancelToken, CancelledError
from .constants import (
    CHDMAN_NAME,
    STEP_CONVERT,
    STEP_HASH,
    STEP_INSPECT,
    STEP_MANIFEST,
    STEP_POSTPROCESS,
    STEPS,
)
from .convert import CANCELLED, convert_to_archive
from .inspect import inspect_archive
from .manifest import generate_manifest
from .models import Configuration, Title
from .postprocess import PostProcessor, load_post_processor, run_post_processor
from .tracks import compute_track_hashes
from .util import detect_chdman_exe

_STEP_COUNT = len(STEPS) - 1


@dataclass(frozen=True)
class BatchProgress:
    title_index: int  # 1-based
    title_count: int
    identifier: str
    title: str
    step: int
    step_label: str
    percent: float  # progress of the current step, 0..100
    overall: float  # progress of the whole batch, 0..100
    detail: str = ""


@dataclass
class BatchResult:
    processed: List[str] = field(default_factory=list)
    skipped: List[str] = field(default_factory=list)
    failed: List[Tuple[str, str]] = field(default_factory=list)  # (identifier, message)
    post_processed: List[str] = field(default_factory=list)
    cancelled: bool = False


ProgressCb = Callable[[BatchProgress], None]


def resolve_tool(config: Configuration, tool_exe: Optional[Path] = None) -> Path:
    """Explicit path, else auto-detected chdman, else the bare name (fails when first needed)."""
    if tool_exe is not None:
        return Path(tool_exe)
    found = detect_chdman_exe(config.tool_path)
    if found is not None:
        return found
    return Path(str(config.tool_path or "").strip() or CHDMAN_NAME)


class _Reporter:
    def __init__(self, cb: Optional[ProgressCb], count: int) -> None:
        self._cb = cb
        self._count = max(1, count)
        self.index = 0
        self.title: Optional[Title] = None

    def emit(self, step: int, percent: float, detail: str = "") -> None:
        if self._cb is None or self.title is None:
            return
        pct = max(0.0, min(100.0, float(percent)))
        done_steps = (max(step, 1) - 1 + pct / 100.0) / _STEP_COUNT
        overall = (self.index - 1 + done_steps) / self._count * 100.0
        self._cb(
            BatchProgress(
                title_index=self.index,
                title_count=self._count,
                identifier=self.title.identifier,
                title=self.title.display_title,
                step=step,
                step_label=STEPS[step] if 0 <= step < len(STEPS) else "",
                percent=pct,
                overall=overall,
                detail=detail,
            )
        )


def _check(cancel_token: CancelToken) -> None:
    cancel_token.raise_if_cancelled("Cancelled")


def process_title(
    title: Title,
    config: Configuration,
    tool_exe: Path,
    *,
    reporter: _Reporter,
    cancel_token: CancelToken,
    post_processor: Optional[PostProcessor] = None,
    log_cb: Optional[Callable[[str], None]] = None,
    logger: logging.Logger,
) -> bool:
    """Run every stage for one title. Returns True if the post-processor ran.

    Raises CancelledError, ConversionError, InspectionError, or OSError for
    unreadable inputs.
    """
    _check(cancel_token)
    reporter.emit(STEP_CONVERT, 0.0)
    outcome = convert_to_archive(
        title,
        config,
        tool_exe,
        progress_cb=lambda pct: reporter.emit(STEP_CONVERT, pct),
        cancel_token=cancel_token,
        log_cb=log_cb,
        logger=logger,
    )
    if outcome == CANCELLED:
        raise CancelledError("Cancelled")

    _check(cancel_token)
    reporter.emit(STEP_HASH, 0.0)
    compute_track_hashes(
        title,
        config,
        progress_cb=lambda no, count, _frac, overall: reporter.emit(
            STEP_HASH, overall * 100.0, f"track {no}/{count}"
        ),
        cancel_token=cancel_token,
        logger=logger,
    )
    reporter.emit(STEP_HASH, 100.0)

    _check(cancel_token)
    reporter.emit(STEP_INSPECT, 0.0)
    inspect_archive(title, config, tool_exe, logger=logger)
    reporter.emit(STEP_INSPECT, 100.0)

    _check(cancel_token)
    reporter.emit(STEP_MANIFEST, 0.0)
    generate_manifest(title, config, logger=logger)
    reporter.emit(STEP_MANIFEST, 100.0)

    ran = False
    if post_processor is not None:
        reporter.emit(STEP_POSTPROCESS, 0.0)
        ran = run_post_processor(
            post_processor,
            config.output_directory,
            title.identifier,
            title.display_title,
            lambda pct: reporter.emit(STEP_POSTPROCESS, pct),
            logger=logger,
        )
        reporter.emit(STEP_POSTPROCESS, 100.0)

    title.modified = False
    return ran


def run_batch(
    titles: Sequence[Title],
    config: Configuration,
    *,
    tool_exe: Optional[Path] = None,
    post_processor: Optional[PostProcessor] = None,
    progress_cb: Optional[ProgressCb] = None,
    log_cb: Optional[Callable[[str], None]] = None,
    cancel_token: Optional[CancelToken] = None,
    logger: Optional[logging.Logger] = None,
) -> BatchResult:
    """Process titles sequentially.

    ConversionError/InspectionError propagate and end the batch; titles already
    finished keep their changes. A title whose source files cannot be read is
    recorded in `failed` and the batch moves on.
    """
    if logger is not None:
        return _run_titles(titles, config, tool_exe, post_processor, progress_cb, log_cb, cancel_token, logger)
    log = batch_logger(datetime.now().strftime("%Y%m%d_%H%M%S_%f"))
    try:
        return _run_titles(titles, config, tool_exe, post_processor, progress_cb, log_cb, cancel_token, log)
    finally:
        release_batch_logger(log)


def _run_titles(
    titles: Sequence[Title],
    config: Configuration,
    tool_exe: Optional[Path],
    post_processor: Optional[PostProcessor],
    progress_cb: Optional[ProgressCb],
    log_cb: Optional[Callable[[str], None]],
    cancel_token: Optional[CancelToken],
    log: logging.Logger,
) -> BatchResult:
    if cancel_token is None:
        cancel_token = CancelToken()
    exe = resolve_tool(config, tool_exe)
    if post_processor is None and str(config.post_processor or "").strip():
        post_processor = load_post_processor(config.post_processor, logger=log)

    items = list(titles)
    result = BatchResult()
    reporter = _Reporter(progress_cb, len(items))
    log.debug("Starting processing of %d title(s), chdman=%s", len(items), exe)

    def _say(msg: str) -> None:
        if log_cb is not None:
            log_cb(msg)

    for i, title in enumerate(items, start=1):
        if cancel_token.cancelled():
            result.cancelled = True
            break
        reporter.index = i
        reporter.title = title
        label = title.identifier or title.source_path
        if config.only_modified and not title.modified:
            log.debug("Skipping title %d (%s): not modified", i, label)
            result.skipped.append(title.identifier)
            continue

        log.debug("Processing title %d: %s", i, title.display_title)
        _say(f"[{i}/{len(items)}] {title.identifier}: {title.display_title}")
        try:
            if process_title(
                title,
                config,
                exe,
                reporter=reporter,
                cancel_token=cancel_token,
                post_processor=post_processor,
                log_cb=log_cb,
                logger=log,
            ):
                result.post_processed.append(title.identifier)
        except CancelledError:
            log.debug("Processing cancelled during %s", label)
            _say("Cancelled.")
            result.cancelled = True
            break
        except OSError as e:
            log.error("Failed to process %s: %s", label, e)
            _say(f"[error] {label}: {e}")
            result.failed.append((title.identifier, str(e)))
            continue
        result.processed.append(title.identifier)
        log.debug("Finished processing title %d: %s", i, title.display_title)

    log.debug("Finished processing")
    return result
