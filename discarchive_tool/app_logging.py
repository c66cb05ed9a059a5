from __future__ import annotations

import logging
import os
import sys
import traceback
from datetime import datetime
from pathlib import Path
from typing import Optional

from .constants import ENV_LOG_LEVEL, ENV_LOG_TO_CONSOLE, LOGS_DIRNAME
from .util import env_bool, find_app_root


_LOG = logging.getLogger("discarchive_tool")
_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


def _find_app_root(start: Path) -> Path:
    return find_app_root(start)


def _level_from_env() -> int:
    lvl_name = str(os.environ.get(ENV_LOG_LEVEL, "INFO") or "INFO").upper().strip()
    return getattr(logging, lvl_name, logging.INFO)


def init_app_logging(component: str = "app", *, to_file: bool = True) -> Optional[Path]:
    """Initialise logging for one run.

    Creates a timestamped log file under <app_root>/logs and:
      * attaches a FileHandler to the `logging` root
      * optionally mirrors records to stdout (DISCARCHIVE_LOG_TO_CONSOLE=1)
      * installs an excepthook to capture uncaught exceptions

    Returns the log file path on success, otherwise None.
    """
    # Avoid double-initialisation
    if getattr(init_app_logging, "_initialised", False):
        return getattr(init_app_logging, "_log_path", None)

    level = _level_from_env()
    root_logger = logging.getLogger()
    root_logger.setLevel(level)

    if env_bool(ENV_LOG_TO_CONSOLE):
        sh = logging.StreamHandler(sys.stdout)
        sh.setLevel(level)
        sh.setFormatter(logging.Formatter(_FORMAT))
        root_logger.addHandler(sh)

    log_path: Optional[Path] = None
    if to_file:
        try:
            root = _find_app_root(Path(__file__).resolve().parent)
            logs = root / LOGS_DIRNAME
            logs.mkdir(parents=True, exist_ok=True)
            ts = datetime.now().strftime("%Y-%m-%d_%H-%M-%S")
            log_path = logs / f"{component}_{ts}.log"
            fh = logging.FileHandler(log_path, encoding="utf-8")
            fh.setLevel(level)
            fh.setFormatter(logging.Formatter(_FORMAT))
            root_logger.addHandler(fh)
        except OSError:
            log_path = None

    def _excepthook(exc_type, exc, tb):
        _LOG.error("Uncaught exception:\n%s", "".join(traceback.format_exception(exc_type, exc, tb)))
        # Preserve default behaviour too.
        sys.__excepthook__(exc_type, exc, tb)

    sys.excepthook = _excepthook

    from . import __version__
    _LOG.info("=== Disc Archive Manager %s (%s) ===", __version__, component)
    _LOG.info("cwd=%s", str(Path.cwd()))
    _LOG.info("python=%s", sys.version.replace("\n", " "))

    setattr(init_app_logging, "_initialised", True)
    setattr(init_app_logging, "_log_path", log_path)
    return log_path


def current_log_path() -> Optional[Path]:
    """Return the current per-run log path, if file logging was initialised."""
    return getattr(init_app_logging, "_log_path", None)


def batch_logger(run_id: str) -> logging.Logger:
    """Logger scoped to one batch run; passed down to every stage of that run."""
    return logging.getLogger(f"discarchive_tool.batch.{run_id}")


def release_batch_logger(logger: logging.Logger) -> None:
    """Forget a finished run's logger; `logging` would otherwise keep one per batch."""
    for h in list(logger.handlers):
        logger.removeHandler(h)
    logging.Logger.manager.loggerDict.pop(logger.name, None)
