from __future__ import annotations

import importlib
import importlib.util
import logging
from pathlib import Path
from typing import Any, Callable, Optional, Protocol

_LOG = logging.getLogger("discarchive_tool.postprocess")

DEFAULT_ATTR = "post_processor"


class PostProcessor(Protocol):
    def process(
        self,
        output_root: str,
        identifier: str,
        title: str,
        progress_cb: Callable[[float], None],
    ) -> None: ...


def _load_module(spec: str) -> Any:
    p = Path(spec)
    if p.suffix == ".py":
        if not p.is_file():
            return None
        mod_spec = importlib.util.spec_from_file_location(f"discarchive_post_{p.stem}", str(p))
        if mod_spec is None or mod_spec.loader is None:
            return None
        mod = importlib.util.module_from_spec(mod_spec)
        mod_spec.loader.exec_module(mod)
        return mod
    return importlib.import_module(spec)


def load_post_processor(
    spec: str,
    *,
    logger: Optional[logging.Logger] = None,
) -> Optional[PostProcessor]:
    """Resolve an optional post-processor.

    spec is `path/to/plugin.py`, `package.module` or either form followed by
    `:attr`. Without `:attr` the module's `post_processor` attribute is used.
    A class is instantiated with no arguments. Any failure yields None.
    """
    log = logger or _LOG
    raw = str(spec or "").strip()
    if not raw:
        return None

    mod_part, attr = raw, DEFAULT_ATTR
    head, sep, tail = raw.rpartition(":")
    # Keep Windows drive letters ("C:\...") intact.
    if sep and tail and "\\" not in tail and "/" not in tail:
        mod_part, attr = head, tail

    try:
        mod = _load_module(mod_part)
        if mod is None:
            log.debug("Post-processor not present: %s", raw)
            return None
        obj = getattr(mod, attr, None)
        if obj is None:
            log.debug("Post-processor %s has no attribute %r", raw, attr)
            return None
        if isinstance(obj, type):
            obj = obj()
        if not callable(getattr(obj, "process", None)):
            log.debug("Post-processor %s has no process()", raw)
            return None
        log.debug("Loaded post-processor %s", raw)
        return obj
    except Exception as e:
        log.debug("Post-processor load failed (%s): %s", raw, e)
        return None


def run_post_processor(
    processor: Optional[PostProcessor],
    output_root: str,
    identifier: str,
    title: str,
    progress_cb: Callable[[float], None],
    *,
    logger: Optional[logging.Logger] = None,
) -> bool:
    """Invoke the post-processor; failures are logged and swallowed."""
    log = logger or _LOG
    if processor is None:
        return False
    try:
        processor.process(output_root, identifier, title, progress_cb)
        return True
    except Exception as e:
        log.debug("Post-processing failed for %s: %s", identifier, e)
        return False
