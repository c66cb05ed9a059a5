from __future__ import annotations

import hashlib
from pathlib import Path
from typing import Callable, Optional

from .cancel import CancelToken
from .constants import HASH_CHUNK_SIZE


def digest_file(
    path: Path,
    *,
    algorithm: str = "md5",
    chunk_size: int = HASH_CHUNK_SIZE,
    progress_cb: Optional[Callable[[float], None]] = None,
    cancel_token: Optional[CancelToken] = None,
) -> str:
    """Return the upper-case hexdigest of a file, read in fixed-size chunks.

    progress_cb receives the fraction read so far (0.0..1.0) after every chunk.
    Raises OSError if the file is missing or unreadable.
    """
    p = Path(path)
    h = hashlib.new(algorithm)
    total = p.stat().st_size
    done = 0
    with p.open("rb") as f:
        for chunk in iter(lambda: f.read(int(chunk_size)), b""):
            if cancel_token is not None:
                cancel_token.raise_if_cancelled("Cancelled")
            h.update(chunk)
            done += len(chunk)
            if progress_cb is not None and total > 0:
                progress_cb(done / total)
    if progress_cb is not None:
        progress_cb(1.0)
    return h.hexdigest().upper()


def md5_file(path: Path, **kwargs) -> str:
    return digest_file(path, algorithm="md5", **kwargs)


def remove_if_exists(path: Path) -> bool:
    """Delete a file if present. Returns True when something was removed."""
    try:
        Path(path).unlink()
        return True
    except FileNotFoundError:
        return False


def sha1_file(path: Path, **kwargs) -> str:
    return digest_file(path, algorithm="sha1", **kwargs)
