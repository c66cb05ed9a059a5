from __future__ import annotations

import threading
from typing import Callable, Optional


class CancelledError(Exception):
    pass


class CancelToken:
    """Batch-scoped cancellation flag, safe to set from another thread.

    Optionally wraps a `check` callable (e.g. a GUI "stop requested" getter);
    the token reads as cancelled once either source says so.
    """

    def __init__(self, check: Optional[Callable[[], bool]] = None) -> None:
        self._event = threading.Event()
        self._check = check

    def cancel(self) -> None:
        self._event.set()

    def cancelled(self) -> bool:
        if self._event.is_set():
            return True
        if self._check is not None:
            try:
                if self._check():
                    self._event.set()
            except Exception:
                return False
        return self._event.is_set()

    def raise_if_cancelled(self, message: str = "Cancelled") -> None:
        if self.cancelled():
            raise CancelledError(message)
