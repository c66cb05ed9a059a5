"""Qt worker objects (QThread/QObject) for the scan and batch operations.

Import this module lazily so the rest of discarchive_tool works without PySide6.
"""

from __future__ import annotations

from pathlib import Path
from typing import List, Optional, Sequence

from PySide6.QtCore import QObject, QThread, Qt, Signal, Slot

from ..cancel import CancelToken, CancelledError
from ..controller import BatchProgress, run_batch
from ..discovery import BootFileDiscInspector, DiscInspector, Worklist, scan_manifests, scan_sources
from ..models import Configuration, Title


class ScanWorker(QObject):
    log = Signal(str)
    done = Signal(object, object)  # added titles, discovery errors
    cancelled = Signal()
    error = Signal(str)
    finished = Signal()

    def __init__(
        self,
        worklist: Worklist,
        config: Configuration,
        source_dirs: Sequence[Path],
        cancel_token: CancelToken,
        *,
        output_root: Optional[Path] = None,
        inspector: Optional[DiscInspector] = None,
        tool_exe: Optional[Path] = None,
    ) -> None:
        super().__init__()
        self._worklist = worklist
        self._config = config
        self._dirs = [Path(d) for d in source_dirs]
        self._cancel_token = cancel_token
        self._output_root = output_root
        self._inspector = inspector or BootFileDiscInspector()
        self._tool_exe = tool_exe

    @Slot()
    def run(self) -> None:
        try:
            added: List[Title] = []
            if self._output_root is not None:
                self.log.emit(f"[scan] manifests under {self._output_root}")
                added.extend(
                    scan_manifests(self._output_root, self._config, self._worklist, tool_exe=self._tool_exe)
                )
            errors = scan_sources(
                self._dirs,
                self._config,
                self._worklist,
                self._inspector,
                tool_exe=self._tool_exe,
                cancel_token=self._cancel_token,
                log_cb=self.log.emit,
            )
            self.done.emit(added, errors)
        except CancelledError:
            self.cancelled.emit()
        except Exception as e:
            self.error.emit(str(e))
        finally:
            try:
                self.finished.emit()
            except Exception:
                pass


class BatchWorker(QObject):
    log = Signal(str)
    progress = Signal(object)  # BatchProgress
    done = Signal(object)  # BatchResult
    cancelled = Signal()
    error = Signal(str)
    finished = Signal()

    def __init__(
        self,
        titles: Sequence[Title],
        config: Configuration,
        cancel_token: CancelToken,
        *,
        tool_exe: Optional[Path] = None,
    ) -> None:
        super().__init__()
        self._titles = list(titles)
        self._config = config
        self._cancel_token = cancel_token
        self._tool_exe = tool_exe

    def _on_progress(self, ev: BatchProgress) -> None:
        self.progress.emit(ev)

    @Slot()
    def run(self) -> None:
        try:
            result = run_batch(
                self._titles,
                self._config,
                tool_exe=self._tool_exe,
                progress_cb=self._on_progress,
                log_cb=self.log.emit,
                cancel_token=self._cancel_token,
            )
            if result.cancelled:
                self.cancelled.emit()
            else:
                self.done.emit(result)
        except CancelledError:
            self.cancelled.emit()
        except Exception as e:
            # ConversionError / InspectionError end the batch here.
            self.error.emit(str(e))
        finally:
            try:
                self.finished.emit()
            except Exception:
                pass


def start_worker(worker: QObject) -> QThread:
    """Move a worker onto a new QThread, wire run/finished and start it.

    The caller keeps references to both objects until `finished` fires.
    """
    t = QThread()
    worker.moveToThread(t)
    t.started.connect(worker.run, Qt.QueuedConnection)
    worker.finished.connect(t.quit)
    t.start()
    return t
