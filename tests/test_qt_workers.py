from __future__ import annotations

from pathlib import Path

import pytest

pytest.importorskip("PySide6")

from discarchive_tool.cancel import CancelToken  # noqa: E402
from discarchive_tool.discovery import BootFileDiscInspector, Worklist  # noqa: E402
from discarchive_tool.models import ArchivePolicy  # noqa: E402
from discarchive_tool.qt.workers import BatchWorker, ScanWorker  # noqa: E402
from tests.conftest import make_config, make_cue_image, make_title, write_manifest  # noqa: E402


class _Recorder:
    def __init__(self, worker) -> None:
        self.events: list[tuple[str, object]] = []
        worker.log.connect(lambda s: self.events.append(("log", s)))
        worker.done.connect(lambda *a: self.events.append(("done", a)))
        worker.cancelled.connect(lambda: self.events.append(("cancelled", None)))
        worker.error.connect(lambda s: self.events.append(("error", s)))
        worker.finished.connect(lambda: self.events.append(("finished", None)))

    def kinds(self) -> list[str]:
        return [k for k, _ in self.events if k != "log"]


def test_scan_worker_emits_done(tmp_path: Path) -> None:
    make_cue_image(tmp_path / "src", name="Tekken 3 (USA)", boot_line=b"BOOT = cdrom:\\SLUS_004.02;1\n")
    write_manifest(tmp_path / "out" / "SonyPS2" / "SLES-12345" / "README.md", identifier="SLES-12345")
    wl = Worklist()
    w = ScanWorker(
        wl,
        make_config(tmp_path / "out"),
        [tmp_path / "src"],
        CancelToken(),
        output_root=tmp_path / "out",
        inspector=BootFileDiscInspector(),
    )
    rec = _Recorder(w)
    w.run()

    assert rec.kinds() == ["done", "finished"]
    added, errors = [p for k, p in rec.events if k == "done"][0]
    assert [t.identifier for t in added] == ["SLES-12345"]
    assert errors == []
    assert sorted(t.identifier for t in wl) == ["SLES-12345", "SLUS-00402"]


def test_scan_worker_cancelled(tmp_path: Path) -> None:
    token = CancelToken()
    token.cancel()
    w = ScanWorker(Worklist(), make_config(tmp_path / "out"), [tmp_path], token)
    rec = _Recorder(w)
    w.run()
    assert rec.kinds() == ["cancelled", "finished"]


def test_batch_worker_done_and_progress(tmp_path: Path) -> None:
    cue, _ = make_cue_image(tmp_path / "src", tracks=1)
    title = make_title(cue)
    cfg = make_config(tmp_path / "out", archive_policy=ArchivePolicy.SKIP_ALL)
    w = BatchWorker([title], cfg, CancelToken(), tool_exe=tmp_path / "unused-chdman")
    rec = _Recorder(w)
    progress: list[object] = []
    w.progress.connect(progress.append)
    w.run()

    assert rec.kinds() == ["done", "finished"]
    assert progress
    assert title.modified is False


def test_batch_worker_reports_error(tmp_path: Path) -> None:
    cue, _ = make_cue_image(tmp_path / "src", tracks=1)
    cfg = make_config(tmp_path / "out")
    w = BatchWorker([make_title(cue)], cfg, CancelToken(), tool_exe=tmp_path / "missing-chdman")
    rec = _Recorder(w)
    w.run()
    assert rec.kinds() == ["error", "finished"]
    assert "chdman not found" in str([p for k, p in rec.events if k == "error"][0])
