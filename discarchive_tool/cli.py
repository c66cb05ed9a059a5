from __future__ import annotations

import argparse
import contextlib
import signal
import threading
from pathlib import Path
from typing import List, Optional

from .cancel import CancelToken
from .controller import BatchProgress, BatchResult, resolve_tool, run_batch
from .discovery import BootFileDiscInspector, Worklist, scan_manifests, scan_sources
from .errors import InspectionError, ProcessingError
from .file_utils import md5_file, sha1_file
from .inspect import inspect_archive_file
from .models import ArchivePolicy, Configuration, Title
from .paths import archive_path, manifest_path
from .settings import config_to_dict, load_configuration, save_configuration, set_option
from .tracks import enumerate_tracks
from .util import dumps_pretty

EXIT_CANCELLED = 130


def _init_logging(component: str, cfg: Configuration) -> Optional[Path]:
    try:
        from .app_logging import current_log_path, init_app_logging
        init_app_logging(component=component, to_file=bool(cfg.enable_logging))
        return current_log_path()
    except Exception:
        return None


def _config_from_args(args: argparse.Namespace) -> Configuration:
    """Persisted settings with this run's command-line overrides applied."""
    cfg = load_configuration()
    if getattr(args, "out", None):
        cfg.output_directory = str(args.out)
    if getattr(args, "policy", None):
        cfg.archive_policy = ArchivePolicy(args.policy)
    if getattr(args, "chdman", None):
        cfg.tool_path = str(args.chdman)
    if getattr(args, "template", None):
        cfg.template_path = str(args.template)
    if getattr(args, "post_processor", None):
        cfg.post_processor = str(args.post_processor)
    for flag in ("overwrite_manifests", "only_modified", "title_from_filename", "id_as_archive_name"):
        if getattr(args, flag, False):
            setattr(cfg, flag, True)
    if getattr(args, "no_log_file", False):
        cfg.enable_logging = False
    return cfg


def _optional_tool(cfg: Configuration) -> Optional[Path]:
    p = resolve_tool(cfg)
    return p if p.is_file() else None


def _title_row(t: Title, cfg: Configuration) -> dict:
    row = {
        "identifier": t.identifier,
        "title": t.display_title,
        "platform": t.platform.name,
        "source_path": t.source_path,
        "description": t.description,
        "manifest_exists": t.manifest_exists,
        "archive_exists": t.archive_exists,
        "modified": t.modified,
        "archive": t.archive,
    }
    if str(cfg.output_directory or "").strip() and t.identifier:
        row["manifest_path"] = str(manifest_path(t, cfg))
        row["archive_path"] = str(archive_path(t, cfg))
    return row


def _print_titles_human(titles: List[Title]) -> None:
    print(f"Titles: {len(titles)}")
    for t in titles:
        flags = []
        if t.archive_exists:
            flags.append("chd")
        if t.manifest_exists:
            flags.append("readme")
        if t.modified:
            flags.append("modified")
        print(f"  - {t.identifier:<12} {t.platform.name:<14} {t.display_title}  [{', '.join(flags) or '-'}]")
        if t.archive.track_hashes:
            for no, digest in t.archive.track_hashes:
                print(f"      TRACK {no:02d} MD5: {digest}")


def _print_errors(errors: List[ProcessingError]) -> None:
    if not errors:
        return
    print("")
    print(f"Errors ({len(errors)}):")
    for e in errors[:40]:
        print(f"  - {e}")
    if len(errors) > 40:
        print(f"  ... and {len(errors) - 40} more")


def _cmd_scan(args: argparse.Namespace) -> int:
    cfg = _config_from_args(args)
    _init_logging("scan", cfg)
    worklist = Worklist()
    errors = scan_sources(
        [Path(d) for d in args.dirs],
        cfg,
        worklist,
        BootFileDiscInspector(),
        tool_exe=_optional_tool(cfg),
    )
    titles = worklist.snapshot()
    if args.json:
        print(dumps_pretty({"titles": [_title_row(t, cfg) for t in titles], "errors": [str(e) for e in errors]}))
    else:
        print("== Disc Archive Manager SCAN ==")
        _print_titles_human(titles)
        _print_errors(errors)
    return 1 if errors else 0


def _cmd_manifests(args: argparse.Namespace) -> int:
    cfg = _config_from_args(args)
    cfg.output_directory = str(args.root)
    _init_logging("manifests", cfg)
    worklist = Worklist()
    scan_manifests(Path(args.root), cfg, worklist, tool_exe=_optional_tool(cfg))
    titles = worklist.snapshot()
    if args.json:
        print(dumps_pretty({"titles": [_title_row(t, cfg) for t in titles]}))
    else:
        print("== Disc Archive Manager MANIFESTS ==")
        print(f"Output root: {args.root}")
        _print_titles_human(titles)
    return 0


def _cmd_hash(args: argparse.Namespace) -> int:
    digest = sha1_file if args.sha1 else md5_file
    algo = "SHA1" if args.sha1 else "MD5"
    try:
        files = enumerate_tracks(args.source)
        rows = [{"track": i, "path": str(f), "hash": digest(f)} for i, f in enumerate(files, start=1)]
    except OSError as e:
        raise SystemExit(f"HASH FAILED: {e}") from e
    if args.json:
        print(dumps_pretty({"source": args.source, "algorithm": algo.lower(), "tracks": rows}))
    else:
        print(f"Source: {args.source}")
        for r in rows:
            print(f"TRACK {r['track']:02d} {algo}: {r['hash']}  ({Path(r['path']).name})")
    return 0


def _cmd_info(args: argparse.Namespace) -> int:
    cfg = _config_from_args(args)
    exe = resolve_tool(cfg)
    try:
        info = inspect_archive_file(Path(args.archive), exe)
    except InspectionError as e:
        raise SystemExit(f"INFO FAILED: {e}") from e
    if info is None:
        raise SystemExit(f"INFO FAILED: archive not found: {args.archive}")
    if args.json:
        print(dumps_pretty(info))
    else:
        print(f"Archive:        {args.archive}")
        print(f"chdman version: {info.tool_version}")
        print(f"File version:   {info.format_version}")
        print(f"SHA1:           {info.full_file_hash}")
        print(f"Data SHA1:      {info.content_hash}")
    return 0


def _print_progress(ev: BatchProgress) -> None:
    # Only stage boundaries; per-percent updates would flood the terminal.
    if ev.percent in (0.0, 100.0):
        state = "start" if ev.percent == 0.0 else "done"
        print(f"[{ev.title_index}/{ev.title_count}] {ev.identifier} step {ev.step}: {ev.step_label} ({state})")


@contextlib.contextmanager
def _sigint_cancels(token: CancelToken):
    """Route Ctrl+C to the token while the batch runs; a second Ctrl+C aborts."""
    if threading.current_thread() is not threading.main_thread():
        yield
        return

    def _handle_sigint(signum, frame):
        if token.cancelled():
            raise KeyboardInterrupt
        token.cancel()

    previous = signal.signal(signal.SIGINT, _handle_sigint)
    try:
        yield
    finally:
        signal.signal(signal.SIGINT, previous)


def _cmd_process(args: argparse.Namespace) -> int:
    cfg = _config_from_args(args)
    if not str(cfg.output_directory or "").strip():
        raise SystemExit("process requires --out (or output_directory in settings)")
    log_path = _init_logging("process", cfg)

    tool = _optional_tool(cfg)
    worklist = Worklist()
    if not args.no_manifests:
        scan_manifests(Path(cfg.output_directory), cfg, worklist, tool_exe=tool)
    errors = scan_sources([Path(d) for d in args.sources], cfg, worklist, BootFileDiscInspector(), tool_exe=tool)
    titles = worklist.snapshot()
    if not args.json:
        print("== Disc Archive Manager PROCESS ==")
        print(f"Output: {cfg.output_directory}")
        print(f"Titles: {len(titles)} (policy={cfg.archive_policy.value})")
        _print_errors(errors)

    token = CancelToken()
    log_cb = None if args.json else print
    try:
        with _sigint_cancels(token):
            result: BatchResult = run_batch(
                titles,
                cfg,
                progress_cb=None if args.json else _print_progress,
                log_cb=log_cb,
                cancel_token=token,
            )
    except ProcessingError as e:
        raise SystemExit(f"PROCESSING FAILED: {e}") from e

    if args.json:
        print(dumps_pretty({
            "result": result,
            "titles": [_title_row(t, cfg) for t in titles],
            "discovery_errors": [str(e) for e in errors],
        }))
    else:
        print("")
        print(f"Processed: {len(result.processed)}  Skipped: {len(result.skipped)}  Failed: {len(result.failed)}")
        for ident, msg in result.failed:
            print(f"  - {ident}: {msg}")
        if result.cancelled:
            print("Cancelled.")
        if log_path is not None:
            print(f"Log: {log_path}")
    if result.cancelled:
        return EXIT_CANCELLED
    return 1 if (errors or result.failed) else 0


def _cmd_config(args: argparse.Namespace) -> int:
    cfg = load_configuration()
    if args.set:
        for item in args.set:
            key, sep, value = str(item).partition("=")
            if not sep:
                raise SystemExit(f"--set expects KEY=VALUE, got: {item}")
            try:
                cfg = set_option(cfg, key, value)
            except (KeyError, ValueError) as e:
                raise SystemExit(str(e).strip("'\"")) from e
        save_configuration(cfg)
    data = config_to_dict(cfg)
    if args.json:
        print(dumps_pretty(data))
    else:
        for k in sorted(data):
            print(f"{k} = {data[k]}")
    return 0


def _add_run_options(p: argparse.ArgumentParser) -> None:
    p.add_argument("--out", default="", help="Output root (<out>/<platform>/<id>/...).")
    p.add_argument("--chdman", default="", help="Path to chdman (default: auto-detect).")
    p.add_argument("--title-from-filename", action="store_true", help="Use the image file name as the title.")
    p.add_argument("--json", action="store_true", help="Emit JSON report.")


def main(argv: list[str] | None = None) -> int:
    p = argparse.ArgumentParser(
        prog="discarchive_tool",
        description="Disc Archive Manager (convert disc images to CHD, hash tracks, write README manifests).",
    )
    sub = p.add_subparsers(dest="cmd", required=True)

    p_scan = sub.add_parser("scan", help="Find .cue/.iso images under folders and list the titles found.")
    p_scan.add_argument("dirs", nargs="+", help="Folders to scan (recursive).")
    _add_run_options(p_scan)
    p_scan.set_defaults(func=_cmd_scan)

    p_man = sub.add_parser("manifests", help="Recover titles from README manifests under an output root.")
    p_man.add_argument("root", help="Output root to scan.")
    p_man.add_argument("--chdman", default="", help="Path to chdman (default: auto-detect).")
    p_man.add_argument("--json", action="store_true", help="Emit JSON report.")
    p_man.set_defaults(func=_cmd_manifests)

    p_hash = sub.add_parser("hash", help="Hash every track of a .cue/.iso source.")
    p_hash.add_argument("source", help="Path to a .cue sheet or .iso image.")
    p_hash.add_argument("--sha1", action="store_true", help="SHA1 instead of MD5.")
    p_hash.add_argument("--json", action="store_true", help="Emit JSON report.")
    p_hash.set_defaults(func=_cmd_hash)

    p_info = sub.add_parser("info", help="Show `chdman info` fields for an archive.")
    p_info.add_argument("archive", help="Path to a .chd file.")
    p_info.add_argument("--chdman", default="", help="Path to chdman (default: auto-detect).")
    p_info.add_argument("--json", action="store_true", help="Emit JSON report.")
    p_info.set_defaults(func=_cmd_info)

    p_proc = sub.add_parser("process", help="Convert, hash and write manifests for every title.")
    p_proc.add_argument("sources", nargs="*", default=[], help="Folders with source images (recursive).")
    _add_run_options(p_proc)
    p_proc.add_argument(
        "--policy",
        choices=[pol.value for pol in ArchivePolicy],
        default=None,
        help="CHD generation policy (default: settings, else generate_missing).",
    )
    p_proc.add_argument("--overwrite-manifests", action="store_true", help="Rewrite existing README files.")
    p_proc.add_argument("--only-modified", action="store_true", help="Only process titles added or edited this run.")
    p_proc.add_argument("--id-as-archive-name", action="store_true", help="Name archives <ID>.chd.")
    p_proc.add_argument("--template", default="", help="README template (default: packaged template).")
    p_proc.add_argument("--post-processor", default="", help="Post-processor module or .py file (optional).")
    p_proc.add_argument("--no-manifests", action="store_true", help="Do not preload titles from the output root.")
    p_proc.add_argument("--no-log-file", action="store_true", help="Do not write a per-run log file.")
    p_proc.set_defaults(func=_cmd_process)

    p_cfg = sub.add_parser("config", help="Show or change persisted settings.")
    p_cfg.add_argument("--set", action="append", default=[], metavar="KEY=VALUE", help="Persist a setting (repeatable).")
    p_cfg.add_argument("--json", action="store_true", help="Emit JSON.")
    p_cfg.set_defaults(func=_cmd_config)

    args = p.parse_args(argv)
    rv = args.func(args)
    if rv is None:
        return 0
    try:
        return int(rv)
    except Exception:
        return 1
