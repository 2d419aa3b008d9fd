from __future__ import annotations

import argparse
import sys
import threading
import time
from pathlib import Path
from typing import Iterable, Optional

from .analysis_aggregate import ReportAggregator
from .analysis_render import SECTIONS, fmt_int, fmt_size, render_report
from .analysis_write import write_report_files
from .config import AnalysisConfig, load_config, resolve_config
from .contribution import ContributionAnalyzer
from .git import GitError, get_repo_toplevel, iter_git_objects
from .graph import Arena, build_graph
from .models import AnalysisCancelled, AnalysisError, DagReport, Diagnostics, ObjectKind, RawObject, SnapshotIncompatible
from .snapshot import load_snapshot, save_snapshot


def format_startup_header(
    *,
    repo: Path,
    command: str,
    config_path: Path,
    config_missing: bool,
    cfg: AnalysisConfig,
    save_deps: Optional[Path],
    sections: list[str],
    report_dir: Optional[Path],
) -> str:
    if save_deps is None:
        snapshot_line = "off (pass --save-deps PATH to reuse the parsed graph next time)"
    elif save_deps.exists():
        snapshot_line = f"load {save_deps} (falls back to a rebuild if incompatible)"
    else:
        snapshot_line = f"build, then save to {save_deps}"

    lines = [
        "┌──────────────────────────────────────────────────────────────┐",
        "│                       git-dag-analysis                        │",
        "└──────────────────────────────────────────────────────────────┘",
        "",
        f"Repository: {repo}",
        f"Mode: {command}  Jobs: {cfg.jobs}  Queue: {cfg.queue_size}  Sizes: {cfg.size_metric}",
        "",
        "Run plan:",
        f"1) Config: {config_path}" + (" (missing, using defaults)" if config_missing else ""),
        f"2) Read objects: objects reachable from refs via git rev-list + cat-file (read-only); snapshot: {snapshot_line}",
        "3) Attribute sizes: commits in parent-first order, each object counted once",
    ]
    if command == "reports":
        lines.append(f"4) Report: {', '.join(sections)}" + (f"; files in {report_dir}" if report_dir else ""))
    else:
        lines.append("4) Report: skipped (process-only)")
    lines.append("")
    return "\n".join(lines)


def load_or_build_graph(
    *,
    repo: Path,
    cfg: AnalysisConfig,
    snapshot_path: Optional[Path] = None,
    objects: Optional[Iterable[RawObject]] = None,
) -> tuple[Arena, Diagnostics]:
    if snapshot_path is not None and snapshot_path.exists():
        print(f"Loading graph snapshot: {snapshot_path}")
        start = time.monotonic()
        try:
            arena, diagnostics = load_snapshot(snapshot_path, size_metric=cfg.size_metric)
            print(f"Loaded {fmt_int(len(arena))} objects in {time.monotonic() - start:.1f}s.")
            return arena, diagnostics
        except SnapshotIncompatible as e:
            print(f"Warning: {e}; rebuilding from the repository.", file=sys.stderr)

    print("Reading objects...")
    start = time.monotonic()
    source = objects if objects is not None else iter_git_objects(repo, disk_size=cfg.disk_size)
    arena, diagnostics = build_graph(
        source,
        jobs=cfg.jobs,
        queue_size=cfg.queue_size,
        progress_every=cfg.progress_every,
    )
    print(
        f"Added {fmt_int(arena.count(ObjectKind.COMMIT))} commits, {fmt_int(arena.count(ObjectKind.TREE))} trees, "
        f"{fmt_int(arena.count(ObjectKind.BLOB))} blobs, {fmt_int(arena.count(ObjectKind.TAG))} tags "
        f"in {time.monotonic() - start:.1f}s."
    )
    if snapshot_path is not None:
        try:
            rows = save_snapshot(snapshot_path, arena, diagnostics, size_metric=cfg.size_metric)
        except OSError as e:
            print(f"Warning: could not save graph snapshot {snapshot_path}: {e}", file=sys.stderr)
        else:
            print(f"Saved graph snapshot ({fmt_int(rows)} rows): {snapshot_path}")
    return arena, diagnostics


def analyze_graph(
    arena: Arena,
    build_diagnostics: Diagnostics,
    *,
    repo_label: str,
    cfg: AnalysisConfig,
    cancel: Optional[threading.Event] = None,
) -> DagReport:
    diagnostics = Diagnostics()
    diagnostics.extend(build_diagnostics)
    aggregator = ReportAggregator(top_blobs=cfg.top_blobs, top_commits=cfg.top_commits)
    analyzer = ContributionAnalyzer(
        arena,
        diagnostics=diagnostics,
        on_new_object=aggregator.observe,
        progress_every=max(1, cfg.progress_every // 10) if cfg.progress_every else 0,
    )
    stats = analyzer.run(cancel=cancel)
    return aggregator.build_report(
        repo=repo_label,
        stats=stats,
        paths=analyzer.paths,
        diagnostics=diagnostics,
        contributions=analyzer.contributions,
        ignore_root_path=cfg.most_trees_ignore_root,
    )


def selected_sections(args: argparse.Namespace) -> list[str]:
    if getattr(args, "all", False):
        return list(SECTIONS)
    picked = [name for name in ("commits", "trees", "blobs") if getattr(args, name, False)]
    if not picked:
        return list(SECTIONS)
    # diagnostic counts are part of every report
    return [*picked, "diagnostics"]


def run_analysis(*, args: argparse.Namespace, cancel: Optional[threading.Event] = None) -> int:
    repo = get_repo_toplevel(args.repo.resolve()) if args.repo.is_dir() else None
    if repo is None:
        print(f"Not a git repository: {args.repo}", file=sys.stderr)
        return 2

    config = load_config(args.config)
    cfg = resolve_config(config, args)
    command = str(args.command)
    sections = selected_sections(args)
    save_deps: Optional[Path] = getattr(args, "save_deps", None)
    report_dir: Optional[Path] = getattr(args, "report_dir", None)

    print(
        format_startup_header(
            repo=repo,
            command=command,
            config_path=args.config,
            config_missing=not args.config.exists(),
            cfg=cfg,
            save_deps=save_deps,
            sections=sections,
            report_dir=report_dir,
        )
    )

    try:
        arena, build_diagnostics = load_or_build_graph(repo=repo, cfg=cfg, snapshot_path=save_deps)
        print("Attributing commit sizes...")
        start = time.monotonic()
        report = analyze_graph(arena, build_diagnostics, repo_label=str(repo), cfg=cfg, cancel=cancel)
        print(f"Attributed {fmt_int(report.commit_count)} commits in {time.monotonic() - start:.1f}s.")
    except (KeyboardInterrupt, AnalysisCancelled):
        print("Cancelled; partial results discarded.", file=sys.stderr)
        return 130
    except (AnalysisError, GitError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 2

    if command == "process-only":
        print(
            f"Processed {fmt_int(report.commit_count)} commits "
            f"({fmt_size(report.contributing_total)} attributed, {fmt_int(report.diagnostics_total)} diagnostics)."
        )
        return 0

    print("")
    print(render_report(report, sections), end="")
    if report_dir is not None:
        written = write_report_files(report_dir, report)
        print(f"Wrote {len(written)} report files to: {report_dir}")
    return 0
