#!/usr/bin/env python3
from __future__ import annotations

import argparse
import csv
import json
import sys
from pathlib import Path

from .analysis_write import REPORT_JSON, TOP_BLOBS_CSV


def load_json(path: Path) -> dict:
    return json.loads(path.read_text(encoding="utf-8"))


def check_report(report: dict) -> list[str]:
    """Return one warning per broken consistency rule in a report.json dict."""
    warnings: list[str] = []
    diagnostics = report.get("diagnostics", {}) or {}

    commit_total = int(report.get("commit_total_size", 0))
    tree_total = int(report.get("tree_total_size", 0))
    blob_total = int(report.get("blob_total_size", 0))
    contributing = int(report.get("contributing_total", 0))
    # missing objects shrink the tree/blob totals, so the sum only holds on complete graphs
    if int(diagnostics.get("dangling_reference", 0)) == 0 and int(diagnostics.get("object_parse_error", 0)) == 0:
        expected = commit_total + tree_total + blob_total
        if contributing != expected:
            warnings.append(f"contributing_total {contributing} != commits+trees+blobs {expected} (Δ={contributing - expected:+})")

    top_blobs = report.get("top_blobs", []) or []
    limit = int(report.get("top_blobs_limit", len(top_blobs)))
    if len(top_blobs) > limit:
        warnings.append(f"top_blobs has {len(top_blobs)} rows, limit is {limit}")
    sizes = [int(b.get("size", 0)) for b in top_blobs]
    if sizes != sorted(sizes, reverse=True):
        warnings.append("top_blobs is not sorted by size, largest first")
    if len(top_blobs) > int(report.get("blob_count", 0)):
        warnings.append("top_blobs lists more blobs than blob_count")

    top_commits = report.get("top_commits", []) or []
    csizes = [int(c.get("contributing_size", 0)) for c in top_commits]
    if csizes != sorted(csizes, reverse=True):
        warnings.append("top_commits is not sorted by contributing size, largest first")
    if top_commits and csizes[0] != int(report.get("largest_contributing_size", 0)):
        warnings.append("first top commit does not match largest_contributing_size")

    if int(report.get("most_trees_count", 0)) > int(report.get("tree_count", 0)):
        warnings.append("most_trees_count exceeds tree_count")
    return warnings


def check_blobs_csv(path: Path, report: dict) -> list[str]:
    with path.open(newline="", encoding="utf-8") as f:
        rows = list(csv.DictReader(f))
    expected = [str(b.get("id", "")) for b in report.get("top_blobs", []) or []]
    got = [r.get("blob_id", "") for r in rows]
    if got != expected:
        return [f"{path.name} does not match top_blobs in {REPORT_JSON}"]
    return []


def main(argv: list[str] | None = None) -> int:
    if argv is None:
        argv = sys.argv[1:]
    ap = argparse.ArgumentParser(description="Sanity-check git-dag-analysis report outputs.")
    ap.add_argument("--report-dir", type=Path, required=True, help="Directory written by `reports --report-dir`.")
    args = ap.parse_args(argv)

    report_path = args.report_dir / REPORT_JSON
    if not report_path.exists():
        raise SystemExit(f"Report not found: {report_path}")

    report = load_json(report_path)
    print(f"== {report.get('repo', args.report_dir)} ==")
    print(
        f"- commits/trees/blobs: {report.get('commit_count', 0)}/{report.get('tree_count', 0)}/{report.get('blob_count', 0)}"
    )
    print(f"- contributing total: {report.get('contributing_total', 0)}")

    warnings = check_report(report)
    blobs_csv = args.report_dir / TOP_BLOBS_CSV
    if blobs_csv.exists():
        warnings.extend(check_blobs_csv(blobs_csv, report))
    else:
        warnings.append(f"missing {blobs_csv}")

    for w in warnings:
        print(f"  [WARN] {w}")
    print("")
    return 0 if not warnings else 1


if __name__ == "__main__":
    raise SystemExit(main(sys.argv[1:]))
