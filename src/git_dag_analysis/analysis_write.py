from __future__ import annotations

import csv
import json
from pathlib import Path

from .models import DagReport

REPORT_JSON = "report.json"
TOP_BLOBS_CSV = "top_blobs.csv"
TOP_COMMITS_CSV = "top_commits.csv"


def ensure_dir(path: Path) -> None:
    path.mkdir(parents=True, exist_ok=True)


def write_json(path: Path, data: object) -> None:
    path.write_text(json.dumps(data, indent=2, sort_keys=False) + "\n", encoding="utf-8")


def write_top_blobs_csv(path: Path, report: DagReport) -> None:
    with path.open("w", newline="", encoding="utf-8") as f:
        writer = csv.writer(f)
        writer.writerow(["rank", "blob_id", "size"])
        for rank, (size, oid) in enumerate(report.top_blobs, start=1):
            writer.writerow([rank, oid, size])


def write_top_commits_csv(path: Path, report: DagReport) -> None:
    with path.open("w", newline="", encoding="utf-8") as f:
        writer = csv.writer(f)
        writer.writerow(["rank", "commit_id", "contributing_size"])
        for rank, (size, oid) in enumerate(report.top_commits, start=1):
            writer.writerow([rank, oid, size])


def write_report_files(report_dir: Path, report: DagReport) -> list[Path]:
    ensure_dir(report_dir)
    paths = [report_dir / REPORT_JSON, report_dir / TOP_BLOBS_CSV, report_dir / TOP_COMMITS_CSV]
    write_json(paths[0], report.to_dict())
    write_top_blobs_csv(paths[1], report)
    write_top_commits_csv(paths[2], report)
    return paths
