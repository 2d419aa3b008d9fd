from __future__ import annotations

import argparse
import dataclasses
import json
import os
from pathlib import Path

SIZE_METRICS = ("logical", "disk")


def default_jobs() -> int:
    return max(1, min(8, (os.cpu_count() or 4)))


def load_config(config_path: Path) -> dict:
    if not config_path.exists():
        return {}
    data = json.loads(config_path.read_text(encoding="utf-8"))
    if not isinstance(data, dict):
        raise SystemExit(f"Config must be a JSON object: {config_path}")
    return data


@dataclasses.dataclass(frozen=True)
class AnalysisConfig:
    jobs: int = 1
    queue_size: int = 1024
    top_blobs: int = 10
    top_commits: int = 10
    size_metric: str = "logical"
    most_trees_ignore_root: bool = False
    progress_every: int = 100_000

    @property
    def disk_size(self) -> bool:
        return self.size_metric == "disk"


def resolve_config(config: dict, args: argparse.Namespace | None = None) -> AnalysisConfig:
    """CLI flags win over config.json values, which win over defaults."""
    size_metric = str(config.get("size_metric", "logical") or "logical").strip().lower()
    if size_metric not in SIZE_METRICS:
        size_metric = "logical"

    cfg = AnalysisConfig(
        jobs=int(config.get("jobs", default_jobs())),
        queue_size=int(config.get("queue_size", 1024)),
        top_blobs=int(config.get("top_blobs", 10)),
        top_commits=int(config.get("top_commits", 10)),
        size_metric=size_metric,
        most_trees_ignore_root=bool(config.get("most_trees_ignore_root", False)),
        progress_every=int(config.get("progress_every", 100_000)),
    )
    overrides: dict[str, object] = {}
    if args is not None:
        if getattr(args, "jobs", None):
            overrides["jobs"] = int(args.jobs)
        if getattr(args, "queue_size", None):
            overrides["queue_size"] = int(args.queue_size)
        if getattr(args, "disk_size", False):
            overrides["size_metric"] = "disk"
        if getattr(args, "ignore_root_path", False):
            overrides["most_trees_ignore_root"] = True
    if overrides:
        cfg = dataclasses.replace(cfg, **overrides)
    if cfg.jobs < 1:
        raise SystemExit(f"--jobs must be >= 1, got {cfg.jobs}")
    if cfg.queue_size < 1:
        raise SystemExit(f"--queue-size must be >= 1, got {cfg.queue_size}")
    return cfg
