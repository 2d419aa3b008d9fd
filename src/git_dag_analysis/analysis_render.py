from __future__ import annotations

from .models import DagReport

SECTIONS = ("commits", "trees", "blobs", "tags", "diagnostics")

RULE = "-" * 72

KB = 1024
MB = 1024 * KB
GB = 1024 * MB


def fmt_int(n: int) -> str:
    return f"{int(n):,}"


def fmt_size(n: int) -> str:
    n = int(n)
    if n >= GB:
        return f"{n / GB:.2f} GB"
    if n >= MB:
        return f"{n / MB:.2f} MB"
    if n >= KB:
        return f"{n / KB:.2f} KB"
    return f"{n} bytes"


def _id_or_dash(oid: str | None) -> str:
    return oid if oid else "-"


def render_commits(report: DagReport) -> list[str]:
    return [
        "Commit Report",
        RULE,
        f"Total Commits: {fmt_int(report.commit_count)}",
        f"Total Commits Size: {fmt_size(report.commit_total_size)}",
        f"Largest Commit Object Size: {fmt_size(report.largest_commit_size)}",
        f"Largest Commit Object Id: {_id_or_dash(report.largest_commit_id)}",
        f"Largest Contributing Commit Size: {fmt_size(report.largest_contributing_size)}",
        f"Largest Contributing Commit Object Id: {_id_or_dash(report.largest_contributing_id)}",
        "Top Contributing Commits:",
        *[f"\tContributing Size: {fmt_size(size)}, Hash: {oid}" for size, oid in report.top_commits],
    ]


def render_trees(report: DagReport) -> list[str]:
    return [
        "Tree Report",
        RULE,
        f"Total Trees: {fmt_int(report.tree_count)}",
        f"Total Trees Size: {fmt_size(report.tree_total_size)}",
        f"Largest Tree Object Size: {fmt_size(report.largest_tree_size)}",
        f"Largest Tree Object Id: {_id_or_dash(report.largest_tree_id)}",
        f"Most Trees at Path: {report.most_trees_path if report.most_trees_path is not None else '-'}",
        f"Count Most Trees at Path: {fmt_int(report.most_trees_count)}",
        f"Most Trees at Path Total Size: {fmt_size(report.most_trees_size)}",
    ]


def render_blobs(report: DagReport) -> list[str]:
    return [
        "Blob Report",
        RULE,
        f"Total Blobs: {fmt_int(report.blob_count)}",
        f"Total Blobs Size: {fmt_size(report.blob_total_size)}",
        f"Top {report.top_blobs_limit} Largest Blobs:",
        *[f"\tBlob Size: {fmt_size(size)}, Hash: {oid}" for size, oid in report.top_blobs],
    ]


def render_tags(report: DagReport) -> list[str]:
    return [
        "Tag Report",
        RULE,
        f"Total Tags: {fmt_int(report.tag_count)}",
        f"Total Tags Size: {fmt_size(report.tag_total_size)}",
    ]


def render_diagnostics(report: DagReport) -> list[str]:
    lines = ["Diagnostics", RULE]
    for label, count in report.diagnostics.items():
        lines.append(f"{label}: {fmt_int(count)}")
    if report.diagnostic_samples:
        lines.append("First diagnostics:")
        lines.extend(f"\t{msg}" for msg in report.diagnostic_samples)
    return lines


_RENDERERS = {
    "commits": render_commits,
    "trees": render_trees,
    "blobs": render_blobs,
    "tags": render_tags,
    "diagnostics": render_diagnostics,
}


def render_report(report: DagReport, sections: list[str] | tuple[str, ...] = SECTIONS) -> str:
    lines: list[str] = [f"Repository: {report.repo}", ""]
    for name in sections:
        lines.extend(_RENDERERS[name](report))
        lines.append("")
    return "\n".join(lines).rstrip("\n") + "\n"
