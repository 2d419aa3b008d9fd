from __future__ import annotations

from heapq import heappush, heapreplace, nsmallest
from typing import Optional

from .contribution import ContributionStats
from .models import DagReport, Diagnostics, ObjectKind, ObjectRecord, hex_id
from .path_tracker import PathTracker, display_path


def _invert(oid: bytes) -> bytes:
    # Reverses byte order comparison, so a min-heap evicts the larger id first on equal size.
    return bytes(255 - b for b in oid)


def _hex_or_none(oid: Optional[bytes]) -> str | None:
    return hex_id(oid) if oid is not None else None


class ReportAggregator:
    def __init__(self, *, top_blobs: int = 10, top_commits: int = 10, max_samples: int = 20) -> None:
        self.top_blobs_limit = top_blobs
        self.top_commits_limit = top_commits
        self.max_samples = max_samples
        self.largest_tree_id: Optional[bytes] = None
        self.largest_tree_size = 0
        self._blob_heap: list[tuple[int, bytes, bytes]] = []

    def observe(self, record: ObjectRecord) -> None:
        if record.kind is ObjectKind.BLOB:
            self._observe_blob(record.id, record.size)
        elif record.kind is ObjectKind.TREE:
            size = record.size
            if self.largest_tree_id is None or size > self.largest_tree_size or (
                size == self.largest_tree_size and record.id < self.largest_tree_id
            ):
                self.largest_tree_id = record.id
                self.largest_tree_size = size

    def _observe_blob(self, oid: bytes, size: int) -> None:
        if self.top_blobs_limit <= 0:
            return
        entry = (size, _invert(oid), oid)
        if len(self._blob_heap) < self.top_blobs_limit:
            heappush(self._blob_heap, entry)
        elif entry[:2] > self._blob_heap[0][:2]:
            heapreplace(self._blob_heap, entry)

    def top_blobs(self) -> list[tuple[int, bytes]]:
        return sorted(((s, oid) for s, _inv, oid in self._blob_heap), key=lambda t: (-t[0], t[1]))

    def build_report(
        self,
        *,
        repo: str,
        stats: ContributionStats,
        paths: PathTracker,
        diagnostics: Diagnostics,
        contributions: dict[bytes, int],
        ignore_root_path: bool = False,
    ) -> DagReport:
        most = paths.most_trees(ignore_root=ignore_root_path)
        top_commits = nsmallest(self.top_commits_limit, contributions.items(), key=lambda kv: (-kv[1], kv[0]))
        return DagReport(
            repo=repo,
            commit_count=stats.commit_count,
            commit_total_size=stats.commit_total_size,
            largest_commit_id=_hex_or_none(stats.largest_commit_id),
            largest_commit_size=stats.largest_commit_size,
            largest_contributing_id=_hex_or_none(stats.largest_contributing_id),
            largest_contributing_size=stats.largest_contributing_size,
            contributing_total=stats.contributing_total,
            tree_count=stats.tree_count,
            tree_total_size=stats.tree_total_size,
            largest_tree_id=_hex_or_none(self.largest_tree_id),
            largest_tree_size=self.largest_tree_size,
            most_trees_path=display_path(most[0]) if most else None,
            most_trees_count=most[1] if most else 0,
            most_trees_size=most[2] if most else 0,
            blob_count=stats.blob_count,
            blob_total_size=stats.blob_total_size,
            top_blobs=tuple((s, hex_id(oid)) for s, oid in self.top_blobs()),
            tag_count=stats.tag_count,
            tag_total_size=stats.tag_total_size,
            top_commits=tuple((size, hex_id(oid)) for oid, size in top_commits),
            diagnostics=diagnostics.counts(),
            diagnostic_samples=tuple(d.message() for d in diagnostics.items[: self.max_samples]),
            top_blobs_limit=self.top_blobs_limit,
        )
