"""
Marginal size attribution over the commit graph.

Commits are visited parents-first. Every tree and blob is attributed to the
first commit (in that order) whose root tree reaches it, so the sum of all
contributing sizes equals the size of every distinct commit, tree and blob
reachable from history, with nothing counted twice.
"""

from __future__ import annotations

import dataclasses
import threading
from collections import defaultdict
from heapq import heapify, heappop, heappush
from typing import Callable, Optional

from .graph import Arena
from .models import (
    AnalysisCancelled,
    AnalysisError,
    CommitRecord,
    CycleDetected,
    DanglingReference,
    Diagnostics,
    ObjectKind,
    ObjectRecord,
    TreeRecord,
)
from .path_tracker import ROOT_PATH, PathTracker, join_path
from .reachability import ReachabilitySet


@dataclasses.dataclass
class ContributionStats:
    commit_count: int = 0
    commit_total_size: int = 0
    largest_commit_id: Optional[bytes] = None
    largest_commit_size: int = 0
    largest_contributing_id: Optional[bytes] = None
    largest_contributing_size: int = 0
    tree_count: int = 0
    tree_total_size: int = 0
    blob_count: int = 0
    blob_total_size: int = 0
    tag_count: int = 0
    tag_total_size: int = 0
    contributing_total: int = 0


def _beats(size: int, oid: bytes, best_size: int, best_id: Optional[bytes]) -> bool:
    if best_id is None or size > best_size:
        return True
    return size == best_size and oid < best_id


def _missing_reason(arena: Arena, oid: bytes) -> str:
    if arena.lookup(oid) is not None:
        return "kind mismatch"
    if oid in arena.unavailable:
        return "unavailable"
    return "missing"


def _order_key(commit: CommitRecord) -> tuple[int, bytes]:
    return (commit.timestamp if commit.timestamp is not None else 0, commit.id)


def topological_order(arena: Arena, diagnostics: Diagnostics) -> list[CommitRecord]:
    """
    Order commits so that every parent precedes its children.

    Among commits whose parents are all done, the oldest author timestamp
    goes first, then the smallest id. Parents that are not commits in the
    graph (shallow history) are reported and ignored for ordering.
    """
    commits = list(arena.commits())
    if not commits:
        raise AnalysisError("no commits in object graph")

    pending: dict[bytes, int] = {}
    children: dict[bytes, list[bytes]] = defaultdict(list)
    for c in commits:
        parents: list[bytes] = []
        for p in dict.fromkeys(c.parents):
            if arena.commit(p) is None:
                diagnostics.add(
                    DanglingReference(from_id=c.id, to_id=p, expected_kind=ObjectKind.COMMIT, reason=_missing_reason(arena, p))
                )
                continue
            parents.append(p)
        pending[c.id] = len(parents)
        for p in parents:
            children[p].append(c.id)

    heap = [_order_key(c) for c in commits if pending[c.id] == 0]
    heapify(heap)
    order: list[CommitRecord] = []
    while heap:
        _, oid = heappop(heap)
        commit = arena.commit(oid)
        assert commit is not None
        order.append(commit)
        for child in children.get(oid, ()):
            pending[child] -= 1
            if pending[child] == 0:
                child_rec = arena.commit(child)
                assert child_rec is not None
                heappush(heap, _order_key(child_rec))

    if len(order) < len(commits):
        stuck = tuple(sorted(oid for oid, n in pending.items() if n > 0))
        diagnostics.add(CycleDetected(ids=stuck))
    if not order:
        raise AnalysisError("no commit can be ordered: every commit is part of or behind a cycle")
    return order


class ContributionAnalyzer:
    def __init__(
        self,
        arena: Arena,
        *,
        diagnostics: Optional[Diagnostics] = None,
        reachability: Optional[ReachabilitySet] = None,
        paths: Optional[PathTracker] = None,
        on_new_object: Optional[Callable[[ObjectRecord], None]] = None,
        progress_every: int = 0,
    ) -> None:
        self.arena = arena
        self.diagnostics = diagnostics if diagnostics is not None else Diagnostics()
        id_len = arena.id_len or 20
        self.reachability = reachability if reachability is not None else ReachabilitySet(id_len=id_len, capacity=max(1024, len(arena)))
        self.paths = paths if paths is not None else PathTracker()
        self.on_new_object = on_new_object
        self.progress_every = progress_every
        self.stats = ContributionStats()
        self.contributions: dict[bytes, int] = {}
        self.order: list[bytes] = []
        self._dangling_edges: set[tuple[bytes, bytes]] = set()
        self._ran = False

    def run(self, *, cancel: Optional[threading.Event] = None) -> ContributionStats:
        if self._ran:
            raise RuntimeError("analyzer already ran; create a new one per run")
        self._ran = True

        order = topological_order(self.arena, self.diagnostics)
        total = len(order)
        for i, commit in enumerate(order, start=1):
            if cancel is not None and cancel.is_set():
                raise AnalysisCancelled(f"cancelled after {i - 1} of {total} commits")
            self._process_commit(commit)
            if self.progress_every and (i % self.progress_every == 0 or i == total):
                print(f"Analyzed {i:,}/{total:,} commits...")

        self._process_tags()
        return self.stats

    def _resolve(self, from_id: bytes, to_id: bytes, expected: ObjectKind) -> Optional[ObjectRecord]:
        rec = self.arena.lookup(to_id)
        if rec is not None and rec.kind is expected:
            return rec
        edge = (from_id, to_id)
        if edge not in self._dangling_edges:
            self._dangling_edges.add(edge)
            self.diagnostics.add(
                DanglingReference(from_id=from_id, to_id=to_id, expected_kind=expected, reason=_missing_reason(self.arena, to_id))
            )
        return None

    def _emit(self, record: ObjectRecord) -> None:
        if self.on_new_object is not None:
            self.on_new_object(record)

    def _process_commit(self, commit: CommitRecord) -> None:
        st = self.stats
        self.reachability.test_and_mark(commit.id, commit.size)
        contributing = commit.size + self._walk(commit)

        st.commit_count += 1
        st.commit_total_size += commit.size
        st.contributing_total += contributing
        if _beats(commit.size, commit.id, st.largest_commit_size, st.largest_commit_id):
            st.largest_commit_id = commit.id
            st.largest_commit_size = commit.size
        if _beats(contributing, commit.id, st.largest_contributing_size, st.largest_contributing_id):
            st.largest_contributing_id = commit.id
            st.largest_contributing_size = contributing
        self.contributions[commit.id] = contributing
        self.order.append(commit.id)

    def _visit_tree(self, tree: TreeRecord, path: str, stack: list[tuple[TreeRecord, str]]) -> int:
        new_content = self.reachability.test_and_mark(tree.id, tree.size)
        new_path = self.paths.record(path, tree.id, tree.size)
        if new_content or new_path:
            stack.append((tree, path))
        if not new_content:
            return 0
        self.stats.tree_count += 1
        self.stats.tree_total_size += tree.size
        self._emit(tree)
        return tree.size

    def _walk(self, commit: CommitRecord) -> int:
        root = self._resolve(commit.id, commit.tree_id, ObjectKind.TREE)
        if root is None:
            return 0
        stack: list[tuple[TreeRecord, str]] = []
        added = self._visit_tree(root, ROOT_PATH, stack)  # type: ignore[arg-type]
        while stack:
            tree, path = stack.pop()
            for entry in tree.entries:
                if entry.child_kind is ObjectKind.COMMIT:
                    # gitlink: the commit lives in another repository
                    continue
                child = self._resolve(tree.id, entry.child_id, entry.child_kind)
                if child is None:
                    continue
                if entry.child_kind is ObjectKind.TREE:
                    added += self._visit_tree(child, join_path(path, entry.name), stack)  # type: ignore[arg-type]
                elif self.reachability.test_and_mark(child.id, child.size):
                    added += child.size
                    self.stats.blob_count += 1
                    self.stats.blob_total_size += child.size
                    self._emit(child)
        return added

    def _process_tags(self) -> None:
        for tag in self.arena.tags():
            self._resolve(tag.id, tag.target_id, tag.target_kind)
            self.stats.tag_count += 1
            self.stats.tag_total_size += tag.size
            self._emit(tag)
