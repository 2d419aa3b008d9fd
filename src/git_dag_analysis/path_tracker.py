from __future__ import annotations

import dataclasses
from typing import Optional

ROOT_PATH = ""


@dataclasses.dataclass
class PathStats:
    tree_count: int = 0
    total_size: int = 0


def join_path(parent: str, name: str) -> str:
    if not parent:
        return name
    return f"{parent}/{name}"


def display_path(path: str) -> str:
    if path == ROOT_PATH:
        return "(root)"
    return path.encode("utf-8", "surrogateescape").decode("utf-8", "backslashreplace")


class PathTracker:
    """
    Counts distinct tree ids per path across all commit walks.

    The same tree id recurring at the same path is counted once; the same
    tree id showing up under another path (rename, copy) counts there too.
    """

    def __init__(self) -> None:
        self._seen: set[tuple[str, bytes]] = set()
        self._paths: dict[str, PathStats] = {}

    def record(self, path: str, tree_id: bytes, size: int) -> bool:
        key = (path, tree_id)
        if key in self._seen:
            return False
        self._seen.add(key)
        st = self._paths.get(path)
        if st is None:
            st = PathStats()
            self._paths[path] = st
        st.tree_count += 1
        st.total_size += size
        return True

    def stats(self, path: str) -> Optional[PathStats]:
        return self._paths.get(path)

    def most_trees(self, *, ignore_root: bool = False) -> Optional[tuple[str, int, int]]:
        best: Optional[tuple[str, PathStats]] = None
        for path, st in self._paths.items():
            if ignore_root and path == ROOT_PATH:
                continue
            if best is None:
                best = (path, st)
                continue
            b_path, b_st = best
            if (st.tree_count, st.total_size) > (b_st.tree_count, b_st.total_size):
                best = (path, st)
            elif (st.tree_count, st.total_size) == (b_st.tree_count, b_st.total_size) and path < b_path:
                best = (path, st)
        if best is None:
            return None
        return best[0], best[1].tree_count, best[1].total_size

    @property
    def pair_count(self) -> int:
        return len(self._seen)

    def __len__(self) -> int:
        return len(self._paths)
