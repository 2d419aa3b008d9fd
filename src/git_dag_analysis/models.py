from __future__ import annotations

import dataclasses
import enum
from typing import ClassVar, Optional


class ObjectKind(enum.Enum):
    COMMIT = "commit"
    TREE = "tree"
    BLOB = "blob"
    TAG = "tag"

    @classmethod
    def parse(cls, name: str) -> "ObjectKind":
        try:
            return cls(name.strip().lower())
        except ValueError:
            raise ValueError(f"unknown object kind: {name!r}") from None


def hex_id(oid: bytes) -> str:
    return oid.hex()


@dataclasses.dataclass(frozen=True)
class RawObject:
    id: bytes
    kind: ObjectKind
    size: int
    payload: bytes = b""
    missing: bool = False


@dataclasses.dataclass(frozen=True)
class CommitRecord:
    id: bytes
    tree_id: bytes
    parents: tuple[bytes, ...]
    size: int
    timestamp: Optional[int] = None

    kind: ClassVar[ObjectKind] = ObjectKind.COMMIT


@dataclasses.dataclass(frozen=True)
class TreeEntry:
    name: str
    mode: int
    child_id: bytes
    child_kind: ObjectKind


@dataclasses.dataclass(frozen=True)
class TreeRecord:
    id: bytes
    size: int
    entries: tuple[TreeEntry, ...]

    kind: ClassVar[ObjectKind] = ObjectKind.TREE


@dataclasses.dataclass(frozen=True)
class BlobRecord:
    id: bytes
    size: int

    kind: ClassVar[ObjectKind] = ObjectKind.BLOB


@dataclasses.dataclass(frozen=True)
class TagRecord:
    id: bytes
    target_id: bytes
    target_kind: ObjectKind
    size: int
    name: str = ""

    kind: ClassVar[ObjectKind] = ObjectKind.TAG


ObjectRecord = CommitRecord | TreeRecord | BlobRecord | TagRecord


@dataclasses.dataclass(frozen=True)
class ObjectParseError:
    id: bytes
    reason: str

    label: ClassVar[str] = "object_parse_error"

    def message(self) -> str:
        return f"cannot parse {hex_id(self.id)}: {self.reason}"


@dataclasses.dataclass(frozen=True)
class DanglingReference:
    from_id: bytes
    to_id: bytes
    expected_kind: ObjectKind
    reason: str = "missing"  # missing | unavailable | kind mismatch

    label: ClassVar[str] = "dangling_reference"

    def message(self) -> str:
        return f"{hex_id(self.from_id)} -> {hex_id(self.to_id)}: {self.reason} {self.expected_kind.value}"


@dataclasses.dataclass(frozen=True)
class CycleDetected:
    ids: tuple[bytes, ...]

    label: ClassVar[str] = "cycle_detected"

    def message(self) -> str:
        head = ", ".join(hex_id(i) for i in self.ids[:3])
        more = "" if len(self.ids) <= 3 else f" (+{len(self.ids) - 3} more)"
        return f"commit cycle excluded from ordering: {head}{more}"


Diagnostic = ObjectParseError | DanglingReference | CycleDetected

DIAGNOSTIC_LABELS: tuple[str, ...] = (
    ObjectParseError.label,
    DanglingReference.label,
    CycleDetected.label,
)


class Diagnostics:
    def __init__(self) -> None:
        self.items: list[Diagnostic] = []

    def add(self, diag: Diagnostic) -> None:
        self.items.append(diag)

    def extend(self, other: "Diagnostics") -> None:
        self.items.extend(other.items)

    def of(self, cls: type) -> list:
        return [d for d in self.items if isinstance(d, cls)]

    def counts(self) -> dict[str, int]:
        out = {label: 0 for label in DIAGNOSTIC_LABELS}
        for d in self.items:
            out[d.label] += 1
        return out

    def __len__(self) -> int:
        return len(self.items)


@dataclasses.dataclass(frozen=True)
class DagReport:
    repo: str
    commit_count: int
    commit_total_size: int
    largest_commit_id: str | None
    largest_commit_size: int
    largest_contributing_id: str | None
    largest_contributing_size: int
    contributing_total: int
    tree_count: int
    tree_total_size: int
    largest_tree_id: str | None
    largest_tree_size: int
    most_trees_path: str | None
    most_trees_count: int
    most_trees_size: int
    blob_count: int
    blob_total_size: int
    top_blobs: tuple[tuple[int, str], ...]  # (size, id)
    tag_count: int
    tag_total_size: int
    top_commits: tuple[tuple[int, str], ...]  # (contributing size, id)
    diagnostics: dict[str, int]
    diagnostic_samples: tuple[str, ...] = ()
    top_blobs_limit: int = 10

    @property
    def diagnostics_total(self) -> int:
        return sum(self.diagnostics.values())

    def to_dict(self) -> dict[str, object]:
        data = dataclasses.asdict(self)
        data["top_blobs"] = [{"size": s, "id": i} for s, i in self.top_blobs]
        data["top_commits"] = [{"contributing_size": s, "id": i} for s, i in self.top_commits]
        data["diagnostic_samples"] = list(self.diagnostic_samples)
        return data


class AnalysisError(RuntimeError):
    pass


class AnalysisCancelled(AnalysisError):
    pass


class SnapshotIncompatible(Exception):
    pass
