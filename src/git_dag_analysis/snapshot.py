"""
Graph snapshots: a gzip-compressed JSON Lines file holding every parsed
record, so later runs can skip reading and parsing the object store.

    {"format": "git-dag-analysis-snapshot", "version": 1, "id_len": 20, "size_metric": "logical"}
    ["c", id, tree, [parent, ...], size, timestamp]
    ["t", id, size, [[name, mode, child, kind], ...]]
    ["b", id, size]
    ["g", id, target, target_kind, size, name]
    ["u", id]              object listed by the source but unavailable
    ["e", id, reason]      object that failed to parse

Ids are lowercase hex. Tree entry names keep undecodable bytes as lone
surrogates, which the json module escapes on write and restores on read.
"""

from __future__ import annotations

import gzip
import json
import zlib
from pathlib import Path

from .graph import Arena, GraphBuilder
from .models import (
    BlobRecord,
    CommitRecord,
    Diagnostics,
    ObjectKind,
    ObjectParseError,
    ObjectRecord,
    SnapshotIncompatible,
    TagRecord,
    TreeEntry,
    TreeRecord,
)

SNAPSHOT_FORMAT = "git-dag-analysis-snapshot"
SNAPSHOT_VERSION = 1


def _record_row(rec: ObjectRecord) -> list[object]:
    if isinstance(rec, CommitRecord):
        return ["c", rec.id.hex(), rec.tree_id.hex(), [p.hex() for p in rec.parents], rec.size, rec.timestamp]
    if isinstance(rec, TreeRecord):
        entries = [[e.name, e.mode, e.child_id.hex(), e.child_kind.value] for e in rec.entries]
        return ["t", rec.id.hex(), rec.size, entries]
    if isinstance(rec, BlobRecord):
        return ["b", rec.id.hex(), rec.size]
    return ["g", rec.id.hex(), rec.target_id.hex(), rec.target_kind.value, rec.size, rec.name]


def save_snapshot(path: Path, arena: Arena, diagnostics: Diagnostics, *, size_metric: str = "logical") -> int:
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp = path.with_name(path.name + ".tmp")
    rows = 0
    with gzip.open(tmp, "wt", encoding="utf-8", newline="\n") as f:
        header = {"format": SNAPSHOT_FORMAT, "version": SNAPSHOT_VERSION, "id_len": arena.id_len, "size_metric": size_metric}
        f.write(json.dumps(header, sort_keys=True) + "\n")
        for rec in arena.records:
            f.write(json.dumps(_record_row(rec), separators=(",", ":")) + "\n")
            rows += 1
        for oid in sorted(arena.unavailable):
            f.write(json.dumps(["u", oid.hex()]) + "\n")
            rows += 1
        for err in diagnostics.of(ObjectParseError):
            f.write(json.dumps(["e", err.id.hex(), err.reason]) + "\n")
            rows += 1
    tmp.replace(path)
    return rows


def _parse_row(row: list, builder: GraphBuilder) -> None:
    tag = row[0]
    if tag == "c":
        _, oid, tree, parents, size, ts = row
        builder.add_record(
            CommitRecord(
                id=bytes.fromhex(oid),
                tree_id=bytes.fromhex(tree),
                parents=tuple(bytes.fromhex(p) for p in parents),
                size=int(size),
                timestamp=None if ts is None else int(ts),
            )
        )
    elif tag == "t":
        _, oid, size, entries = row
        builder.add_record(
            TreeRecord(
                id=bytes.fromhex(oid),
                size=int(size),
                entries=tuple(
                    TreeEntry(name=str(name), mode=int(mode), child_id=bytes.fromhex(child), child_kind=ObjectKind(kind))
                    for name, mode, child, kind in entries
                ),
            )
        )
    elif tag == "b":
        _, oid, size = row
        builder.add_record(BlobRecord(id=bytes.fromhex(oid), size=int(size)))
    elif tag == "g":
        _, oid, target, target_kind, size, name = row
        builder.add_record(
            TagRecord(
                id=bytes.fromhex(oid),
                target_id=bytes.fromhex(target),
                target_kind=ObjectKind(target_kind),
                size=int(size),
                name=str(name),
            )
        )
    elif tag == "u":
        builder.mark_unavailable(bytes.fromhex(row[1]))
    elif tag == "e":
        builder.add_parse_error(ObjectParseError(id=bytes.fromhex(row[1]), reason=str(row[2])))
    else:
        raise ValueError(f"unknown row type {tag!r}")


def load_snapshot(path: Path, *, size_metric: str | None = None) -> tuple[Arena, Diagnostics]:
    builder = GraphBuilder()
    try:
        with gzip.open(path, "rt", encoding="utf-8") as f:
            header_line = f.readline()
            try:
                header = json.loads(header_line) if header_line.strip() else {}
            except json.JSONDecodeError:
                header = {}
            if not isinstance(header, dict) or header.get("format") != SNAPSHOT_FORMAT:
                raise SnapshotIncompatible(f"{path}: not a {SNAPSHOT_FORMAT} file")
            if header.get("version") != SNAPSHOT_VERSION:
                raise SnapshotIncompatible(
                    f"{path}: snapshot version {header.get('version')!r}, expected {SNAPSHOT_VERSION}"
                )
            if size_metric is not None and header.get("size_metric", "logical") != size_metric:
                raise SnapshotIncompatible(
                    f"{path}: snapshot uses {header.get('size_metric')!r} sizes, this run uses {size_metric!r}"
                )
            for lineno, line in enumerate(f, start=2):
                if not line.strip():
                    continue
                try:
                    _parse_row(json.loads(line), builder)
                except (ValueError, TypeError, KeyError, IndexError) as e:
                    raise SnapshotIncompatible(f"{path}:{lineno}: bad row ({e})") from e
    except (OSError, EOFError, zlib.error, UnicodeDecodeError) as e:
        raise SnapshotIncompatible(f"{path}: unreadable snapshot ({e})") from e
    return builder.finalize()
