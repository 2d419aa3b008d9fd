from __future__ import annotations

import queue
import sys
import threading
from collections import Counter
from concurrent.futures import ThreadPoolExecutor
from typing import Iterable, Iterator, Optional

from .models import (
    BlobRecord,
    CommitRecord,
    Diagnostics,
    ObjectKind,
    ObjectParseError,
    ObjectRecord,
    RawObject,
    TagRecord,
    TreeRecord,
)
from .objects import decode_object


class Arena:
    """
    Append-only owner of every parsed record.

    Records are addressed by a dense integer handle; `index` maps an object
    id to its handle. After `finalize()` the records are ordered by id, so
    handles do not depend on the order the object source produced them in.
    """

    def __init__(self) -> None:
        self.records: list[ObjectRecord] = []
        self.index: dict[bytes, int] = {}
        self.unavailable: set[bytes] = set()
        self.id_len: int = 0
        self._counts: dict[ObjectKind, int] = {k: 0 for k in ObjectKind}

    def add(self, record: ObjectRecord) -> int:
        handle = len(self.records)
        self.records.append(record)
        self.index[record.id] = handle
        self._counts[record.kind] += 1
        if not self.id_len:
            self.id_len = len(record.id)
        return handle

    def finalize(self) -> "Arena":
        self.records.sort(key=lambda r: r.id)
        self.index = {r.id: i for i, r in enumerate(self.records)}
        self.unavailable -= self.index.keys()
        return self

    def lookup(self, oid: bytes) -> Optional[ObjectRecord]:
        handle = self.index.get(oid)
        if handle is None:
            return None
        return self.records[handle]

    def _typed(self, oid: bytes, kind: ObjectKind) -> Optional[ObjectRecord]:
        rec = self.lookup(oid)
        if rec is None or rec.kind is not kind:
            return None
        return rec

    def commit(self, oid: bytes) -> Optional[CommitRecord]:
        return self._typed(oid, ObjectKind.COMMIT)  # type: ignore[return-value]

    def tree(self, oid: bytes) -> Optional[TreeRecord]:
        return self._typed(oid, ObjectKind.TREE)  # type: ignore[return-value]

    def blob(self, oid: bytes) -> Optional[BlobRecord]:
        return self._typed(oid, ObjectKind.BLOB)  # type: ignore[return-value]

    def tag(self, oid: bytes) -> Optional[TagRecord]:
        return self._typed(oid, ObjectKind.TAG)  # type: ignore[return-value]

    def iter_kind(self, kind: ObjectKind) -> Iterator[ObjectRecord]:
        return (r for r in self.records if r.kind is kind)

    def commits(self) -> Iterator[CommitRecord]:
        return self.iter_kind(ObjectKind.COMMIT)  # type: ignore[return-value]

    def tags(self) -> Iterator[TagRecord]:
        return self.iter_kind(ObjectKind.TAG)  # type: ignore[return-value]

    def count(self, kind: ObjectKind) -> int:
        return self._counts[kind]

    def __len__(self) -> int:
        return len(self.records)

    def __contains__(self, oid: object) -> bool:
        return oid in self.index


class GraphBuilder:
    """
    Collects decoded records and settles them in `finalize()`.

    Nothing decided here depends on the order records arrive in: an id
    that shows up with two different records is dropped entirely, and the
    id width is the one most records share.
    """

    def __init__(self) -> None:
        self.diagnostics = Diagnostics()
        self._records: dict[bytes, ObjectRecord] = {}
        self._conflicts: dict[bytes, set[ObjectRecord]] = {}
        self._unavailable: set[bytes] = set()
        self._arena: Optional[Arena] = None

    def add_raw(self, raw: RawObject) -> None:
        if raw.missing:
            self.mark_unavailable(raw.id)
            return
        try:
            record = decode_object(raw)
        except ValueError as e:
            self.add_parse_error(ObjectParseError(id=raw.id, reason=str(e)))
            return
        self.add_record(record)

    def mark_unavailable(self, oid: bytes) -> None:
        self._unavailable.add(oid)

    def add_parse_error(self, err: ObjectParseError) -> None:
        self.diagnostics.add(err)

    def add_record(self, record: ObjectRecord) -> None:
        if self._arena is not None:
            raise RuntimeError("graph already finalized")
        oid = record.id
        if oid in self._conflicts:
            self._conflicts[oid].add(record)
            return
        existing = self._records.get(oid)
        if existing is None:
            self._records[oid] = record
        elif existing != record:
            del self._records[oid]
            self._conflicts[oid] = {existing, record}

    def finalize(self) -> tuple[Arena, Diagnostics]:
        if self._arena is not None:
            return self._arena, self.diagnostics

        arena = Arena()
        widths = Counter(len(oid) for oid in self._records)
        # most common width wins, the narrower one on a tie
        arena.id_len = min(widths, key=lambda n: (-widths[n], n)) if widths else 0
        for oid in sorted(self._records):
            if len(oid) != arena.id_len:
                self.add_parse_error(ObjectParseError(id=oid, reason=f"id length {len(oid)} differs from {arena.id_len}"))
                continue
            arena.add(self._records[oid])
        for oid, records in self._conflicts.items():
            kinds = ", ".join(sorted({r.kind.value for r in records}))
            self.add_parse_error(ObjectParseError(id=oid, reason=f"{len(records)} different records for one id ({kinds})"))
        arena.unavailable = set(self._unavailable)
        arena.finalize()
        # parse errors are reported in id order so counts and listings are stable
        self.diagnostics.items.sort(key=lambda d: (d.id, d.reason))  # type: ignore[union-attr]
        self._arena = arena
        return arena, self.diagnostics


_DONE = object()


def _feed(objects: Iterable[RawObject], in_q: "queue.Queue[object]", workers: int, stop: threading.Event) -> int:
    fed = 0
    try:
        for raw in objects:
            if stop.is_set():
                break
            in_q.put(raw)
            fed += 1
    finally:
        for _ in range(workers):
            in_q.put(_DONE)
    return fed


def _decode_worker(in_q: "queue.Queue[object]", out_q: "queue.Queue[object]") -> None:
    try:
        while True:
            item = in_q.get()
            if item is _DONE:
                return
            raw: RawObject = item  # type: ignore[assignment]
            if raw.missing:
                out_q.put(raw)
                continue
            try:
                out_q.put(decode_object(raw))
            except ValueError as e:
                out_q.put(ObjectParseError(id=raw.id, reason=str(e)))
    finally:
        out_q.put(_DONE)


def build_graph(
    objects: Iterable[RawObject],
    *,
    jobs: int = 1,
    queue_size: int = 1024,
    progress_every: int = 0,
) -> tuple[Arena, Diagnostics]:
    builder = GraphBuilder()
    seen = 0

    def tick() -> None:
        nonlocal seen
        seen += 1
        if progress_every and seen % progress_every == 0:
            print(f"Decoded {seen:,} objects...")

    if jobs <= 1:
        for raw in objects:
            builder.add_raw(raw)
            tick()
        return builder.finalize()

    in_q: queue.Queue[object] = queue.Queue(maxsize=max(1, queue_size))
    out_q: queue.Queue[object] = queue.Queue(maxsize=max(1, queue_size))
    stop = threading.Event()
    with ThreadPoolExecutor(max_workers=jobs + 1) as ex:
        feeder = ex.submit(_feed, objects, in_q, jobs, stop)
        decoders = [ex.submit(_decode_worker, in_q, out_q) for _ in range(jobs)]

        remaining = jobs
        try:
            while remaining:
                item = out_q.get()
                if item is _DONE:
                    remaining -= 1
                    continue
                if isinstance(item, ObjectParseError):
                    builder.add_parse_error(item)
                elif isinstance(item, RawObject):
                    builder.mark_unavailable(item.id)
                else:
                    builder.add_record(item)  # type: ignore[arg-type]
                tick()
        except BaseException:
            stop.set()
            print("Graph build interrupted; dropping pending records.", file=sys.stderr)
            # workers only exit once their results are taken off the queue
            while remaining:
                if out_q.get() is _DONE:
                    remaining -= 1
            raise
        for fut in decoders:
            fut.result()
        # re-raises an error from the object source
        feeder.result()

    return builder.finalize()
