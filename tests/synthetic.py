from __future__ import annotations

import hashlib

from git_dag_analysis.models import ObjectKind, RawObject

MODE_FILE = 0o100644
MODE_DIR = 0o040000
MODE_GITLINK = 0o160000


def object_id(kind: str, payload: bytes) -> bytes:
    return hashlib.sha1(f"{kind} {len(payload)}\0".encode("ascii") + payload).digest()


class FakeRepo:
    """Builds real git object payloads in memory, in the order they are created."""

    def __init__(self) -> None:
        self.objects: list[RawObject] = []

    def _add(self, kind: ObjectKind, payload: bytes, *, size: int | None = None, keep_payload: bool = True) -> bytes:
        oid = object_id(kind.value, payload)
        if not any(o.id == oid for o in self.objects):
            self.objects.append(
                RawObject(
                    id=oid,
                    kind=kind,
                    size=len(payload) if size is None else size,
                    payload=payload if keep_payload else b"",
                )
            )
        return oid

    def blob(self, data: bytes) -> bytes:
        return self._add(ObjectKind.BLOB, data, keep_payload=False)

    def tree(self, entries: dict[str, bytes | tuple[int, bytes]]) -> bytes:
        payload = b""
        for name in sorted(entries):
            value = entries[name]
            if isinstance(value, tuple):
                mode, child = value
            else:
                mode, child = MODE_FILE, value
            payload += f"{mode:o} {name}".encode("utf-8", "surrogateescape") + b"\0" + child
        return self._add(ObjectKind.TREE, payload)

    def dir(self, child: bytes) -> tuple[int, bytes]:
        return (MODE_DIR, child)

    def commit(self, tree: bytes, parents: tuple[bytes, ...] = (), *, ts: int = 1_700_000_000, msg: str = "c") -> bytes:
        lines = [f"tree {tree.hex()}"]
        lines += [f"parent {p.hex()}" for p in parents]
        lines += [
            f"author A U Thor <a@example.com> {ts} +0000",
            f"committer A U Thor <a@example.com> {ts} +0000",
            "",
            msg,
            "",
        ]
        return self._add(ObjectKind.COMMIT, "\n".join(lines).encode("utf-8"))

    def tag(self, target: bytes, target_kind: ObjectKind, name: str = "v1") -> bytes:
        payload = (
            f"object {target.hex()}\ntype {target_kind.value}\ntag {name}\n"
            f"tagger A U Thor <a@example.com> 1700000000 +0000\n\nrelease\n"
        ).encode("utf-8")
        return self._add(ObjectKind.TAG, payload)

    def size(self, oid: bytes) -> int:
        return next(o.size for o in self.objects if o.id == oid)

    def drop(self, oid: bytes) -> None:
        self.objects = [o for o in self.objects if o.id != oid]
