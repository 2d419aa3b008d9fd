"""
Payload parsers for git commit, tree and tag objects.

The functions here are pure: they take the raw payload returned by
`git cat-file --batch` and return an immutable record, or raise ValueError
with a short reason. They hold no shared state, so the graph builder may
call them from several worker threads at once.
"""

from __future__ import annotations

from .models import (
    BlobRecord,
    CommitRecord,
    ObjectKind,
    ObjectRecord,
    RawObject,
    TagRecord,
    TreeEntry,
    TreeRecord,
)

MODE_TYPE_MASK = 0o170000
MODE_TREE = 0o040000
MODE_GITLINK = 0o160000


def _parse_hex_id(value: bytes, id_len: int, field: str) -> bytes:
    v = value.strip()
    if len(v) != id_len * 2:
        raise ValueError(f"bad {field} id length {len(v)}")
    try:
        return bytes.fromhex(v.decode("ascii"))
    except (UnicodeDecodeError, ValueError):
        raise ValueError(f"bad {field} id {v[:80]!r}") from None


def _header_lines(payload: bytes) -> list[tuple[bytes, bytes]]:
    head, _sep, _body = payload.partition(b"\n\n")
    out: list[tuple[bytes, bytes]] = []
    for line in head.split(b"\n"):
        if not line or line.startswith(b" "):
            # continuation lines of multi-line headers (gpgsig, mergetag)
            continue
        key, _, value = line.partition(b" ")
        out.append((key, value))
    return out


def _author_timestamp(value: bytes) -> int | None:
    # "Name <email> 1700000000 +0100"
    _, sep, tail = value.rpartition(b">")
    if not sep:
        return None
    parts = tail.split()
    if not parts:
        return None
    try:
        return int(parts[0])
    except ValueError:
        return None


def parse_commit(oid: bytes, size: int, payload: bytes) -> CommitRecord:
    id_len = len(oid)
    tree_id: bytes | None = None
    parents: list[bytes] = []
    timestamp: int | None = None
    for key, value in _header_lines(payload):
        if key == b"tree":
            if tree_id is not None:
                raise ValueError("duplicate tree header")
            tree_id = _parse_hex_id(value, id_len, "tree")
        elif key == b"parent":
            parents.append(_parse_hex_id(value, id_len, "parent"))
        elif key == b"author" and timestamp is None:
            timestamp = _author_timestamp(value)
    if tree_id is None:
        raise ValueError("missing tree header")
    return CommitRecord(id=oid, tree_id=tree_id, parents=tuple(parents), size=size, timestamp=timestamp)


def kind_for_mode(mode: int) -> ObjectKind:
    kind_bits = mode & MODE_TYPE_MASK
    if kind_bits == MODE_TREE:
        return ObjectKind.TREE
    if kind_bits == MODE_GITLINK:
        return ObjectKind.COMMIT
    return ObjectKind.BLOB


def parse_tree(oid: bytes, size: int, payload: bytes) -> TreeRecord:
    id_len = len(oid)
    entries: list[TreeEntry] = []
    pos = 0
    end = len(payload)
    while pos < end:
        sp = payload.find(b" ", pos)
        if sp < 0:
            raise ValueError(f"truncated entry at offset {pos}")
        mode_s = payload[pos:sp]
        try:
            mode = int(mode_s, 8)
        except ValueError:
            raise ValueError(f"bad mode {mode_s[:16]!r} at offset {pos}") from None
        nul = payload.find(b"\0", sp + 1)
        if nul < 0:
            raise ValueError(f"unterminated name at offset {sp + 1}")
        name_b = payload[sp + 1 : nul]
        if not name_b or b"/" in name_b:
            raise ValueError(f"bad entry name {name_b[:80]!r}")
        child_id = payload[nul + 1 : nul + 1 + id_len]
        if len(child_id) != id_len:
            raise ValueError(f"truncated id for entry {name_b[:80]!r}")
        entries.append(
            TreeEntry(
                name=name_b.decode("utf-8", "surrogateescape"),
                mode=mode,
                child_id=bytes(child_id),
                child_kind=kind_for_mode(mode),
            )
        )
        pos = nul + 1 + id_len
    return TreeRecord(id=oid, size=size, entries=tuple(entries))


def parse_tag(oid: bytes, size: int, payload: bytes) -> TagRecord:
    target: bytes | None = None
    target_kind: ObjectKind | None = None
    name = ""
    for key, value in _header_lines(payload):
        if key == b"object" and target is None:
            target = _parse_hex_id(value, len(oid), "object")
        elif key == b"type" and target_kind is None:
            target_kind = ObjectKind.parse(value.decode("ascii", "replace"))
        elif key == b"tag" and not name:
            name = value.decode("utf-8", "replace").strip()
    if target is None:
        raise ValueError("missing object header")
    if target_kind is None:
        raise ValueError("missing type header")
    return TagRecord(id=oid, target_id=target, target_kind=target_kind, size=size, name=name)


def decode_object(raw: RawObject) -> ObjectRecord:
    """Turn one raw source record into a typed record (raises ValueError)."""
    if len(raw.id) not in (20, 32):
        raise ValueError(f"unsupported id length {len(raw.id)}")
    if raw.size < 0:
        raise ValueError(f"negative size {raw.size}")
    if raw.kind is ObjectKind.BLOB:
        return BlobRecord(id=raw.id, size=raw.size)
    if raw.kind is ObjectKind.COMMIT:
        return parse_commit(raw.id, raw.size, raw.payload)
    if raw.kind is ObjectKind.TREE:
        return parse_tree(raw.id, raw.size, raw.payload)
    return parse_tag(raw.id, raw.size, raw.payload)
