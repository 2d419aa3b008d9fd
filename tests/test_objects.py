from __future__ import annotations

import pytest

from git_dag_analysis.models import BlobRecord, ObjectKind, RawObject
from git_dag_analysis.objects import decode_object, kind_for_mode, parse_commit, parse_tag, parse_tree

from synthetic import MODE_GITLINK, FakeRepo


def test_parse_commit_reads_tree_parents_and_author_time() -> None:
    repo = FakeRepo()
    tree = repo.tree({})
    p1 = repo.commit(tree, msg="one")
    p2 = repo.commit(tree, msg="two")
    merge = repo.commit(tree, (p1, p2), ts=1_700_000_123)
    raw = repo.objects[-1]

    rec = parse_commit(raw.id, raw.size, raw.payload)

    assert rec.id == merge
    assert rec.tree_id == tree
    assert rec.parents == (p1, p2)
    assert rec.timestamp == 1_700_000_123
    assert rec.size == len(raw.payload)


def test_parse_commit_skips_signature_continuation_lines() -> None:
    tree = "ab" * 20
    payload = (
        f"tree {tree}\n"
        "author A <a@x> 100 +0000\n"
        "committer A <a@x> 100 +0000\n"
        "gpgsig -----BEGIN PGP SIGNATURE-----\n"
        " tree 0000000000000000000000000000000000000000\n"
        " -----END PGP SIGNATURE-----\n"
        "\nmsg\n"
    ).encode()

    rec = parse_commit(b"\x01" * 20, len(payload), payload)

    assert rec.tree_id == bytes.fromhex(tree)
    assert rec.timestamp == 100


@pytest.mark.parametrize(
    "payload,reason",
    [
        (b"author A <a@x> 1 +0000\n\nmsg\n", "missing tree"),
        (b"tree " + b"ab" * 20 + b"\ntree " + b"cd" * 20 + b"\n\n", "duplicate tree"),
        (b"tree abc\n\n", "bad tree id length"),
    ],
)
def test_parse_commit_rejects_bad_headers(payload: bytes, reason: str) -> None:
    with pytest.raises(ValueError, match=reason):
        parse_commit(b"\x01" * 20, len(payload), payload)


def test_parse_tree_entries_and_kinds() -> None:
    repo = FakeRepo()
    blob = repo.blob(b"hello")
    sub = repo.tree({"a.txt": blob})
    module = b"\x07" * 20
    tree = repo.tree({"README": blob, "src": repo.dir(sub), "vendor": (MODE_GITLINK, module)})
    raw = repo.objects[-1]

    rec = parse_tree(tree, raw.size, raw.payload)

    assert [(e.name, e.child_kind) for e in rec.entries] == [
        ("README", ObjectKind.BLOB),
        ("src", ObjectKind.TREE),
        ("vendor", ObjectKind.COMMIT),
    ]
    assert rec.entries[1].child_id == sub
    assert rec.entries[2].child_id == module


def test_parse_tree_keeps_undecodable_names() -> None:
    payload = b"100644 caf\xe9.txt\0" + b"\x02" * 20
    rec = parse_tree(b"\x01" * 20, len(payload), payload)
    assert rec.entries[0].name.encode("utf-8", "surrogateescape") == b"caf\xe9.txt"


@pytest.mark.parametrize(
    "payload",
    [
        b"100644 a.txt\0" + b"\x02" * 5,
        b"10x644 a.txt\0" + b"\x02" * 20,
        b"100644 a/b\0" + b"\x02" * 20,
        b"100644 \0" + b"\x02" * 20,
        b"100644 a.txt",
    ],
)
def test_parse_tree_rejects_malformed_entries(payload: bytes) -> None:
    with pytest.raises(ValueError):
        parse_tree(b"\x01" * 20, len(payload), payload)


def test_empty_tree_has_no_entries() -> None:
    assert parse_tree(b"\x01" * 20, 0, b"").entries == ()


def test_parse_tag_target() -> None:
    repo = FakeRepo()
    commit = repo.commit(repo.tree({}))
    tag = repo.tag(commit, ObjectKind.COMMIT, name="v2.0")
    raw = repo.objects[-1]

    rec = parse_tag(tag, raw.size, raw.payload)

    assert rec.target_id == commit
    assert rec.target_kind is ObjectKind.COMMIT
    assert rec.name == "v2.0"


def test_kind_for_mode() -> None:
    assert kind_for_mode(0o100755) is ObjectKind.BLOB
    assert kind_for_mode(0o120000) is ObjectKind.BLOB
    assert kind_for_mode(0o040000) is ObjectKind.TREE
    assert kind_for_mode(0o160000) is ObjectKind.COMMIT


def test_decode_object_blob_needs_no_payload() -> None:
    rec = decode_object(RawObject(id=b"\x05" * 20, kind=ObjectKind.BLOB, size=42))
    assert rec == BlobRecord(id=b"\x05" * 20, size=42)


def test_decode_object_rejects_odd_id_length_and_negative_size() -> None:
    with pytest.raises(ValueError, match="id length"):
        decode_object(RawObject(id=b"\x05" * 7, kind=ObjectKind.BLOB, size=1))
    with pytest.raises(ValueError, match="negative size"):
        decode_object(RawObject(id=b"\x05" * 20, kind=ObjectKind.BLOB, size=-1))


def test_sha256_ids_are_supported() -> None:
    payload = b"100644 f\0" + b"\x02" * 32
    rec = decode_object(RawObject(id=b"\x01" * 32, kind=ObjectKind.TREE, size=len(payload), payload=payload))
    assert rec.entries[0].child_id == b"\x02" * 32
