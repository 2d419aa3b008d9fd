from __future__ import annotations

import subprocess
import threading
from pathlib import Path
from typing import IO, Iterator, Optional

from .models import ObjectKind, RawObject

MAX_STDERR_CHARS = 50_000


class GitError(RuntimeError):
    pass


def run_git(args: list[str], cwd: Path, timeout_s: int = 300) -> tuple[int, str, str]:
    proc = subprocess.run(
        ["git", *args],
        cwd=str(cwd),
        capture_output=True,
        text=True,
        timeout=timeout_s,
    )
    return proc.returncode, proc.stdout, proc.stderr


def get_repo_toplevel(candidate: Path) -> Optional[Path]:
    code, out, _ = run_git(["rev-parse", "--show-toplevel"], cwd=candidate)
    if code != 0:
        return None
    try:
        return Path(out.strip()).resolve()
    except OSError:
        return None


class _StderrDrain:
    """Reads a child's stderr on a thread so a chatty git cannot block on a full pipe."""

    def __init__(self, stream: Optional[IO[bytes]]) -> None:
        self._stream = stream
        self._chunks: list[bytes] = []
        self._size = 0
        self._thread: threading.Thread | None = None
        if stream is not None:
            self._thread = threading.Thread(target=self._run, daemon=True)
            self._thread.start()

    def _run(self) -> None:
        assert self._stream is not None
        while True:
            chunk = self._stream.read(8192)
            if not chunk:
                return
            if self._size >= MAX_STDERR_CHARS:
                continue
            take = chunk[: MAX_STDERR_CHARS - self._size]
            self._chunks.append(take)
            self._size += len(take)

    def text(self) -> str:
        if self._thread is not None:
            self._thread.join()
        return b"".join(self._chunks).decode("utf-8", "replace").strip()


def _check_exit(proc: subprocess.Popen, drain: _StderrDrain, what: str) -> None:
    code = proc.wait()
    stderr = drain.text()
    if code != 0:
        raise GitError(f"{what} exited {code}: {stderr[:500]}")


def reachable_ids(repo: Path) -> list[bytes]:
    """Ids of every commit, tree, blob and tag reachable from any ref."""
    cmd = ["git", "rev-list", "--objects", "--all", "--no-object-names"]
    try:
        proc = subprocess.Popen(cmd, cwd=str(repo), stdout=subprocess.PIPE, stderr=subprocess.PIPE)
    except OSError as e:
        raise GitError(f"failed to start git rev-list: {e}") from e
    drain = _StderrDrain(proc.stderr)
    assert proc.stdout is not None
    ids: list[bytes] = []
    completed = False
    try:
        for raw_line in proc.stdout:
            token = raw_line.strip()
            if not token:
                continue
            try:
                ids.append(bytes.fromhex(token.decode("ascii")))
            except ValueError:
                continue
        completed = True
    finally:
        proc.stdout.close()
        if not completed:
            _abandon(proc)
    _check_exit(proc, drain, "git rev-list --objects")
    return ids


def list_objects(repo: Path, *, disk_size: bool = False) -> Iterator[tuple[bytes, ObjectKind, int]]:
    """
    Yield (id, kind, size) for every object reachable from the repository's refs.

    Unreachable leftovers in the object store (reset or amended commits,
    objects waiting for gc) are not listed.
    """
    ids = reachable_ids(repo)
    if not ids:
        return
    size_fmt = "%(objectsize:disk)" if disk_size else "%(objectsize)"
    cmd = ["git", "cat-file", f"--batch-check=%(objectname) %(objecttype) {size_fmt}"]
    try:
        proc = subprocess.Popen(cmd, cwd=str(repo), stdin=subprocess.PIPE, stdout=subprocess.PIPE, stderr=subprocess.PIPE)
    except OSError as e:
        raise GitError(f"failed to start git cat-file: {e}") from e
    drain = _StderrDrain(proc.stderr)
    assert proc.stdin is not None and proc.stdout is not None
    writer = threading.Thread(target=_write_ids, args=(proc.stdin, ids), daemon=True)
    writer.start()
    completed = False
    try:
        for raw_line in proc.stdout:
            parts = raw_line.split()
            # "<id> missing" lines have two fields
            if len(parts) != 3:
                continue
            oid_hex, kind_s, size_s = parts
            try:
                kind = ObjectKind.parse(kind_s.decode("ascii"))
                oid = bytes.fromhex(oid_hex.decode("ascii"))
                size = int(size_s)
            except ValueError:
                continue
            yield oid, kind, size
        completed = True
    finally:
        proc.stdout.close()
        if not completed:
            _abandon(proc)
        writer.join()
    _check_exit(proc, drain, "git cat-file --batch-check")


def _abandon(proc: subprocess.Popen) -> None:
    proc.kill()
    proc.wait()


def _write_ids(stdin: IO[bytes], ids: list[bytes]) -> None:
    try:
        for oid in ids:
            stdin.write(oid.hex().encode("ascii") + b"\n")
    except BrokenPipeError:
        pass
    finally:
        try:
            stdin.close()
        except BrokenPipeError:
            pass


def read_payloads(repo: Path, ids: list[bytes]) -> Iterator[tuple[bytes, Optional[bytes]]]:
    """
    Stream `(id, payload)` for `ids` through one `git cat-file --batch`.

    The payload is None when git reports the object as missing. Ids are
    written from a separate thread while this generator reads replies.
    """
    if not ids:
        return
    try:
        proc = subprocess.Popen(
            ["git", "cat-file", "--batch"],
            cwd=str(repo),
            stdin=subprocess.PIPE,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
        )
    except OSError as e:
        raise GitError(f"failed to start git cat-file: {e}") from e
    drain = _StderrDrain(proc.stderr)
    assert proc.stdin is not None and proc.stdout is not None
    writer = threading.Thread(target=_write_ids, args=(proc.stdin, ids), daemon=True)
    writer.start()

    out = proc.stdout
    completed = False
    try:
        for oid in ids:
            header = out.readline()
            if not header:
                raise GitError(f"git cat-file --batch ended early at {oid.hex()}")
            parts = header.split()
            if len(parts) == 2 and parts[1] == b"missing":
                yield oid, None
                continue
            if len(parts) != 3:
                raise GitError(f"unexpected git cat-file header: {header[:200]!r}")
            size = int(parts[2])
            payload = out.read(size)
            out.read(1)  # trailing newline
            if len(payload) != size:
                raise GitError(f"short read for {oid.hex()}: {len(payload)} of {size} bytes")
            yield oid, payload
        completed = True
    finally:
        out.close()
        if not completed:
            _abandon(proc)
        writer.join()
    _check_exit(proc, drain, "git cat-file --batch")


def iter_git_objects(repo: Path, *, disk_size: bool = False) -> Iterator[RawObject]:
    """
    Object source for the graph builder.

    Blobs are yielded straight from the inventory (only id and size are
    needed). Commits, trees and tags are then read with their payloads.
    `size` is the logical object size, or the packed on-disk size with
    `disk_size=True`; payloads are always the full object content.
    """
    pending: list[tuple[bytes, ObjectKind, int]] = []
    for oid, kind, size in list_objects(repo, disk_size=disk_size):
        if kind is ObjectKind.BLOB:
            yield RawObject(id=oid, kind=kind, size=size)
        else:
            pending.append((oid, kind, size))

    meta = {oid: (kind, size) for oid, kind, size in pending}
    for oid, payload in read_payloads(repo, [oid for oid, _, _ in pending]):
        kind, size = meta[oid]
        if payload is None:
            yield RawObject(id=oid, kind=kind, size=size, missing=True)
        else:
            yield RawObject(id=oid, kind=kind, size=size, payload=payload)
