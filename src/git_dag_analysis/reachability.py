from __future__ import annotations

from array import array
from typing import Optional

_MAX_LOAD = 0.7


class ReachabilitySet:
    """
    Set of object ids that have already been attributed, with their sizes.

    Open addressing over flat buffers: keys live back to back in one
    bytearray, sizes in an unsigned 64-bit array and occupancy in a byte
    map. Object ids are uniformly distributed digests, so the first eight
    bytes are used directly as the hash and linear probing is enough.
    """

    def __init__(self, id_len: int = 20, capacity: int = 1024) -> None:
        if id_len <= 8:
            raise ValueError(f"id_len must be > 8, got {id_len}")
        self.id_len = id_len
        cap = 8
        while cap < capacity:
            cap *= 2
        self._alloc(cap)
        self._count = 0
        self._total_size = 0

    def _alloc(self, capacity: int) -> None:
        self._capacity = capacity
        self._mask = capacity - 1
        self._keys = bytearray(capacity * self.id_len)
        self._sizes = array("Q", bytes(8 * capacity))
        self._used = bytearray(capacity)

    def _slot(self, oid: bytes) -> tuple[int, bool]:
        """Return (slot, found) for `oid`; an empty slot when not found."""
        n = self.id_len
        i = int.from_bytes(oid[:8], "little") & self._mask
        keys = self._keys
        used = self._used
        while used[i]:
            off = i * n
            if keys[off : off + n] == oid:
                return i, True
            i = (i + 1) & self._mask
        return i, False

    def _check(self, oid: bytes) -> None:
        if len(oid) != self.id_len:
            raise ValueError(f"expected {self.id_len}-byte id, got {len(oid)}")

    def _grow(self) -> None:
        old_keys, old_sizes, old_used = self._keys, self._sizes, self._used
        n = self.id_len
        self._alloc(self._capacity * 2)
        for i, occupied in enumerate(old_used):
            if not occupied:
                continue
            oid = bytes(old_keys[i * n : (i + 1) * n])
            slot, _ = self._slot(oid)
            self._keys[slot * n : (slot + 1) * n] = oid
            self._sizes[slot] = old_sizes[i]
            self._used[slot] = 1

    def test_and_mark(self, oid: bytes, size: int) -> bool:
        """Mark `oid` as seen; True only the first time it is marked."""
        self._check(oid)
        slot, found = self._slot(oid)
        if found:
            return False
        n = self.id_len
        self._keys[slot * n : (slot + 1) * n] = oid
        self._sizes[slot] = size
        self._used[slot] = 1
        self._count += 1
        self._total_size += size
        if self._count > self._capacity * _MAX_LOAD:
            self._grow()
        return True

    def size_of(self, oid: bytes) -> Optional[int]:
        self._check(oid)
        slot, found = self._slot(oid)
        return self._sizes[slot] if found else None

    def __contains__(self, oid: object) -> bool:
        if not isinstance(oid, (bytes, bytearray)) or len(oid) != self.id_len:
            return False
        return self._slot(bytes(oid))[1]

    def __len__(self) -> int:
        return self._count

    @property
    def total_size(self) -> int:
        return self._total_size

    @property
    def capacity(self) -> int:
        return self._capacity
