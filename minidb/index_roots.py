"""The page that records the root page of every B+ tree index."""

from __future__ import annotations

import struct

from minidb.disk_manager import PAGE_SIZE

_COUNT = struct.Struct("<I")
_ENTRY = struct.Struct("<ii")
MAX_INDEX_ROOTS = (PAGE_SIZE - _COUNT.size) // _ENTRY.size


class IndexRootsPage:
    """Maps index ids to the page ids of their tree roots."""

    def __init__(self) -> None:
        self._roots: dict[int, int] = {}

    def insert(self, index_id: int, root_id: int) -> bool:
        """Add a record; False if the index already has one or the page is full."""
        if index_id in self._roots or len(self._roots) >= MAX_INDEX_ROOTS:
            return False
        self._roots[index_id] = root_id
        return True

    def update(self, index_id: int, root_id: int) -> bool:
        """Change the root of a recorded index; False if it has no record."""
        if index_id not in self._roots:
            return False
        self._roots[index_id] = root_id
        return True

    def delete(self, index_id: int) -> bool:
        """Drop the record of an index; False if it has none."""
        return self._roots.pop(index_id, None) is not None

    def get_root_id(self, index_id: int) -> int | None:
        """Return the root page id of an index, or None if it has no record."""
        return self._roots.get(index_id)

    def __len__(self) -> int:
        return len(self._roots)

    def to_bytes(self) -> bytes:
        """Encode the records as one page."""
        data = bytearray(PAGE_SIZE)
        _COUNT.pack_into(data, 0, len(self._roots))
        for i, (index_id, root_id) in enumerate(self._roots.items()):
            _ENTRY.pack_into(data, _COUNT.size + i * _ENTRY.size, index_id, root_id)
        return bytes(data)

    @classmethod
    def from_bytes(cls, data) -> IndexRootsPage:
        """Decode a page written by to_bytes; an all-zero page holds no records."""
        buf = bytes(data)
        (count,) = _COUNT.unpack_from(buf, 0)
        if count > MAX_INDEX_ROOTS:
            raise ValueError(f"index roots page claims {count} records")
        page = cls()
        for i in range(count):
            index_id, root_id = _ENTRY.unpack_from(buf, _COUNT.size + i * _ENTRY.size)
            page._roots[index_id] = root_id
        return page