"""The catalog's own record: where each table's and index's metadata lives."""

from __future__ import annotations

import struct
from dataclasses import dataclass, field

from minidb.disk_manager import PAGE_SIZE

CATALOG_METADATA_MAGIC_NUM = 89849

_HEADER = struct.Struct("<III")
_ENTRY = struct.Struct("<Ii")


@dataclass
class CatalogMeta:
    """Maps table ids and index ids to the pages holding their metadata."""

    table_meta_pages: dict[int, int] = field(default_factory=dict)
    index_meta_pages: dict[int, int] = field(default_factory=dict)

    def serialized_size(self) -> int:
        return _HEADER.size + _ENTRY.size * (len(self.table_meta_pages) + len(self.index_meta_pages))

    def serialize(self) -> bytes:
        """Encode the record, entries in id order; ValueError if it does not fit in a page."""
        size = self.serialized_size()
        if size > PAGE_SIZE:
            raise ValueError(f"catalog metadata needs {size} bytes, more than a page")
        out = bytearray(
            _HEADER.pack(CATALOG_METADATA_MAGIC_NUM, len(self.table_meta_pages), len(self.index_meta_pages))
        )
        for mapping in (self.table_meta_pages, self.index_meta_pages):
            for object_id, page_id in sorted(mapping.items()):
                out += _ENTRY.pack(object_id, page_id)
        return bytes(out)

    @classmethod
    def deserialize(cls, data) -> CatalogMeta:
        """Decode a record written by serialize; trailing bytes are ignored."""
        buf = bytes(data)
        try:
            magic, table_count, index_count = _HEADER.unpack_from(buf, 0)
        except struct.error as exc:
            raise ValueError("catalog metadata is truncated") from exc
        if magic != CATALOG_METADATA_MAGIC_NUM:
            raise ValueError("data holds no catalog metadata")
        meta = cls()
        offset = _HEADER.size
        for mapping, count in ((meta.table_meta_pages, table_count), (meta.index_meta_pages, index_count)):
            for _ in range(count):
                try:
                    object_id, page_id = _ENTRY.unpack_from(buf, offset)
                except struct.error as exc:
                    raise ValueError("catalog metadata is truncated") from exc
                offset += _ENTRY.size
                mapping.setdefault(object_id, page_id)
        return meta

    def next_table_id(self) -> int:
        """Return the largest table id recorded, or 0 when there is none."""
        return max(self.table_meta_pages, default=0)

    def next_index_id(self) -> int:
        """Return the largest index id recorded, or 0 when there is none."""
        return max(self.index_meta_pages, default=0)