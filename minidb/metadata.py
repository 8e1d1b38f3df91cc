"""Catalog records describing tables and indexes, and their page encoding."""

from __future__ import annotations

import struct
from dataclasses import dataclass, field

from minidb.disk_manager import PAGE_SIZE

TABLE_METADATA_MAGIC_NUM = 0x5441424C
INDEX_METADATA_MAGIC_NUM = 0x494E4458

_U32 = struct.Struct("<I")
_I32 = struct.Struct("<i")

_KEY_SIZE_BUCKETS = ((8, 16), (24, 32), (56, 64), (120, 128), (248, 256))


def bucket_key_size(raw_size: int) -> int:
    """Round the raw encoded size of an index key up to a supported key size."""
    for limit, size in _KEY_SIZE_BUCKETS:
        if raw_size <= limit:
            return size
    raise ValueError(f"index key of {raw_size} bytes is too large")


class _Reader:
    def __init__(self, data) -> None:
        self._buf = bytes(data)
        self.offset = 0

    def unpack(self, fmt: struct.Struct) -> int:
        try:
            (value,) = fmt.unpack_from(self._buf, self.offset)
        except struct.error as exc:
            raise ValueError("metadata record is truncated") from exc
        self.offset += fmt.size
        return value

    def take(self, length: int) -> bytes:
        end = self.offset + length
        if end > len(self._buf):
            raise ValueError("metadata record is truncated")
        chunk = self._buf[self.offset : end]
        self.offset = end
        return chunk

    def magic(self, expected: int, what: str) -> None:
        if self.unpack(_U32) != expected:
            raise ValueError(f"data holds no {what}")


def _check_fits(size: int, what: str) -> None:
    if size > PAGE_SIZE:
        raise ValueError(f"{what} needs {size} bytes, more than a page")


@dataclass(frozen=True)
class IndexMetadata:
    """An index: its id, name, the table it belongs to and the key columns."""

    index_id: int
    index_name: str
    table_id: int
    key_map: tuple[int, ...] = field(default_factory=tuple)

    def __post_init__(self) -> None:
        object.__setattr__(self, "key_map", tuple(int(i) for i in self.key_map))

    def serialized_size(self) -> int:
        return 4 + 4 + 4 + len(self.index_name.encode("utf-8")) + 4 + 4 + 4 * len(self.key_map)

    def serialize(self) -> bytes:
        """Encode the record; ValueError if it does not fit in a page."""
        _check_fits(self.serialized_size(), "index metadata")
        name = self.index_name.encode("utf-8")
        out = bytearray()
        out += _U32.pack(INDEX_METADATA_MAGIC_NUM)
        out += _U32.pack(self.index_id)
        out += _U32.pack(len(name))
        out += name
        out += _U32.pack(self.table_id)
        out += _U32.pack(len(self.key_map))
        for column in self.key_map:
            out += _U32.pack(column)
        return bytes(out)

    @classmethod
    def deserialize(cls, data) -> IndexMetadata:
        """Decode a record written by serialize; trailing bytes are ignored."""
        reader = _Reader(data)
        reader.magic(INDEX_METADATA_MAGIC_NUM, "index metadata")
        index_id = reader.unpack(_U32)
        name = reader.take(reader.unpack(_U32)).decode("utf-8")
        table_id = reader.unpack(_U32)
        count = reader.unpack(_U32)
        key_map = tuple(reader.unpack(_U32) for _ in range(count))
        return cls(index_id, name, table_id, key_map)


@dataclass(frozen=True)
class TableMetadata:
    """A table: its id, name, first heap page and encoded schema."""

    table_id: int
    table_name: str
    root_page_id: int
    schema: bytes = b""

    def serialized_size(self) -> int:
        return 4 + 4 + 4 + len(self.table_name.encode("utf-8")) + 4 + 4 + len(self.schema)

    def serialize(self) -> bytes:
        """Encode the record; ValueError if it does not fit in a page."""
        _check_fits(self.serialized_size(), "table metadata")
        name = self.table_name.encode("utf-8")
        out = bytearray()
        out += _U32.pack(TABLE_METADATA_MAGIC_NUM)
        out += _U32.pack(self.table_id)
        out += _U32.pack(len(name))
        out += name
        out += _I32.pack(self.root_page_id)
        out += _U32.pack(len(self.schema))
        out += self.schema
        return bytes(out)

    @classmethod
    def deserialize(cls, data) -> TableMetadata:
        """Decode a record written by serialize; trailing bytes are ignored."""
        reader = _Reader(data)
        reader.magic(TABLE_METADATA_MAGIC_NUM, "table metadata")
        table_id = reader.unpack(_U32)
        name = reader.take(reader.unpack(_U32)).decode("utf-8")
        root_page_id = reader.unpack(_I32)
        schema = reader.take(reader.unpack(_U32))
        return cls(table_id, name, root_page_id, schema)