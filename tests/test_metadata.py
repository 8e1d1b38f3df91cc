import struct

import pytest

from minidb.disk_manager import INVALID_PAGE_ID, PAGE_SIZE
from minidb.metadata import (
    INDEX_METADATA_MAGIC_NUM,
    TABLE_METADATA_MAGIC_NUM,
    IndexMetadata,
    TableMetadata,
    bucket_key_size,
)


def test_index_metadata_round_trip():
    meta = IndexMetadata(4, "index-1", 2, [0, 1])
    assert IndexMetadata.deserialize(meta.serialize()) == meta


def test_index_metadata_size_matches_encoding():
    meta = IndexMetadata(9, "UNIQUE_name_ON_table-1", 3, (2, 0, 1))
    assert len(meta.serialize()) == meta.serialized_size()


def test_index_metadata_starts_with_magic():
    data = IndexMetadata(0, "i", 0, ()).serialize()
    assert data[:4] == struct.pack("<I", INDEX_METADATA_MAGIC_NUM)


def test_index_metadata_ignores_trailing_bytes():
    meta = IndexMetadata(1, "idx", 5, [3])
    page = meta.serialize().ljust(PAGE_SIZE, b"\0")
    assert IndexMetadata.deserialize(page) == meta


def test_index_metadata_bad_magic():
    data = bytearray(IndexMetadata(1, "idx", 5, [3]).serialize())
    data[0] ^= 0xFF
    with pytest.raises(ValueError):
        IndexMetadata.deserialize(data)


def test_index_metadata_truncated():
    data = IndexMetadata(1, "idx", 5, [3, 4]).serialize()
    with pytest.raises(ValueError):
        IndexMetadata.deserialize(data[:-2])


def test_index_metadata_too_large():
    meta = IndexMetadata(1, "x" * PAGE_SIZE, 5, [0])
    with pytest.raises(ValueError):
        meta.serialize()


def test_table_metadata_round_trip():
    meta = TableMetadata(7, "table-1", 12, b"\x01\x02schema")
    assert TableMetadata.deserialize(meta.serialize()) == meta


def test_table_metadata_invalid_root_and_unicode_name():
    meta = TableMetadata(0, "表格", INVALID_PAGE_ID, b"")
    restored = TableMetadata.deserialize(meta.serialize())
    assert restored.root_page_id == INVALID_PAGE_ID
    assert restored.table_name == "表格"


def test_table_metadata_size_and_magic():
    meta = TableMetadata(2, "accounts", 30, b"abc")
    data = meta.serialize()
    assert len(data) == meta.serialized_size()
    assert data[:4] == struct.pack("<I", TABLE_METADATA_MAGIC_NUM)


def test_table_metadata_rejects_index_record():
    with pytest.raises(ValueError):
        TableMetadata.deserialize(IndexMetadata(1, "idx", 5, [3]).serialize())


def test_table_metadata_too_large():
    with pytest.raises(ValueError):
        TableMetadata(1, "t", 2, b"\0" * PAGE_SIZE).serialize()


@pytest.mark.parametrize(
    ("raw", "bucket"),
    [(1, 16), (8, 16), (9, 32), (24, 32), (56, 64), (120, 128), (121, 256), (248, 256)],
)
def test_bucket_key_size(raw, bucket):
    assert bucket_key_size(raw) == bucket


def test_bucket_key_size_too_large():
    with pytest.raises(ValueError):
        bucket_key_size(249)