# minidb

Building blocks of a small storage engine, written as plain Python objects
with no dependencies outside the standard library.

## Components

- `minidb.disk_manager.DiskManager`: a paged database file (`PAGE_SIZE` is
  4096 bytes) with a free-page bitmap per extent. It allocates, frees, reads
  and writes pages, and can be used as a context manager; `close()` writes
  the meta page and closes the file.
- `minidb.lru_replacer.LRUReplacer`: picks the least recently unpinned frame
  as the eviction victim.
- `minidb.buffer_pool.BufferPoolManager` and `Page`: caches pages in a fixed
  number of frames. Pages are pinned while in use; dirty pages are written
  back before their frame is reused. `fetch_page` raises `ValueError` for an
  invalid page id, and `fetch_page`/`new_page` raise `RuntimeError` when every
  frame is pinned.
- `minidb.txn`: `RowId`, `Txn`, `IsolationLevel`, `TxnState`, `AbortReason`,
  `TxnAbortError` and `TxnManager`, which begins, commits and aborts
  transactions and releases their locks.
- `minidb.lock_manager.LockManager`: two-phase row locking with shared,
  exclusive and upgrade requests. `detect_deadlocks()` builds a waits-for
  graph and aborts the newest transaction on each cycle, returning their ids;
  `run_cycle_detection()` repeats that every `cycle_detection_interval`
  seconds until `stop_cycle_detection()` is called (run it in its own thread).
- `minidb.index_roots.IndexRootsPage`: records the root page id of each index
  and encodes the records as one page.
- `minidb.bplus_node`: `LeafNode` and `InternalNode`, the nodes of a B+ tree
  with byte-string keys, and `read_node` to decode a page written by their
  `to_bytes()`.
- `minidb.metadata`: `TableMetadata` and `IndexMetadata` records with
  `serialize()`/`deserialize()`, and `bucket_key_size()`, which rounds a raw
  key size up to 16, 32, 64, 128 or 256 bytes (`ValueError` above 248).
- `minidb.catalog_meta.CatalogMeta`: maps table and index ids to the pages
  holding their metadata.

## Installation

```
pip install .
```

To run the tests:

```
pip install .[test]
pytest
```

## Examples

Pages through the buffer pool:

```python
from minidb.disk_manager import DiskManager
from minidb.buffer_pool import BufferPoolManager

with DiskManager("example.db") as disk:
    pool = BufferPoolManager(16, disk)
    page = pool.new_page()
    page.data[:5] = b"hello"
    pool.unpin_page(page.page_id, True)
    pool.flush_page(page.page_id)
    pool.close()
```

Row locks:

```python
from minidb.lock_manager import LockManager
from minidb.txn import RowId, TxnManager

locks = LockManager()
txns = TxnManager(locks)
txn = txns.begin()
locks.lock_shared(txn, RowId(1, 0))
locks.lock_upgrade(txn, RowId(1, 0))
txns.commit(txn)  # releases every lock the transaction holds
```

B+ tree nodes and their page encoding:

```python
from minidb.bplus_node import LeafNode, read_node
from minidb.txn import RowId

leaf = LeafNode(page_id=3, max_size=4)
leaf.insert(b"apple", RowId(10, 0))
leaf.insert(b"pear", RowId(10, 1))
copy = read_node(leaf.to_bytes())
assert copy.lookup(b"pear") == RowId(10, 1)
```

A lock request that must fail raises `minidb.txn.TxnAbortError`, whose
`reason` is an `AbortReason`.

## What it does not do

The package has node pages for a B+ tree but no tree that splits, merges and
searches them across buffer pool pages, and so no index to scan by key. It
has no table heap for rows, no catalog manager that ties the metadata records
to pages, no SQL parser or executor, and no command-line shell.