"""Storage engine building blocks: paged disk file, buffer pool, row locking, B+ tree node pages and catalog metadata."""

__version__ = "0.1.0"