"""Allocation, reading and writing of fixed-size pages in a database file.

File layout (N = BITMAP_SIZE pages per extent)::

    | Meta Page | Bitmap 1 | Page 1 | ... | Page N | Bitmap 2 | Page N+1 | ... |

The meta page records how many pages are allocated, how many extents exist
and how many pages each extent uses.  Each bitmap page marks which pages of
its extent are in use.
"""

from __future__ import annotations

import struct
import threading
from pathlib import Path

PAGE_SIZE = 4096
INVALID_PAGE_ID = -1
BITMAP_SIZE = PAGE_SIZE * 8

_META_HEADER = struct.Struct("<II")
_EXTENT_COUNT = struct.Struct("<I")
MAX_EXTENTS = (PAGE_SIZE - _META_HEADER.size) // _EXTENT_COUNT.size
MAX_VALID_PAGE_ID = MAX_EXTENTS * BITMAP_SIZE

_META_PHYSICAL_PAGE = 0


class DiskManager:
    """Maps logical page ids onto a single file and tracks which are in use."""

    def __init__(self, db_file) -> None:
        self._path = Path(db_file)
        self._path.parent.mkdir(parents=True, exist_ok=True)
        mode = "r+b" if self._path.exists() else "w+b"
        self._file = open(self._path, mode)
        self._lock = threading.RLock()
        self._closed = False
        self._num_allocated, self._extent_used = self._load_meta()

    # ---------------------------------------------------------------- pages

    def read_page(self, page_id: int) -> bytes:
        """Return the contents of a logical page; never-written pages read as zeros."""
        self._check_page_id(page_id)
        with self._lock:
            return self._read_physical(self._physical_id(page_id))

    def write_page(self, page_id: int, data) -> None:
        """Write up to PAGE_SIZE bytes to a logical page, zero-padding the rest."""
        self._check_page_id(page_id)
        payload = bytes(data)
        if len(payload) > PAGE_SIZE:
            raise ValueError(f"page data is {len(payload)} bytes, more than {PAGE_SIZE}")
        with self._lock:
            self._write_physical(self._physical_id(page_id), payload)

    # ----------------------------------------------------------- allocation

    def allocate_page(self) -> int:
        """Mark the first free page as used and return its logical id."""
        with self._lock:
            extent = next(
                (i for i, used in enumerate(self._extent_used) if used < BITMAP_SIZE),
                len(self._extent_used),
            )
            if extent >= MAX_EXTENTS:
                raise RuntimeError("database file has no free page left")
            if extent == len(self._extent_used):
                self._extent_used.append(0)
            bitmap_page = self._bitmap_physical_id(extent)
            bitmap = bytearray(self._read_physical(bitmap_page))
            byte_index = next(i for i, byte in enumerate(bitmap) if byte != 0xFF)
            byte = bitmap[byte_index]
            bit = next(b for b in range(8) if not (byte >> b) & 1)
            bitmap[byte_index] = byte | (1 << bit)
            self._write_physical(bitmap_page, bitmap)
            self._extent_used[extent] += 1
            self._num_allocated += 1
            return extent * BITMAP_SIZE + byte_index * 8 + bit

    def deallocate_page(self, page_id: int) -> None:
        """Release a logical page; releasing a free page does nothing."""
        self._check_page_id(page_id)
        with self._lock:
            extent, offset = divmod(page_id, BITMAP_SIZE)
            if extent >= len(self._extent_used):
                return
            bitmap_page = self._bitmap_physical_id(extent)
            bitmap = bytearray(self._read_physical(bitmap_page))
            byte_index, bit = divmod(offset, 8)
            if not (bitmap[byte_index] >> bit) & 1:
                return
            bitmap[byte_index] &= ~(1 << bit) & 0xFF
            self._write_physical(bitmap_page, bitmap)
            self._extent_used[extent] -= 1
            self._num_allocated -= 1

    def is_page_free(self, page_id: int) -> bool:
        """Tell whether a logical page is not in use."""
        self._check_page_id(page_id)
        with self._lock:
            extent, offset = divmod(page_id, BITMAP_SIZE)
            if extent >= len(self._extent_used):
                return True
            bitmap = self._read_physical(self._bitmap_physical_id(extent))
            byte_index, bit = divmod(offset, 8)
            return not (bitmap[byte_index] >> bit) & 1

    # ------------------------------------------------------------ lifecycle

    def close(self) -> None:
        """Write the meta page and close the file; closing twice is harmless."""
        with self._lock:
            if self._closed:
                return
            self._save_meta()
            self._file.flush()
            self._file.close()
            self._closed = True

    def __enter__(self) -> DiskManager:
        return self

    def __exit__(self, *args) -> None:
        self.close()

    # -------------------------------------------------------------- helpers

    @staticmethod
    def _check_page_id(page_id: int) -> None:
        if not 0 <= page_id < MAX_VALID_PAGE_ID:
            raise ValueError(f"invalid page id {page_id}")

    @staticmethod
    def _physical_id(page_id: int) -> int:
        return page_id + page_id // BITMAP_SIZE + 2

    @staticmethod
    def _bitmap_physical_id(extent: int) -> int:
        return extent * (BITMAP_SIZE + 1) + 1

    def _read_physical(self, physical_id: int) -> bytes:
        if self._closed:
            raise ValueError("disk manager is closed")
        self._file.seek(physical_id * PAGE_SIZE)
        data = self._file.read(PAGE_SIZE)
        return data.ljust(PAGE_SIZE, b"\0")

    def _write_physical(self, physical_id: int, data) -> None:
        if self._closed:
            raise ValueError("disk manager is closed")
        self._file.seek(physical_id * PAGE_SIZE)
        self._file.write(bytes(data).ljust(PAGE_SIZE, b"\0"))
        self._file.flush()

    def _load_meta(self) -> tuple[int, list[int]]:
        data = self._read_physical(_META_PHYSICAL_PAGE)
        allocated, extents = _META_HEADER.unpack_from(data, 0)
        used = [
            _EXTENT_COUNT.unpack_from(data, _META_HEADER.size + i * _EXTENT_COUNT.size)[0]
            for i in range(extents)
        ]
        return allocated, used

    def _save_meta(self) -> None:
        data = bytearray(PAGE_SIZE)
        _META_HEADER.pack_into(data, 0, self._num_allocated, len(self._extent_used))
        for i, used in enumerate(self._extent_used):
            _EXTENT_COUNT.pack_into(data, _META_HEADER.size + i * _EXTENT_COUNT.size, used)
        self._write_physical(_META_PHYSICAL_PAGE, data)