"""A fixed-size pool of in-memory page frames backed by a disk manager."""

from __future__ import annotations

import logging
from collections import deque
from dataclasses import dataclass, field

from minidb.disk_manager import INVALID_PAGE_ID, MAX_VALID_PAGE_ID, PAGE_SIZE, DiskManager
from minidb.lru_replacer import LRUReplacer

DEFAULT_BUFFER_POOL_SIZE = 1024

logger = logging.getLogger(__name__)


@dataclass
class Page:
    """A frame of the buffer pool and the page it currently holds."""

    page_id: int = INVALID_PAGE_ID
    pin_count: int = 0
    is_dirty: bool = False
    data: bytearray = field(default_factory=lambda: bytearray(PAGE_SIZE))


class BufferPoolManager:
    """Caches disk pages in frames, evicting unpinned ones in LRU order."""

    def __init__(self, pool_size: int, disk_manager: DiskManager) -> None:
        self.pool_size = pool_size
        self._disk = disk_manager
        self._pages = [Page() for _ in range(pool_size)]
        self._replacer = LRUReplacer(pool_size)
        self._free_frames: deque[int] = deque(range(pool_size))
        self._page_table: dict[int, int] = {}

    def fetch_page(self, page_id: int) -> Page:
        """Return the pinned page, reading it from disk if it is not cached.

        Raises ValueError for an invalid page id and RuntimeError when every
        frame is pinned.
        """
        if not INVALID_PAGE_ID < page_id < MAX_VALID_PAGE_ID:
            raise ValueError(f"invalid page id {page_id}")
        frame_id = self._page_table.get(page_id)
        if frame_id is not None:
            self._replacer.pin(frame_id)
            page = self._pages[frame_id]
            page.pin_count = 1
            return page
        frame_id = self._take_frame()
        page = self._pages[frame_id]
        page.page_id = page_id
        page.pin_count = 1
        page.is_dirty = False
        page.data[:] = self._disk.read_page(page_id)
        self._page_table[page_id] = frame_id
        return page

    def new_page(self) -> Page:
        """Allocate a fresh zeroed page on disk and return it pinned.

        Raises RuntimeError when every frame is pinned.
        """
        frame_id = self._take_frame()
        page_id = self._disk.allocate_page()
        page = self._pages[frame_id]
        page.data[:] = bytes(PAGE_SIZE)
        page.page_id = page_id
        page.pin_count = 1
        page.is_dirty = False
        self._page_table[page_id] = frame_id
        return page

    def delete_page(self, page_id: int) -> bool:
        """Drop a cached page and free it on disk.

        Returns False if the page is pinned, True otherwise (also when the page
        is not cached).
        """
        frame_id = self._page_table.get(page_id)
        if frame_id is None:
            return True
        page = self._pages[frame_id]
        if page.pin_count > 0:
            return False
        del self._page_table[page_id]
        self._replacer.pin(frame_id)
        page.data[:] = bytes(PAGE_SIZE)
        page.page_id = INVALID_PAGE_ID
        page.is_dirty = False
        self._free_frames.append(frame_id)
        self._disk.deallocate_page(page_id)
        return True

    def unpin_page(self, page_id: int, is_dirty: bool) -> bool:
        """Release a pin on a cached page; False if it is not cached or not pinned."""
        frame_id = self._page_table.get(page_id)
        if frame_id is None:
            return False
        page = self._pages[frame_id]
        if page.pin_count == 0:
            return False
        page.pin_count -= 1
        self._replacer.unpin(frame_id)
        page.is_dirty = page.is_dirty or is_dirty
        return True

    def flush_page(self, page_id: int) -> bool:
        """Write a cached page to disk; False if it is not cached."""
        frame_id = self._page_table.get(page_id)
        if frame_id is None:
            return False
        page = self._pages[frame_id]
        self._disk.write_page(page_id, page.data)
        page.is_dirty = False
        return True

    def is_page_free(self, page_id: int) -> bool:
        """Tell whether the disk manager holds the page as unallocated."""
        return self._disk.is_page_free(page_id)

    def check_all_unpinned(self) -> bool:
        """Report whether no frame is pinned, logging each pinned one."""
        all_unpinned = True
        for page in self._pages:
            if page.pin_count != 0:
                all_unpinned = False
                logger.error("page %d pin count: %d", page.page_id, page.pin_count)
        return all_unpinned

    def close(self) -> None:
        """Flush every cached page to disk."""
        for page_id in list(self._page_table):
            self.flush_page(page_id)

    def _take_frame(self) -> int:
        if self._free_frames:
            return self._free_frames.popleft()
        frame_id = self._replacer.victim()
        if frame_id is None:
            raise RuntimeError("buffer pool is full: every frame is pinned")
        page = self._pages[frame_id]
        if page.page_id != INVALID_PAGE_ID:
            self._page_table.pop(page.page_id, None)
            if page.is_dirty:
                self._disk.write_page(page.page_id, page.data)
        page.is_dirty = False
        return frame_id