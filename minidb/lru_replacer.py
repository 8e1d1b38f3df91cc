"""Least-recently-used choice of buffer frames to evict."""

from __future__ import annotations

from collections import OrderedDict


class LRUReplacer:
    """Tracks unpinned frames and hands out the least recently unpinned one."""

    def __init__(self, num_pages: int) -> None:
        self.capacity = num_pages
        # Oldest unpinned frame first, newest last.
        self._frames: OrderedDict[int, None] = OrderedDict()

    def victim(self) -> int | None:
        """Remove and return the least recently unpinned frame, or None if there is none."""
        if not self._frames:
            return None
        frame_id, _ = self._frames.popitem(last=False)
        return frame_id

    def pin(self, frame_id: int) -> None:
        """Take a frame out of consideration for eviction."""
        self._frames.pop(frame_id, None)

    def unpin(self, frame_id: int) -> None:
        """Make a frame a candidate for eviction; a frame already tracked keeps its place."""
        if frame_id in self._frames:
            return
        self._frames[frame_id] = None

    def __len__(self) -> int:
        return len(self._frames)