"""Leaf and internal nodes of a B+ tree and their page encoding.

Keys are byte strings compared lexicographically.  Leaf values are row ids;
internal values are child page ids.  The key in slot 0 of an internal node
is unused.

Page layout::

    | type (u8) | page id | parent id | max size | size | [next page id] | entries |

Each entry is a key length (u16), the key bytes and the value.
"""

from __future__ import annotations

import bisect
import struct

from minidb.disk_manager import INVALID_PAGE_ID, PAGE_SIZE
from minidb.txn import RowId

LEAF_PAGE = 1
INTERNAL_PAGE = 2

_HEADER = struct.Struct("<Biiii")
_NEXT = struct.Struct("<i")
_KEY_LEN = struct.Struct("<H")
_ROW_ID = struct.Struct("<iI")
_CHILD = struct.Struct("<i")


def _pack_key(out: bytearray, key: bytes) -> None:
    out += _KEY_LEN.pack(len(key))
    out += key


def _unpack_key(buf: bytes, offset: int) -> tuple[bytes, int]:
    (length,) = _KEY_LEN.unpack_from(buf, offset)
    offset += _KEY_LEN.size
    return buf[offset : offset + length], offset + length


def _finish(out: bytearray) -> bytes:
    if len(out) > PAGE_SIZE:
        raise ValueError(f"node needs {len(out)} bytes, more than a page")
    return bytes(out.ljust(PAGE_SIZE, b"\0"))


class LeafNode:
    """A sorted run of keys and the row ids they point to."""

    def __init__(self, page_id: int, parent_id: int = INVALID_PAGE_ID, max_size: int = 0) -> None:
        self.page_id = page_id
        self.parent_id = parent_id
        self.max_size = max_size
        self.next_page_id = INVALID_PAGE_ID
        self.keys: list[bytes] = []
        self.values: list[RowId] = []

    @property
    def size(self) -> int:
        return len(self.keys)

    @property
    def is_leaf(self) -> bool:
        return True

    @property
    def is_root(self) -> bool:
        return self.parent_id == INVALID_PAGE_ID

    def key_index(self, key: bytes) -> int:
        """Return the index of the first key not less than the given one."""
        return bisect.bisect_left(self.keys, key)

    def lookup(self, key: bytes) -> RowId | None:
        """Return the row id stored under key, or None."""
        i = self.key_index(key)
        if i < len(self.keys) and self.keys[i] == key:
            return self.values[i]
        return None

    def insert(self, key: bytes, value: RowId) -> int:
        """Insert in key order and return the new size; a present key is left alone."""
        i = self.key_index(key)
        if i < len(self.keys) and self.keys[i] == key:
            return self.size
        self.keys.insert(i, key)
        self.values.insert(i, value)
        return self.size

    def remove(self, key: bytes) -> int:
        """Delete the record with key if present and return the size afterwards."""
        i = self.key_index(key)
        if i < len(self.keys) and self.keys[i] == key:
            del self.keys[i]
            del self.values[i]
        return self.size

    def move_half_to(self, other: LeafNode) -> None:
        """Move the upper half of the records to the end of another leaf."""
        half = self.size // 2
        other.keys.extend(self.keys[half:])
        other.values.extend(self.values[half:])
        del self.keys[half:]
        del self.values[half:]

    def min_size(self) -> int:
        return self.max_size // 2

    def to_bytes(self) -> bytes:
        out = bytearray(_HEADER.pack(LEAF_PAGE, self.page_id, self.parent_id, self.max_size, self.size))
        out += _NEXT.pack(self.next_page_id)
        for key, rid in zip(self.keys, self.values):
            _pack_key(out, key)
            out += _ROW_ID.pack(rid.page_id, rid.slot_num)
        return _finish(out)


class InternalNode:
    """Separator keys and the child pages between them."""

    def __init__(self, page_id: int, parent_id: int = INVALID_PAGE_ID, max_size: int = 0) -> None:
        self.page_id = page_id
        self.parent_id = parent_id
        self.max_size = max_size
        self.keys: list[bytes] = []
        self.children: list[int] = []

    @property
    def size(self) -> int:
        return len(self.children)

    @property
    def is_leaf(self) -> bool:
        return False

    @property
    def is_root(self) -> bool:
        return self.parent_id == INVALID_PAGE_ID

    def lookup(self, key: bytes) -> int:
        """Return the child page whose range holds key."""
        if not self.children:
            raise LookupError("internal node has no children")
        i = bisect.bisect_right(self.keys, key, lo=1) - 1 if len(self.keys) > 1 else 0
        return self.children[max(i, 0)]

    def value_index(self, child_id: int) -> int:
        """Return the slot of a child page; ValueError if it is not a child."""
        return self.children.index(child_id)

    def populate_new_root(self, old_child: int, key: bytes, new_child: int) -> None:
        """Make this node a root over two children split at key."""
        self.keys = [b"", key]
        self.children = [old_child, new_child]

    def insert_after(self, old_child: int, key: bytes, new_child: int) -> int:
        """Put key and new_child right after old_child and return the new size."""
        i = self.value_index(old_child) + 1
        self.keys.insert(i, key)
        self.children.insert(i, new_child)
        return self.size

    def remove(self, index: int) -> None:
        """Delete the key and child at a slot."""
        del self.keys[index]
        del self.children[index]
        if self.keys:
            self.keys[0] = b""

    def move_half_to(self, other: InternalNode) -> list[int]:
        """Move the upper half of the entries to another node and return the moved children.

        The first moved key lands in the other node's slot 0, where the caller
        reads it as the separator to push up.
        """
        half = self.size // 2
        moved = self.children[half:]
        other.keys.extend(self.keys[half:])
        other.children.extend(moved)
        del self.keys[half:]
        del self.children[half:]
        return moved

    def min_size(self) -> int:
        return (self.max_size + 1) // 2

    def to_bytes(self) -> bytes:
        out = bytearray(_HEADER.pack(INTERNAL_PAGE, self.page_id, self.parent_id, self.max_size, self.size))
        for key, child in zip(self.keys, self.children):
            _pack_key(out, key)
            out += _CHILD.pack(child)
        return _finish(out)


def read_node(data) -> LeafNode | InternalNode:
    """Decode a page written by LeafNode.to_bytes or InternalNode.to_bytes."""
    buf = bytes(data)
    page_type, page_id, parent_id, max_size, size = _HEADER.unpack_from(buf, 0)
    offset = _HEADER.size
    if page_type == LEAF_PAGE:
        leaf = LeafNode(page_id, parent_id, max_size)
        (leaf.next_page_id,) = _NEXT.unpack_from(buf, offset)
        offset += _NEXT.size
        for _ in range(size):
            key, offset = _unpack_key(buf, offset)
            page, slot = _ROW_ID.unpack_from(buf, offset)
            offset += _ROW_ID.size
            leaf.keys.append(key)
            leaf.values.append(RowId(page, slot))
        return leaf
    if page_type == INTERNAL_PAGE:
        node = InternalNode(page_id, parent_id, max_size)
        for _ in range(size):
            key, offset = _unpack_key(buf, offset)
            (child,) = _CHILD.unpack_from(buf, offset)
            offset += _CHILD.size
            node.keys.append(key)
            node.children.append(child)
        return node
    raise ValueError(f"page holds no B+ tree node (type {page_type})")