import pytest

from minidb.buffer_pool import BufferPoolManager
from minidb.disk_manager import INVALID_PAGE_ID, DiskManager


@pytest.fixture
def disk(tmp_path):
    manager = DiskManager(tmp_path / "pool.db")
    yield manager
    manager.close()


@pytest.fixture
def pool(disk):
    return BufferPoolManager(3, disk)


def test_new_pages_get_sequential_ids_and_are_allocated(pool):
    pages = [pool.new_page() for _ in range(3)]
    assert [p.page_id for p in pages] == list(range(3))
    assert all(p.pin_count == 1 for p in pages)
    assert all(not pool.is_page_free(p.page_id) for p in pages)


def test_full_pool_raises(pool):
    for _ in range(3):
        pool.new_page()
    with pytest.raises(RuntimeError):
        pool.new_page()
    with pytest.raises(RuntimeError):
        pool.fetch_page(10)


def test_dirty_page_survives_eviction(pool):
    page = pool.new_page()
    page_id = page.page_id
    page.data[:5] = b"hello"
    assert pool.unpin_page(page_id, True)
    for _ in range(3):
        other = pool.new_page()
        assert pool.unpin_page(other.page_id, False)
    fetched = pool.fetch_page(page_id)
    assert fetched.page_id == page_id
    assert bytes(fetched.data[:5]) == b"hello"


def test_fetch_cached_page_returns_same_frame(pool):
    page = pool.new_page()
    pool.unpin_page(page.page_id, False)
    again = pool.fetch_page(page.page_id)
    assert again is page
    assert again.pin_count == 1


def test_unpin_rules(pool):
    page = pool.new_page()
    assert pool.unpin_page(page.page_id, False)
    assert not pool.unpin_page(page.page_id, False)
    assert not pool.unpin_page(99, False)
    assert not pool.unpin_page(INVALID_PAGE_ID, False)


def test_delete_page(pool):
    page = pool.new_page()
    page_id = page.page_id
    assert pool.delete_page(page_id) is False
    pool.unpin_page(page_id, False)
    assert pool.delete_page(page_id) is True
    assert pool.is_page_free(page_id)
    assert page.page_id == INVALID_PAGE_ID
    assert pool.delete_page(page_id) is True


def test_deleted_frame_is_reused_without_eviction(pool):
    pages = [pool.new_page() for _ in range(3)]
    pool.unpin_page(pages[0].page_id, False)
    pool.delete_page(pages[0].page_id)
    replacement = pool.new_page()
    assert replacement is pages[0]
    assert replacement.pin_count == 1
    with pytest.raises(RuntimeError):
        pool.new_page()


def test_flush_page_writes_to_disk(pool, disk):
    page = pool.new_page()
    page.data[:4] = b"data"
    assert pool.flush_page(page.page_id)
    assert disk.read_page(page.page_id)[:4] == b"data"
    assert page.is_dirty is False
    assert not pool.flush_page(42)


def test_fetch_invalid_page_id_raises(pool):
    with pytest.raises(ValueError):
        pool.fetch_page(INVALID_PAGE_ID)


def test_check_all_unpinned(pool):
    page = pool.new_page()
    assert pool.check_all_unpinned() is False
    pool.unpin_page(page.page_id, False)
    assert pool.check_all_unpinned() is True


def test_close_flushes_cached_pages(tmp_path):
    path = tmp_path / "closing.db"
    disk = DiskManager(path)
    pool = BufferPoolManager(4, disk)
    page = pool.new_page()
    page.data[:3] = b"abc"
    pool.unpin_page(page.page_id, True)
    pool.close()
    disk.close()
    with DiskManager(path) as reopened:
        assert reopened.read_page(page.page_id)[:3] == b"abc"