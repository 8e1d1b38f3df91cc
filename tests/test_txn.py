import threading

import pytest

from minidb.lock_manager import LockManager
from minidb.txn import (
    AbortReason,
    IsolationLevel,
    RowId,
    Txn,
    TxnAbortError,
    TxnManager,
    TxnState,
)


@pytest.fixture
def manager():
    return TxnManager(LockManager())


def test_begin_assigns_increasing_ids(manager):
    first = manager.begin()
    second = manager.begin()
    assert second.txn_id > first.txn_id
    assert first.state is TxnState.GROWING


def test_begin_uses_requested_isolation_level(manager):
    txn = manager.begin(None, IsolationLevel.READ_COMMITTED)
    assert txn.isolation_level is IsolationLevel.READ_COMMITTED


def test_default_isolation_level_is_repeatable_read(manager):
    assert manager.begin().isolation_level is IsolationLevel.REPEATABLE_READ


def test_get_transaction_returns_registered(manager):
    txn = manager.begin()
    assert manager.get_transaction(txn.txn_id) is txn


def test_get_transaction_unknown_is_none(manager):
    assert manager.get_transaction(12345) is None


def test_begin_registers_given_transaction(manager):
    txn = Txn(77)
    assert manager.begin(txn) is txn
    assert manager.get_transaction(77) is txn


def test_commit_releases_locks(manager):
    lock_manager = LockManager()
    manager = TxnManager(lock_manager)
    txn = manager.begin()
    rows = [RowId(3, 0), RowId(3, 1)]
    lock_manager.lock_exclusive(txn, rows[0])
    lock_manager.lock_shared(txn, rows[1])
    manager.commit(txn)
    assert txn.state is TxnState.COMMITTED
    assert txn.exclusive_lock_set == set()
    assert txn.shared_lock_set == set()
    other = manager.begin()
    done = threading.Event()

    def take():
        lock_manager.lock_exclusive(other, rows[0])
        done.set()

    threading.Thread(target=take, daemon=True).start()
    assert done.wait(2)


def test_abort_sets_state_and_releases(manager):
    lock_manager = LockManager()
    manager = TxnManager(lock_manager)
    txn = manager.begin()
    lock_manager.lock_exclusive(txn, RowId(1, 1))
    manager.abort(txn)
    assert txn.state is TxnState.ABORTED
    assert txn.exclusive_lock_set == set()


def test_abort_error_carries_reason():
    error = TxnAbortError(4, AbortReason.DEADLOCK)
    assert error.txn_id == 4
    assert error.reason is AbortReason.DEADLOCK
    assert "DEADLOCK" in str(error)


def test_row_ids_order_by_page_then_slot():
    rows = [RowId(2, 0), RowId(1, 5), RowId(1, 2)]
    assert sorted(rows) == [RowId(1, 2), RowId(1, 5), RowId(2, 0)]
    assert RowId(1, 2) == RowId(1, 2)
    assert len({RowId(1, 2), RowId(1, 2)}) == 1