"""Transactions, their states and the manager that starts and ends them."""

from __future__ import annotations

import enum
import itertools
import threading
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from minidb.disk_manager import INVALID_PAGE_ID

if TYPE_CHECKING:
    from minidb.lock_manager import LockManager

INVALID_TXN_ID = -1


@dataclass(frozen=True, order=True)
class RowId:
    """Location of a row: the page holding it and its slot on that page."""

    page_id: int = INVALID_PAGE_ID
    slot_num: int = 0


class IsolationLevel(enum.Enum):
    READ_UNCOMMITTED = enum.auto()
    READ_COMMITTED = enum.auto()
    REPEATABLE_READ = enum.auto()


class TxnState(enum.Enum):
    GROWING = enum.auto()
    SHRINKING = enum.auto()
    COMMITTED = enum.auto()
    ABORTED = enum.auto()


class AbortReason(enum.Enum):
    LOCK_ON_SHRINKING = enum.auto()
    UNLOCK_ON_SHRINKING = enum.auto()
    UPGRADE_CONFLICT = enum.auto()
    DEADLOCK = enum.auto()
    LOCK_SHARED_ON_READ_UNCOMMITTED = enum.auto()


class TxnAbortError(Exception):
    """Raised when a transaction has to be aborted."""

    def __init__(self, txn_id: int, reason: AbortReason) -> None:
        super().__init__(f"transaction {txn_id} aborted: {reason.name}")
        self.txn_id = txn_id
        self.reason = reason


@dataclass(eq=False)
class Txn:
    """A transaction and the row locks it currently holds."""

    txn_id: int
    isolation_level: IsolationLevel = IsolationLevel.REPEATABLE_READ
    state: TxnState = TxnState.GROWING
    shared_lock_set: set[RowId] = field(default_factory=set)
    exclusive_lock_set: set[RowId] = field(default_factory=set)


class TxnManager:
    """Starts, commits and aborts transactions, releasing their locks at the end."""

    def __init__(self, lock_manager: LockManager) -> None:
        self._lock_manager = lock_manager
        self._next_ids = itertools.count()
        self._txns: dict[int, Txn] = {}
        self._latch = threading.Lock()
        lock_manager.set_txn_manager(self)

    def begin(self, txn: Txn | None = None, isolation_level: IsolationLevel = IsolationLevel.REPEATABLE_READ) -> Txn:
        """Register a transaction, creating one with a fresh id if none is given."""
        if txn is None:
            txn = Txn(next(self._next_ids), isolation_level)
        with self._latch:
            self._txns[txn.txn_id] = txn
        return txn

    def commit(self, txn: Txn) -> None:
        txn.state = TxnState.COMMITTED
        self._release_locks(txn)

    def abort(self, txn: Txn) -> None:
        txn.state = TxnState.ABORTED
        self._release_locks(txn)

    def get_transaction(self, txn_id: int) -> Txn | None:
        """Return the registered transaction with this id, or None."""
        with self._latch:
            return self._txns.get(txn_id)

    def _release_locks(self, txn: Txn) -> None:
        for rid in txn.exclusive_lock_set | txn.shared_lock_set:
            self._lock_manager.unlock(txn, rid)