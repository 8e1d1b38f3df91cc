"""Row-level two-phase locking with waits-for deadlock detection."""

from __future__ import annotations

import enum
import threading
from dataclasses import dataclass
from typing import TYPE_CHECKING

from minidb.txn import AbortReason, IsolationLevel, RowId, Txn, TxnAbortError, TxnState

if TYPE_CHECKING:
    from minidb.txn import TxnManager


class LockMode(enum.Enum):
    NONE = enum.auto()
    SHARED = enum.auto()
    EXCLUSIVE = enum.auto()


@dataclass
class _LockRequest:
    txn_id: int
    lock_mode: LockMode
    granted: LockMode = LockMode.NONE


class _LockRequestQueue:
    """Requests on one row, with the condition waiters sleep on."""

    def __init__(self, latch: threading.Lock) -> None:
        self.requests: dict[int, _LockRequest] = {}
        self.cv = threading.Condition(latch)
        self.sharing_cnt = 0
        self.is_writing = False
        self.is_upgrading = False

    def add(self, txn_id: int, lock_mode: LockMode) -> _LockRequest:
        request = _LockRequest(txn_id, lock_mode)
        self.requests[txn_id] = request
        return request

    def discard(self, txn_id: int) -> bool:
        return self.requests.pop(txn_id, None) is not None


class LockManager:
    """Grants shared and exclusive row locks and breaks deadlocks."""

    def __init__(self, cycle_detection_interval: float = 0.1) -> None:
        self.cycle_detection_interval = cycle_detection_interval
        self._latch = threading.Lock()
        self._lock_table: dict[RowId, _LockRequestQueue] = {}
        self._waits_for: dict[int, set[int]] = {}
        self._txn_manager: TxnManager | None = None
        self._detecting = threading.Event()
        self._stop = threading.Event()

    def set_txn_manager(self, txn_manager: TxnManager) -> None:
        self._txn_manager = txn_manager

    # ---------------------------------------------------------------- locks

    def lock_shared(self, txn: Txn, rid: RowId) -> bool:
        """Take a shared lock, waiting while the row is being written."""
        with self._latch:
            if txn.isolation_level is IsolationLevel.READ_UNCOMMITTED:
                txn.state = TxnState.ABORTED
                raise TxnAbortError(txn.txn_id, AbortReason.LOCK_SHARED_ON_READ_UNCOMMITTED)
            queue = self._prepare(txn, rid)
            request = queue.add(txn.txn_id, LockMode.SHARED)
            if queue.is_writing:
                queue.cv.wait_for(lambda: txn.state is TxnState.ABORTED or not queue.is_writing)
            self._check_abort(txn, queue)
            txn.shared_lock_set.add(rid)
            queue.sharing_cnt += 1
            request.granted = LockMode.SHARED
            return True

    def lock_exclusive(self, txn: Txn, rid: RowId) -> bool:
        """Take an exclusive lock, waiting while anyone else holds the row."""
        with self._latch:
            queue = self._prepare(txn, rid)
            request = queue.add(txn.txn_id, LockMode.EXCLUSIVE)
            if queue.is_writing or queue.sharing_cnt > 0:
                queue.cv.wait_for(
                    lambda: txn.state is TxnState.ABORTED
                    or (not queue.is_writing and queue.sharing_cnt == 0)
                )
            self._check_abort(txn, queue)
            txn.exclusive_lock_set.add(rid)
            queue.is_writing = True
            request.granted = LockMode.EXCLUSIVE
            return True

    def lock_upgrade(self, txn: Txn, rid: RowId) -> bool:
        """Turn a held shared lock into an exclusive one."""
        with self._latch:
            if txn.state is TxnState.SHRINKING:
                txn.state = TxnState.ABORTED
                raise TxnAbortError(txn.txn_id, AbortReason.LOCK_ON_SHRINKING)
            queue = self._queue(rid)
            if queue.is_upgrading:
                txn.state = TxnState.ABORTED
                raise TxnAbortError(txn.txn_id, AbortReason.UPGRADE_CONFLICT)
            request = queue.requests.get(txn.txn_id)
            if request is None:
                raise LookupError(f"transaction {txn.txn_id} holds no lock on {rid}")
            if request.lock_mode is LockMode.EXCLUSIVE and request.granted is LockMode.EXCLUSIVE:
                return True
            request.lock_mode = LockMode.EXCLUSIVE
            request.granted = LockMode.SHARED
            if queue.is_writing or queue.sharing_cnt > 1:
                queue.is_upgrading = True
                queue.cv.wait_for(
                    lambda: txn.state is TxnState.ABORTED
                    or (not queue.is_writing and queue.sharing_cnt == 1)
                )
            if txn.state is TxnState.ABORTED:
                queue.is_upgrading = False
            self._check_abort(txn, queue)
            txn.shared_lock_set.discard(rid)
            txn.exclusive_lock_set.add(rid)
            queue.sharing_cnt -= 1
            queue.is_upgrading = False
            queue.is_writing = True
            request.granted = LockMode.EXCLUSIVE
            return True

    def unlock(self, txn: Txn, rid: RowId) -> bool:
        """Release the transaction's lock on a row; False if it had none."""
        with self._latch:
            queue = self._queue(rid)
            txn.shared_lock_set.discard(rid)
            txn.exclusive_lock_set.discard(rid)
            request = queue.requests.get(txn.txn_id)
            if request is None:
                return False
            lock_mode = request.lock_mode
            queue.discard(txn.txn_id)
            keeps_growing = (
                txn.isolation_level is IsolationLevel.READ_COMMITTED and lock_mode is LockMode.SHARED
            )
            if txn.state is TxnState.GROWING and not keeps_growing:
                txn.state = TxnState.SHRINKING
            if lock_mode is LockMode.SHARED:
                queue.sharing_cnt -= 1
            else:
                queue.is_writing = False
            queue.cv.notify_all()
            return True

    # ------------------------------------------------------ waits-for graph

    def add_edge(self, t1: int, t2: int) -> None:
        """Record that t1 waits for t2."""
        self._waits_for.setdefault(t1, set()).add(t2)

    def remove_edge(self, t1: int, t2: int) -> None:
        self._waits_for.get(t1, set()).discard(t2)

    def has_cycle(self) -> int | None:
        """Return the newest transaction on a waits-for cycle, or None if there is none."""
        involved: set[int] = set()
        for t1, neighbours in self._waits_for.items():
            if neighbours:
                involved.add(t1)
                involved.update(neighbours)
        for start in sorted(involved):
            path: list[int] = []
            revisited = self._find_cycle(start, set(), path)
            if revisited is not None:
                newest = revisited
                while path and path[-1] != revisited:
                    newest = max(newest, path.pop())
                return newest
        return None

    def _find_cycle(self, txn_id: int, on_path: set[int], path: list[int]) -> int | None:
        if txn_id in on_path:
            return txn_id
        on_path.add(txn_id)
        path.append(txn_id)
        for waited in sorted(self._waits_for.get(txn_id, ())):
            revisited = self._find_cycle(waited, on_path, path)
            if revisited is not None:
                return revisited
        on_path.discard(txn_id)
        path.pop()
        return None

    def delete_node(self, txn_id: int) -> None:
        """Remove a transaction and every wait on the rows it holds from the graph."""
        self._waits_for.pop(txn_id, None)
        txn = self._require_txn_manager().get_transaction(txn_id)
        if txn is None:
            return
        for rid in (*txn.shared_lock_set, *txn.exclusive_lock_set):
            for request in self._queue(rid).requests.values():
                if request.granted is LockMode.NONE:
                    self.remove_edge(request.txn_id, txn_id)

    def detect_deadlocks(self) -> list[int]:
        """Rebuild the waits-for graph and abort the newest member of each cycle.

        Returns the ids of the transactions aborted, in the order chosen.
        """
        with self._latch:
            txn_manager = self._require_txn_manager()
            waited_row: dict[int, RowId] = {}
            self._waits_for.clear()
            for rid, queue in self._lock_table.items():
                for request in queue.requests.values():
                    if request.granted is not LockMode.NONE:
                        continue
                    waited_row[request.txn_id] = rid
                    for holder in queue.requests.values():
                        if holder.granted is not LockMode.NONE:
                            self.add_edge(request.txn_id, holder.txn_id)
            aborted: list[int] = []
            while (victim := self.has_cycle()) is not None:
                txn = txn_manager.get_transaction(victim)
                self.delete_node(victim)
                self._waits_for.pop(victim, None)
                if txn is not None:
                    txn.state = TxnState.ABORTED
                if victim in waited_row:
                    self._queue(waited_row[victim]).cv.notify_all()
                aborted.append(victim)
            return aborted

    def run_cycle_detection(self) -> None:
        """Look for deadlocks every interval until stop_cycle_detection is called."""
        self._stop.clear()
        self._detecting.set()
        while self._detecting.is_set():
            if self._stop.wait(self.cycle_detection_interval):
                break
            self.detect_deadlocks()

    def stop_cycle_detection(self) -> None:
        self._detecting.clear()
        self._stop.set()

    def get_edge_list(self) -> list[tuple[int, int]]:
        """Return every waits-for edge as a sorted list of pairs."""
        return sorted((t1, t2) for t1, neighbours in self._waits_for.items() for t2 in neighbours)

    # -------------------------------------------------------------- helpers

    def _queue(self, rid: RowId) -> _LockRequestQueue:
        queue = self._lock_table.get(rid)
        if queue is None:
            queue = self._lock_table[rid] = _LockRequestQueue(self._latch)
        return queue

    def _prepare(self, txn: Txn, rid: RowId) -> _LockRequestQueue:
        if txn.state is TxnState.SHRINKING:
            txn.state = TxnState.ABORTED
            raise TxnAbortError(txn.txn_id, AbortReason.LOCK_ON_SHRINKING)
        return self._queue(rid)

    @staticmethod
    def _check_abort(txn: Txn, queue: _LockRequestQueue) -> None:
        if txn.state is TxnState.ABORTED:
            queue.discard(txn.txn_id)
            raise TxnAbortError(txn.txn_id, AbortReason.DEADLOCK)

    def _require_txn_manager(self) -> TxnManager:
        if self._txn_manager is None:
            raise RuntimeError("lock manager has no transaction manager")
        return self._txn_manager