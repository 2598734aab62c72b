"""
In-memory store with a mutex per record id.

Records are cloned on the way in and out, so callers never share
objects with the store.
"""

from __future__ import annotations
from contextlib import contextmanager
from typing import Any, Iterator
import threading

from .base import StateStore, Transaction


class InMemoryStore(StateStore):
    def __init__(self):
        self._records: dict[str, Any] = {}
        self._locks: dict[str, threading.Lock] = {}
        self._guard = threading.Lock()

    def _lock_for(self, record_id: str) -> threading.Lock:
        with self._guard:
            lock = self._locks.get(record_id)
            if lock is None:
                lock = self._locks[record_id] = threading.Lock()
            return lock

    def _acquire(self, record_id: str) -> threading.Lock:
        # A delete may retire the lock while we wait on it; retry on the fresh one
        while True:
            lock = self._lock_for(record_id)
            lock.acquire()
            with self._guard:
                if self._locks.get(record_id) is lock:
                    return lock
            lock.release()

    @contextmanager
    def transaction(self, record_id: str) -> Iterator[Transaction]:
        lock = self._acquire(record_id)
        try:
            current = self._records.get(record_id)
            tx = Transaction(record_id, current.clone() if current is not None else None)
            yield tx
            if tx.committed:
                self._records[record_id] = tx.new_state.clone()
        finally:
            if record_id not in self._records:
                with self._guard:
                    self._locks.pop(record_id, None)
            lock.release()

    def get(self, record_id: str) -> Any | None:
        current = self._records.get(record_id)
        return current.clone() if current is not None else None

    def delete(self, record_id: str) -> bool:
        lock = self._acquire(record_id)
        try:
            with self._guard:
                self._locks.pop(record_id, None)
            return self._records.pop(record_id, None) is not None
        finally:
            lock.release()

    def list_ids(self) -> list[str]:
        return list(self._records)
