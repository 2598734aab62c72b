"""
State store contract.

Every store hands out one record at a time inside a transaction:

    with store.transaction(game_id) as tx:
        result = reducer.apply(tx.state, event)
        if result.mutated:
            tx.commit(result.new_state)

While the block runs no other transaction can touch the same id. Leaving
the block without commit() discards everything. Storage errors propagate
and nothing is written.
"""

from __future__ import annotations
from abc import ABC, abstractmethod
from contextlib import AbstractContextManager
from typing import Any, Iterator


class Transaction:
    """A locked view of one record."""

    def __init__(self, record_id: str, state: Any | None):
        self.record_id = record_id
        self.state = state
        self.new_state: Any | None = None
        self.committed = False
        self.closed = False

    @property
    def exists(self) -> bool:
        return self.state is not None

    def commit(self, new_state: Any) -> None:
        if self.closed:
            raise RuntimeError(f"Transaction for {self.record_id} is already closed")
        self.new_state = new_state
        self.committed = True
        self.closed = True

    def rollback(self) -> None:
        self.new_state = None
        self.committed = False
        self.closed = True


class StateStore(ABC):
    """Keyed storage of GameSession or BattleVoteState records."""

    @abstractmethod
    def transaction(self, record_id: str) -> AbstractContextManager[Transaction]:
        """Lock record_id and yield a Transaction; write on exit if committed."""

    @abstractmethod
    def get(self, record_id: str) -> Any | None:
        """Read a snapshot without locking."""

    @abstractmethod
    def delete(self, record_id: str) -> bool:
        """Remove a record. Returns False if it did not exist."""

    @abstractmethod
    def list_ids(self) -> list[str]:
        ...

    def scan(self) -> Iterator[Any]:
        """Yield a snapshot of every record."""
        for record_id in self.list_ids():
            state = self.get(record_id)
            if state is not None:
                yield state
