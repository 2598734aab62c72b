"""
Persistence - Transactional record stores.
"""

from .base import StateStore, Transaction
from .memory import InMemoryStore
from .sql import SqlStore, StateRecord, make_engine

__all__ = [
    "StateStore",
    "Transaction",
    "InMemoryStore",
    "SqlStore",
    "StateRecord",
    "make_engine",
]
