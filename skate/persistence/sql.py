"""
SQLAlchemy-backed store.

One table holds every record as a JSON document keyed by (kind, record_id).
A transaction selects the row FOR UPDATE, so concurrent writers to the
same record queue on the row lock. SQLite ignores the lock clause, so
its transactions open with BEGIN IMMEDIATE and take the write lock on
the database file before the read.
"""

from __future__ import annotations
from contextlib import contextmanager
from typing import Any, Callable, Iterator
import logging

from sqlalchemy import Column, Float, JSON, String, create_engine, delete, event, select
from sqlalchemy.engine import Engine
from sqlalchemy.orm import declarative_base, sessionmaker

from .base import StateStore, Transaction

logger = logging.getLogger(__name__)

Base = declarative_base()


class StateRecord(Base):
    """Serialized game or battle record."""
    __tablename__ = "state_records"

    kind = Column(String(32), primary_key=True)
    record_id = Column(String(128), primary_key=True)
    payload = Column(JSON, nullable=False)
    updated_at = Column(Float, nullable=False, default=0.0)


def make_engine(database_url: str) -> Engine:
    if not database_url.startswith("sqlite"):
        return create_engine(database_url, echo=False)

    engine = create_engine(
        database_url,
        connect_args={"check_same_thread": False, "timeout": 30},
        echo=False,
    )

    @event.listens_for(engine, "connect")
    def _disable_driver_begin(dbapi_connection, connection_record):
        # pysqlite defers BEGIN until the first write; we issue our own
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def _begin_immediate(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")

    return engine


class SqlStore(StateStore):
    """
    Store for one record kind ("game" or "battle").

    decode turns a stored payload back into a record, typically
    GameSession.from_dict or BattleVoteState.from_dict.
    """

    def __init__(
        self,
        bind: str | Engine,
        kind: str,
        decode: Callable[[dict], Any],
        create_tables: bool = True,
    ):
        self.engine = make_engine(bind) if isinstance(bind, str) else bind
        self.kind = kind
        self._decode = decode
        self._session_factory = sessionmaker(bind=self.engine, autoflush=False)
        if create_tables:
            Base.metadata.create_all(bind=self.engine)

    @contextmanager
    def transaction(self, record_id: str) -> Iterator[Transaction]:
        session = self._session_factory()
        try:
            row = session.get(StateRecord, (self.kind, record_id), with_for_update=True)
            tx = Transaction(record_id, self._decode(row.payload) if row is not None else None)
            yield tx
            if tx.committed:
                payload = tx.new_state.to_dict()
                updated_at = getattr(tx.new_state, "updated_at", 0.0) or 0.0
                if row is None:
                    session.add(
                        StateRecord(
                            kind=self.kind,
                            record_id=record_id,
                            payload=payload,
                            updated_at=updated_at,
                        )
                    )
                else:
                    row.payload = payload
                    row.updated_at = updated_at
                session.commit()
            else:
                session.rollback()
        except Exception:
            session.rollback()
            logger.exception("Transaction on %s/%s failed", self.kind, record_id)
            raise
        finally:
            session.close()

    def get(self, record_id: str) -> Any | None:
        with self._session_factory() as session:
            row = session.get(StateRecord, (self.kind, record_id))
            return self._decode(row.payload) if row is not None else None

    def delete(self, record_id: str) -> bool:
        with self._session_factory() as session:
            result = session.execute(
                delete(StateRecord).where(
                    StateRecord.kind == self.kind, StateRecord.record_id == record_id
                )
            )
            session.commit()
            return result.rowcount > 0

    def list_ids(self) -> list[str]:
        with self._session_factory() as session:
            rows = session.execute(
                select(StateRecord.record_id)
                .where(StateRecord.kind == self.kind)
                .order_by(StateRecord.record_id)
            )
            return [record_id for (record_id,) in rows]
