"""
Idempotency Guard - Per-record ledger of applied event ids.

Every mutating event is checked against the record's processed_event_ids
before any validation runs. A hit returns the stored state unchanged and
flags already_processed. A miss lets the transition run; the reducer then
appends the id in the same new state it returns, so the ledger and the
mutation are committed together.

The ledger is bounded: only the most recent N ids are kept.
"""

from __future__ import annotations
import secrets
import time
from typing import Any

from .event import TransitionResult


DEFAULT_LEDGER_SIZE = 100


def generate_event_id(
    event_type: str,
    player_id: str,
    target_id: str,
    sequence_key: str | None = None,
) -> str:
    """
    Build an event id for a logical action.

    With a sequence_key the id is deterministic, so a retried action maps
    to the same id. Without one a random suffix is added and the caller
    must keep the id for its own retries.
    """
    if sequence_key:
        return f"{event_type}-{target_id}-{player_id}-{sequence_key}"
    return f"{event_type}-{target_id}-{player_id}-{int(time.time() * 1000)}-{secrets.token_hex(4)}"


def already_applied(record: Any, event_id: str) -> bool:
    return event_id in record.processed_event_ids


def check_event(record: Any, event_id: str) -> TransitionResult | None:
    """
    Gate a transition.

    Returns a duplicate result if event_id is in the ledger,
    None if the transition should proceed.
    """
    if already_applied(record, event_id):
        return TransitionResult.duplicate(record)
    return None


def record_event(
    processed: list[str],
    event_id: str,
    limit: int = DEFAULT_LEDGER_SIZE,
) -> list[str]:
    """Return a new ledger with event_id appended, oldest ids evicted past limit."""
    updated = [*processed, event_id]
    if limit > 0 and len(updated) > limit:
        updated = updated[-limit:]
    return updated
