"""
Engine Core - Deterministic S.K.A.T.E. game state transitions.

The engine is the pure part of the system that:
1. Holds a GameSession record
2. Deduplicates events by id
3. Validates preconditions
4. Applies events via the reducer
5. Describes notifications for the caller to deliver
"""

from .state import (
    SKATE,
    GameSession,
    GameStatus,
    GameTurn,
    Dispute,
    JudgingMode,
    Player,
    TurnAction,
    TurnResult,
    TurnType,
    ForfeitReason,
)
from .event import (
    ErrorCode,
    EventPayload,
    EventType,
    GameEvent,
    Notification,
    NotificationKind,
    TransitionResult,
)
from .idempotency import generate_event_id, check_event, record_event
from .rotation import next_eligible_index, next_letters, standings
from .reducer import GameReducer, apply_event, create_game_session, clamp_max_players

__all__ = [
    "SKATE",
    "GameSession",
    "GameStatus",
    "GameTurn",
    "Dispute",
    "JudgingMode",
    "Player",
    "TurnAction",
    "TurnResult",
    "TurnType",
    "ForfeitReason",
    "ErrorCode",
    "EventPayload",
    "EventType",
    "GameEvent",
    "Notification",
    "NotificationKind",
    "TransitionResult",
    "generate_event_id",
    "check_event",
    "record_event",
    "next_eligible_index",
    "next_letters",
    "standings",
    "GameReducer",
    "apply_event",
    "create_game_session",
    "clamp_max_players",
]
