"""
Event System - Game events, payloads, and transition results.

Events represent:
1. Player commands (join, submit trick, pass, judge, bail, forfeit)
2. Connection changes (disconnect, reconnect)
3. Sweeper-issued timeouts
4. Dispute/admin corrections

Every event carries an event_id. Applying the same event_id twice
has no effect beyond the first successful application.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class EventType(Enum):
    """Types of game events."""
    # Lobby
    JOIN = "join"
    START = "start"

    # Turn flow
    SUBMIT_TRICK = "trick"
    PASS = "pass"
    JUDGE = "judge"
    SETTER_BAIL = "setter_bail"

    # Connection
    DISCONNECT = "disconnect"
    RECONNECT = "reconnect"

    # Ending
    FORFEIT = "forfeit"
    ROUND_TIMEOUT = "timeout"

    # Dispute path
    FILE_DISPUTE = "file_dispute"
    RESOLVE_DISPUTE = "resolve_dispute"


class ErrorCode(Enum):
    """Precondition failures. Reported in results, never raised."""
    NOT_FOUND = "NOT_FOUND"
    NOT_YOUR_TURN = "NOT_YOUR_TURN"
    WRONG_PHASE = "WRONG_PHASE"
    GAME_NOT_ACTIVE = "GAME_NOT_ACTIVE"
    ALREADY_COMPLETED = "ALREADY_COMPLETED"
    PLAYER_NOT_IN_GAME = "PLAYER_NOT_IN_GAME"
    GAME_FULL = "GAME_FULL"
    ALREADY_STARTED = "ALREADY_STARTED"
    ALREADY_IN_GAME = "ALREADY_IN_GAME"
    NOT_ENOUGH_PLAYERS = "NOT_ENOUGH_PLAYERS"
    NOT_CREATOR = "NOT_CREATOR"
    NO_ELIGIBLE_PLAYER = "NO_ELIGIBLE_PLAYER"
    DEADLINE_PASSED = "DEADLINE_PASSED"
    NOT_A_PARTICIPANT = "NOT_A_PARTICIPANT"
    VOTING_NOT_ACTIVE = "VOTING_NOT_ACTIVE"
    TURN_NOT_FOUND = "TURN_NOT_FOUND"
    ALREADY_JUDGED = "ALREADY_JUDGED"
    NO_RESPONSE_SUBMITTED = "NO_RESPONSE_SUBMITTED"
    NOT_JUDGE = "NOT_JUDGE"
    DISPUTE_NOT_ALLOWED = "DISPUTE_NOT_ALLOWED"
    DISPUTE_ALREADY_USED = "DISPUTE_ALREADY_USED"
    DISPUTE_NOT_FOUND = "DISPUTE_NOT_FOUND"
    DISPUTE_ALREADY_RESOLVED = "DISPUTE_ALREADY_RESOLVED"
    UNKNOWN_EVENT = "UNKNOWN_EVENT"


class NotificationKind(Enum):
    YOUR_TURN = "your_turn"
    GAME_OVER = "game_over"


@dataclass
class Notification:
    """
    A message for a player, produced by a transition.

    Transitions only describe notifications; the service
    delivers them after the new state is committed.
    """
    player_id: str
    kind: NotificationKind
    payload: dict[str, Any] = field(default_factory=dict)


@dataclass
class EventPayload:
    """
    Payload for an event - the command fields.

    Different event types use different fields.
    Validation happens in the reducer.
    """
    trick_name: str | None = None
    video_url: str | None = None
    start: bool = False

    # Judge / dispute path
    turn_id: int | None = None
    result: str | None = None  # "landed" | "missed"
    dispute_id: int | None = None
    admin: bool = False

    # Forfeit
    reason: str | None = None

    params: dict[str, Any] = field(default_factory=dict)


@dataclass
class GameEvent:
    """
    A complete event to be applied to a game session.

    Events are:
    - Deduplicated by event_id
    - Validated before application
    - Applied atomically by the reducer
    """
    event_type: EventType
    event_id: str
    player_id: str
    payload: EventPayload = field(default_factory=EventPayload)
    timestamp: float = 0.0

    @classmethod
    def join(cls, event_id: str, player_id: str, start: bool = False, timestamp: float = 0.0) -> GameEvent:
        return cls(EventType.JOIN, event_id, player_id, EventPayload(start=start), timestamp)

    @classmethod
    def start(cls, event_id: str, player_id: str, timestamp: float = 0.0) -> GameEvent:
        return cls(EventType.START, event_id, player_id, timestamp=timestamp)

    @classmethod
    def submit_trick(
        cls,
        event_id: str,
        player_id: str,
        trick_name: str,
        video_url: str | None = None,
        timestamp: float = 0.0,
    ) -> GameEvent:
        return cls(
            EventType.SUBMIT_TRICK,
            event_id,
            player_id,
            EventPayload(trick_name=trick_name, video_url=video_url),
            timestamp,
        )

    @classmethod
    def pass_trick(cls, event_id: str, player_id: str, timestamp: float = 0.0) -> GameEvent:
        return cls(EventType.PASS, event_id, player_id, timestamp=timestamp)

    @classmethod
    def judge(
        cls, event_id: str, player_id: str, turn_id: int, result: str, timestamp: float = 0.0
    ) -> GameEvent:
        return cls(
            EventType.JUDGE,
            event_id,
            player_id,
            EventPayload(turn_id=turn_id, result=result),
            timestamp,
        )

    @classmethod
    def setter_bail(cls, event_id: str, player_id: str, timestamp: float = 0.0) -> GameEvent:
        return cls(EventType.SETTER_BAIL, event_id, player_id, timestamp=timestamp)

    @classmethod
    def disconnect(cls, event_id: str, player_id: str, timestamp: float = 0.0) -> GameEvent:
        return cls(EventType.DISCONNECT, event_id, player_id, timestamp=timestamp)

    @classmethod
    def reconnect(cls, event_id: str, player_id: str, timestamp: float = 0.0) -> GameEvent:
        return cls(EventType.RECONNECT, event_id, player_id, timestamp=timestamp)

    @classmethod
    def forfeit(
        cls, event_id: str, player_id: str, reason: str = "voluntary", timestamp: float = 0.0
    ) -> GameEvent:
        return cls(EventType.FORFEIT, event_id, player_id, EventPayload(reason=reason), timestamp)

    @classmethod
    def round_timeout(cls, event_id: str, player_id: str, timestamp: float = 0.0) -> GameEvent:
        return cls(EventType.ROUND_TIMEOUT, event_id, player_id, timestamp=timestamp)

    @classmethod
    def file_dispute(
        cls, event_id: str, player_id: str, turn_id: int, timestamp: float = 0.0
    ) -> GameEvent:
        return cls(
            EventType.FILE_DISPUTE, event_id, player_id, EventPayload(turn_id=turn_id), timestamp
        )

    @classmethod
    def resolve_dispute(
        cls,
        event_id: str,
        player_id: str,
        dispute_id: int,
        result: str,
        admin: bool = False,
        timestamp: float = 0.0,
    ) -> GameEvent:
        return cls(
            EventType.RESOLVE_DISPUTE,
            event_id,
            player_id,
            EventPayload(dispute_id=dispute_id, result=result, admin=admin),
            timestamp,
        )


@dataclass
class TransitionResult:
    """
    Result of applying an event.

    Contains:
    - Whether the event succeeded
    - New state (if succeeded)
    - Error and code (if failed)
    - Idempotency flags
    - Notifications to deliver after commit
    """
    success: bool
    new_state: Any | None = None  # GameSession or BattleVoteState
    error: str | None = None
    error_code: ErrorCode | None = None

    already_processed: bool = False
    already_initialized: bool = False

    changes: list[str] = field(default_factory=list)  # Human-readable
    notifications: list[Notification] = field(default_factory=list)

    # Extra outputs some transitions report (letter gained, vote outcome...)
    details: dict[str, Any] = field(default_factory=dict)

    @property
    def mutated(self) -> bool:
        """True if the store should persist new_state."""
        return self.success and not self.already_processed and not self.already_initialized

    @classmethod
    def failure(cls, error: str, error_code: ErrorCode) -> TransitionResult:
        """Create a failure result."""
        return cls(success=False, error=error, error_code=error_code)

    @classmethod
    def success_with_state(
        cls,
        state: Any,
        changes: list[str] | None = None,
        notifications: list[Notification] | None = None,
        details: dict[str, Any] | None = None,
    ) -> TransitionResult:
        """Create a success result with new state."""
        return cls(
            success=True,
            new_state=state,
            changes=changes or [],
            notifications=notifications or [],
            details=details or {},
        )

    @classmethod
    def duplicate(cls, state: Any) -> TransitionResult:
        """Event already applied; state is returned unchanged."""
        return cls(success=True, new_state=state, already_processed=True)

    @classmethod
    def existing(cls, state: Any) -> TransitionResult:
        """Record already initialized; returned unchanged."""
        return cls(success=True, new_state=state, already_initialized=True)
