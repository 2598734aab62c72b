"""
Game State - The single mutable record behind one S.K.A.T.E. match.

Design principles:
- Immutable-friendly: transitions return a new state, never edit in place
- Serializable: every record round-trips through to_dict()/from_dict()
- Closed vocabularies: status, phase and turn fields are enums
- Store-agnostic: nothing here knows how the record is persisted
"""

from __future__ import annotations
from dataclasses import dataclass, field, replace
from typing import Any
from copy import deepcopy
from enum import Enum


SKATE = "SKATE"


class GameStatus(Enum):
    """Lifecycle of a game session."""
    WAITING = "waiting"
    ACTIVE = "active"
    PAUSED = "paused"
    COMPLETED = "completed"
    FORFEITED = "forfeited"

    @property
    def is_terminal(self) -> bool:
        return self in {GameStatus.COMPLETED, GameStatus.FORFEITED}


class TurnAction(Enum):
    """What the player at current_turn_index is expected to do."""
    SET = "set"
    ATTEMPT = "attempt"
    JUDGE = "judge"  # Only reachable in setter-judged games


class JudgingMode(Enum):
    """How an attempt gets resolved."""
    SELF_REPORTED = "self_reported"  # Submitting in attempt phase is a land
    SETTER_JUDGED = "setter_judged"  # Responses go to the setter for a verdict


class TurnType(Enum):
    SET = "set"
    RESPONSE = "response"


class TurnResult(Enum):
    PENDING = "pending"
    LANDED = "landed"
    MISSED = "missed"
    VOID = "void"  # round ended before a verdict


class ForfeitReason(Enum):
    VOLUNTARY = "voluntary"
    DISCONNECT_TIMEOUT = "disconnect_timeout"
    TURN_TIMEOUT = "turn_timeout"


@dataclass
class Player:
    """
    A seat in the game.

    letters is always a prefix of "SKATE"; the full word means eliminated.
    """
    player_id: str
    letters: str = ""
    connected: bool = True
    disconnected_at: float | None = None

    @property
    def is_eliminated(self) -> bool:
        return self.letters == SKATE

    @property
    def is_eligible(self) -> bool:
        """Can take a turn: connected and still in the game."""
        return self.connected and not self.is_eliminated

    def to_dict(self) -> dict[str, Any]:
        return {
            "player_id": self.player_id,
            "letters": self.letters,
            "connected": self.connected,
            "disconnected_at": self.disconnected_at,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Player:
        return cls(
            player_id=data["player_id"],
            letters=data.get("letters", ""),
            connected=data.get("connected", True),
            disconnected_at=data.get("disconnected_at"),
        )


@dataclass
class GameTurn:
    """
    One set or response submission. Append-only.

    Once judged, only the dispute path may change the result.
    """
    turn_id: int
    game_id: str
    player_id: str
    turn_number: int
    turn_type: TurnType
    trick_description: str
    video_url: str | None = None
    result: TurnResult = TurnResult.PENDING
    judged_by: str | None = None
    judged_at: float | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "turn_id": self.turn_id,
            "game_id": self.game_id,
            "player_id": self.player_id,
            "turn_number": self.turn_number,
            "turn_type": self.turn_type.value,
            "trick_description": self.trick_description,
            "video_url": self.video_url,
            "result": self.result.value,
            "judged_by": self.judged_by,
            "judged_at": self.judged_at,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> GameTurn:
        return cls(
            turn_id=data["turn_id"],
            game_id=data["game_id"],
            player_id=data["player_id"],
            turn_number=data["turn_number"],
            turn_type=TurnType(data["turn_type"]),
            trick_description=data["trick_description"],
            video_url=data.get("video_url"),
            result=TurnResult(data.get("result", "pending")),
            judged_by=data.get("judged_by"),
            judged_at=data.get("judged_at"),
        )


@dataclass
class Dispute:
    """A challenge against a missed judgment."""
    dispute_id: int
    turn_id: int
    disputed_by: str
    against_player_id: str
    original_result: TurnResult = TurnResult.MISSED
    final_result: TurnResult | None = None
    resolved_by: str | None = None
    resolved_at: float | None = None

    @property
    def is_resolved(self) -> bool:
        return self.final_result is not None

    def to_dict(self) -> dict[str, Any]:
        return {
            "dispute_id": self.dispute_id,
            "turn_id": self.turn_id,
            "disputed_by": self.disputed_by,
            "against_player_id": self.against_player_id,
            "original_result": self.original_result.value,
            "final_result": self.final_result.value if self.final_result else None,
            "resolved_by": self.resolved_by,
            "resolved_at": self.resolved_at,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Dispute:
        final = data.get("final_result")
        return cls(
            dispute_id=data["dispute_id"],
            turn_id=data["turn_id"],
            disputed_by=data["disputed_by"],
            against_player_id=data["against_player_id"],
            original_result=TurnResult(data.get("original_result", "missed")),
            final_result=TurnResult(final) if final else None,
            resolved_by=data.get("resolved_by"),
            resolved_at=data.get("resolved_at"),
        )


@dataclass
class GameSession:
    """
    Complete game state at a point in time.

    This is the canonical record the reducer operates on.
    All state changes go through GameReducer.apply().
    """
    game_id: str
    spot_id: str
    creator_id: str
    max_players: int = 2

    players: list[Player] = field(default_factory=list)

    status: GameStatus = GameStatus.WAITING
    current_turn_index: int = 0
    current_action: TurnAction = TurnAction.SET
    current_trick: str | None = None
    setter_id: str | None = None
    winner_id: str | None = None
    forfeit_reason: ForfeitReason | None = None

    judging: JudgingMode = JudgingMode.SELF_REPORTED
    turns: list[GameTurn] = field(default_factory=list)
    disputes: list[Dispute] = field(default_factory=list)
    disputes_used: list[str] = field(default_factory=list)

    turn_deadline_at: float | None = None
    paused_at: float | None = None

    # Idempotency ledger, oldest first
    processed_event_ids: list[str] = field(default_factory=list)

    created_at: float = 0.0
    updated_at: float = 0.0

    @property
    def current_player(self) -> Player | None:
        if 0 <= self.current_turn_index < len(self.players):
            return self.players[self.current_turn_index]
        return None

    @property
    def num_players(self) -> int:
        return len(self.players)

    @property
    def is_full(self) -> bool:
        return len(self.players) >= self.max_players

    @property
    def remaining_players(self) -> list[Player]:
        """Players who are not eliminated, in seat order."""
        return [p for p in self.players if not p.is_eliminated]

    def get_player(self, player_id: str) -> Player | None:
        for p in self.players:
            if p.player_id == player_id:
                return p
        return None

    def index_of(self, player_id: str | None) -> int:
        """Seat index of a player, or -1."""
        for i, p in enumerate(self.players):
            if p.player_id == player_id:
                return i
        return -1

    def get_turn(self, turn_id: int) -> GameTurn | None:
        for t in self.turns:
            if t.turn_id == turn_id:
                return t
        return None

    def get_dispute(self, dispute_id: int) -> Dispute | None:
        for d in self.disputes:
            if d.dispute_id == dispute_id:
                return d
        return None

    def with_player(self, player: Player) -> GameSession:
        """Return new state with updated player."""
        new_players = [
            player if p.player_id == player.player_id else p
            for p in self.players
        ]
        return self._copy_with(players=new_players)

    def with_turn(self, turn: GameTurn) -> GameSession:
        """Return new state with a turn replaced (matched by turn_id)."""
        new_turns = [turn if t.turn_id == turn.turn_id else t for t in self.turns]
        return self._copy_with(turns=new_turns)

    def _copy_with(self, **kwargs) -> GameSession:
        """Create a copy with some fields replaced."""
        return replace(self, **kwargs)

    def clone(self) -> GameSession:
        """Deep copy the state."""
        return deepcopy(self)

    def to_dict(self) -> dict[str, Any]:
        return {
            "game_id": self.game_id,
            "spot_id": self.spot_id,
            "creator_id": self.creator_id,
            "max_players": self.max_players,
            "players": [p.to_dict() for p in self.players],
            "status": self.status.value,
            "current_turn_index": self.current_turn_index,
            "current_action": self.current_action.value,
            "current_trick": self.current_trick,
            "setter_id": self.setter_id,
            "winner_id": self.winner_id,
            "forfeit_reason": self.forfeit_reason.value if self.forfeit_reason else None,
            "judging": self.judging.value,
            "turns": [t.to_dict() for t in self.turns],
            "disputes": [d.to_dict() for d in self.disputes],
            "disputes_used": list(self.disputes_used),
            "turn_deadline_at": self.turn_deadline_at,
            "paused_at": self.paused_at,
            "processed_event_ids": list(self.processed_event_ids),
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> GameSession:
        reason = data.get("forfeit_reason")
        return cls(
            game_id=data["game_id"],
            spot_id=data["spot_id"],
            creator_id=data["creator_id"],
            max_players=data.get("max_players", 2),
            players=[Player.from_dict(p) for p in data.get("players", [])],
            status=GameStatus(data.get("status", "waiting")),
            current_turn_index=data.get("current_turn_index", 0),
            current_action=TurnAction(data.get("current_action", "set")),
            current_trick=data.get("current_trick"),
            setter_id=data.get("setter_id"),
            winner_id=data.get("winner_id"),
            forfeit_reason=ForfeitReason(reason) if reason else None,
            judging=JudgingMode(data.get("judging", "self_reported")),
            turns=[GameTurn.from_dict(t) for t in data.get("turns", [])],
            disputes=[Dispute.from_dict(d) for d in data.get("disputes", [])],
            disputes_used=list(data.get("disputes_used", [])),
            turn_deadline_at=data.get("turn_deadline_at"),
            paused_at=data.get("paused_at"),
            processed_event_ids=list(data.get("processed_event_ids", [])),
            created_at=data.get("created_at", 0.0),
            updated_at=data.get("updated_at", 0.0),
        )
