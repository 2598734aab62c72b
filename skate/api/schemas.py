"""
Pydantic Schemas for API - Request/response models for OpenAPI.

Requests are validated here, before any stored state is read.
Precondition failures from the engine come back as ErrorResponse with
the engine's error code:

- NOT_FOUND / TURN_NOT_FOUND / DISPUTE_NOT_FOUND: 404
- NOT_YOUR_TURN / NOT_CREATOR / NOT_JUDGE / NOT_A_PARTICIPANT / PLAYER_NOT_IN_GAME: 403
- WRONG_PHASE, GAME_NOT_ACTIVE, DEADLINE_PASSED and other state conflicts: 409
- VALIDATION_ERROR: 422
"""

from enum import Enum
from typing import Optional, Any
from pydantic import BaseModel, Field


# =============================================================================
# Enums
# =============================================================================

class JudgingModeName(str, Enum):
    SELF_REPORTED = "self_reported"
    SETTER_JUDGED = "setter_judged"


class VerdictName(str, Enum):
    """Judgment on a response or a dispute."""
    LANDED = "landed"
    MISSED = "missed"


class ForfeitReasonName(str, Enum):
    VOLUNTARY = "voluntary"
    DISCONNECT_TIMEOUT = "disconnect_timeout"
    TURN_TIMEOUT = "turn_timeout"


class VoteName(str, Enum):
    CLEAN = "clean"
    SKETCH = "sketch"


# =============================================================================
# Request Models
# =============================================================================

class CommandRequest(BaseModel):
    """Base for commands. Clients should send an event_id and reuse it on retry."""
    event_id: Optional[str] = Field(
        None, min_length=1, max_length=200,
        description="Idempotency key. Generated by the server when omitted",
    )


class PlayerCommandRequest(CommandRequest):
    player_id: str = Field(..., min_length=1, max_length=128)


class CreateGameRequest(CommandRequest):
    spot_id: str = Field(..., min_length=1, max_length=128)
    creator_id: str = Field(..., min_length=1, max_length=128)
    max_players: Optional[int] = Field(None, description="Lobby size, clamped to 2..8")
    judging: JudgingModeName = Field(JudgingModeName.SELF_REPORTED)
    game_id: Optional[str] = Field(None, min_length=1, max_length=128)


class JoinGameRequest(PlayerCommandRequest):
    start: bool = Field(False, description="Start immediately if at least two players are seated")


class SubmitTrickRequest(PlayerCommandRequest):
    trick_name: str = Field(..., min_length=1, max_length=200)
    video_url: Optional[str] = Field(None, max_length=2048)


class JudgeTurnRequest(PlayerCommandRequest):
    turn_id: int = Field(..., ge=1)
    result: VerdictName


class ForfeitRequest(PlayerCommandRequest):
    reason: ForfeitReasonName = Field(ForfeitReasonName.VOLUNTARY)


class FileDisputeRequest(PlayerCommandRequest):
    turn_id: int = Field(..., ge=1)


class ResolveDisputeRequest(PlayerCommandRequest):
    final_result: VerdictName


class AdminResolveDisputeRequest(CommandRequest):
    """Moderator ruling on a dispute, bypassing the judging player."""
    admin_id: str = Field(..., min_length=1, max_length=128)
    final_result: VerdictName


class InitializeVotingRequest(CommandRequest):
    creator_id: str = Field(..., min_length=1, max_length=128)
    opponent_id: str = Field(..., min_length=1, max_length=128)


class CastVoteRequest(PlayerCommandRequest):
    vote: VoteName


# =============================================================================
# Response Models
# =============================================================================

class ErrorResponse(BaseModel):
    """Standard error response."""
    error: str = Field(..., description="Human-readable error message")
    error_code: str = Field(..., description="Machine-readable error code")
    details: Optional[dict[str, Any]] = Field(None, description="Additional error context")
    api_version: str = Field("v1", description="API version")


class PlayerInfo(BaseModel):
    player_id: str
    letters: str = ""
    connected: bool = True
    is_eliminated: bool = False


class TurnInfo(BaseModel):
    turn_id: int
    player_id: str
    turn_number: int
    turn_type: str
    trick_description: str
    video_url: Optional[str] = None
    result: str
    judged_by: Optional[str] = None
    judged_at: Optional[float] = None


class DisputeInfo(BaseModel):
    dispute_id: int
    turn_id: int
    disputed_by: str
    against_player_id: str
    final_result: Optional[str] = None
    resolved_by: Optional[str] = None


class GameStateResponse(BaseModel):
    game_id: str
    spot_id: str
    creator_id: str
    status: str
    judging: str
    max_players: int
    players: list[PlayerInfo] = Field(default_factory=list)
    current_player_id: Optional[str] = None
    current_action: Optional[str] = None
    current_trick: Optional[str] = None
    setter_id: Optional[str] = None
    winner_id: Optional[str] = None
    forfeit_reason: Optional[str] = None
    turn_deadline_at: Optional[float] = None
    turns: list[TurnInfo] = Field(default_factory=list)
    disputes: list[DisputeInfo] = Field(default_factory=list)


class GameEventResponse(BaseModel):
    """Outcome of a game command."""
    success: bool
    event_id: str
    already_processed: bool = False
    already_initialized: bool = False
    changes: list[str] = Field(default_factory=list)
    details: dict[str, Any] = Field(default_factory=dict)
    game: GameStateResponse


class BattleStateResponse(BaseModel):
    battle_id: str
    creator_id: str
    opponent_id: str
    status: str
    votes: dict[str, str] = Field(default_factory=dict)
    voting_started_at: float
    vote_deadline_at: Optional[float] = None
    winner_id: Optional[str] = None
    final_score: Optional[dict[str, int]] = None
    completion_reason: Optional[str] = None


class VoteResponse(BaseModel):
    """Outcome of a battle command."""
    success: bool
    event_id: str
    already_processed: bool = False
    already_initialized: bool = False
    battle_complete: bool = False
    winner_id: Optional[str] = None
    final_score: Optional[dict[str, int]] = None
    battle: BattleStateResponse


class DeleteResponse(BaseModel):
    success: bool
    game_id: str


class SweepActionInfo(BaseModel):
    kind: str
    record_id: str
    action: str
    event_id: str
    success: bool
    already_processed: bool = False
    error: Optional[str] = None


class SweepResponse(BaseModel):
    now: float
    applied: int
    actions: list[SweepActionInfo] = Field(default_factory=list)


class HealthResponse(BaseModel):
    """Health check response."""
    status: str
    service: str
    version: str
