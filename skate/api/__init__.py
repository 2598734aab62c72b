"""
API Module - REST interface for games and battles.

Clients:
1. Create a game lobby and join it
2. Submit tricks, passes and judgments
3. Report disconnects and reconnects
4. Open battle voting and cast votes

All commands are idempotent by event_id.
"""

from .schemas import (
    # Requests
    CreateGameRequest,
    JoinGameRequest,
    PlayerCommandRequest,
    SubmitTrickRequest,
    JudgeTurnRequest,
    ForfeitRequest,
    FileDisputeRequest,
    ResolveDisputeRequest,
    AdminResolveDisputeRequest,
    InitializeVotingRequest,
    CastVoteRequest,
    # Responses
    ErrorResponse,
    GameStateResponse,
    GameEventResponse,
    BattleStateResponse,
    VoteResponse,
)
from .app import create_app, status_for

__all__ = [
    # Requests
    "CreateGameRequest",
    "JoinGameRequest",
    "PlayerCommandRequest",
    "SubmitTrickRequest",
    "JudgeTurnRequest",
    "ForfeitRequest",
    "FileDisputeRequest",
    "ResolveDisputeRequest",
    "AdminResolveDisputeRequest",
    "InitializeVotingRequest",
    "CastVoteRequest",
    # Responses
    "ErrorResponse",
    "GameStateResponse",
    "GameEventResponse",
    "BattleStateResponse",
    "VoteResponse",
    # App
    "create_app",
    "status_for",
]
