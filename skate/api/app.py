"""
FastAPI Application - REST API for games and battles.

Endpoints:
    POST   /api/v1/games                                 Create a game lobby
    GET    /api/v1/games/{id}                            Get game state
    DELETE /api/v1/games/{id}                            Delete a game
    POST   /api/v1/games/{id}/join                       Join a lobby
    POST   /api/v1/games/{id}/start                      Creator starts the game
    POST   /api/v1/games/{id}/tricks                     Set or attempt a trick
    POST   /api/v1/games/{id}/pass                       Pass on an attempt (take a letter)
    POST   /api/v1/games/{id}/judge                      Setter judges a response
    POST   /api/v1/games/{id}/bail                       Setter bails their own trick
    POST   /api/v1/games/{id}/disconnect                 Player dropped
    POST   /api/v1/games/{id}/reconnect                  Player back
    POST   /api/v1/games/{id}/forfeit                    Forfeit the game
    POST   /api/v1/games/{id}/disputes                   Dispute a missed judgment
    POST   /api/v1/games/{id}/disputes/{did}/resolve     Resolve a dispute
    POST   /api/v1/battles/{id}/voting                   Open voting for a battle
    POST   /api/v1/battles/{id}/votes                    Cast or change a vote
    GET    /api/v1/battles/{id}                          Get vote state
    POST   /api/v1/admin/games/{id}/disputes/{did}/resolve  Moderator ruling on a dispute
    POST   /api/v1/admin/sweep                           Apply due timeouts

Every command accepts an optional event_id. Retrying a command with the
same event_id is safe: the stored state is returned with
already_processed=true and nothing changes.

Run with: uvicorn skate.api.app:create_app --factory
"""

from typing import Callable, Optional
import logging

from ..engine_core.event import ErrorCode, TransitionResult

logger = logging.getLogger(__name__)

# Engine error codes -> HTTP status. Anything not listed is a 400.
ERROR_STATUS = {
    ErrorCode.NOT_FOUND: 404,
    ErrorCode.TURN_NOT_FOUND: 404,
    ErrorCode.DISPUTE_NOT_FOUND: 404,
    ErrorCode.NOT_YOUR_TURN: 403,
    ErrorCode.NOT_CREATOR: 403,
    ErrorCode.NOT_JUDGE: 403,
    ErrorCode.NOT_A_PARTICIPANT: 403,
    ErrorCode.PLAYER_NOT_IN_GAME: 403,
    ErrorCode.WRONG_PHASE: 409,
    ErrorCode.GAME_NOT_ACTIVE: 409,
    ErrorCode.ALREADY_COMPLETED: 409,
    ErrorCode.GAME_FULL: 409,
    ErrorCode.ALREADY_STARTED: 409,
    ErrorCode.ALREADY_IN_GAME: 409,
    ErrorCode.VOTING_NOT_ACTIVE: 409,
    ErrorCode.ALREADY_JUDGED: 409,
    ErrorCode.DEADLINE_PASSED: 409,
    ErrorCode.DISPUTE_ALREADY_USED: 409,
    ErrorCode.DISPUTE_ALREADY_RESOLVED: 409,
}


def status_for(error_code: Optional[ErrorCode]) -> int:
    return ERROR_STATUS.get(error_code, 400)


def create_app(game_service=None, battle_service=None, config=None):
    """
    Create the FastAPI application.

    Args:
        game_service: Optional GameService (built from config if not provided)
        battle_service: Optional BattleService (built from config if not provided)
        config: Optional EngineConfig (read from the environment if not provided)

    Returns:
        FastAPI application instance
    """
    try:
        from fastapi import FastAPI
        from fastapi.middleware.cors import CORSMiddleware
        from fastapi.responses import JSONResponse
    except ImportError:
        raise ImportError(
            "FastAPI not installed. Install with: pip install fastapi uvicorn"
        )

    from .. import __version__
    from ..config import EngineConfig
    from ..engine_core.idempotency import generate_event_id
    from ..engine_core.state import GameSession
    from ..battle.state import BattleStatus, BattleVoteState
    from ..session import TimeoutSweeper, build_services
    from .schemas import (
        # Request models
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
        # Response models
        ErrorResponse,
        GameStateResponse,
        GameEventResponse,
        BattleStateResponse,
        VoteResponse,
        DeleteResponse,
        SweepResponse,
        SweepActionInfo,
        HealthResponse,
        # Nested models
        PlayerInfo,
        TurnInfo,
        DisputeInfo,
    )

    config = config or EngineConfig.from_env()
    if game_service is None or battle_service is None:
        default_games, default_battles = build_services(config)
        game_service = game_service or default_games
        battle_service = battle_service or default_battles
    sweeper = TimeoutSweeper(games=game_service, battles=battle_service)

    app = FastAPI(
        title="S.K.A.T.E. Engine API",
        description="""
Game of S.K.A.T.E. and video battle voting.

## Idempotency

Send an `event_id` with every command and reuse it when retrying.
A repeated `event_id` returns the current state with `already_processed=true`.

## Error Codes

| Code | Status |
|------|--------|
| `NOT_FOUND` | 404 |
| `NOT_YOUR_TURN`, `NOT_CREATOR`, `NOT_JUDGE`, `NOT_A_PARTICIPANT` | 403 |
| `WRONG_PHASE`, `GAME_NOT_ACTIVE`, `DEADLINE_PASSED`, `VOTING_NOT_ACTIVE` | 409 |
| `VALIDATION_ERROR` | 422 |
        """,
        version=__version__,
        docs_url="/api/docs",
        redoc_url="/api/redoc",
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.allowed_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    ERRORS = {
        400: {"model": ErrorResponse},
        403: {"model": ErrorResponse},
        404: {"model": ErrorResponse},
        409: {"model": ErrorResponse},
    }

    # =========================================================================
    # Error helpers
    # =========================================================================

    def make_error_response(
        error_code: str,
        message: str,
        status_code: int = 400,
        details: Optional[dict] = None,
    ) -> JSONResponse:
        """Create a standardized error response."""
        return JSONResponse(
            status_code=status_code,
            content=ErrorResponse(
                error=message,
                error_code=error_code,
                details=details,
            ).model_dump(),
        )

    def transition_error(result: TransitionResult) -> JSONResponse:
        return make_error_response(
            result.error_code.value, result.error, status_for(result.error_code)
        )

    def run_game_command(event_id: str, call: Callable[[], TransitionResult]):
        try:
            result = call()
        except ValueError as e:
            return make_error_response("VALIDATION_ERROR", str(e), 422)
        if not result.success:
            return transition_error(result)
        return GameEventResponse(
            success=True,
            event_id=event_id,
            already_processed=result.already_processed,
            already_initialized=result.already_initialized,
            changes=result.changes,
            details=result.details,
            game=convert_game(result.new_state),
        )

    def run_battle_command(event_id: str, call: Callable[[], TransitionResult]):
        try:
            result = call()
        except ValueError as e:
            return make_error_response("VALIDATION_ERROR", str(e), 422)
        if not result.success:
            return transition_error(result)
        state = result.new_state
        return VoteResponse(
            success=True,
            event_id=event_id,
            already_processed=result.already_processed,
            already_initialized=result.already_initialized,
            battle_complete=state.status == BattleStatus.COMPLETED,
            winner_id=state.winner_id,
            final_score=state.final_score,
            battle=convert_battle(state),
        )

    # =========================================================================
    # Game Endpoints
    # =========================================================================

    @app.post(
        "/api/v1/games",
        response_model=GameEventResponse,
        responses=ERRORS,
        tags=["Games"],
        summary="Create a game lobby",
    )
    def create_game(request: CreateGameRequest):
        """
        Open a lobby with the creator seated.

        The game id is derived from event_id unless game_id is given, so
        a retried create returns the same game with already_initialized=true.
        """
        event_id = request.event_id or generate_event_id("create", request.creator_id, request.spot_id)
        return run_game_command(event_id, lambda: game_service.create_game(
            event_id,
            spot_id=request.spot_id,
            creator_id=request.creator_id,
            max_players=request.max_players,
            judging=request.judging.value,
            game_id=request.game_id,
        ))

    @app.get(
        "/api/v1/games/{game_id}",
        response_model=GameStateResponse,
        responses={404: {"model": ErrorResponse}},
        tags=["Games"],
        summary="Get game state",
    )
    def get_game(game_id: str):
        state = game_service.get_game(game_id)
        if state is None:
            return make_error_response(ErrorCode.NOT_FOUND.value, "Game not found", 404)
        return convert_game(state)

    @app.delete(
        "/api/v1/games/{game_id}",
        response_model=DeleteResponse,
        responses={404: {"model": ErrorResponse}},
        tags=["Games"],
        summary="Delete a game",
    )
    def delete_game(game_id: str):
        if not game_service.delete_game(game_id):
            return make_error_response(ErrorCode.NOT_FOUND.value, "Game not found", 404)
        return DeleteResponse(success=True, game_id=game_id)

    @app.post(
        "/api/v1/games/{game_id}/join",
        response_model=GameEventResponse,
        responses=ERRORS,
        tags=["Games"],
        summary="Join a lobby",
    )
    def join_game(game_id: str, request: JoinGameRequest):
        event_id = request.event_id or generate_event_id("join", request.player_id, game_id)
        return run_game_command(event_id, lambda: game_service.join_game(
            event_id, game_id, request.player_id, start=request.start
        ))

    @app.post(
        "/api/v1/games/{game_id}/start",
        response_model=GameEventResponse,
        responses=ERRORS,
        tags=["Games"],
        summary="Creator starts the game",
    )
    def start_game(game_id: str, request: PlayerCommandRequest):
        event_id = request.event_id or generate_event_id("start", request.player_id, game_id)
        return run_game_command(event_id, lambda: game_service.start_game(
            event_id, game_id, request.player_id
        ))

    @app.post(
        "/api/v1/games/{game_id}/tricks",
        response_model=GameEventResponse,
        responses=ERRORS,
        tags=["Turns"],
        summary="Set or attempt a trick",
    )
    def submit_trick(game_id: str, request: SubmitTrickRequest):
        """
        In the set phase this sets the trick. In the attempt phase it is a
        land (self-reported games) or a response for the setter to judge.
        """
        event_id = request.event_id or generate_event_id("trick", request.player_id, game_id)
        return run_game_command(event_id, lambda: game_service.submit_trick(
            event_id, game_id, request.player_id, request.trick_name, video_url=request.video_url
        ))

    @app.post(
        "/api/v1/games/{game_id}/pass",
        response_model=GameEventResponse,
        responses=ERRORS,
        tags=["Turns"],
        summary="Pass on an attempt",
    )
    def pass_trick(game_id: str, request: PlayerCommandRequest):
        event_id = request.event_id or generate_event_id("pass", request.player_id, game_id)
        return run_game_command(event_id, lambda: game_service.pass_trick(
            event_id, game_id, request.player_id
        ))

    @app.post(
        "/api/v1/games/{game_id}/judge",
        response_model=GameEventResponse,
        responses=ERRORS,
        tags=["Turns"],
        summary="Judge a response",
    )
    def judge_turn(game_id: str, request: JudgeTurnRequest):
        event_id = request.event_id or generate_event_id("judge", request.player_id, game_id)
        return run_game_command(event_id, lambda: game_service.judge_turn(
            event_id, game_id, request.player_id, request.turn_id, request.result.value
        ))

    @app.post(
        "/api/v1/games/{game_id}/bail",
        response_model=GameEventResponse,
        responses=ERRORS,
        tags=["Turns"],
        summary="Setter bails their own trick",
    )
    def setter_bail(game_id: str, request: PlayerCommandRequest):
        event_id = request.event_id or generate_event_id("setter_bail", request.player_id, game_id)
        return run_game_command(event_id, lambda: game_service.setter_bail(
            event_id, game_id, request.player_id
        ))

    @app.post(
        "/api/v1/games/{game_id}/disconnect",
        response_model=GameEventResponse,
        responses=ERRORS,
        tags=["Connection"],
        summary="Record a disconnect",
    )
    def disconnect(game_id: str, request: PlayerCommandRequest):
        event_id = request.event_id or generate_event_id("disconnect", request.player_id, game_id)
        return run_game_command(event_id, lambda: game_service.handle_disconnect(
            event_id, game_id, request.player_id
        ))

    @app.post(
        "/api/v1/games/{game_id}/reconnect",
        response_model=GameEventResponse,
        responses=ERRORS,
        tags=["Connection"],
        summary="Record a reconnect",
    )
    def reconnect(game_id: str, request: PlayerCommandRequest):
        event_id = request.event_id or generate_event_id("reconnect", request.player_id, game_id)
        return run_game_command(event_id, lambda: game_service.handle_reconnect(
            event_id, game_id, request.player_id
        ))

    @app.post(
        "/api/v1/games/{game_id}/forfeit",
        response_model=GameEventResponse,
        responses=ERRORS,
        tags=["Games"],
        summary="Forfeit the game",
    )
    def forfeit_game(game_id: str, request: ForfeitRequest):
        event_id = request.event_id or generate_event_id("forfeit", request.player_id, game_id)
        return run_game_command(event_id, lambda: game_service.forfeit_game(
            event_id, game_id, request.player_id, reason=request.reason.value
        ))

    @app.post(
        "/api/v1/games/{game_id}/disputes",
        response_model=GameEventResponse,
        responses=ERRORS,
        tags=["Disputes"],
        summary="Dispute a missed judgment",
    )
    def file_dispute(game_id: str, request: FileDisputeRequest):
        event_id = request.event_id or generate_event_id("dispute", request.player_id, game_id)
        return run_game_command(event_id, lambda: game_service.file_dispute(
            event_id, game_id, request.player_id, request.turn_id
        ))

    @app.post(
        "/api/v1/games/{game_id}/disputes/{dispute_id}/resolve",
        response_model=GameEventResponse,
        responses=ERRORS,
        tags=["Disputes"],
        summary="Resolve a dispute",
    )
    def resolve_dispute(game_id: str, dispute_id: int, request: ResolveDisputeRequest):
        event_id = request.event_id or generate_event_id("resolve", request.player_id, game_id)
        return run_game_command(event_id, lambda: game_service.resolve_dispute(
            event_id,
            game_id,
            request.player_id,
            dispute_id,
            request.final_result.value,
        ))

    # =========================================================================
    # Battle Endpoints
    # =========================================================================

    @app.post(
        "/api/v1/battles/{battle_id}/voting",
        response_model=VoteResponse,
        responses=ERRORS,
        tags=["Battles"],
        summary="Open voting for a battle",
    )
    def initialize_voting(battle_id: str, request: InitializeVotingRequest):
        event_id = request.event_id or generate_event_id("init_voting", request.creator_id, battle_id)
        return run_battle_command(event_id, lambda: battle_service.initialize_voting(
            event_id, battle_id, request.creator_id, request.opponent_id
        ))

    @app.post(
        "/api/v1/battles/{battle_id}/votes",
        response_model=VoteResponse,
        responses=ERRORS,
        tags=["Battles"],
        summary="Cast or change a vote",
    )
    def cast_vote(battle_id: str, request: CastVoteRequest):
        event_id = request.event_id or generate_event_id("vote", request.player_id, battle_id)
        return run_battle_command(event_id, lambda: battle_service.cast_vote(
            event_id, battle_id, request.player_id, request.vote.value
        ))

    @app.get(
        "/api/v1/battles/{battle_id}",
        response_model=BattleStateResponse,
        responses={404: {"model": ErrorResponse}},
        tags=["Battles"],
        summary="Get vote state",
    )
    def get_vote_state(battle_id: str):
        state = battle_service.get_vote_state(battle_id)
        if state is None:
            return make_error_response(ErrorCode.NOT_FOUND.value, "Battle not found", 404)
        return convert_battle(state)

    # =========================================================================
    # Admin / System
    # =========================================================================

    @app.post(
        "/api/v1/admin/games/{game_id}/disputes/{dispute_id}/resolve",
        response_model=GameEventResponse,
        responses=ERRORS,
        tags=["Admin"],
        summary="Resolve a dispute as a moderator",
    )
    def admin_resolve_dispute(game_id: str, dispute_id: int, request: AdminResolveDisputeRequest):
        event_id = request.event_id or generate_event_id("resolve", request.admin_id, game_id)
        return run_game_command(event_id, lambda: game_service.resolve_dispute(
            event_id,
            game_id,
            request.admin_id,
            dispute_id,
            request.final_result.value,
            admin=True,
        ))

    @app.post(
        "/api/v1/admin/sweep",
        response_model=SweepResponse,
        tags=["Admin"],
        summary="Apply due turn, reconnect and vote timeouts",
    )
    def sweep():
        report = sweeper.sweep()
        return SweepResponse(
            now=report.now,
            applied=len(report.applied),
            actions=[
                SweepActionInfo(
                    kind=a.kind,
                    record_id=a.record_id,
                    action=a.action,
                    event_id=a.event_id,
                    success=a.success,
                    already_processed=a.already_processed,
                    error=a.error,
                )
                for a in report.actions
            ],
        )

    @app.get(
        "/health",
        response_model=HealthResponse,
        tags=["System"],
        summary="Health check",
    )
    def health_check() -> HealthResponse:
        """Health check endpoint for load balancers."""
        return HealthResponse(
            status="healthy",
            service="skate-engine",
            version=__version__,
        )

    @app.get("/", tags=["System"])
    def root():
        """Root endpoint with API info."""
        return {
            "name": "S.K.A.T.E. Engine API",
            "version": __version__,
            "docs": "/api/docs",
            "health": "/health",
        }

    # =========================================================================
    # Conversion Helpers
    # =========================================================================

    def convert_game(state: GameSession) -> GameStateResponse:
        current = state.current_player if state.status.value in ("active", "paused") else None
        return GameStateResponse(
            game_id=state.game_id,
            spot_id=state.spot_id,
            creator_id=state.creator_id,
            status=state.status.value,
            judging=state.judging.value,
            max_players=state.max_players,
            players=[
                PlayerInfo(
                    player_id=p.player_id,
                    letters=p.letters,
                    connected=p.connected,
                    is_eliminated=p.is_eliminated,
                )
                for p in state.players
            ],
            current_player_id=current.player_id if current else None,
            current_action=state.current_action.value if state.current_action else None,
            current_trick=state.current_trick,
            setter_id=state.setter_id,
            winner_id=state.winner_id,
            forfeit_reason=state.forfeit_reason.value if state.forfeit_reason else None,
            turn_deadline_at=state.turn_deadline_at,
            turns=[
                TurnInfo(
                    turn_id=t.turn_id,
                    player_id=t.player_id,
                    turn_number=t.turn_number,
                    turn_type=t.turn_type.value,
                    trick_description=t.trick_description,
                    video_url=t.video_url,
                    result=t.result.value,
                    judged_by=t.judged_by,
                    judged_at=t.judged_at,
                )
                for t in state.turns
            ],
            disputes=[
                DisputeInfo(
                    dispute_id=d.dispute_id,
                    turn_id=d.turn_id,
                    disputed_by=d.disputed_by,
                    against_player_id=d.against_player_id,
                    final_result=d.final_result.value if d.final_result else None,
                    resolved_by=d.resolved_by,
                )
                for d in state.disputes
            ],
        )

    def convert_battle(state: BattleVoteState) -> BattleStateResponse:
        return BattleStateResponse(
            battle_id=state.battle_id,
            creator_id=state.creator_id,
            opponent_id=state.opponent_id,
            status=state.status.value,
            votes={pid: v.vote.value for pid, v in state.votes.items()},
            voting_started_at=state.voting_started_at,
            vote_deadline_at=state.vote_deadline_at,
            winner_id=state.winner_id,
            final_score=state.final_score,
            completion_reason=(
                state.completion_reason.value if state.completion_reason else None
            ),
        )

    return app
