"""
Game and battle services - The only writers of stored records.

Every command follows the same path:
1. Validate the command shape (ValueError, before any state is read)
2. Open a store transaction on the record id
3. Run the pure transition
4. Commit iff the transition mutated state
5. Deliver notifications after the commit

Precondition failures come back as TransitionResult(success=False).
Storage errors propagate and nothing is committed.
"""

from __future__ import annotations
from typing import Any, Callable
import logging
import time
import uuid

from ..config import EngineConfig
from ..engine_core.event import ErrorCode, GameEvent, TransitionResult
from ..engine_core.reducer import GameReducer, create_game_session
from ..engine_core.state import ForfeitReason, GameSession, JudgingMode, TurnResult
from ..battle.state import BattleVoteState, VoteChoice
from ..battle.voting import VoteEvent, VotingEngine, initialize_vote_state
from ..persistence import InMemoryStore, StateStore
from .notifications import LoggingNotificationSink, NotificationSink

logger = logging.getLogger(__name__)

# Game ids derived from create events live in their own uuid5 namespace
GAME_ID_NAMESPACE = uuid.UUID("6f1c2d1e-5b7a-4c53-9a3e-2f0c8d4b7e91")


def _require_id(value: Any, name: str) -> str:
    if not isinstance(value, str) or not value.strip():
        raise ValueError(f"{name} must be a non-empty string")
    return value


def _require_choice(value: Any, enum_cls, name: str):
    try:
        return enum_cls(value)
    except ValueError:
        allowed = ", ".join(m.value for m in enum_cls)
        raise ValueError(f"{name} must be one of: {allowed}")


def derive_game_id(event_id: str) -> str:
    """Stable game id for a create event, so a retried create lands on the same record."""
    return str(uuid.uuid5(GAME_ID_NAMESPACE, event_id))


def _log_result(kind: str, record_id: str, event_id: str, result: TransitionResult):
    if result.already_processed:
        logger.debug("%s %s: event %s already processed", kind, record_id, event_id)
    elif result.success:
        logger.info("%s %s: %s", kind, record_id, "; ".join(result.changes) or event_id)
    else:
        logger.debug(
            "%s %s: event %s rejected (%s) %s",
            kind, record_id, event_id, result.error_code.value, result.error,
        )


class GameService:
    """
    S.K.A.T.E. game commands over a StateStore.

    Usage:
        service = GameService()
        created = service.create_game("create-1", spot_id="spot-9", creator_id="alice")
        game_id = created.new_state.game_id
        service.join_game("join-1", game_id, "bob")
        service.submit_trick("trick-1", game_id, "alice", "kickflip")
    """

    def __init__(
        self,
        store: StateStore | None = None,
        config: EngineConfig | None = None,
        notifier: NotificationSink | None = None,
        clock: Callable[[], float] = time.time,
    ):
        self.store = store if store is not None else InMemoryStore()
        self.config = config or EngineConfig()
        self.reducer = GameReducer(config=self.config)
        self.notifier = notifier or LoggingNotificationSink()
        self.clock = clock

    # =========================================================================
    # Lobby
    # =========================================================================

    def create_game(
        self,
        event_id: str,
        spot_id: str,
        creator_id: str,
        max_players: int | None = None,
        judging: JudgingMode | str = JudgingMode.SELF_REPORTED,
        game_id: str | None = None,
    ) -> TransitionResult:
        """
        Open a lobby with the creator seated.

        Idempotent by record existence: a second call with the same
        event id (or game id) returns the stored game untouched.
        """
        _require_id(event_id, "event_id")
        _require_id(spot_id, "spot_id")
        _require_id(creator_id, "creator_id")
        if max_players is not None and (isinstance(max_players, bool) or not isinstance(max_players, int)):
            raise ValueError("max_players must be an integer")
        judging = _require_choice(judging, JudgingMode, "judging")
        game_id = _require_id(game_id, "game_id") if game_id is not None else derive_game_id(event_id)

        with self.store.transaction(game_id) as tx:
            if tx.exists:
                logger.info("Game %s already exists, create %s skipped", game_id, event_id)
                return TransitionResult.existing(tx.state)
            state = create_game_session(
                game_id=game_id,
                spot_id=spot_id,
                creator_id=creator_id,
                max_players=max_players,
                judging=judging,
                event_id=event_id,
                now=self.clock(),
            )
            tx.commit(state)

        logger.info(
            "Game %s created by %s at %s (%d players, %s)",
            game_id, creator_id, spot_id, state.max_players, judging.value,
        )
        return TransitionResult.success_with_state(state, changes=[f"{creator_id} created the game"])

    def join_game(self, event_id: str, game_id: str, player_id: str, start: bool = False) -> TransitionResult:
        self._check_ids(event_id, game_id, player_id)
        return self._apply(game_id, GameEvent.join(event_id, player_id, start=bool(start), timestamp=self.clock()))

    def start_game(self, event_id: str, game_id: str, player_id: str) -> TransitionResult:
        self._check_ids(event_id, game_id, player_id)
        return self._apply(game_id, GameEvent.start(event_id, player_id, timestamp=self.clock()))

    # =========================================================================
    # Turn flow
    # =========================================================================

    def submit_trick(
        self,
        event_id: str,
        game_id: str,
        player_id: str,
        trick_name: str,
        video_url: str | None = None,
    ) -> TransitionResult:
        self._check_ids(event_id, game_id, player_id)
        _require_id(trick_name, "trick_name")
        if video_url is not None and not isinstance(video_url, str):
            raise ValueError("video_url must be a string")
        event = GameEvent.submit_trick(
            event_id, player_id, trick_name.strip(), video_url=video_url or None, timestamp=self.clock()
        )
        return self._apply(game_id, event)

    def pass_trick(self, event_id: str, game_id: str, player_id: str) -> TransitionResult:
        self._check_ids(event_id, game_id, player_id)
        return self._apply(game_id, GameEvent.pass_trick(event_id, player_id, timestamp=self.clock()))

    def judge_turn(
        self, event_id: str, game_id: str, player_id: str, turn_id: int, result: TurnResult | str
    ) -> TransitionResult:
        self._check_ids(event_id, game_id, player_id)
        if isinstance(turn_id, bool) or not isinstance(turn_id, int):
            raise ValueError("turn_id must be an integer")
        verdict = _require_choice(result, TurnResult, "result")
        if verdict not in (TurnResult.LANDED, TurnResult.MISSED):
            raise ValueError("result must be landed or missed")
        event = GameEvent.judge(event_id, player_id, turn_id, verdict.value, timestamp=self.clock())
        return self._apply(game_id, event)

    def setter_bail(self, event_id: str, game_id: str, player_id: str) -> TransitionResult:
        self._check_ids(event_id, game_id, player_id)
        return self._apply(game_id, GameEvent.setter_bail(event_id, player_id, timestamp=self.clock()))

    # =========================================================================
    # Connection
    # =========================================================================

    def handle_disconnect(self, event_id: str, game_id: str, player_id: str) -> TransitionResult:
        self._check_ids(event_id, game_id, player_id)
        return self._apply(game_id, GameEvent.disconnect(event_id, player_id, timestamp=self.clock()))

    def handle_reconnect(self, event_id: str, game_id: str, player_id: str) -> TransitionResult:
        self._check_ids(event_id, game_id, player_id)
        return self._apply(game_id, GameEvent.reconnect(event_id, player_id, timestamp=self.clock()))

    # =========================================================================
    # Ending
    # =========================================================================

    def forfeit_game(
        self,
        event_id: str,
        game_id: str,
        player_id: str,
        reason: ForfeitReason | str = ForfeitReason.VOLUNTARY,
    ) -> TransitionResult:
        self._check_ids(event_id, game_id, player_id)
        reason = _require_choice(reason, ForfeitReason, "reason")
        event = GameEvent.forfeit(event_id, player_id, reason=reason.value, timestamp=self.clock())
        return self._apply(game_id, event)

    def timeout_round(self, event_id: str, game_id: str, player_id: str) -> TransitionResult:
        """Drop an expired attempt or judgment. Issued by the sweeper."""
        self._check_ids(event_id, game_id, player_id)
        return self._apply(game_id, GameEvent.round_timeout(event_id, player_id, timestamp=self.clock()))

    # =========================================================================
    # Disputes
    # =========================================================================

    def file_dispute(self, event_id: str, game_id: str, player_id: str, turn_id: int) -> TransitionResult:
        self._check_ids(event_id, game_id, player_id)
        if isinstance(turn_id, bool) or not isinstance(turn_id, int):
            raise ValueError("turn_id must be an integer")
        return self._apply(game_id, GameEvent.file_dispute(event_id, player_id, turn_id, timestamp=self.clock()))

    def resolve_dispute(
        self,
        event_id: str,
        game_id: str,
        player_id: str,
        dispute_id: int,
        final_result: TurnResult | str,
        admin: bool = False,
    ) -> TransitionResult:
        self._check_ids(event_id, game_id, player_id)
        if isinstance(dispute_id, bool) or not isinstance(dispute_id, int):
            raise ValueError("dispute_id must be an integer")
        verdict = _require_choice(final_result, TurnResult, "final_result")
        if verdict not in (TurnResult.LANDED, TurnResult.MISSED):
            raise ValueError("final_result must be landed or missed")
        event = GameEvent.resolve_dispute(
            event_id, player_id, dispute_id, verdict.value, admin=bool(admin), timestamp=self.clock()
        )
        return self._apply(game_id, event)

    # =========================================================================
    # Records
    # =========================================================================

    def get_game(self, game_id: str) -> GameSession | None:
        return self.store.get(_require_id(game_id, "game_id"))

    def delete_game(self, game_id: str) -> bool:
        deleted = self.store.delete(_require_id(game_id, "game_id"))
        if deleted:
            logger.info("Game %s deleted", game_id)
        return deleted

    def list_games(self) -> list[GameSession]:
        return list(self.store.scan())

    # =========================================================================
    # Internals
    # =========================================================================

    def _check_ids(self, event_id: str, game_id: str, player_id: str):
        _require_id(event_id, "event_id")
        _require_id(game_id, "game_id")
        _require_id(player_id, "player_id")

    def _apply(self, game_id: str, event: GameEvent) -> TransitionResult:
        with self.store.transaction(game_id) as tx:
            if not tx.exists:
                result = TransitionResult.failure("Game not found", ErrorCode.NOT_FOUND)
            else:
                result = self.reducer.apply(tx.state, event)
                if result.mutated:
                    tx.commit(result.new_state)

        _log_result("Game", game_id, event.event_id, result)
        if result.mutated:
            for notification in result.notifications:
                self.notifier.notify(notification.player_id, notification.kind, notification.payload)
        return result


class BattleService:
    """Vote commands for battles over a StateStore."""

    def __init__(
        self,
        store: StateStore | None = None,
        config: EngineConfig | None = None,
        clock: Callable[[], float] = time.time,
        engine: VotingEngine | None = None,
    ):
        self.store = store if store is not None else InMemoryStore()
        self.config = config or EngineConfig()
        self.engine = engine or VotingEngine(config=self.config)
        self.clock = clock

    def initialize_voting(
        self, event_id: str, battle_id: str, creator_id: str, opponent_id: str
    ) -> TransitionResult:
        """Open voting for a battle. A second call returns the existing record."""
        _require_id(event_id, "event_id")
        _require_id(battle_id, "battle_id")
        _require_id(creator_id, "creator_id")
        _require_id(opponent_id, "opponent_id")
        if creator_id == opponent_id:
            raise ValueError("creator_id and opponent_id must differ")

        with self.store.transaction(battle_id) as tx:
            if tx.exists:
                logger.info("Voting for battle %s already initialized", battle_id)
                return TransitionResult.existing(tx.state)
            state = initialize_vote_state(
                battle_id, creator_id, opponent_id,
                event_id=event_id, now=self.clock(), config=self.config,
            )
            tx.commit(state)

        logger.info("Voting initialized for battle %s (%s vs %s)", battle_id, creator_id, opponent_id)
        return TransitionResult.success_with_state(state, changes=["Voting opened"])

    def cast_vote(self, event_id: str, battle_id: str, player_id: str, vote: VoteChoice | str) -> TransitionResult:
        _require_id(event_id, "event_id")
        _require_id(battle_id, "battle_id")
        _require_id(player_id, "player_id")
        choice = _require_choice(vote, VoteChoice, "vote")
        return self._apply(battle_id, VoteEvent.cast(event_id, player_id, choice, timestamp=self.clock()))

    def expire_voting(self, event_id: str, battle_id: str) -> TransitionResult:
        """Close voting after its deadline. Issued by the sweeper."""
        _require_id(event_id, "event_id")
        _require_id(battle_id, "battle_id")
        return self._apply(battle_id, VoteEvent.timeout(event_id, battle_id, timestamp=self.clock()))

    def get_vote_state(self, battle_id: str) -> BattleVoteState | None:
        return self.store.get(_require_id(battle_id, "battle_id"))

    def list_battles(self) -> list[BattleVoteState]:
        return list(self.store.scan())

    def _apply(self, battle_id: str, event: VoteEvent) -> TransitionResult:
        with self.store.transaction(battle_id) as tx:
            if not tx.exists:
                result = TransitionResult.failure("Battle not found", ErrorCode.NOT_FOUND)
            else:
                result = self.engine.apply(tx.state, event)
                if result.mutated:
                    tx.commit(result.new_state)

        _log_result("Battle", battle_id, event.event_id, result)
        return result


def build_services(
    config: EngineConfig | None = None,
    notifier: NotificationSink | None = None,
    clock: Callable[[], float] = time.time,
) -> tuple[GameService, BattleService]:
    """
    Wire both services to the configured storage.

    SKATE_DATABASE_URL selects the SQL store; otherwise records live in
    process memory and vanish on restart.
    """
    config = config or EngineConfig.from_env()
    if config.database_url:
        from ..persistence.sql import SqlStore, make_engine

        engine = make_engine(config.database_url)
        game_store = SqlStore(engine, "game", GameSession.from_dict)
        battle_store = SqlStore(engine, "battle", BattleVoteState.from_dict)
        logger.info("Using SQL store at %s", engine.url.render_as_string(hide_password=True))
    else:
        game_store = InMemoryStore()
        battle_store = InMemoryStore()
        logger.info("Using in-memory store")

    games = GameService(store=game_store, config=config, notifier=notifier, clock=clock)
    battles = BattleService(store=battle_store, config=config, clock=clock)
    return games, battles
