"""
Reducer - Applies events to a game session.

The reducer is the single point of state mutation.
All state changes must go through GameReducer.apply().

Design principles:
- Pure function: (state, event) -> TransitionResult
- Idempotency is checked before anything else
- Preconditions fail with a result, never an exception
- The returned state carries the event id in its ledger
- Notifications are described, not sent
"""

from __future__ import annotations
from dataclasses import dataclass, field

from ..config import EngineConfig, MAX_PLAYERS_CAP, MIN_PLAYERS
from .state import (
    GameSession, GameStatus, GameTurn, JudgingMode, Player, TurnAction,
    TurnResult, TurnType, ForfeitReason,
)
from .event import (
    EventType, ErrorCode, GameEvent, Notification, NotificationKind, TransitionResult,
)
from .idempotency import check_event, record_event
from .rotation import next_eligible_index, next_letters, standings, surviving_players
from .judge import JudgeFlow


def clamp_max_players(max_players: int | None) -> int:
    """Lobby size, forced into 2..8."""
    if max_players is None:
        return MIN_PLAYERS
    return max(MIN_PLAYERS, min(int(max_players), MAX_PLAYERS_CAP))


def create_game_session(
    game_id: str,
    spot_id: str,
    creator_id: str,
    max_players: int | None = None,
    judging: JudgingMode = JudgingMode.SELF_REPORTED,
    event_id: str | None = None,
    now: float = 0.0,
) -> GameSession:
    """
    Build a fresh session with the creator seated.

    Initialization is idempotent by record existence, so this is not
    routed through the ledger check; the event id is still recorded.
    """
    return GameSession(
        game_id=game_id,
        spot_id=spot_id,
        creator_id=creator_id,
        max_players=clamp_max_players(max_players),
        players=[Player(player_id=creator_id)],
        status=GameStatus.WAITING,
        judging=judging,
        processed_event_ids=[event_id] if event_id else [],
        created_at=now,
        updated_at=now,
    )


@dataclass
class GameReducer(JudgeFlow):
    """
    Reducer applies events to a game session.

    Stateless - all state is in GameSession.
    Config provides timeouts and ledger size.
    """
    config: EngineConfig = field(default_factory=EngineConfig)

    def apply(self, state: GameSession, event: GameEvent) -> TransitionResult:
        """
        Apply an event to the game session.

        Returns TransitionResult with new state or error.
        """
        duplicate = check_event(state, event.event_id)
        if duplicate:
            return duplicate

        handler = self._get_handler(event.event_type)
        if not handler:
            return TransitionResult.failure(
                f"No handler for event type: {event.event_type}",
                ErrorCode.UNKNOWN_EVENT,
            )

        result = handler(state, event)
        if result.success and result.new_state is not None:
            result.new_state = result.new_state._copy_with(
                processed_event_ids=record_event(
                    result.new_state.processed_event_ids,
                    event.event_id,
                    self.config.max_game_events,
                ),
                updated_at=event.timestamp,
            )
        return result

    def _get_handler(self, event_type: EventType):
        """Get the handler function for an event type."""
        handlers = {
            EventType.JOIN: self._handle_join,
            EventType.START: self._handle_start,
            EventType.SUBMIT_TRICK: self._handle_submit_trick,
            EventType.PASS: self._handle_pass,
            EventType.JUDGE: self._handle_judge,
            EventType.SETTER_BAIL: self._handle_setter_bail,
            EventType.DISCONNECT: self._handle_disconnect,
            EventType.RECONNECT: self._handle_reconnect,
            EventType.FORFEIT: self._handle_forfeit,
            EventType.ROUND_TIMEOUT: self._handle_round_timeout,
            EventType.FILE_DISPUTE: self._handle_file_dispute,
            EventType.RESOLVE_DISPUTE: self._handle_resolve_dispute,
        }
        return handlers.get(event_type)

    # =========================================================================
    # Lobby
    # =========================================================================

    def _handle_join(self, state: GameSession, event: GameEvent) -> TransitionResult:
        if state.status != GameStatus.WAITING:
            return TransitionResult.failure("Game has already started", ErrorCode.ALREADY_STARTED)
        if state.is_full:
            return TransitionResult.failure("Game is full", ErrorCode.GAME_FULL)
        if state.get_player(event.player_id):
            return TransitionResult.failure("Already in game", ErrorCode.ALREADY_IN_GAME)

        new_state = state._copy_with(players=[*state.players, Player(player_id=event.player_id)])
        changes = [f"{event.player_id} joined"]

        if new_state.is_full or (event.payload.start and new_state.num_players >= MIN_PLAYERS):
            return self._start(new_state, event.timestamp, changes)

        return TransitionResult.success_with_state(new_state, changes=changes)

    def _handle_start(self, state: GameSession, event: GameEvent) -> TransitionResult:
        if state.status != GameStatus.WAITING:
            return TransitionResult.failure("Game has already started", ErrorCode.ALREADY_STARTED)
        if not state.get_player(event.player_id):
            return TransitionResult.failure("Player not in game", ErrorCode.PLAYER_NOT_IN_GAME)
        if event.player_id != state.creator_id:
            return TransitionResult.failure("Only the creator can start the game", ErrorCode.NOT_CREATOR)
        if state.num_players < MIN_PLAYERS:
            return TransitionResult.failure(
                "At least two players are needed to start", ErrorCode.NOT_ENOUGH_PLAYERS
            )
        return self._start(state, event.timestamp, [])

    def _start(self, state: GameSession, now: float, changes: list[str]) -> TransitionResult:
        new_state = state._copy_with(
            status=GameStatus.ACTIVE,
            current_turn_index=0,
            current_action=TurnAction.SET,
            current_trick=None,
            setter_id=None,
            turn_deadline_at=self._deadline(now),
        )
        first = new_state.players[0].player_id
        return TransitionResult.success_with_state(
            new_state,
            changes=[*changes, f"Game started. {first} sets first"],
            notifications=[self._your_turn(new_state, first, TurnAction.SET)],
        )

    # =========================================================================
    # Turn flow
    # =========================================================================

    def _handle_submit_trick(self, state: GameSession, event: GameEvent) -> TransitionResult:
        if state.status != GameStatus.ACTIVE:
            return TransitionResult.failure("Game is not active", ErrorCode.GAME_NOT_ACTIVE)

        current = state.current_player
        if current is None or current.player_id != event.player_id:
            return TransitionResult.failure("Not your turn", ErrorCode.NOT_YOUR_TURN)

        if state.current_action == TurnAction.JUDGE:
            return TransitionResult.failure(
                "Current phase does not accept submissions", ErrorCode.WRONG_PHASE
            )

        if state.turn_deadline_at is not None and event.timestamp > state.turn_deadline_at:
            return TransitionResult.failure("Turn deadline has passed", ErrorCode.DEADLINE_PASSED)

        if state.judging == JudgingMode.SETTER_JUDGED and not event.payload.video_url:
            return TransitionResult.failure(
                "A video is required in judged games", ErrorCode.NO_RESPONSE_SUBMITTED
            )

        trick_name = event.payload.trick_name or state.current_trick or ""

        if state.current_action == TurnAction.SET:
            return self._set_trick(state, event, trick_name)
        return self._attempt_trick(state, event, trick_name)

    def _set_trick(self, state: GameSession, event: GameEvent, trick_name: str) -> TransitionResult:
        idx = state.current_turn_index
        next_idx = next_eligible_index(state.players, idx)
        if next_idx is None:
            return TransitionResult.failure(
                "No other player can attempt the trick", ErrorCode.NO_ELIGIBLE_PLAYER
            )

        turn = self._new_turn(state, event, TurnType.SET, trick_name)
        new_state = state._copy_with(
            turns=[*state.turns, turn],
            current_trick=trick_name,
            setter_id=event.player_id,
            current_action=TurnAction.ATTEMPT,
            current_turn_index=next_idx,
            turn_deadline_at=self._deadline(event.timestamp),
        )
        attempter = new_state.players[next_idx].player_id
        return TransitionResult.success_with_state(
            new_state,
            changes=[f"{event.player_id} set {trick_name}"],
            notifications=[self._your_turn(new_state, attempter, TurnAction.ATTEMPT)],
            details={"turn_id": turn.turn_id},
        )

    def _attempt_trick(self, state: GameSession, event: GameEvent, trick_name: str) -> TransitionResult:
        idx = state.current_turn_index

        if state.judging == JudgingMode.SETTER_JUDGED:
            turn = self._new_turn(state, event, TurnType.RESPONSE, trick_name)
            setter_idx = state.index_of(state.setter_id)
            new_state = state._copy_with(
                turns=[*state.turns, turn],
                current_action=TurnAction.JUDGE,
                current_turn_index=setter_idx,
                turn_deadline_at=self._deadline(event.timestamp),
            )
            return TransitionResult.success_with_state(
                new_state,
                changes=[f"{event.player_id} sent a response to {trick_name}"],
                notifications=[self._your_turn(new_state, state.setter_id, TurnAction.JUDGE)],
                details={"turn_id": turn.turn_id},
            )

        # Self-reported: a submission in the attempt phase is a land
        turn = self._new_turn(state, event, TurnType.RESPONSE, trick_name)
        turn.result = TurnResult.LANDED
        turn.judged_by = event.player_id
        turn.judged_at = event.timestamp
        new_state = state._copy_with(turns=[*state.turns, turn])
        return self._resolve_attempt(
            new_state,
            idx,
            landed=True,
            now=event.timestamp,
            changes=[f"{event.player_id} landed {trick_name}"],
            details={"turn_id": turn.turn_id},
        )

    def _handle_pass(self, state: GameSession, event: GameEvent) -> TransitionResult:
        if state.status != GameStatus.ACTIVE:
            return TransitionResult.failure("Game is not active", ErrorCode.GAME_NOT_ACTIVE)
        if state.current_action != TurnAction.ATTEMPT:
            return TransitionResult.failure(
                "Can only pass during attempt phase", ErrorCode.WRONG_PHASE
            )

        current = state.current_player
        if current is None or current.player_id != event.player_id:
            return TransitionResult.failure("Not your turn", ErrorCode.NOT_YOUR_TURN)

        penalized = self._give_letter(current)
        new_state = state.with_player(penalized)
        return self._resolve_attempt(
            new_state,
            state.current_turn_index,
            landed=False,
            now=event.timestamp,
            changes=[f"{current.player_id} passed and has {penalized.letters}"],
            details={"letters": penalized.letters, "eliminated": penalized.is_eliminated},
        )

    # =========================================================================
    # Connection
    # =========================================================================

    def _handle_disconnect(self, state: GameSession, event: GameEvent) -> TransitionResult:
        player = state.get_player(event.player_id)
        if not player:
            return TransitionResult.failure("Player not in game", ErrorCode.PLAYER_NOT_IN_GAME)

        if state.status not in {GameStatus.ACTIVE, GameStatus.PAUSED}:
            return TransitionResult.success_with_state(
                state, changes=[f"Disconnect ignored while {state.status.value}"]
            )

        updated = Player(
            player_id=player.player_id,
            letters=player.letters,
            connected=False,
            disconnected_at=(
                player.disconnected_at if not player.connected else event.timestamp
            ),
        )
        new_state = state.with_player(updated)
        if state.status == GameStatus.ACTIVE:
            new_state = new_state._copy_with(status=GameStatus.PAUSED, paused_at=event.timestamp)

        return TransitionResult.success_with_state(
            new_state, changes=[f"{player.player_id} disconnected. Game paused"]
        )

    def _handle_reconnect(self, state: GameSession, event: GameEvent) -> TransitionResult:
        player = state.get_player(event.player_id)
        if not player:
            return TransitionResult.failure("Player not in game", ErrorCode.PLAYER_NOT_IN_GAME)

        if state.status not in {GameStatus.ACTIVE, GameStatus.PAUSED}:
            return TransitionResult.success_with_state(
                state, changes=[f"Reconnect ignored while {state.status.value}"]
            )

        new_state = state.with_player(
            Player(player_id=player.player_id, letters=player.letters, connected=True)
        )
        if state.status != GameStatus.PAUSED or not all(p.connected for p in new_state.players):
            return TransitionResult.success_with_state(
                new_state, changes=[f"{player.player_id} reconnected"]
            )

        # Everyone is back: resume where the game left off
        new_state = new_state._copy_with(
            status=GameStatus.ACTIVE,
            paused_at=None,
            turn_deadline_at=self._deadline(event.timestamp),
        )
        notifications = []
        if new_state.current_player:
            notifications.append(
                self._your_turn(new_state, new_state.current_player.player_id, new_state.current_action)
            )
        return TransitionResult.success_with_state(
            new_state,
            changes=[f"{player.player_id} reconnected. Game resumed"],
            notifications=notifications,
        )

    # =========================================================================
    # Ending
    # =========================================================================

    def _handle_forfeit(self, state: GameSession, event: GameEvent) -> TransitionResult:
        if not state.get_player(event.player_id):
            return TransitionResult.failure("Player not in game", ErrorCode.PLAYER_NOT_IN_GAME)
        if state.status.is_terminal:
            return TransitionResult.failure("Game already completed", ErrorCode.ALREADY_COMPLETED)

        reason = ForfeitReason(event.payload.reason or ForfeitReason.VOLUNTARY.value)
        stale = self._timeout_not_due(state, event, reason)
        if stale:
            return TransitionResult.failure(stale, ErrorCode.WRONG_PHASE)

        ranked = standings(state.players, exclude=event.player_id)
        winner_id = ranked[0].player_id if ranked else None

        new_state = state._copy_with(
            status=GameStatus.FORFEITED,
            winner_id=winner_id,
            forfeit_reason=reason,
            turn_deadline_at=None,
            paused_at=None,
        )
        return TransitionResult.success_with_state(
            new_state,
            changes=[f"{event.player_id} forfeited ({reason.value})"],
            notifications=self._game_over(new_state),
        )

    def _timeout_not_due(
        self, state: GameSession, event: GameEvent, reason: ForfeitReason
    ) -> str | None:
        """
        Timeout forfeits come from a sweeper reading an older snapshot.

        They only apply if the condition still holds on the current state.
        """
        if reason == ForfeitReason.TURN_TIMEOUT:
            current = state.current_player
            if (
                state.status != GameStatus.ACTIVE
                or state.current_action != TurnAction.SET
                or current is None
                or current.player_id != event.player_id
                or state.turn_deadline_at is None
                or event.timestamp <= state.turn_deadline_at
            ):
                return "Set phase deadline has not passed"
        elif reason == ForfeitReason.DISCONNECT_TIMEOUT:
            player = state.get_player(event.player_id)
            if (
                player.connected
                or player.disconnected_at is None
                or event.timestamp - player.disconnected_at <= self.config.reconnect_window_seconds
            ):
                return "Reconnect window has not expired"
        return None

    def _handle_round_timeout(self, state: GameSession, event: GameEvent) -> TransitionResult:
        """
        Attempt or judge phase ran out of time.

        The trick is dropped without a letter and the seat after the
        setter sets next.
        """
        if state.status != GameStatus.ACTIVE:
            return TransitionResult.failure("Game is not active", ErrorCode.GAME_NOT_ACTIVE)
        if state.current_action == TurnAction.SET:
            return TransitionResult.failure(
                "Set phase timeouts end in a forfeit", ErrorCode.WRONG_PHASE
            )
        if state.turn_deadline_at is None or event.timestamp <= state.turn_deadline_at:
            return TransitionResult.failure("Turn deadline has not passed", ErrorCode.WRONG_PHASE)

        setter_idx = state.index_of(state.setter_id)
        new_setter = next_eligible_index(state.players, setter_idx)
        if new_setter is None:
            new_setter = setter_idx
        return self._begin_set(
            self._void_pending(state, event.timestamp),
            new_setter,
            event.timestamp,
            changes=["Turn timed out. Round goes to the defender"],
        )

    # =========================================================================
    # Shared transitions
    # =========================================================================

    def _resolve_attempt(
        self,
        state: GameSession,
        attempter_index: int,
        landed: bool,
        now: float,
        changes: list[str],
        details: dict | None = None,
    ) -> TransitionResult:
        """
        Move on after an attempt is settled (land, pass or judgment).

        Letters must already be applied to state. Either the next
        non-setter attempts the same trick, or the round ends and a
        new set phase begins: the attempter sets if they landed,
        otherwise the setter keeps setting.
        """
        survivors = surviving_players(state.players)
        if len(survivors) <= 1:
            winner_id = survivors[0].player_id if survivors else None
            return self._complete(state, winner_id, changes, details)

        players = state.players
        setter_idx = state.index_of(state.setter_id)
        next_idx = next_eligible_index(players, attempter_index)

        if next_idx is not None and next_idx != setter_idx:
            new_state = state._copy_with(
                current_turn_index=next_idx,
                current_action=TurnAction.ATTEMPT,
                turn_deadline_at=self._deadline(now),
            )
            return TransitionResult.success_with_state(
                new_state,
                changes=changes,
                notifications=[
                    self._your_turn(new_state, players[next_idx].player_id, TurnAction.ATTEMPT)
                ],
                details=details,
            )

        if landed and players[attempter_index].is_eligible:
            new_setter = attempter_index
        elif setter_idx >= 0 and players[setter_idx].is_eligible:
            new_setter = setter_idx
        else:
            new_setter = next_eligible_index(players, attempter_index)

        if new_setter is None:
            return TransitionResult.failure("No player can set the next trick", ErrorCode.NO_ELIGIBLE_PLAYER)
        return self._begin_set(state, new_setter, now, changes, details)

    def _begin_set(
        self,
        state: GameSession,
        setter_index: int,
        now: float,
        changes: list[str],
        details: dict | None = None,
    ) -> TransitionResult:
        new_state = state._copy_with(
            current_turn_index=setter_index,
            current_action=TurnAction.SET,
            current_trick=None,
            setter_id=None,
            turn_deadline_at=self._deadline(now),
        )
        setter = new_state.players[setter_index].player_id
        return TransitionResult.success_with_state(
            new_state,
            changes=[*changes, f"{setter} sets next"],
            notifications=[self._your_turn(new_state, setter, TurnAction.SET)],
            details=details,
        )

    def _complete(
        self,
        state: GameSession,
        winner_id: str | None,
        changes: list[str],
        details: dict | None = None,
    ) -> TransitionResult:
        new_state = state._copy_with(
            status=GameStatus.COMPLETED,
            winner_id=winner_id,
            current_trick=None,
            turn_deadline_at=None,
        )
        return TransitionResult.success_with_state(
            new_state,
            changes=[*changes, f"Game over. {winner_id} wins"],
            notifications=self._game_over(new_state),
            details=details,
        )

    def _void_pending(self, state: GameSession, now: float) -> GameSession:
        """Close response turns left without a verdict when their round ends."""
        turns = [
            GameTurn(
                turn_id=t.turn_id,
                game_id=t.game_id,
                player_id=t.player_id,
                turn_number=t.turn_number,
                turn_type=t.turn_type,
                trick_description=t.trick_description,
                video_url=t.video_url,
                result=TurnResult.VOID,
                judged_at=now,
            )
            if t.turn_type == TurnType.RESPONSE and t.result == TurnResult.PENDING
            else t
            for t in state.turns
        ]
        return state._copy_with(turns=turns)

    def _give_letter(self, player: Player) -> Player:
        return Player(
            player_id=player.player_id,
            letters=next_letters(player.letters),
            connected=player.connected,
            disconnected_at=player.disconnected_at,
        )

    def _new_turn(
        self, state: GameSession, event: GameEvent, turn_type: TurnType, trick_name: str
    ) -> GameTurn:
        number = len(state.turns) + 1
        return GameTurn(
            turn_id=number,
            game_id=state.game_id,
            player_id=event.player_id,
            turn_number=number,
            turn_type=turn_type,
            trick_description=trick_name,
            video_url=event.payload.video_url,
        )

    def _deadline(self, now: float) -> float:
        return now + self.config.turn_timeout_seconds

    def _your_turn(self, state: GameSession, player_id: str, action: TurnAction) -> Notification:
        return Notification(
            player_id=player_id,
            kind=NotificationKind.YOUR_TURN,
            payload={
                "game_id": state.game_id,
                "action": action.value,
                "trick": state.current_trick,
            },
        )

    def _game_over(self, state: GameSession) -> list[Notification]:
        return [
            Notification(
                player_id=p.player_id,
                kind=NotificationKind.GAME_OVER,
                payload={
                    "game_id": state.game_id,
                    "winner_id": state.winner_id,
                    "you_won": p.player_id == state.winner_id,
                },
            )
            for p in state.players
        ]


def apply_event(state: GameSession, event: GameEvent, config: EngineConfig | None = None) -> TransitionResult:
    """
    Convenience function to apply an event.

    Creates a GameReducer and applies the event.
    """
    reducer = GameReducer(config=config or EngineConfig())
    return reducer.apply(state, event)
