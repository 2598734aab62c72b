"""
Judge sub-flow - Verdicts on response videos, setter bails and disputes.

In setter-judged games a response does not settle the attempt by itself:

    set (setter) -> response (attempter) -> judge (setter)

The setter defends their trick and rules the response landed or missed.
A miss earns the responder a letter and the setter sets again; a land
hands the set to the responder. Either way the game may end if only one
player is left standing.

A responder gets one dispute per game against a missed verdict. The
judging player (or an admin) resolves it; overturning to landed takes
the letter back and gives the responder the next set.

A response whose round ends without a verdict (round timeout, overturned
dispute) is closed as void. Only the latest response can be judged.

These handlers are mixed into GameReducer and share its helpers.
"""

from __future__ import annotations
from typing import TYPE_CHECKING

from .state import (
    Dispute, GameStatus, GameTurn, Player, TurnAction, TurnResult, TurnType,
)
from .event import ErrorCode, GameEvent, TransitionResult
from .rotation import next_eligible_index, previous_letters, surviving_players

if TYPE_CHECKING:
    from .state import GameSession


class JudgeFlow:
    """Judge, bail and dispute handlers for GameReducer."""

    def _handle_judge(self, state: GameSession, event: GameEvent) -> TransitionResult:
        if state.status != GameStatus.ACTIVE:
            return TransitionResult.failure("Game is not active", ErrorCode.GAME_NOT_ACTIVE)

        turn = state.get_turn(event.payload.turn_id)
        if not turn:
            return TransitionResult.failure("Turn not found", ErrorCode.TURN_NOT_FOUND)
        if turn.result != TurnResult.PENDING:
            return TransitionResult.failure("Turn has already been judged", ErrorCode.ALREADY_JUDGED)
        if event.player_id != state.setter_id:
            return TransitionResult.failure(
                "Only the defending player can judge", ErrorCode.NOT_JUDGE
            )
        if state.current_action != TurnAction.JUDGE:
            return TransitionResult.failure("Game is not in judging phase", ErrorCode.WRONG_PHASE)
        if turn.turn_type != TurnType.RESPONSE or not turn.video_url:
            return TransitionResult.failure(
                "Only a submitted response can be judged", ErrorCode.NO_RESPONSE_SUBMITTED
            )
        # Only the response that opened this judge phase is up for a verdict
        if turn.turn_id != state.turns[-1].turn_id:
            return TransitionResult.failure(
                "Turn is not the response under judgment", ErrorCode.WRONG_PHASE
            )
        if turn.player_id == event.player_id:
            return TransitionResult.failure(
                "Players cannot judge their own response", ErrorCode.NOT_JUDGE
            )

        verdict = TurnResult(event.payload.result)
        judged = GameTurn(
            turn_id=turn.turn_id,
            game_id=turn.game_id,
            player_id=turn.player_id,
            turn_number=turn.turn_number,
            turn_type=turn.turn_type,
            trick_description=turn.trick_description,
            video_url=turn.video_url,
            result=verdict,
            judged_by=event.player_id,
            judged_at=event.timestamp,
        )
        new_state = state.with_turn(judged)

        responder = new_state.get_player(turn.player_id)
        details = {"turn_id": turn.turn_id, "result": verdict.value}
        if verdict == TurnResult.MISSED:
            penalized = self._give_letter(responder)
            new_state = new_state.with_player(penalized)
            details["letters"] = penalized.letters
            details["eliminated"] = penalized.is_eliminated
            message = f"BAIL. {responder.player_id} has {penalized.letters}"
        else:
            message = f"LAND. {responder.player_id} matched {turn.trick_description}"

        return self._resolve_attempt(
            new_state,
            new_state.index_of(turn.player_id),
            landed=verdict == TurnResult.LANDED,
            now=event.timestamp,
            changes=[message],
            details=details,
        )

    def _handle_setter_bail(self, state: GameSession, event: GameEvent) -> TransitionResult:
        """The setter cannot land their own trick: they eat the letter and lose the set."""
        if state.status != GameStatus.ACTIVE:
            return TransitionResult.failure("Game is not active", ErrorCode.GAME_NOT_ACTIVE)
        if state.current_action != TurnAction.SET:
            return TransitionResult.failure(
                "Can only bail during set trick phase", ErrorCode.WRONG_PHASE
            )

        current = state.current_player
        if current is None or current.player_id != event.player_id:
            return TransitionResult.failure("Only the setter can declare a bail", ErrorCode.NOT_YOUR_TURN)

        penalized = self._give_letter(current)
        new_state = state.with_player(penalized)
        changes = [f"{current.player_id} bailed their own trick and has {penalized.letters}"]
        details = {"letters": penalized.letters, "eliminated": penalized.is_eliminated}

        survivors = surviving_players(new_state.players)
        if len(survivors) <= 1:
            winner_id = survivors[0].player_id if survivors else None
            return self._complete(new_state, winner_id, changes, details)

        new_setter = next_eligible_index(new_state.players, state.current_turn_index)
        if new_setter is None:
            return TransitionResult.failure("No player can set the next trick", ErrorCode.NO_ELIGIBLE_PLAYER)
        return self._begin_set(new_state, new_setter, event.timestamp, changes, details)

    def _handle_file_dispute(self, state: GameSession, event: GameEvent) -> TransitionResult:
        if state.status != GameStatus.ACTIVE:
            return TransitionResult.failure("Game is not active", ErrorCode.GAME_NOT_ACTIVE)
        if not state.get_player(event.player_id):
            return TransitionResult.failure("Player not in game", ErrorCode.PLAYER_NOT_IN_GAME)
        if event.player_id in state.disputes_used:
            return TransitionResult.failure(
                "You have already used your dispute for this game", ErrorCode.DISPUTE_ALREADY_USED
            )

        turn = state.get_turn(event.payload.turn_id)
        if not turn:
            return TransitionResult.failure("Turn not found", ErrorCode.TURN_NOT_FOUND)
        if turn.result != TurnResult.MISSED or not turn.judged_by:
            return TransitionResult.failure(
                "Can only dispute a BAIL judgment", ErrorCode.DISPUTE_NOT_ALLOWED
            )
        if turn.player_id != event.player_id:
            return TransitionResult.failure(
                "You can only dispute judgments on your own tricks", ErrorCode.DISPUTE_NOT_ALLOWED
            )

        dispute = Dispute(
            dispute_id=len(state.disputes) + 1,
            turn_id=turn.turn_id,
            disputed_by=event.player_id,
            against_player_id=turn.judged_by,
        )
        new_state = state._copy_with(
            disputes=[*state.disputes, dispute],
            disputes_used=[*state.disputes_used, event.player_id],
        )
        return TransitionResult.success_with_state(
            new_state,
            changes=[f"{event.player_id} disputed turn {turn.turn_id}"],
            details={"dispute_id": dispute.dispute_id},
        )

    def _handle_resolve_dispute(self, state: GameSession, event: GameEvent) -> TransitionResult:
        dispute = state.get_dispute(event.payload.dispute_id)
        if not dispute:
            return TransitionResult.failure("Dispute not found", ErrorCode.DISPUTE_NOT_FOUND)
        if dispute.is_resolved:
            return TransitionResult.failure("Dispute already resolved", ErrorCode.DISPUTE_ALREADY_RESOLVED)
        if not event.payload.admin and event.player_id != dispute.against_player_id:
            return TransitionResult.failure(
                "Only the judging player can resolve the dispute", ErrorCode.NOT_JUDGE
            )
        if state.status != GameStatus.ACTIVE:
            return TransitionResult.failure("Game is no longer active", ErrorCode.GAME_NOT_ACTIVE)

        final = TurnResult(event.payload.result)
        resolved = Dispute(
            dispute_id=dispute.dispute_id,
            turn_id=dispute.turn_id,
            disputed_by=dispute.disputed_by,
            against_player_id=dispute.against_player_id,
            original_result=dispute.original_result,
            final_result=final,
            resolved_by=event.player_id,
            resolved_at=event.timestamp,
        )
        new_state = state._copy_with(
            disputes=[resolved if d.dispute_id == dispute.dispute_id else d for d in state.disputes]
        )
        details = {"dispute_id": dispute.dispute_id, "final_result": final.value}

        if final != TurnResult.LANDED:
            return TransitionResult.success_with_state(
                new_state,
                changes=[f"Dispute {dispute.dispute_id} upheld the BAIL"],
                details=details,
            )

        # Overturned: take the letter back and hand the set to the disputer
        disputer = new_state.get_player(dispute.disputed_by)
        new_state = new_state.with_player(
            Player(
                player_id=disputer.player_id,
                letters=previous_letters(disputer.letters),
                connected=disputer.connected,
                disconnected_at=disputer.disconnected_at,
            )
        )
        turn = new_state.get_turn(dispute.turn_id)
        if turn:
            new_state = new_state.with_turn(
                GameTurn(
                    turn_id=turn.turn_id,
                    game_id=turn.game_id,
                    player_id=turn.player_id,
                    turn_number=turn.turn_number,
                    turn_type=turn.turn_type,
                    trick_description=turn.trick_description,
                    video_url=turn.video_url,
                    result=TurnResult.LANDED,
                    judged_by=turn.judged_by,
                    judged_at=turn.judged_at,
                )
            )
        new_state = self._void_pending(new_state, event.timestamp)
        return self._begin_set(
            new_state,
            new_state.index_of(disputer.player_id),
            event.timestamp,
            changes=[f"Dispute {dispute.dispute_id} overturned to LAND"],
            details=details,
        )
