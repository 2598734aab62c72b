"""
Voting Engine - Applies vote events to a battle.

Scoring (applied once, when voting closes):
    score(p) = 1 if the *other* participant voted clean, else 0

The higher score wins. Ties, 0-0 included, go to the creator: the
challenger set the terms of the battle, so they keep the advantage.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable
import logging

from ..config import EngineConfig
from ..engine_core.event import ErrorCode, TransitionResult
from ..engine_core.idempotency import check_event, record_event
from .state import BattleStatus, BattleVoteState, CompletionReason, Vote, VoteChoice

logger = logging.getLogger(__name__)


class VoteEventType(Enum):
    CAST = "vote"
    TIMEOUT = "timeout"


@dataclass
class VoteEvent:
    """A vote command or a sweeper-issued deadline expiry."""
    event_type: VoteEventType
    event_id: str
    player_id: str
    vote: VoteChoice | None = None
    timestamp: float = 0.0

    @classmethod
    def cast(cls, event_id: str, player_id: str, vote: VoteChoice | str, timestamp: float = 0.0) -> VoteEvent:
        return cls(VoteEventType.CAST, event_id, player_id, VoteChoice(vote), timestamp)

    @classmethod
    def timeout(cls, event_id: str, battle_id: str, timestamp: float = 0.0) -> VoteEvent:
        return cls(VoteEventType.TIMEOUT, event_id, battle_id, timestamp=timestamp)


TieBreakPolicy = Callable[[str, str, dict[str, int]], str]


def creator_wins_ties(creator_id: str, opponent_id: str, scores: dict[str, int]) -> str:
    """Challenger-advantage rule: on equal scores the creator wins."""
    return creator_id


def score_votes(votes: dict[str, Vote], creator_id: str, opponent_id: str) -> dict[str, int]:
    """Each participant scores a point when the other one voted clean."""
    scores = {creator_id: 0, opponent_id: 0}
    for voter_id, vote in votes.items():
        if vote.vote != VoteChoice.CLEAN:
            continue
        if voter_id == creator_id:
            scores[opponent_id] += 1
        elif voter_id == opponent_id:
            scores[creator_id] += 1
    return scores


def determine_winner(
    scores: dict[str, int],
    creator_id: str,
    opponent_id: str,
    tie_break: TieBreakPolicy = creator_wins_ties,
) -> str:
    creator_score = scores.get(creator_id, 0)
    opponent_score = scores.get(opponent_id, 0)
    if creator_score > opponent_score:
        return creator_id
    if opponent_score > creator_score:
        return opponent_id
    winner_id = tie_break(creator_id, opponent_id, scores)
    logger.info("Battle tie %s resolved for %s", scores, winner_id)
    return winner_id


def initialize_vote_state(
    battle_id: str,
    creator_id: str,
    opponent_id: str,
    event_id: str | None = None,
    now: float = 0.0,
    config: EngineConfig | None = None,
) -> BattleVoteState:
    config = config or EngineConfig()
    return BattleVoteState(
        battle_id=battle_id,
        creator_id=creator_id,
        opponent_id=opponent_id,
        status=BattleStatus.VOTING,
        voting_started_at=now,
        vote_deadline_at=now + config.vote_timeout_seconds,
        processed_event_ids=[event_id] if event_id else [],
        updated_at=now,
    )


@dataclass
class VotingEngine:
    """
    Pure transitions for BattleVoteState.

    Stateless - all state is in the record.
    """
    config: EngineConfig = field(default_factory=EngineConfig)
    tie_break: TieBreakPolicy = creator_wins_ties

    def apply(self, state: BattleVoteState, event: VoteEvent) -> TransitionResult:
        duplicate = check_event(state, event.event_id)
        if duplicate:
            duplicate.details = self._outcome(state)
            return duplicate

        if event.event_type == VoteEventType.CAST:
            result = self._cast_vote(state, event)
        elif event.event_type == VoteEventType.TIMEOUT:
            result = self._expire(state, event)
        else:
            return TransitionResult.failure(
                f"No handler for event type: {event.event_type}", ErrorCode.UNKNOWN_EVENT
            )

        if result.success and result.new_state is not None:
            result.new_state = result.new_state._copy_with(
                processed_event_ids=record_event(
                    result.new_state.processed_event_ids,
                    event.event_id,
                    self.config.max_battle_events,
                ),
                updated_at=event.timestamp,
            )
        return result

    def _cast_vote(self, state: BattleVoteState, event: VoteEvent) -> TransitionResult:
        if not state.is_participant(event.player_id):
            return TransitionResult.failure(
                "Not a participant in this battle", ErrorCode.NOT_A_PARTICIPANT
            )
        if state.status != BattleStatus.VOTING:
            return TransitionResult.failure("Voting is not active", ErrorCode.VOTING_NOT_ACTIVE)
        if state.vote_deadline_at is not None and event.timestamp > state.vote_deadline_at:
            return TransitionResult.failure("Voting deadline has passed", ErrorCode.DEADLINE_PASSED)

        replaced = event.player_id in state.votes
        votes = {**state.votes, event.player_id: Vote(vote=event.vote, voted_at=event.timestamp)}
        new_state = state._copy_with(votes=votes)
        changes = [
            f"{event.player_id} {'changed their vote to' if replaced else 'voted'} {event.vote.value}"
        ]

        if not new_state.both_voted:
            return TransitionResult.success_with_state(
                new_state, changes=changes, details=self._outcome(new_state)
            )

        scores = score_votes(votes, state.creator_id, state.opponent_id)
        winner_id = determine_winner(scores, state.creator_id, state.opponent_id, self.tie_break)
        new_state = new_state._copy_with(
            status=BattleStatus.COMPLETED,
            winner_id=winner_id,
            final_score=scores,
            completion_reason=CompletionReason.BOTH_VOTED,
        )
        return TransitionResult.success_with_state(
            new_state,
            changes=[*changes, f"Battle complete. {winner_id} wins"],
            details=self._outcome(new_state),
        )

    def _expire(self, state: BattleVoteState, event: VoteEvent) -> TransitionResult:
        """
        Close voting after the deadline.

        A participant who voted beats one who did not; if neither
        voted the creator wins.
        """
        if state.status != BattleStatus.VOTING:
            return TransitionResult.failure("Voting is not active", ErrorCode.VOTING_NOT_ACTIVE)
        if state.vote_deadline_at is None or event.timestamp <= state.vote_deadline_at:
            return TransitionResult.failure(
                "Voting deadline has not passed", ErrorCode.VOTING_NOT_ACTIVE
            )

        creator_voted = state.creator_id in state.votes
        opponent_voted = state.opponent_id in state.votes
        if creator_voted and not opponent_voted:
            winner_id, reason = state.creator_id, CompletionReason.OPPONENT_TIMEOUT
        elif opponent_voted and not creator_voted:
            winner_id, reason = state.opponent_id, CompletionReason.CREATOR_TIMEOUT
        else:
            winner_id, reason = state.creator_id, CompletionReason.BOTH_TIMEOUT

        new_state = state._copy_with(
            status=BattleStatus.COMPLETED,
            winner_id=winner_id,
            final_score=score_votes(state.votes, state.creator_id, state.opponent_id),
            completion_reason=reason,
        )
        return TransitionResult.success_with_state(
            new_state,
            changes=[f"Voting timed out ({reason.value}). {winner_id} wins"],
            details=self._outcome(new_state),
        )

    def _outcome(self, state: BattleVoteState) -> dict:
        return {
            "battle_complete": state.status == BattleStatus.COMPLETED,
            "winner_id": state.winner_id,
            "final_score": dict(state.final_score) if state.final_score is not None else None,
        }
