"""
Battle - Two-party video battles settled by mutual votes.
"""

from .state import BattleStatus, BattleVoteState, CompletionReason, Vote, VoteChoice
from .voting import (
    VoteEvent,
    VoteEventType,
    VotingEngine,
    creator_wins_ties,
    determine_winner,
    initialize_vote_state,
    score_votes,
)

__all__ = [
    "BattleStatus",
    "BattleVoteState",
    "CompletionReason",
    "Vote",
    "VoteChoice",
    "VoteEvent",
    "VoteEventType",
    "VotingEngine",
    "creator_wins_ties",
    "determine_winner",
    "initialize_vote_state",
    "score_votes",
]
