"""
Battle vote state - One record per two-party video battle.

Each participant judges the other's clip: "clean" gives the other side a
point, "sketch" gives nothing. Voting closes once both have voted (or
the deadline is swept), and never reopens.
"""

from __future__ import annotations
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any
from copy import deepcopy


class BattleStatus(Enum):
    VOTING = "voting"
    COMPLETED = "completed"


class VoteChoice(Enum):
    CLEAN = "clean"
    SKETCH = "sketch"


class CompletionReason(Enum):
    BOTH_VOTED = "both_voted"
    OPPONENT_TIMEOUT = "opponent_timeout"
    CREATOR_TIMEOUT = "creator_timeout"
    BOTH_TIMEOUT = "both_timeout"


@dataclass
class Vote:
    vote: VoteChoice
    voted_at: float

    def to_dict(self) -> dict[str, Any]:
        return {"vote": self.vote.value, "voted_at": self.voted_at}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Vote:
        return cls(vote=VoteChoice(data["vote"]), voted_at=data.get("voted_at", 0.0))


@dataclass
class BattleVoteState:
    """
    Voting record for a battle.

    votes holds at most one entry per participant; a re-vote replaces it.
    """
    battle_id: str
    creator_id: str
    opponent_id: str
    status: BattleStatus = BattleStatus.VOTING
    votes: dict[str, Vote] = field(default_factory=dict)
    voting_started_at: float = 0.0
    vote_deadline_at: float | None = None
    winner_id: str | None = None
    final_score: dict[str, int] | None = None
    completion_reason: CompletionReason | None = None
    processed_event_ids: list[str] = field(default_factory=list)
    updated_at: float = 0.0

    @property
    def participants(self) -> tuple[str, str]:
        return (self.creator_id, self.opponent_id)

    @property
    def both_voted(self) -> bool:
        return self.creator_id in self.votes and self.opponent_id in self.votes

    def is_participant(self, player_id: str) -> bool:
        return player_id in self.participants

    def _copy_with(self, **kwargs) -> BattleVoteState:
        return replace(self, **kwargs)

    def clone(self) -> BattleVoteState:
        return deepcopy(self)

    def to_dict(self) -> dict[str, Any]:
        return {
            "battle_id": self.battle_id,
            "creator_id": self.creator_id,
            "opponent_id": self.opponent_id,
            "status": self.status.value,
            "votes": {pid: v.to_dict() for pid, v in self.votes.items()},
            "voting_started_at": self.voting_started_at,
            "vote_deadline_at": self.vote_deadline_at,
            "winner_id": self.winner_id,
            "final_score": dict(self.final_score) if self.final_score is not None else None,
            "completion_reason": (
                self.completion_reason.value if self.completion_reason else None
            ),
            "processed_event_ids": list(self.processed_event_ids),
            "updated_at": self.updated_at,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> BattleVoteState:
        reason = data.get("completion_reason")
        score = data.get("final_score")
        return cls(
            battle_id=data["battle_id"],
            creator_id=data["creator_id"],
            opponent_id=data["opponent_id"],
            status=BattleStatus(data.get("status", "voting")),
            votes={pid: Vote.from_dict(v) for pid, v in data.get("votes", {}).items()},
            voting_started_at=data.get("voting_started_at", 0.0),
            vote_deadline_at=data.get("vote_deadline_at"),
            winner_id=data.get("winner_id"),
            final_score=dict(score) if score is not None else None,
            completion_reason=CompletionReason(reason) if reason else None,
            processed_event_ids=list(data.get("processed_event_ids", [])),
            updated_at=data.get("updated_at", 0.0),
        )
