"""
Timeout sweeper - Turns expired deadlines into ordinary events.

The engine has no timers. Deadlines are stored on the records and a
sweeper, run periodically (cron, the `skate sweep` command, a
background task), submits events for the ones that have passed:

    active game, set phase expired        -> forfeit by the setter (turn_timeout)
    active game, attempt/judge expired    -> round timeout, no letter
    paused game, reconnect window expired -> forfeit by the absent player
    battle voting past its deadline       -> voting closed by timeout rules

Event ids are derived from the deadline itself, so overlapping sweepers
(or a sweeper retried after a crash) apply each timeout at most once.
"""

from __future__ import annotations
from dataclasses import dataclass, field
import logging

from ..engine_core.idempotency import generate_event_id
from ..engine_core.state import ForfeitReason, GameSession, GameStatus, TurnAction
from ..battle.state import BattleStatus, BattleVoteState
from .manager import BattleService, GameService

logger = logging.getLogger(__name__)


def _deadline_key(prefix: str, at: float) -> str:
    return f"{prefix}-{int(round(at * 1000))}"


@dataclass
class SweepAction:
    kind: str  # "game" | "battle"
    record_id: str
    action: str
    event_id: str
    success: bool
    already_processed: bool = False
    error: str | None = None


@dataclass
class SweepReport:
    now: float
    actions: list[SweepAction] = field(default_factory=list)

    @property
    def applied(self) -> list[SweepAction]:
        return [a for a in self.actions if a.success and not a.already_processed]


class TimeoutSweeper:
    def __init__(self, games: GameService | None = None, battles: BattleService | None = None):
        self.games = games
        self.battles = battles

    def sweep(self, now: float | None = None) -> SweepReport:
        """Apply every timeout due at `now` (defaults to the game service clock)."""
        if now is None:
            clock = self.games.clock if self.games else self.battles.clock
            now = clock()
        report = SweepReport(now=now)

        if self.games is not None:
            for game in self.games.list_games():
                action = self._sweep_game(game, now)
                if action:
                    report.actions.append(action)

        if self.battles is not None:
            for battle in self.battles.list_battles():
                action = self._sweep_battle(battle, now)
                if action:
                    report.actions.append(action)

        if report.actions:
            logger.info(
                "Sweep at %.3f: %d timeouts applied, %d actions total",
                now, len(report.applied), len(report.actions),
            )
        return report

    def _sweep_game(self, game: GameSession, now: float) -> SweepAction | None:
        if game.status == GameStatus.ACTIVE:
            deadline = game.turn_deadline_at
            current = game.current_player
            if deadline is None or now <= deadline or current is None:
                return None

            event_id = generate_event_id(
                "timeout", current.player_id, game.game_id, _deadline_key("deadline", deadline)
            )
            if game.current_action == TurnAction.SET:
                result = self.games.forfeit_game(
                    event_id, game.game_id, current.player_id, ForfeitReason.TURN_TIMEOUT
                )
                action = "turn_timeout_forfeit"
            else:
                result = self.games.timeout_round(event_id, game.game_id, current.player_id)
                action = "round_timeout"
            return self._record("game", game.game_id, action, event_id, result)

        if game.status == GameStatus.PAUSED:
            window = self.games.config.reconnect_window_seconds
            expired = [
                p for p in game.players
                if not p.connected
                and p.disconnected_at is not None
                and now - p.disconnected_at > window
            ]
            if not expired:
                return None
            absent = min(expired, key=lambda p: p.disconnected_at)
            event_id = generate_event_id(
                "timeout", absent.player_id, game.game_id,
                _deadline_key("disconnect", absent.disconnected_at),
            )
            result = self.games.forfeit_game(
                event_id, game.game_id, absent.player_id, ForfeitReason.DISCONNECT_TIMEOUT
            )
            return self._record("game", game.game_id, "disconnect_forfeit", event_id, result)

        return None

    def _sweep_battle(self, battle: BattleVoteState, now: float) -> SweepAction | None:
        if battle.status != BattleStatus.VOTING:
            return None
        if battle.vote_deadline_at is None or now <= battle.vote_deadline_at:
            return None
        event_id = generate_event_id(
            "timeout", "system", battle.battle_id, _deadline_key("deadline", battle.vote_deadline_at)
        )
        result = self.battles.expire_voting(event_id, battle.battle_id)
        return self._record("battle", battle.battle_id, "vote_timeout", event_id, result)

    def _record(self, kind, record_id, action, event_id, result) -> SweepAction:
        if not result.success:
            logger.warning(
                "Timeout %s on %s %s rejected: %s", action, kind, record_id, result.error
            )
        return SweepAction(
            kind=kind,
            record_id=record_id,
            action=action,
            event_id=event_id,
            success=result.success,
            already_processed=result.already_processed,
            error=result.error,
        )
