"""
Tests for the game reducer (state transitions).

Tests:
- Lobby: join, auto start, explicit start
- Set / attempt / pass flow and letters
- Rotation with more than two players
- Disconnect / reconnect pausing
- Forfeit and round timeouts
"""

import pytest

from ..engine_core.event import ErrorCode, GameEvent, NotificationKind
from ..engine_core.reducer import clamp_max_players, create_game_session
from ..engine_core.rotation import is_valid_letters
from ..engine_core.state import (
    SKATE, ForfeitReason, GameSession, GameStatus, Player, TurnAction, TurnResult, TurnType,
)
from .conftest import play


def _set(player_id, trick="kickflip", t=1010.0, event_id=None):
    return GameEvent.submit_trick(event_id or f"set-{player_id}-{t}", player_id, trick, timestamp=t)


class TestCreateGame:
    def test_creator_seated_waiting(self, lobby):
        assert lobby.status == GameStatus.WAITING
        assert [p.player_id for p in lobby.players] == ["alice"]
        assert lobby.max_players == 2
        assert lobby.processed_event_ids == ["create-1"]

    def test_max_players_clamped(self):
        assert clamp_max_players(None) == 2
        assert clamp_max_players(1) == 2
        assert clamp_max_players(5) == 5
        assert clamp_max_players(20) == 8


class TestJoin:
    def test_join_fills_and_starts(self, two_player_game):
        """Scenario setup: the second join fills a 2-player lobby and starts it."""
        state = two_player_game
        assert state.status == GameStatus.ACTIVE
        assert state.current_turn_index == 0
        assert state.current_action == TurnAction.SET
        assert state.turn_deadline_at == 1001.0 + 60

    def test_start_notifies_first_setter(self, reducer, lobby):
        result = reducer.apply(lobby, GameEvent.join("join-bob", "bob", timestamp=1001.0))
        assert len(result.notifications) == 1
        note = result.notifications[0]
        assert note.player_id == "alice"
        assert note.kind == NotificationKind.YOUR_TURN
        assert note.payload["action"] == "set"

    def test_join_started_game(self, reducer, two_player_game):
        result = reducer.apply(two_player_game, GameEvent.join("join-carol", "carol"))
        assert not result.success
        assert result.error_code == ErrorCode.ALREADY_STARTED

    def test_join_full_lobby(self, reducer):
        state = GameSession(
            game_id="g", spot_id="s", creator_id="alice", max_players=2,
            players=[Player("alice"), Player("bob")],
        )
        result = reducer.apply(state, GameEvent.join("join-carol", "carol"))
        assert result.error_code == ErrorCode.GAME_FULL

    def test_join_twice(self, reducer):
        state = create_game_session("g", "s", "alice", max_players=3)
        result = reducer.apply(state, GameEvent.join("join-alice", "alice"))
        assert result.error_code == ErrorCode.ALREADY_IN_GAME

    def test_join_waits_until_full(self, reducer):
        state = create_game_session("g", "s", "alice", max_players=3)
        state = play(reducer, state, GameEvent.join("join-bob", "bob"))
        assert state.status == GameStatus.WAITING
        assert state.num_players == 2

    def test_join_with_start_signal(self, reducer):
        state = create_game_session("g", "s", "alice", max_players=4)
        state = play(reducer, state, GameEvent.join("join-bob", "bob", start=True, timestamp=5.0))
        assert state.status == GameStatus.ACTIVE
        assert state.turn_deadline_at == 65.0


class TestStartGame:
    @pytest.fixture
    def open_lobby(self, reducer):
        state = create_game_session("g", "s", "alice", max_players=4)
        return play(reducer, state, GameEvent.join("join-bob", "bob"))

    def test_creator_starts(self, reducer, open_lobby):
        result = reducer.apply(open_lobby, GameEvent.start("start-1", "alice", timestamp=7.0))
        assert result.success
        assert result.new_state.status == GameStatus.ACTIVE
        assert result.new_state.current_player.player_id == "alice"

    def test_only_creator_starts(self, reducer, open_lobby):
        result = reducer.apply(open_lobby, GameEvent.start("start-1", "bob"))
        assert result.error_code == ErrorCode.NOT_CREATOR

    def test_stranger_cannot_start(self, reducer, open_lobby):
        result = reducer.apply(open_lobby, GameEvent.start("start-1", "mallory"))
        assert result.error_code == ErrorCode.PLAYER_NOT_IN_GAME

    def test_needs_two_players(self, reducer):
        state = create_game_session("g", "s", "alice", max_players=4)
        result = reducer.apply(state, GameEvent.start("start-1", "alice"))
        assert result.error_code == ErrorCode.NOT_ENOUGH_PLAYERS

    def test_already_started(self, reducer, two_player_game):
        result = reducer.apply(two_player_game, GameEvent.start("start-1", "alice"))
        assert result.error_code == ErrorCode.ALREADY_STARTED


class TestSetAndAttempt:
    def test_set_moves_to_attempt(self, reducer, two_player_game):
        result = reducer.apply(two_player_game, _set("alice"))
        state = result.new_state

        assert state.current_action == TurnAction.ATTEMPT
        assert state.current_trick == "kickflip"
        assert state.setter_id == "alice"
        assert state.current_player.player_id == "bob"
        assert state.turn_deadline_at == 1010.0 + 60
        assert state.turns[0].turn_type == TurnType.SET
        assert result.notifications[0].player_id == "bob"
        assert result.notifications[0].payload["trick"] == "kickflip"

    def test_pass_gives_letter(self, reducer, two_player_game):
        """Scenario: A sets kickflip, B passes, B has S."""
        state = play(
            reducer, two_player_game,
            _set("alice"),
            GameEvent.pass_trick("pass-1", "bob", timestamp=1011.0),
        )
        assert state.get_player("bob").letters == "S"
        assert state.get_player("alice").letters == ""
        # Setter keeps setting after a miss
        assert state.current_action == TurnAction.SET
        assert state.current_player.player_id == "alice"
        assert state.current_trick is None

    def test_pass_on_skat_ends_game(self, reducer, two_player_game):
        """Scenario: B at SKAT passes, game completed, A wins."""
        state = two_player_game.with_player(Player("bob", letters="SKAT"))
        state = play(reducer, state, _set("alice"))
        result = reducer.apply(state, GameEvent.pass_trick("pass-1", "bob", timestamp=1011.0))

        final = result.new_state
        assert final.status == GameStatus.COMPLETED
        assert final.winner_id == "alice"
        assert final.get_player("bob").letters == SKATE
        assert final.turn_deadline_at is None
        kinds = {(n.player_id, n.kind) for n in result.notifications}
        assert kinds == {("alice", NotificationKind.GAME_OVER), ("bob", NotificationKind.GAME_OVER)}
        assert result.details["eliminated"] is True

    def test_land_swaps_setter(self, reducer, two_player_game):
        state = play(
            reducer, two_player_game,
            _set("alice"),
            GameEvent.submit_trick("land-1", "bob", "kickflip", timestamp=1012.0),
        )
        assert state.current_action == TurnAction.SET
        assert state.current_player.player_id == "bob"
        assert state.get_player("bob").letters == ""
        assert state.turns[-1].result == TurnResult.LANDED

    def test_not_your_turn(self, reducer, two_player_game):
        result = reducer.apply(two_player_game, _set("bob"))
        assert result.error_code == ErrorCode.NOT_YOUR_TURN

    def test_submit_before_start(self, reducer, lobby):
        result = reducer.apply(lobby, _set("alice"))
        assert result.error_code == ErrorCode.GAME_NOT_ACTIVE

    def test_deadline_passed(self, reducer, two_player_game):
        state = play(reducer, two_player_game, _set("alice", t=1010.0))
        result = reducer.apply(state, GameEvent.submit_trick("late", "bob", "kickflip", timestamp=1071.0))
        assert result.error_code == ErrorCode.DEADLINE_PASSED

    def test_pass_in_set_phase(self, reducer, two_player_game):
        result = reducer.apply(two_player_game, GameEvent.pass_trick("pass-1", "alice"))
        assert result.error_code == ErrorCode.WRONG_PHASE

    def test_pass_wrong_player(self, reducer, two_player_game):
        state = play(reducer, two_player_game, _set("alice"))
        result = reducer.apply(state, GameEvent.pass_trick("pass-1", "alice"))
        assert result.error_code == ErrorCode.NOT_YOUR_TURN

    def test_failed_event_leaves_state_unchanged(self, reducer, two_player_game):
        before = two_player_game.to_dict()
        reducer.apply(two_player_game, GameEvent.pass_trick("pass-1", "alice"))
        assert two_player_game.to_dict() == before

    def test_updated_at_follows_event(self, reducer, two_player_game):
        state = play(reducer, two_player_game, _set("alice", t=1234.0))
        assert state.updated_at == 1234.0


class TestMultiPlayerRotation:
    def test_every_other_player_attempts(self, reducer, three_player_game):
        state = play(
            reducer, three_player_game,
            _set("alice"),
            GameEvent.pass_trick("pass-bob", "bob", timestamp=1011.0),
        )
        assert state.current_action == TurnAction.ATTEMPT
        assert state.current_player.player_id == "carol"
        assert state.current_trick == "kickflip"

    def test_last_lander_sets(self, reducer, three_player_game):
        state = play(
            reducer, three_player_game,
            _set("alice"),
            GameEvent.pass_trick("pass-bob", "bob", timestamp=1011.0),
            GameEvent.submit_trick("land-carol", "carol", "kickflip", timestamp=1012.0),
        )
        assert state.current_action == TurnAction.SET
        assert state.current_player.player_id == "carol"

    def test_eliminated_player_skipped(self, reducer, three_player_game):
        state = three_player_game.with_player(Player("bob", letters=SKATE))
        state = play(reducer, state, _set("alice"))
        assert state.current_player.player_id == "carol"

    def test_game_continues_after_one_elimination(self, reducer, three_player_game):
        state = three_player_game.with_player(Player("bob", letters="SKAT"))
        state = play(
            reducer, state,
            _set("alice"),
            GameEvent.pass_trick("pass-bob", "bob", timestamp=1011.0),
        )
        assert state.status == GameStatus.ACTIVE
        assert state.get_player("bob").is_eliminated
        assert state.current_player.player_id == "carol"

    def test_rotation_never_lands_on_ineligible(self, reducer, three_player_game):
        """Current player stays eligible through a long run of passes."""
        state = three_player_game
        step = 0
        while state.status == GameStatus.ACTIVE:
            step += 1
            t = 1010.0 + step
            current = state.current_player
            assert current.is_eligible
            if state.current_action == TurnAction.SET:
                event = GameEvent.submit_trick(f"e{step}", current.player_id, "ollie", timestamp=t)
            else:
                event = GameEvent.pass_trick(f"e{step}", current.player_id, timestamp=t)
            previous = {p.player_id: p.letters for p in state.players}
            state = play(reducer, state, event)
            for p in state.players:
                assert is_valid_letters(p.letters)
                assert p.letters.startswith(previous[p.player_id])
        assert state.status == GameStatus.COMPLETED
        assert state.winner_id == "alice"


class TestConnection:
    def test_disconnect_pauses(self, reducer, two_player_game):
        state = play(reducer, two_player_game, GameEvent.disconnect("dc-1", "bob", timestamp=1005.0))
        assert state.status == GameStatus.PAUSED
        assert state.paused_at == 1005.0
        bob = state.get_player("bob")
        assert not bob.connected
        assert bob.disconnected_at == 1005.0

    def test_reconnect_resumes(self, reducer, two_player_game):
        """Scenario: disconnect B pauses; reconnect B resumes."""
        state = play(
            reducer, two_player_game,
            GameEvent.disconnect("dc-1", "bob", timestamp=1005.0),
        )
        result = reducer.apply(state, GameEvent.reconnect("rc-1", "bob", timestamp=1020.0))
        resumed = result.new_state
        assert resumed.status == GameStatus.ACTIVE
        assert resumed.paused_at is None
        assert resumed.current_player.player_id == "alice"
        assert resumed.current_action == TurnAction.SET
        assert resumed.turn_deadline_at == 1080.0
        assert result.notifications[0].player_id == "alice"

    def test_resume_waits_for_everyone(self, reducer, two_player_game):
        state = play(
            reducer, two_player_game,
            GameEvent.disconnect("dc-a", "alice", timestamp=1005.0),
            GameEvent.disconnect("dc-b", "bob", timestamp=1006.0),
            GameEvent.reconnect("rc-b", "bob", timestamp=1007.0),
        )
        assert state.status == GameStatus.PAUSED
        state = play(reducer, state, GameEvent.reconnect("rc-a", "alice", timestamp=1008.0))
        assert state.status == GameStatus.ACTIVE

    def test_resume_keeps_phase(self, reducer, two_player_game):
        state = play(
            reducer, two_player_game,
            _set("alice"),
            GameEvent.disconnect("dc-b", "bob", timestamp=1011.0),
            GameEvent.reconnect("rc-b", "bob", timestamp=1090.0),
        )
        assert state.current_action == TurnAction.ATTEMPT
        assert state.current_player.player_id == "bob"
        assert state.turn_deadline_at == 1150.0

    def test_repeat_disconnect_keeps_first_time(self, reducer, two_player_game):
        state = play(
            reducer, two_player_game,
            GameEvent.disconnect("dc-1", "bob", timestamp=1005.0),
            GameEvent.disconnect("dc-2", "bob", timestamp=1050.0),
        )
        assert state.get_player("bob").disconnected_at == 1005.0

    def test_disconnect_in_lobby_is_noop(self, reducer, lobby):
        result = reducer.apply(lobby, GameEvent.disconnect("dc-1", "alice"))
        assert result.success
        assert result.new_state.status == GameStatus.WAITING
        assert result.new_state.get_player("alice").connected

    def test_disconnect_unknown_player(self, reducer, two_player_game):
        result = reducer.apply(two_player_game, GameEvent.disconnect("dc-1", "mallory"))
        assert result.error_code == ErrorCode.PLAYER_NOT_IN_GAME

    def test_submit_while_paused(self, reducer, two_player_game):
        state = play(reducer, two_player_game, GameEvent.disconnect("dc-1", "bob", timestamp=1005.0))
        result = reducer.apply(state, _set("alice"))
        assert result.error_code == ErrorCode.GAME_NOT_ACTIVE


class TestForfeit:
    def test_forfeit_other_player_wins(self, reducer, two_player_game):
        result = reducer.apply(two_player_game, GameEvent.forfeit("ff-1", "bob", timestamp=1003.0))
        state = result.new_state
        assert state.status == GameStatus.FORFEITED
        assert state.winner_id == "alice"
        assert state.forfeit_reason == ForfeitReason.VOLUNTARY
        assert {n.kind for n in result.notifications} == {NotificationKind.GAME_OVER}

    def test_forfeit_reason_recorded(self, reducer, two_player_game):
        state = play(
            reducer, two_player_game,
            GameEvent.forfeit("ff-1", "alice", reason="turn_timeout", timestamp=1062.0),
        )
        assert state.forfeit_reason == ForfeitReason.TURN_TIMEOUT
        assert state.winner_id == "bob"

    def test_turn_timeout_before_deadline_rejected(self, reducer, two_player_game):
        result = reducer.apply(
            two_player_game,
            GameEvent.forfeit("ff-1", "alice", reason="turn_timeout", timestamp=1030.0),
        )
        assert result.error_code == ErrorCode.WRONG_PHASE
        assert two_player_game.status == GameStatus.ACTIVE

    def test_turn_timeout_for_player_not_setting(self, reducer, two_player_game):
        result = reducer.apply(
            two_player_game,
            GameEvent.forfeit("ff-1", "bob", reason="turn_timeout", timestamp=1062.0),
        )
        assert result.error_code == ErrorCode.WRONG_PHASE

    def test_disconnect_timeout_after_reconnect_rejected(self, reducer, two_player_game):
        state = play(
            reducer, two_player_game,
            GameEvent.disconnect("dc-1", "bob", timestamp=1005.0),
            GameEvent.reconnect("rc-1", "bob", timestamp=1010.0),
        )
        result = reducer.apply(
            state, GameEvent.forfeit("ff-1", "bob", reason="disconnect_timeout", timestamp=1200.0)
        )
        assert result.error_code == ErrorCode.WRONG_PHASE

    def test_forfeit_best_remaining_wins(self, reducer, three_player_game):
        state = three_player_game.with_player(Player("bob", letters="SK"))
        state = state.with_player(Player("carol", letters="S"))
        state = play(reducer, state, GameEvent.forfeit("ff-1", "alice"))
        assert state.winner_id == "carol"

    def test_forfeit_twice(self, reducer, two_player_game):
        state = play(reducer, two_player_game, GameEvent.forfeit("ff-1", "bob"))
        result = reducer.apply(state, GameEvent.forfeit("ff-2", "alice"))
        assert result.error_code == ErrorCode.ALREADY_COMPLETED

    def test_forfeit_stranger(self, reducer, two_player_game):
        result = reducer.apply(two_player_game, GameEvent.forfeit("ff-1", "mallory"))
        assert result.error_code == ErrorCode.PLAYER_NOT_IN_GAME

    def test_forfeit_while_paused(self, reducer, two_player_game):
        state = play(
            reducer, two_player_game,
            GameEvent.disconnect("dc-1", "bob", timestamp=1005.0),
            GameEvent.forfeit("ff-1", "bob", reason="disconnect_timeout", timestamp=1200.0),
        )
        assert state.status == GameStatus.FORFEITED
        assert state.winner_id == "alice"
        assert state.paused_at is None


class TestRoundTimeout:
    def test_attempt_timeout_hands_set_on(self, reducer, two_player_game):
        state = play(reducer, two_player_game, _set("alice", t=1010.0))
        result = reducer.apply(state, GameEvent.round_timeout("to-1", "bob", timestamp=1071.0))
        after = result.new_state
        assert after.current_action == TurnAction.SET
        assert after.current_player.player_id == "bob"
        assert after.get_player("bob").letters == ""
        assert after.turn_deadline_at == 1131.0

    def test_timeout_before_deadline(self, reducer, two_player_game):
        state = play(reducer, two_player_game, _set("alice", t=1010.0))
        result = reducer.apply(state, GameEvent.round_timeout("to-1", "bob", timestamp=1060.0))
        assert result.error_code == ErrorCode.WRONG_PHASE

    def test_timeout_in_set_phase(self, reducer, two_player_game):
        result = reducer.apply(two_player_game, GameEvent.round_timeout("to-1", "alice", timestamp=5000.0))
        assert result.error_code == ErrorCode.WRONG_PHASE
