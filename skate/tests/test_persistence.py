"""
Tests for the state stores.

Both stores must honor the same contract, so most tests run against each.
"""

import threading
import time

import pytest

from ..engine_core.reducer import create_game_session
from ..engine_core.state import GameSession, Player
from ..persistence import InMemoryStore, SqlStore


@pytest.fixture(params=["memory", "sql"])
def store(request, tmp_path):
    if request.param == "memory":
        return InMemoryStore()
    return SqlStore(f"sqlite:///{tmp_path / 'skate.db'}", "game", GameSession.from_dict)


@pytest.fixture
def game():
    return create_game_session("game-1", "spot-1", "alice", event_id="create-1", now=1000.0)


class TestTransactions:
    def test_missing_record(self, store):
        with store.transaction("nope") as tx:
            assert tx.state is None
            assert not tx.exists

    def test_commit_creates(self, store, game):
        with store.transaction("game-1") as tx:
            tx.commit(game)
        stored = store.get("game-1")
        assert stored is not None
        assert stored.to_dict() == game.to_dict()

    def test_commit_updates(self, store, game):
        with store.transaction("game-1") as tx:
            tx.commit(game)
        with store.transaction("game-1") as tx:
            tx.commit(tx.state.with_player(Player("alice", letters="S")))
        assert store.get("game-1").get_player("alice").letters == "S"

    def test_exit_without_commit_discards(self, store, game):
        with store.transaction("game-1") as tx:
            tx.commit(game)
        with store.transaction("game-1") as tx:
            tx.state.players.append(Player("mallory"))
        assert store.get("game-1").num_players == 1

    def test_rollback_discards(self, store, game):
        with store.transaction("game-1") as tx:
            tx.rollback()
        assert store.get("game-1") is None

    def test_exception_discards_and_propagates(self, store, game):
        with pytest.raises(RuntimeError):
            with store.transaction("game-1") as tx:
                tx.commit(game)
                raise RuntimeError("storage exploded")
        assert store.get("game-1") is None

    def test_commit_twice_rejected(self, store, game):
        with store.transaction("game-1") as tx:
            tx.commit(game)
            with pytest.raises(RuntimeError):
                tx.commit(game)


class TestRecords:
    def test_get_returns_copy(self, store, game):
        with store.transaction("game-1") as tx:
            tx.commit(game)
        snapshot = store.get("game-1")
        snapshot.players.append(Player("mallory"))
        assert store.get("game-1").num_players == 1

    def test_delete(self, store, game):
        with store.transaction("game-1") as tx:
            tx.commit(game)
        assert store.delete("game-1")
        assert not store.delete("game-1")
        assert store.get("game-1") is None

    def test_list_and_scan(self, store, game):
        for game_id in ("game-a", "game-b"):
            with store.transaction(game_id) as tx:
                tx.commit(create_game_session(game_id, "spot", "alice"))
        assert sorted(store.list_ids()) == ["game-a", "game-b"]
        assert sorted(g.game_id for g in store.scan()) == ["game-a", "game-b"]


class TestSqlStore:
    def test_kinds_are_separate(self, tmp_path, game):
        url = f"sqlite:///{tmp_path / 'kinds.db'}"
        games = SqlStore(url, "game", GameSession.from_dict)
        others = SqlStore(games.engine, "battle", GameSession.from_dict)
        with games.transaction("game-1") as tx:
            tx.commit(game)
        assert others.get("game-1") is None
        assert others.list_ids() == []

    def test_survives_new_store_instance(self, tmp_path, game):
        url = f"sqlite:///{tmp_path / 'reopen.db'}"
        with SqlStore(url, "game", GameSession.from_dict).transaction("game-1") as tx:
            tx.commit(game)
        reopened = SqlStore(url, "game", GameSession.from_dict)
        assert reopened.get("game-1").to_dict() == game.to_dict()


class TestLocking:
    def test_same_id_serialized(self, store, game):
        """Concurrent read-modify-write on one id loses no updates."""
        with store.transaction("game-1") as tx:
            tx.commit(game)

        def bump(n):
            for _ in range(n):
                with store.transaction("game-1") as tx:
                    tx.commit(tx.state._copy_with(updated_at=tx.state.updated_at + 1))

        threads = [threading.Thread(target=bump, args=(50,)) for _ in range(4)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        assert store.get("game-1").updated_at == 1000.0 + 200

    def test_slow_writers_queue(self, store, game):
        """A writer holding the record makes the next one wait for its commit."""
        with store.transaction("game-1") as tx:
            tx.commit(game)

        def join(player_id):
            with store.transaction("game-1") as tx:
                state = tx.state
                time.sleep(0.2)
                tx.commit(state._copy_with(players=[*state.players, Player(player_id)]))

        threads = [threading.Thread(target=join, args=(p,)) for p in ("bob", "carol")]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        assert sorted(p.player_id for p in store.get("game-1").players) == ["alice", "bob", "carol"]


class TestInMemoryStore:
    def test_delete_drops_lock(self, game):
        store = InMemoryStore()
        with store.transaction("game-1") as tx:
            tx.commit(game)
        assert "game-1" in store._locks
        store.delete("game-1")
        assert "game-1" not in store._locks

    def test_lookup_of_missing_id_keeps_no_lock(self):
        store = InMemoryStore()
        with store.transaction("nope") as tx:
            assert not tx.exists
        assert store._locks == {}
