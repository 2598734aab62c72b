"""
Pytest fixtures for Skate tests.
"""

import pytest

from ..config import EngineConfig
from ..engine_core.event import GameEvent
from ..engine_core.reducer import GameReducer, create_game_session
from ..engine_core.state import GameSession, JudgingMode
from ..battle.voting import VotingEngine, initialize_vote_state
from ..persistence import InMemoryStore
from ..session import BattleService, GameService, RecordingNotificationSink

START = 1000.0


class FakeClock:
    """Manually advanced clock for services and the sweeper."""

    def __init__(self, now: float = START):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> float:
        self.now += seconds
        return self.now


def play(reducer: GameReducer, state: GameSession, *events: GameEvent) -> GameSession:
    """Apply events in order, failing the test on any rejected event."""
    for event in events:
        result = reducer.apply(state, event)
        assert result.success, f"{event.event_type.value} rejected: {result.error}"
        state = result.new_state
    return state


@pytest.fixture
def config() -> EngineConfig:
    return EngineConfig(env="test")


@pytest.fixture
def reducer(config) -> GameReducer:
    return GameReducer(config=config)


@pytest.fixture
def lobby() -> GameSession:
    """A waiting 2-player game with only the creator seated."""
    return create_game_session("game-1", "spot-1", "alice", event_id="create-1", now=START)


@pytest.fixture
def two_player_game(reducer, lobby) -> GameSession:
    """Active game: alice to set, bob waiting."""
    return play(reducer, lobby, GameEvent.join("join-bob", "bob", timestamp=START + 1))


@pytest.fixture
def three_player_game(reducer) -> GameSession:
    """Active 3-player game: alice to set, then bob, then carol."""
    state = create_game_session(
        "game-3", "spot-1", "alice", max_players=3, event_id="create-3", now=START
    )
    return play(
        reducer,
        state,
        GameEvent.join("join-bob", "bob", timestamp=START + 1),
        GameEvent.join("join-carol", "carol", timestamp=START + 2),
    )


@pytest.fixture
def judged_game(reducer) -> GameSession:
    """Active setter-judged 2-player game: alice to set."""
    state = create_game_session(
        "game-j", "spot-1", "alice",
        judging=JudgingMode.SETTER_JUDGED, event_id="create-j", now=START,
    )
    return play(reducer, state, GameEvent.join("join-bob", "bob", timestamp=START + 1))


@pytest.fixture
def voting_engine(config) -> VotingEngine:
    return VotingEngine(config=config)


@pytest.fixture
def battle(config):
    """Open battle between creator C and opponent O."""
    return initialize_vote_state("battle-1", "C", "O", event_id="init-1", now=START, config=config)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def notifier() -> RecordingNotificationSink:
    return RecordingNotificationSink()


@pytest.fixture
def game_service(config, clock, notifier) -> GameService:
    return GameService(store=InMemoryStore(), config=config, notifier=notifier, clock=clock)


@pytest.fixture
def battle_service(config, clock) -> BattleService:
    return BattleService(store=InMemoryStore(), config=config, clock=clock)
