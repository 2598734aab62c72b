"""
Engine configuration.

Values come from the environment so the same code runs under the API
server, the sweeper and tests:

    SKATE_ENV                       development | production | test
    SKATE_TURN_TIMEOUT_SECONDS      time to set/attempt/judge (60)
    SKATE_VOTE_TIMEOUT_SECONDS      time to vote on a battle (60)
    SKATE_RECONNECT_WINDOW_SECONDS  grace period before a disconnect forfeits (120)
    SKATE_MAX_GAME_EVENTS           game idempotency ledger size (100)
    SKATE_MAX_BATTLE_EVENTS         battle idempotency ledger size (50)
    SKATE_DATABASE_URL              SQLAlchemy URL; unset means in-memory stores
    SKATE_LOG_LEVEL                 logging level name (INFO)
    ALLOWED_ORIGINS                 comma separated CORS origins (*)
"""

from __future__ import annotations
from dataclasses import dataclass, field
import logging
import os


MAX_PLAYERS_CAP = 8
MIN_PLAYERS = 2


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name, "").strip()
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError:
        raise ValueError(f"{name} must be a number, got {raw!r}")


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name, "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {raw!r}")


@dataclass
class EngineConfig:
    """Timeouts and limits shared by the reducers, services and sweeper."""
    env: str = "development"
    turn_timeout_seconds: float = 60.0
    vote_timeout_seconds: float = 60.0
    reconnect_window_seconds: float = 120.0
    max_game_events: int = 100
    max_battle_events: int = 50
    database_url: str | None = None
    log_level: str = "INFO"
    allowed_origins: list[str] = field(default_factory=lambda: ["*"])

    @classmethod
    def from_env(cls) -> EngineConfig:
        return cls(
            env=os.getenv("SKATE_ENV", "development"),
            turn_timeout_seconds=_env_float("SKATE_TURN_TIMEOUT_SECONDS", 60.0),
            vote_timeout_seconds=_env_float("SKATE_VOTE_TIMEOUT_SECONDS", 60.0),
            reconnect_window_seconds=_env_float("SKATE_RECONNECT_WINDOW_SECONDS", 120.0),
            max_game_events=_env_int("SKATE_MAX_GAME_EVENTS", 100),
            max_battle_events=_env_int("SKATE_MAX_BATTLE_EVENTS", 50),
            database_url=os.getenv("SKATE_DATABASE_URL") or None,
            log_level=os.getenv("SKATE_LOG_LEVEL", "INFO").upper(),
            allowed_origins=os.getenv("ALLOWED_ORIGINS", "*").split(","),
        )


def configure_logging(level: str = "INFO") -> None:
    """Set up root logging for the CLI and API server."""
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
