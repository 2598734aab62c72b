"""
Skate CLI - Command-line interface for the engine.

Usage:
    skate demo                 Play a scripted game and battle in memory
    skate sweep [--loop N]     Apply due timeouts against SKATE_DATABASE_URL
    skate serve [--port N]     Run the REST API with uvicorn
"""

import argparse
import logging
import sys
import time

from .config import EngineConfig, configure_logging

logger = logging.getLogger(__name__)


def main(argv=None):
    """Main CLI entry point."""
    parser = argparse.ArgumentParser(
        description="Skate - Game of S.K.A.T.E. and battle engine",
        prog="skate",
    )
    parser.add_argument("--log-level", default=None, help="Override SKATE_LOG_LEVEL")
    subparsers = parser.add_subparsers(dest="command", help="Commands")

    # Demo command
    demo_parser = subparsers.add_parser("demo", help="Play a scripted game and battle in memory")
    demo_parser.add_argument("--players", type=int, default=2, help="Number of players (2-8)")

    # Sweep command
    sweep_parser = subparsers.add_parser("sweep", help="Apply due turn, reconnect and vote timeouts")
    sweep_parser.add_argument(
        "--loop", type=float, default=None, metavar="SECONDS",
        help="Keep sweeping every SECONDS instead of running once",
    )

    # Serve command
    serve_parser = subparsers.add_parser("serve", help="Run the REST API")
    serve_parser.add_argument("--host", default="127.0.0.1")
    serve_parser.add_argument("--port", type=int, default=8000)

    args = parser.parse_args(argv)
    config = EngineConfig.from_env()
    configure_logging(args.log_level or config.log_level)

    if args.command == "demo":
        return cmd_demo(args, config)
    elif args.command == "sweep":
        return cmd_sweep(args, config)
    elif args.command == "serve":
        return cmd_serve(args, config)
    else:
        parser.print_help()
        return 1


def cmd_demo(args, config):
    """Play a full game where the first player never misses, then a battle."""
    from .session import GameService, BattleService, RecordingNotificationSink
    from .persistence import InMemoryStore

    clock = _StepClock()
    notifier = RecordingNotificationSink()
    games = GameService(store=InMemoryStore(), config=config, notifier=notifier, clock=clock)
    battles = BattleService(store=InMemoryStore(), config=config, clock=clock)

    num_players = max(2, min(args.players, 8))
    player_ids = [f"skater{i + 1}" for i in range(num_players)]
    created = games.create_game("demo-create", "demo-spot", player_ids[0], max_players=num_players)
    game_id = created.new_state.game_id
    print(f"Game {game_id} created by {player_ids[0]}")

    for player_id in player_ids[1:]:
        _show(games.join_game(f"demo-join-{player_id}", game_id, player_id))

    step = 0
    state = games.get_game(game_id)
    while not state.status.is_terminal:
        step += 1
        current = state.current_player.player_id
        if state.current_action.value == "set":
            result = games.submit_trick(f"demo-{step}", game_id, current, f"trick {step}")
        else:
            result = games.pass_trick(f"demo-{step}", game_id, current)
        _show(result)
        state = result.new_state if result.success else games.get_game(game_id)
        if not result.success:
            print(f"Demo stopped: {result.error}")
            return 1

    print(f"Winner: {state.winner_id}")
    for p in state.players:
        print(f"  {p.player_id}: {p.letters or '-'}")
    print(f"{len(notifier.sent)} notifications delivered")

    battles.initialize_voting("demo-battle", "battle-1", player_ids[0], player_ids[1])
    battles.cast_vote("demo-vote-1", "battle-1", player_ids[0], "clean")
    result = battles.cast_vote("demo-vote-2", "battle-1", player_ids[1], "sketch")
    print(f"Battle winner: {result.new_state.winner_id} {result.new_state.final_score}")
    return 0


def cmd_sweep(args, config):
    """Apply timeouts once or on an interval."""
    from .session import TimeoutSweeper, build_services

    games, battles = build_services(config)
    sweeper = TimeoutSweeper(games=games, battles=battles)

    while True:
        report = sweeper.sweep()
        for action in report.actions:
            status = "ok" if action.success else f"rejected: {action.error}"
            print(f"{action.kind} {action.record_id} {action.action} ({status})")
        if args.loop is None:
            return 0
        time.sleep(args.loop)


def cmd_serve(args, config):
    """Run the API server."""
    try:
        import uvicorn
    except ImportError:
        print("uvicorn not installed. Install with: pip install uvicorn", file=sys.stderr)
        return 1

    from .api import create_app

    app = create_app(config=config)
    logger.info("Serving on %s:%d", args.host, args.port)
    uvicorn.run(app, host=args.host, port=args.port, log_level=config.log_level.lower())
    return 0


class _StepClock:
    """Deterministic clock for the demo: one second per reading."""

    def __init__(self, start: float = 1_700_000_000.0):
        self.now = start

    def __call__(self) -> float:
        self.now += 1.0
        return self.now


def _show(result):
    if result.success:
        for change in result.changes:
            print(f"  {change}")
    else:
        print(f"  rejected: {result.error}")


if __name__ == "__main__":
    sys.exit(main())
