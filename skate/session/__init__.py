"""
Session - Services that own stored records and apply commands to them.
"""

from .manager import BattleService, GameService, build_services, derive_game_id
from .notifications import LoggingNotificationSink, NotificationSink, RecordingNotificationSink
from .timeouts import SweepAction, SweepReport, TimeoutSweeper

__all__ = [
    "BattleService",
    "GameService",
    "build_services",
    "derive_game_id",
    "LoggingNotificationSink",
    "NotificationSink",
    "RecordingNotificationSink",
    "SweepAction",
    "SweepReport",
    "TimeoutSweeper",
]
