"""
Notification sinks.

Transitions describe notifications; services hand them to a sink only
after the new state is committed. Delivery (push, websocket, email) is
the sink's business.
"""

from __future__ import annotations
from typing import Any, Protocol
import logging

from ..engine_core.event import Notification, NotificationKind

logger = logging.getLogger(__name__)


class NotificationSink(Protocol):
    def notify(self, player_id: str, kind: NotificationKind, payload: dict[str, Any]) -> None:
        ...


class LoggingNotificationSink:
    """Default sink: writes notifications to the log."""

    def notify(self, player_id: str, kind: NotificationKind, payload: dict[str, Any]) -> None:
        logger.info("Notify %s (%s): %s", player_id, kind.value, payload)


class RecordingNotificationSink:
    """Keeps every notification in memory. Used by tests and the demo."""

    def __init__(self):
        self.sent: list[Notification] = []

    def notify(self, player_id: str, kind: NotificationKind, payload: dict[str, Any]) -> None:
        self.sent.append(Notification(player_id=player_id, kind=kind, payload=dict(payload)))

    def for_player(self, player_id: str) -> list[Notification]:
        return [n for n in self.sent if n.player_id == player_id]

    def clear(self):
        self.sent.clear()
