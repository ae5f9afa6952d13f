"""
Typed multi-channel bus between agents.

Live events do NOT travel through here: the WebSocket client hands them to the
store synchronously so ordering is exactly the channel's delivery order. The
bus only carries side traffic that a consumer may fall behind on.

Queue sizing rationale:
  notifications: 100 — raised hands / messages; a supervisor reads them by hand
  alerts:         50 — snapshot or auth failures; only the latest few matter
"""

from __future__ import annotations
import asyncio
import logging
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from models.events import Alert, Notification

log = logging.getLogger(__name__)


class EventBus:
    __slots__ = (
        "notifications",
        "alerts",
    )

    def __init__(self) -> None:
        self.notifications: asyncio.Queue[Notification] = asyncio.Queue(maxsize=100)
        self.alerts: asyncio.Queue[Alert] = asyncio.Queue(maxsize=50)

    def publish_notification(self, notification: "Notification") -> None:
        """Non-blocking publish. Drops and logs if queue is full."""
        try:
            self.notifications.put_nowait(notification)
        except asyncio.QueueFull:
            log.warning(
                "notifications queue full — dropping %s notice from agent=%s",
                notification.kind, notification.agent_id,
            )

    def publish_alert(self, alert: "Alert") -> None:
        try:
            self.alerts.put_nowait(alert)
        except asyncio.QueueFull:
            log.error("alerts queue full — alert DROPPED: [%s] %s", alert.level, alert.message)
