"""
User-visible notifications.

Notifications are fire-and-forget: the chat session never looks at what
a notifier does with them.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Protocol

from finassist.logging_utils import ContextualLogger


class NotificationLevel(Enum):
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"


@dataclass(frozen=True)
class Notification:
    title: str
    description: str
    level: NotificationLevel = NotificationLevel.INFO
    category: str | None = None


class Notifier(Protocol):
    def notify(self, notification: Notification) -> None:
        ...


class LoggingNotifier:
    """Writes notifications to the structured log."""

    def __init__(self, logger: ContextualLogger | None = None):
        self._logger = logger or ContextualLogger({"component": "notifications"})

    def notify(self, notification: Notification) -> None:
        log = {
            NotificationLevel.INFO: self._logger.info,
            NotificationLevel.WARNING: self._logger.warning,
            NotificationLevel.ERROR: self._logger.error,
        }[notification.level]
        log(
            notification.title,
            description=notification.description,
            category=notification.category,
        )


class CollectingNotifier:
    """Keeps notifications in memory, optionally forwarding them."""

    def __init__(self, forward_to: Notifier | None = None):
        self.notifications: list[Notification] = []
        self._forward_to = forward_to

    def notify(self, notification: Notification) -> None:
        self.notifications.append(notification)
        if self._forward_to is not None:
            self._forward_to.notify(notification)

    @property
    def last(self) -> Notification | None:
        return self.notifications[-1] if self.notifications else None

    def clear(self) -> None:
        self.notifications.clear()
