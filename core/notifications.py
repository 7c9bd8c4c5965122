"""User-facing notification sink for automation outcomes."""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from enum import Enum

from pydantic import BaseModel, Field

from core.event_bus import EventBus

logger = logging.getLogger(__name__)


class NotificationLevel(str, Enum):
    SUCCESS = "success"
    FAILURE = "failure"


class Notification(BaseModel):
    source: str
    level: NotificationLevel
    message: str
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class Notifier(ABC):
    """Anything that can show a success / failure message to the operator."""

    @abstractmethod
    async def notify(self, notification: Notification) -> None:
        ...

    async def success(self, source: str, message: str) -> None:
        await self.notify(Notification(source=source, level=NotificationLevel.SUCCESS, message=message))

    async def failure(self, source: str, message: str) -> None:
        await self.notify(Notification(source=source, level=NotificationLevel.FAILURE, message=message))


class LogNotifier(Notifier):
    """Writes notifications to the log. Used when nothing else is listening."""

    async def notify(self, notification: Notification) -> None:
        level = logging.INFO if notification.level == NotificationLevel.SUCCESS else logging.WARNING
        logger.log(level, notification.message, extra={"source": notification.source})


class EventBusNotifier(Notifier):
    """Publishes notifications on an EventBus, keyed by their source."""

    def __init__(self, event_bus: EventBus, also_log: bool = True):
        self._bus = event_bus
        self._log = LogNotifier() if also_log else None

    async def notify(self, notification: Notification) -> None:
        if self._log:
            await self._log.notify(notification)
        await self._bus.publish(notification.source, notification.model_dump(mode="json"))
