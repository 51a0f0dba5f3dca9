"""Callback-based notification channel for pipeline views."""

import logging
from collections.abc import Callable
from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field

from leadflow.pipeline.stages import StageKey

logger = logging.getLogger(__name__)


class NotificationLevel(str, Enum):
    INFO = "info"
    ERROR = "error"


class PipelineNotification(BaseModel):
    """A user-facing message, rendered as a toast by the panel."""

    level: NotificationLevel
    title: str
    description: str = ""
    stage: Optional[StageKey] = None
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


Listener = Callable[[PipelineNotification], None]


class EventChannel:
    """Fan-out of notifications to subscribed listeners."""

    def __init__(self):
        self._listeners: list[Listener] = []

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register a listener. Returns a callable that unsubscribes it."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    @property
    def listener_count(self) -> int:
        return len(self._listeners)

    def emit(self, notification: PipelineNotification) -> None:
        """Deliver a notification to every listener."""
        for listener in list(self._listeners):
            try:
                listener(notification)
            except Exception:
                # A failing listener must not stop delivery to the others
                logger.exception(f"Notification listener failed: {notification.title}")

    def info(self, title: str, description: str = "", stage: Optional[StageKey] = None) -> None:
        self.emit(
            PipelineNotification(
                level=NotificationLevel.INFO, title=title, description=description, stage=stage
            )
        )

    def error(self, title: str, description: str = "", stage: Optional[StageKey] = None) -> None:
        self.emit(
            PipelineNotification(
                level=NotificationLevel.ERROR, title=title, description=description, stage=stage
            )
        )
