"""Transient user-facing notifications (toasts)."""

from __future__ import annotations

import logging
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime
from typing import Literal

logger = logging.getLogger(__name__)

NotificationLevel = Literal["success", "info", "error"]

_LOG_LEVELS = {"success": logging.INFO, "info": logging.INFO, "error": logging.WARNING}


@dataclass(slots=True)
class Notification:
    level: NotificationLevel
    message: str
    created_at: datetime = field(default_factory=datetime.utcnow)

    def to_payload(self) -> dict[str, str]:
        return {
            "level": self.level,
            "message": self.message,
            "createdAt": self.created_at.isoformat(),
        }


class Notifier:
    """Bounded queue of notifications waiting to be shown to a user."""

    def __init__(self, history: int = 50, *, owner: str | None = None):
        self._queue: deque[Notification] = deque(maxlen=history)
        self._owner = owner or "anonymous"

    def success(self, message: str) -> None:
        self._push("success", message)

    def info(self, message: str) -> None:
        self._push("info", message)

    def error(self, message: str) -> None:
        self._push("error", message)

    def drain(self) -> list[Notification]:
        items = list(self._queue)
        self._queue.clear()
        return items

    def _push(self, level: NotificationLevel, message: str) -> None:
        logger.log(_LOG_LEVELS[level], "[%s] %s: %s", self._owner, level, message)
        self._queue.append(Notification(level=level, message=message))
