from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, List, Optional

from .subscriptions import Subscription

logger = logging.getLogger(__name__)

SUCCESS = "success"
ERROR = "error"


@dataclass(frozen=True)
class Notification:
    level: str
    message: str
    # Headline shown above ``message``; toasts without one show only the message.
    title: Optional[str] = None


class Notifier:
    """Collects the toasts the screens raise, newest last."""

    def __init__(self) -> None:
        self.items: List[Notification] = []
        self._listeners: List[Callable[[Notification], None]] = []

    def subscribe(self, callback: Callable[[Notification], None]) -> Subscription:
        self._listeners.append(callback)
        return Subscription(lambda: self._listeners.remove(callback) if callback in self._listeners else None)

    def _push(self, level: str, message: str, title: str | None = None) -> Notification:
        note = Notification(level, message, title)
        self.items.append(note)
        level_no = logging.WARNING if level == ERROR else logging.INFO
        logger.log(level_no, "notify.%s", level, extra={"extra_data": {"title": title, "message": message}})
        for callback in list(self._listeners):
            callback(note)
        return note

    def success(self, message: str, title: str | None = None) -> Notification:
        return self._push(SUCCESS, message, title)

    def error(self, message: str, title: str | None = None) -> Notification:
        return self._push(ERROR, message, title)

    @property
    def latest(self) -> Notification | None:
        return self.items[-1] if self.items else None

    def messages(self, level: str | None = None) -> list[str]:
        return [n.message for n in self.items if level is None or n.level == level]

    def titles(self, level: str | None = None) -> list[str | None]:
        return [n.title for n in self.items if level is None or n.level == level]

    def clear(self) -> None:
        self.items.clear()
