"""Subscription handles returned by every ``subscribe``/``on_*`` call."""

from __future__ import annotations

import inspect
import logging
from typing import Any, Callable

logger = logging.getLogger(__name__)


class Subscription:
    """Releases one registration. Calling ``unsubscribe`` twice is harmless."""

    def __init__(self, cancel: Callable[[], Any]) -> None:
        self._cancel: Callable[[], Any] | None = cancel

    @property
    def closed(self) -> bool:
        return self._cancel is None

    def unsubscribe(self) -> None:
        cancel, self._cancel = self._cancel, None
        if cancel is not None:
            cancel()

    def __enter__(self) -> "Subscription":
        return self

    def __exit__(self, *exc_info) -> None:
        self.unsubscribe()


class Listeners:
    """An ordered set of callbacks; coroutine callbacks are awaited in turn."""

    def __init__(self) -> None:
        self._callbacks: list[Callable[..., Any]] = []

    def __len__(self) -> int:
        return len(self._callbacks)

    def add(self, callback: Callable[..., Any]) -> Subscription:
        self._callbacks.append(callback)
        return Subscription(lambda: self._discard(callback))

    def _discard(self, callback: Callable[..., Any]) -> None:
        if callback in self._callbacks:
            self._callbacks.remove(callback)

    async def emit(self, *args: Any) -> None:
        for callback in list(self._callbacks):
            try:
                result = callback(*args)
                if inspect.isawaitable(result):
                    await result
            except Exception:
                # One broken listener must not starve the others.
                logger.exception("listener.failed", extra={"extra_data": {"callback": repr(callback)}})
