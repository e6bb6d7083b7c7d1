from __future__ import annotations

import inspect
import logging
from typing import Any, Callable, Sequence

from ..core.errors import LoadError
from ..schemas.patrimony import PatrimonyOut
from .ports import RealtimeChannel
from .repository import PatrimonyRepository
from .subscriptions import Subscription

logger = logging.getLogger(__name__)

TABLE = "patrimonies"


class ChangeFeedListener:
    """Reloads the whole record set on any insert, update or delete.

    No diffing: ``PatrimonyRepository.list`` is authoritative, so every event
    simply triggers a full reload that replaces the view's records.
    """

    def __init__(
        self,
        channel: RealtimeChannel,
        repository: PatrimonyRepository,
        on_reload: Callable[[Sequence[PatrimonyOut]], Any],
        on_error: Callable[[LoadError], Any],
    ) -> None:
        self.channel = channel
        self.repository = repository
        self.on_reload = on_reload
        self.on_error = on_error
        self._subscription: Subscription | None = None

    @property
    def active(self) -> bool:
        return self._subscription is not None and not self._subscription.closed

    def start(self) -> None:
        if self.active:
            return
        self._subscription = self.channel.subscribe(TABLE, self._on_change)
        logger.debug("feed.subscribed", extra={"extra_data": {"table": TABLE}})

    def stop(self) -> None:
        if self._subscription is not None:
            self._subscription.unsubscribe()
            self._subscription = None

    async def _on_change(self, event: dict) -> None:
        logger.debug("feed.change", extra={"extra_data": event})
        await self.reload()

    async def reload(self) -> bool:
        try:
            records = await self.repository.list()
        except LoadError as exc:
            logger.warning("feed.reload_failed", extra={"extra_data": {"error": exc.message}})
            result = self.on_error(exc)
            if inspect.isawaitable(result):
                await result
            return False
        result = self.on_reload(records)
        if inspect.isawaitable(result):
            await result
        return True
