"""In-process broadcaster behind the realtime change channel.

Each connected subscriber owns a bounded ``asyncio.Queue``. Route handlers
publish after a successful commit; because the synchronous handlers run in
FastAPI's threadpool, ``publish`` hands the message to each subscriber's
event loop with ``call_soon_threadsafe`` instead of touching the queue
directly.
"""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import AsyncGenerator, Iterable
from dataclasses import dataclass, field
from typing import Any

from ..core.config import settings

logger = logging.getLogger(__name__)

INSERT = "INSERT"
UPDATE = "UPDATE"
DELETE = "DELETE"


@dataclass(frozen=True)
class ChangeEvent:
    type: str
    table: str
    ids: tuple[str, ...] = field(default_factory=tuple)

    def to_dict(self) -> dict[str, Any]:
        return {"type": self.type, "table": self.table, "ids": list(self.ids)}


def format_sse(event: str, data: dict[str, Any]) -> str:
    return f"event: {event}\ndata: {json.dumps(data, ensure_ascii=False)}\n\n"


@dataclass(eq=False)
class _Subscriber:
    table: str
    queue: asyncio.Queue
    loop: asyncio.AbstractEventLoop


class ChangeBroadcaster:
    def __init__(self, queue_size: int | None = None) -> None:
        self._queue_size = queue_size or settings.REALTIME_QUEUE_SIZE
        self._subscribers: list[_Subscriber] = []

    async def subscribe(
        self,
        table: str,
        keepalive: float | None = None,
    ) -> AsyncGenerator[str, None]:
        """Yield SSE-formatted messages for ``table`` until the client leaves.

        When ``keepalive`` is set, an SSE comment is emitted after that many
        idle seconds so proxies keep the connection open.
        """
        subscriber = _Subscriber(
            table=table,
            queue=asyncio.Queue(maxsize=self._queue_size),
            loop=asyncio.get_running_loop(),
        )
        self._subscribers.append(subscriber)
        logger.info("realtime.subscribed", extra={"extra_data": {"table": table, "clients": self.client_count}})
        try:
            while True:
                try:
                    message = await asyncio.wait_for(subscriber.queue.get(), timeout=keepalive)
                except asyncio.TimeoutError:
                    yield ": keep-alive\n\n"
                    continue
                if message is None:
                    break
                yield message
        finally:
            if subscriber in self._subscribers:
                self._subscribers.remove(subscriber)
            logger.info("realtime.unsubscribed", extra={"extra_data": {"table": table, "clients": self.client_count}})

    def publish(self, event: ChangeEvent) -> None:
        message = format_sse("change", event.to_dict())
        for subscriber in list(self._subscribers):
            if subscriber.table != event.table:
                continue
            try:
                subscriber.loop.call_soon_threadsafe(self._offer, subscriber, message)
            except RuntimeError:
                # Event loop already closed.
                self._drop(subscriber)

    def publish_change(self, type_: str, table: str, ids: Iterable[str]) -> None:
        self.publish(ChangeEvent(type=type_, table=table, ids=tuple(ids)))

    def _offer(self, subscriber: _Subscriber, message: str) -> None:
        try:
            subscriber.queue.put_nowait(message)
        except asyncio.QueueFull:
            logger.warning("realtime.queue_full", extra={"extra_data": {"table": subscriber.table}})
            self._drop(subscriber)

    def _drop(self, subscriber: _Subscriber) -> None:
        if subscriber in self._subscribers:
            self._subscribers.remove(subscriber)
        # Make room for the sentinel so the generator exits.
        while not subscriber.queue.empty():
            subscriber.queue.get_nowait()
        subscriber.queue.put_nowait(None)

    async def shutdown(self) -> None:
        """Disconnect all connected clients."""
        for subscriber in list(self._subscribers):
            subscriber.loop.call_soon_threadsafe(self._drop, subscriber)

    @property
    def client_count(self) -> int:
        return len(self._subscribers)


change_broadcaster = ChangeBroadcaster()
