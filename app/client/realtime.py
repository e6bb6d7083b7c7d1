"""Server-sent events consumer for the store's change feed."""

from __future__ import annotations

import asyncio
import json
import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, AsyncIterable, AsyncIterator, Optional

import httpx

from ..core.errors import AssetTrackError
from .ports import ChangeCallback
from .subscriptions import Subscription

if TYPE_CHECKING:
    from .backend import BackendClient

logger = logging.getLogger(__name__)


@dataclass
class ServerSentEvent:
    event: str = "message"
    data: str = ""
    id: Optional[str] = None

    def json(self):
        return json.loads(self.data) if self.data else None


async def iter_sse(lines: AsyncIterable[str]) -> AsyncIterator[ServerSentEvent]:
    """Group a line stream into events; comment lines (keep-alives) are skipped."""

    event: str | None = None
    data: list[str] = []
    event_id: str | None = None
    async for raw in lines:
        line = raw.rstrip("\r\n")
        if not line:
            if data or event:
                yield ServerSentEvent(event=event or "message", data="\n".join(data), id=event_id)
            event, data, event_id = None, [], None
            continue
        if line.startswith(":"):
            continue
        field, _, value = line.partition(":")
        if value.startswith(" "):
            value = value[1:]
        if field == "event":
            event = value
        elif field == "data":
            data.append(value)
        elif field == "id":
            event_id = value
    if data:
        yield ServerSentEvent(event=event or "message", data="\n".join(data), id=event_id)


class SseChannel:
    """Subscribes to ``/realtime/{table}`` and reconnects when the stream drops.

    Each subscription runs as its own task on the running loop; unsubscribing
    cancels it.
    """

    def __init__(self, backend: "BackendClient", *, reconnect_delay: float = 3.0) -> None:
        self.backend = backend
        self.reconnect_delay = reconnect_delay

    def subscribe(self, table: str, callback: ChangeCallback) -> Subscription:
        task = asyncio.get_running_loop().create_task(self._listen(table, callback), name=f"sse:{table}")
        return Subscription(task.cancel)

    async def _listen(self, table: str, callback: ChangeCallback) -> None:
        while True:
            try:
                async with self.backend.stream(f"/realtime/{table}") as response:
                    logger.info("realtime.connected", extra={"extra_data": {"table": table}})
                    async for event in iter_sse(response.aiter_lines()):
                        if event.event != "change":
                            continue
                        await callback(event.json() or {})
            except (httpx.HTTPError, AssetTrackError, json.JSONDecodeError) as exc:
                logger.warning(
                    "realtime.disconnected",
                    extra={"extra_data": {"table": table, "error": str(exc)}},
                )
            await asyncio.sleep(self.reconnect_delay)
