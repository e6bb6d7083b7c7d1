from __future__ import annotations

from fastapi import APIRouter, Depends
from fastapi.responses import StreamingResponse

from ..core.config import settings
from ..core.errors import NotFound
from ..deps.auth import AuthContext, require_user
from ..services.change_feed import change_broadcaster

router = APIRouter(prefix="/api/v1/realtime", tags=["realtime"])

STREAMABLE_TABLES = {"patrimonies"}


@router.get("/{table}")
async def stream_changes(table: str, ctx: AuthContext = Depends(require_user)):
    """Server-Sent Events feed of every insert, update and delete on ``table``."""
    if table not in STREAMABLE_TABLES:
        raise NotFound(f"Unknown table: {table}")
    return StreamingResponse(
        change_broadcaster.subscribe(table, keepalive=settings.REALTIME_KEEPALIVE_SECONDS),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache", "X-Accel-Buffering": "no"},
    )
