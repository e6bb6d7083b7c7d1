"""Application wiring for the AssetTrack backend.

This module brings together configuration, database setup, API routers,
middleware, metrics and error handling, so a newcomer gets a bird's-eye view of
*what* pieces exist and *when* they are initialised. Run it with
``uvicorn app.main:app``.
"""

from __future__ import annotations

from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from prometheus_fastapi_instrumentator import Instrumentator
from starlette.exceptions import HTTPException as StarletteHTTPException

from .core.config import settings
from .core.errors import (
    AssetTrackError,
    assettrack_error_handler,
    http_exception_handler,
    validation_exception_handler,
)
from .core.logging import configure_logging
from .db.migrate import run_migrations
from .db.session import Base, engine
from .middlewares import RequestIdMiddleware, SecurityHeadersMiddleware
from .routers import api_auth, api_patrimonies, api_roles, realtime
from .services.change_feed import change_broadcaster

# Importing the SQLAlchemy models registers them with the metadata. Without
# this step ``Base.metadata.create_all`` would not know about our tables.
from .models import patrimony as _patrimony  # noqa: F401
from .models import user as _user  # noqa: F401

configure_logging(settings.LOG_LEVEL)

# ---------- App init ----------
app = FastAPI(title=settings.APP_NAME)

# ---------- DB init/migrations ----------
# ``create_all`` ensures tables exist for brand-new databases, while
# ``run_migrations`` upgrades existing installations.
Base.metadata.create_all(bind=engine)
run_migrations(engine)

# ---------- Middleware ----------
# Added last runs first: the request id must exist before anything logs.
app.add_middleware(SecurityHeadersMiddleware)
if settings.ALLOWED_ORIGINS:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.ALLOWED_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
app.add_middleware(RequestIdMiddleware)

# ---------- Routers ----------
app.include_router(api_auth.router)
app.include_router(api_patrimonies.router)
app.include_router(api_roles.router)
app.include_router(realtime.router)

# ---------- Exception handling ----------
# Every failure leaves the service as the same JSON envelope
# ``{"code", "message", "details"?}`` so clients can surface ``message`` as is.
app.add_exception_handler(AssetTrackError, assettrack_error_handler)
app.add_exception_handler(StarletteHTTPException, http_exception_handler)
app.add_exception_handler(RequestValidationError, validation_exception_handler)

# ---------- Metrics ----------
instrumentator = Instrumentator(excluded_handlers=["/health", "/metrics", "/api/v1/realtime/.*"])
instrumentator.instrument(app).expose(app, include_in_schema=False)


@app.get("/health")
async def health() -> dict[str, bool]:
    return {"ok": True}


@app.on_event("shutdown")
async def _close_realtime() -> None:
    await change_broadcaster.shutdown()


__all__ = ["app"]
