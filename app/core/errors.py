from __future__ import annotations

from typing import Any

from fastapi import Request
from fastapi.responses import JSONResponse
from starlette import status
from starlette.exceptions import HTTPException as StarletteHTTPException


class AssetTrackError(Exception):
    """Base class for every failure the client and the backend report.

    ``message`` is always human readable; it is what ends up in a
    notification on the client and in the ``message`` field of the JSON
    envelope on the backend.
    """

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    code: str = "error"

    def __init__(self, message: str, *, details: Any | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details


class AuthError(AssetTrackError):
    """The provider rejected credentials or the session is no longer valid."""

    status_code = status.HTTP_401_UNAUTHORIZED
    code = "auth_error"


class LoadError(AssetTrackError):
    """Reading records from the store failed."""

    status_code = status.HTTP_502_BAD_GATEWAY
    code = "load_error"


class MutationError(AssetTrackError):
    """A write was rejected by the store, constraint violations included."""

    status_code = status.HTTP_409_CONFLICT
    code = "mutation_error"


class PermissionDenied(AssetTrackError):
    """The ownership policy does not allow the requested mutation."""

    status_code = status.HTTP_403_FORBIDDEN
    code = "permission_denied"


class MigrationError(AssetTrackError):
    """The one-time legacy upload failed; the completion marker stays unset."""

    code = "migration_error"


class ValidationFailed(AssetTrackError):
    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY
    code = "validation_error"


class NotFound(AssetTrackError):
    status_code = status.HTTP_404_NOT_FOUND
    code = "not_found"


class ErrorEnvelope(JSONResponse):
    def __init__(
        self,
        *,
        status_code: int,
        code: str,
        message: str,
        details: Any | None = None,
        headers: dict[str, str] | None = None,
    ) -> None:
        payload: dict[str, Any] = {"code": code, "message": message}
        if details is not None:
            payload["details"] = details
        super().__init__(payload, status_code=status_code, headers=headers)


async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    detail = exc.detail
    message = detail if isinstance(detail, str) else "Error"
    details = detail if isinstance(detail, dict) else None
    headers = getattr(exc, "headers", None)
    return ErrorEnvelope(
        status_code=exc.status_code,
        code="http_error",
        message=message,
        details=details,
        headers=headers,
    )


async def validation_exception_handler(request: Request, exc):  # type: ignore[override]
    from fastapi.exceptions import RequestValidationError

    if isinstance(exc, RequestValidationError):
        errors = exc.errors()
        return ErrorEnvelope(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            code="validation_error",
            message=first_error_message(errors) or "Validation failed",
            details={"errors": [_jsonable_error(err) for err in errors]},
        )
    raise exc


async def assettrack_error_handler(request: Request, exc: AssetTrackError):
    headers = {"WWW-Authenticate": "Bearer"} if isinstance(exc, AuthError) else None
    return ErrorEnvelope(
        status_code=exc.status_code,
        code=exc.code,
        message=exc.message,
        details=exc.details,
        headers=headers,
    )


def first_error_message(errors: list[dict[str, Any]]) -> str | None:
    """Return the message of the first failing rule, without pydantic's prefix."""

    if not errors:
        return None
    err = errors[0]
    ctx = err.get("ctx") or {}
    if "error" in ctx:
        return str(ctx["error"])
    return str(err.get("msg") or "")


def _jsonable_error(err: dict[str, Any]) -> dict[str, Any]:
    cleaned = {key: value for key, value in err.items() if key not in ("ctx", "input", "url")}
    cleaned["msg"] = str(err.get("ctx", {}).get("error", err.get("msg", "")))
    return cleaned
