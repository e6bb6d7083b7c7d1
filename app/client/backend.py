"""HTTP adapter that gives the client core its auth provider and record store.

One ``BackendClient`` talks to the AssetTrack service over ``httpx``. It keeps
the signed-in session in client-local storage so a restart resumes it, renews
the access token when it runs out and turns every failure into the
``AssetTrackError`` taxonomy, using the message from the service's JSON
envelope where there is one.
"""

from __future__ import annotations

import json
import logging
import time
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Iterable, Optional, Type

import httpx
from jose import JWTError, jwt
from pydantic import ValidationError

from ..core.errors import (
    AssetTrackError,
    AuthError,
    LoadError,
    MutationError,
    NotFound,
    PermissionDenied,
    ValidationFailed,
)
from ..schemas.auth import SessionOut, UserOut, UserRoleOut
from ..schemas.patrimony import BulkDeleteResult, PatrimonyOut
from .config import ClientSettings, get_client_settings
from .ports import SIGNED_IN, SIGNED_OUT, TOKEN_REFRESHED, LocalStorage, SessionCallback
from .realtime import SseChannel
from .storage import JsonFileStorage
from .subscriptions import Listeners, Subscription

logger = logging.getLogger(__name__)

SESSION_KEY = "assettrack.auth.session"
API_PREFIX = "/api/v1"
# Renew a little before expiry so a request in flight does not race the clock.
EXPIRY_LEEWAY_SECONDS = 30
NETWORK_ERROR_MESSAGE = "Não foi possível conectar ao servidor"

_STATUS_ERRORS: dict[int, Type[AssetTrackError]] = {
    401: AuthError,
    403: PermissionDenied,
    404: NotFound,
    422: ValidationFailed,
}


def error_from_response(response: httpx.Response, default: Type[AssetTrackError]) -> AssetTrackError:
    """Map an error response onto the taxonomy, keeping the service's message."""

    message = None
    details = None
    try:
        body = response.json()
    except (json.JSONDecodeError, UnicodeDecodeError):
        body = None
    if isinstance(body, dict):
        message = body.get("message") or body.get("detail")
        details = body.get("details")
    if not isinstance(message, str) or not message:
        message = f"{response.status_code} {response.reason_phrase}".strip()
    error_cls = _STATUS_ERRORS.get(response.status_code, default)
    return error_cls(message, details=details)


def token_expired(access_token: str, *, leeway: int = EXPIRY_LEEWAY_SECONDS) -> bool:
    try:
        claims = jwt.get_unverified_claims(access_token)
    except JWTError:
        return True
    exp = claims.get("exp")
    if exp is None:
        return False
    return float(exp) <= time.time() + leeway


class BackendClient:
    def __init__(
        self,
        base_url: str | None = None,
        storage: LocalStorage | None = None,
        *,
        http: httpx.AsyncClient | None = None,
        settings: ClientSettings | None = None,
    ) -> None:
        self.settings = settings or get_client_settings()
        self.storage = storage if storage is not None else JsonFileStorage(self.settings.STORAGE_PATH)
        self._http = http or httpx.AsyncClient(
            base_url=base_url or self.settings.BASE_URL,
            timeout=httpx.Timeout(self.settings.TIMEOUT),
        )
        self._listeners = Listeners()
        self._session: SessionOut | None = self._load_session()

    @classmethod
    def from_settings(cls, settings: ClientSettings | None = None) -> "BackendClient":
        return cls(settings=settings)

    async def aclose(self) -> None:
        await self._http.aclose()

    async def __aenter__(self) -> "BackendClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    # ---------- session persistence ----------

    @property
    def session(self) -> SessionOut | None:
        return self._session

    def _load_session(self) -> SessionOut | None:
        raw = self.storage.get_item(SESSION_KEY)
        if not raw:
            return None
        try:
            return SessionOut.model_validate_json(raw)
        except ValidationError:
            logger.warning("auth.session_unreadable")
            self.storage.remove_item(SESSION_KEY)
            return None

    def _store_session(self, session: SessionOut | None) -> None:
        self._session = session
        if session is None:
            self.storage.remove_item(SESSION_KEY)
        else:
            self.storage.set_item(SESSION_KEY, session.model_dump_json())

    def _headers(self) -> dict[str, str]:
        if self._session is None:
            return {}
        return {"Authorization": f"Bearer {self._session.access_token}"}

    # ---------- transport ----------

    async def _send(self, method: str, path: str, error_cls: Type[AssetTrackError], **kwargs: Any) -> httpx.Response:
        try:
            return await self._http.request(method, API_PREFIX + path, headers=self._headers(), **kwargs)
        except httpx.HTTPError as exc:
            logger.warning(
                "backend.unreachable",
                extra={"extra_data": {"method": method, "path": path, "error": str(exc)}},
            )
            raise error_cls(NETWORK_ERROR_MESSAGE) from exc

    async def _request(
        self,
        method: str,
        path: str,
        error_cls: Type[AssetTrackError],
        *,
        authenticated: bool = True,
        **kwargs: Any,
    ) -> httpx.Response:
        response = await self._send(method, path, error_cls, **kwargs)
        if response.status_code == httpx.codes.UNAUTHORIZED and authenticated and self._session is not None:
            # The access token lapsed between checks; renew once and replay.
            await self._refresh()
            response = await self._send(method, path, error_cls, **kwargs)
        if response.is_error:
            raise error_from_response(response, error_cls)
        return response

    @asynccontextmanager
    async def stream(self, path: str) -> AsyncIterator[httpx.Response]:
        """Open a long-lived GET (no read timeout) for server-sent events."""

        await self.get_current_session()
        async with self._http.stream(
            "GET",
            API_PREFIX + path,
            headers={**self._headers(), "Accept": "text/event-stream"},
            timeout=httpx.Timeout(self.settings.TIMEOUT, read=None),
        ) as response:
            if response.is_error:
                await response.aread()
                raise error_from_response(response, LoadError)
            yield response

    def channel(self) -> SseChannel:
        return SseChannel(self, reconnect_delay=self.settings.RECONNECT_DELAY)

    # ---------- auth provider ----------

    def on_session_change(self, callback: SessionCallback) -> Subscription:
        return self._listeners.add(callback)

    async def _emit(self, event: str, session: Optional[SessionOut]) -> None:
        await self._listeners.emit(event, session)

    async def _refresh(self) -> SessionOut:
        current = self._session
        if current is None:
            raise AuthError("Sessão expirada")
        response = await self._send(
            "POST", "/auth/refresh", AuthError, json={"refresh_token": current.refresh_token}
        )
        if response.is_error:
            error = error_from_response(response, AuthError)
            self._store_session(None)
            logger.info("auth.refresh_failed", extra={"extra_data": {"status": response.status_code}})
            await self._emit(SIGNED_OUT, None)
            raise AuthError(error.message, details=error.details)
        session = SessionOut.model_validate(response.json())
        self._store_session(session)
        await self._emit(TOKEN_REFRESHED, session)
        return session

    async def get_current_session(self) -> SessionOut | None:
        session = self._session
        if session is None:
            return None
        if not token_expired(session.access_token):
            return session
        try:
            return await self._refresh()
        except AuthError:
            return None

    async def sign_in(self, email: str, password: str) -> SessionOut:
        response = await self._request(
            "POST", "/auth/token", AuthError, authenticated=False, json={"email": email, "password": password}
        )
        session = SessionOut.model_validate(response.json())
        self._store_session(session)
        logger.info("auth.signed_in", extra={"extra_data": {"user_id": session.user.id}})
        await self._emit(SIGNED_IN, session)
        return session

    async def sign_up(self, email: str, password: str, full_name: str) -> UserOut:
        response = await self._request(
            "POST",
            "/auth/signup",
            AuthError,
            authenticated=False,
            json={"email": email, "password": password, "full_name": full_name},
        )
        return UserOut.model_validate(response.json())

    async def sign_out(self) -> None:
        if self._session is None:
            return
        try:
            await self._request("POST", "/auth/logout", AuthError)
        except AssetTrackError as exc:
            # Tokens are stateless; dropping the local copy is what signs out.
            logger.info("auth.logout_remote_failed", extra={"extra_data": {"error": exc.message}})
        finally:
            self._store_session(None)
        await self._emit(SIGNED_OUT, None)

    async def request_password_reset(self, email: str) -> None:
        await self._request("POST", "/auth/recover", AuthError, authenticated=False, json={"email": email})

    async def current_user(self) -> UserOut:
        response = await self._request("GET", "/auth/user", AuthError)
        return UserOut.model_validate(response.json())

    # ---------- record store ----------

    async def select_patrimonies(self) -> list[PatrimonyOut]:
        response = await self._request("GET", "/patrimonies", LoadError)
        return [PatrimonyOut.model_validate(row) for row in response.json()]

    async def insert_patrimony(self, row: dict) -> PatrimonyOut:
        response = await self._request("POST", "/patrimonies", MutationError, json=row)
        return PatrimonyOut.model_validate(response.json())

    async def insert_patrimonies(self, rows: list[dict]) -> list[PatrimonyOut]:
        response = await self._request("POST", "/patrimonies/bulk", MutationError, json=rows)
        return [PatrimonyOut.model_validate(row) for row in response.json()]

    async def update_patrimony(self, item_id: str, row: dict) -> PatrimonyOut:
        response = await self._request("PATCH", f"/patrimonies/{item_id}", MutationError, json=row)
        return PatrimonyOut.model_validate(response.json())

    async def delete_patrimony(self, item_id: str) -> None:
        await self._request("DELETE", f"/patrimonies/{item_id}", MutationError)

    async def delete_patrimonies(self, ids: Iterable[str]) -> int:
        params = [("id", item_id) for item_id in ids]
        if not params:
            return 0
        response = await self._request("DELETE", "/patrimonies", MutationError, params=params)
        return BulkDeleteResult.model_validate(response.json()).deleted

    async def select_user_roles(self, user_id: str, role: str | None = None) -> list[UserRoleOut]:
        params = {"user_id": user_id}
        if role:
            params["role"] = role
        response = await self._request("GET", "/user-roles", LoadError, params=params)
        return [UserRoleOut.model_validate(row) for row in response.json()]
