"""Boundaries the client core consumes: auth provider, record store,
realtime channel and client-local storage.
"""

from __future__ import annotations

from typing import Any, Awaitable, Callable, Iterable, Optional, Protocol

from ..schemas.auth import SessionOut, UserOut, UserRoleOut
from ..schemas.patrimony import PatrimonyOut
from .subscriptions import Subscription

SIGNED_IN = "SIGNED_IN"
SIGNED_OUT = "SIGNED_OUT"
TOKEN_REFRESHED = "TOKEN_REFRESHED"

SessionCallback = Callable[[str, Optional[SessionOut]], Any]
ChangeCallback = Callable[[dict], Awaitable[None]]


class AuthProvider(Protocol):
    async def get_current_session(self) -> SessionOut | None: ...

    def on_session_change(self, callback: SessionCallback) -> Subscription: ...

    async def sign_in(self, email: str, password: str) -> SessionOut: ...

    async def sign_up(self, email: str, password: str, full_name: str) -> UserOut: ...

    async def sign_out(self) -> None: ...

    async def request_password_reset(self, email: str) -> None: ...


class RecordStore(Protocol):
    async def select_patrimonies(self) -> list[PatrimonyOut]: ...

    async def insert_patrimony(self, row: dict) -> PatrimonyOut: ...

    async def insert_patrimonies(self, rows: list[dict]) -> list[PatrimonyOut]: ...

    async def update_patrimony(self, item_id: str, row: dict) -> PatrimonyOut: ...

    async def delete_patrimony(self, item_id: str) -> None: ...

    async def delete_patrimonies(self, ids: Iterable[str]) -> int: ...

    async def select_user_roles(self, user_id: str, role: str | None = None) -> list[UserRoleOut]: ...


class RealtimeChannel(Protocol):
    def subscribe(self, table: str, callback: ChangeCallback) -> Subscription: ...


class LocalStorage(Protocol):
    def get_item(self, key: str) -> str | None: ...

    def set_item(self, key: str, value: str) -> None: ...

    def remove_item(self, key: str) -> None: ...
