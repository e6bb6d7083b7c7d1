from __future__ import annotations

import inspect
import logging
from typing import Any, Callable, Optional

from ..schemas.auth import SessionOut, UserOut
from .ports import AuthProvider
from .subscriptions import Subscription

logger = logging.getLogger(__name__)


async def _call(callback: Callable[..., Any] | None, *args: Any) -> None:
    if callback is None:
        return
    result = callback(*args)
    if inspect.isawaitable(result):
        await result


class SessionManager:
    """Tracks the signed-in principal and reacts to provider events.

    ``on_signed_in`` fires when a different principal appears (token refreshes
    for the same principal are absorbed). ``on_signed_out`` fires whenever
    there is no principal, including a start without a stored session, which
    is the cue to send the operator to the login screen.
    """

    def __init__(
        self,
        auth: AuthProvider,
        on_signed_in: Callable[[UserOut], Any] | None = None,
        on_signed_out: Callable[[], Any] | None = None,
    ) -> None:
        self.auth = auth
        self.on_signed_in = on_signed_in
        self.on_signed_out = on_signed_out
        self.principal: UserOut | None = None
        self._subscription: Subscription | None = None

    async def start(self) -> None:
        if self._subscription is None:
            self._subscription = self.auth.on_session_change(self._on_auth_event)
        await self._apply(await self.auth.get_current_session())

    async def _on_auth_event(self, event: str, session: Optional[SessionOut]) -> None:
        logger.debug("session.event", extra={"extra_data": {"event": event}})
        await self._apply(session)

    async def _apply(self, session: Optional[SessionOut]) -> None:
        principal = session.user if session is not None else None
        if principal is None:
            self.principal = None
            await _call(self.on_signed_out)
            return
        previous = self.principal
        self.principal = principal
        if previous is None or previous.id != principal.id:
            await _call(self.on_signed_in, principal)

    async def sign_out(self) -> None:
        await self.auth.sign_out()
        if self.principal is not None:
            # The provider did not report it; settle locally.
            await self._apply(None)

    def teardown(self) -> None:
        if self._subscription is not None:
            self._subscription.unsubscribe()
            self._subscription = None
