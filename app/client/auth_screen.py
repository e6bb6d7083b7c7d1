"""Controller for the login screen.

``AuthScreen`` runs the three forms the screen offers (sign in, create
account, password recovery) against the auth provider. Input is checked
locally first; whatever the provider rejects is shown with the provider's
own message. Any session, found at start or announced later, sends the
operator to the records screen.
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import Any, Callable, Mapping, Optional, Type, TypeVar

from pydantic import BaseModel, ValidationError

from ..core.errors import AssetTrackError, ValidationFailed, first_error_message
from ..schemas.auth import PasswordResetForm, SessionOut, SignInForm, SignUpForm
from .notifications import Notifier
from .ports import AuthProvider
from .subscriptions import Subscription

logger = logging.getLogger(__name__)

HOME_PATH = "/"

VALIDATION_TITLE = "Erro de validação"
SIGN_IN_FAILED_TITLE = "Erro ao fazer login"
SIGNED_IN_MESSAGE = "Login realizado com sucesso!"
SIGN_UP_FAILED_TITLE = "Erro ao criar conta"
SIGNED_UP_TITLE = "Conta criada com sucesso!"
SIGNED_UP_MESSAGE = "Você já pode fazer login."
RESET_FAILED_TITLE = "Erro ao enviar email"
RESET_SENT_TITLE = "Email enviado!"
RESET_SENT_MESSAGE = "Verifique sua caixa de entrada para redefinir sua senha."

FormT = TypeVar("FormT", bound=BaseModel)


class AuthMode(str, Enum):
    LOGIN = "login"
    SIGN_UP = "sign_up"
    RESET = "reset"


def validate_auth_form(schema: Type[FormT], data: FormT | Mapping[str, Any]) -> FormT:
    if isinstance(data, schema):
        return data
    try:
        return schema.model_validate(dict(data))
    except ValidationError as exc:
        errors = exc.errors(include_url=False)
        raise ValidationFailed(first_error_message(errors) or "Dados inválidos") from exc


class AuthScreen:
    def __init__(
        self,
        auth: AuthProvider,
        *,
        notifier: Notifier | None = None,
        on_redirect: Callable[[str], Any] | None = None,
    ) -> None:
        self.auth = auth
        self.notifier = notifier or Notifier()
        self.on_redirect = on_redirect
        self.mode = AuthMode.LOGIN
        self.busy = False
        self.redirect_to: str | None = None
        self._subscription: Subscription | None = None

    # ---------- lifecycle ----------

    async def start(self) -> None:
        if self._subscription is None:
            self._subscription = self.auth.on_session_change(self._on_auth_event)
        if await self.auth.get_current_session() is not None:
            self._redirect(HOME_PATH)

    def teardown(self) -> None:
        if self._subscription is not None:
            self._subscription.unsubscribe()
            self._subscription = None

    def _on_auth_event(self, event: str, session: Optional[SessionOut]) -> None:
        if session is not None:
            self._redirect(HOME_PATH)

    def _redirect(self, path: str) -> None:
        if self.redirect_to == path:
            return
        self.redirect_to = path
        if self.on_redirect is not None:
            self.on_redirect(path)

    def show(self, mode: AuthMode | str) -> None:
        self.mode = AuthMode(mode)

    # ---------- forms ----------

    async def sign_in(self, data: SignInForm | Mapping[str, Any]) -> bool:
        form = self._validate(SignInForm, data)
        if form is None:
            return False
        self.busy = True
        try:
            session = await self.auth.sign_in(form.email, form.password)
        except AssetTrackError as exc:
            logger.warning("auth_screen.sign_in_failed", extra={"extra_data": {"error": exc.message}})
            self.notifier.error(exc.message, title=SIGN_IN_FAILED_TITLE)
            return False
        finally:
            self.busy = False
        self.notifier.success(SIGNED_IN_MESSAGE)
        if session is not None:
            self._redirect(HOME_PATH)
        return True

    async def sign_up(self, data: SignUpForm | Mapping[str, Any]) -> bool:
        form = self._validate(SignUpForm, data)
        if form is None:
            return False
        self.busy = True
        try:
            await self.auth.sign_up(form.email, form.password, form.full_name)
        except AssetTrackError as exc:
            logger.warning("auth_screen.sign_up_failed", extra={"extra_data": {"error": exc.message}})
            self.notifier.error(exc.message, title=SIGN_UP_FAILED_TITLE)
            return False
        finally:
            self.busy = False
        self.notifier.success(SIGNED_UP_MESSAGE, title=SIGNED_UP_TITLE)
        self.mode = AuthMode.LOGIN
        return True

    async def request_password_reset(self, data: PasswordResetForm | Mapping[str, Any]) -> bool:
        form = self._validate(PasswordResetForm, data)
        if form is None:
            return False
        self.busy = True
        try:
            await self.auth.request_password_reset(form.email)
        except AssetTrackError as exc:
            logger.warning("auth_screen.reset_failed", extra={"extra_data": {"error": exc.message}})
            self.notifier.error(exc.message, title=RESET_FAILED_TITLE)
            return False
        finally:
            self.busy = False
        self.notifier.success(RESET_SENT_MESSAGE, title=RESET_SENT_TITLE)
        self.mode = AuthMode.LOGIN
        return True

    def _validate(self, schema: Type[FormT], data: FormT | Mapping[str, Any]) -> FormT | None:
        try:
            return validate_auth_form(schema, data)
        except ValidationFailed as exc:
            self.notifier.error(exc.message, title=VALIDATION_TITLE)
            return None
