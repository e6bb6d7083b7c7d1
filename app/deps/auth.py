from __future__ import annotations

from dataclasses import dataclass

from fastapi import Depends, Header, Request
from fastapi.security.utils import get_authorization_scheme_param
from sqlalchemy.orm import Session

from ..core.errors import AuthError
from ..core.permissions import ADMIN_ROLE
from ..core.security import decode_token
from ..crud.users import get_user
from ..db.session import get_db
from ..middlewares import principal_ctx_var


@dataclass(frozen=True)
class AuthContext:
    """The authenticated principal behind a request."""

    user_id: str
    email: str
    is_admin: bool = False


def _set_principal(request: Request, principal: str) -> None:
    principal_ctx_var.set(principal)
    request.state.principal = principal


def bearer_token(authorization: str | None) -> str:
    scheme, credentials = get_authorization_scheme_param(authorization or "")
    if scheme.lower() != "bearer" or not credentials:
        raise AuthError("Authorization required")
    return credentials


async def require_user(
    request: Request,
    authorization: str | None = Header(default=None, alias="Authorization"),
    db: Session = Depends(get_db),
) -> AuthContext:
    token = bearer_token(authorization)
    try:
        payload = decode_token(token, verify_type="access")
    except ValueError as exc:
        raise AuthError(str(exc)) from exc
    user = get_user(db, payload.sub)
    if user is None:
        raise AuthError("User not found")
    _set_principal(request, user.id)
    request.state.token_payload = payload
    return AuthContext(user_id=user.id, email=user.email, is_admin=ADMIN_ROLE in user.role_names)
