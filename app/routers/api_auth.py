from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from ..core.errors import AuthError
from ..core.security import decode_token, issue_reset_token, issue_token_pair, refresh_access_token
from ..crud.users import authenticate, create_user, get_user, get_user_by_email, set_password
from ..db.session import get_db
from ..deps.auth import AuthContext, require_user
from ..schemas.auth import (
    Credentials,
    RecoverRequest,
    RefreshRequest,
    ResetRequest,
    SessionOut,
    SignUpRequest,
    UserOut,
)

router = APIRouter(prefix="/api/v1/auth", tags=["auth"])
logger = logging.getLogger(__name__)


def _session_for(user) -> SessionOut:
    pair = issue_token_pair(user.id, email=user.email)
    return SessionOut(**pair.model_dump(), user=UserOut.model_validate(user))


@router.post("/signup", response_model=UserOut, status_code=status.HTTP_201_CREATED, summary="Register an account")
def sign_up(payload: SignUpRequest, db: Session = Depends(get_db)):
    user = create_user(db, payload.email, payload.password, payload.full_name)
    logger.info("auth.signup", extra={"extra_data": {"user_id": user.id}})
    return user


@router.post("/token", response_model=SessionOut, summary="Sign in with email and password")
def sign_in(payload: Credentials, db: Session = Depends(get_db)):
    user = authenticate(db, payload.email, payload.password)
    logger.info("auth.signin", extra={"extra_data": {"user_id": user.id}})
    return _session_for(user)


@router.post("/refresh", response_model=SessionOut, summary="Refresh access token")
def refresh(payload: RefreshRequest, db: Session = Depends(get_db)):
    try:
        pair = refresh_access_token(payload.refresh_token)
        subject = decode_token(pair.access_token, verify_type="access").sub
    except ValueError as exc:
        raise AuthError(str(exc)) from exc
    user = get_user(db, subject)
    if user is None:
        raise AuthError("User not found")
    return SessionOut(**pair.model_dump(), user=UserOut.model_validate(user))


@router.post("/logout", status_code=status.HTTP_204_NO_CONTENT, summary="Sign out")
def sign_out(ctx: AuthContext = Depends(require_user)):
    # Tokens are stateless; the client drops its copy.
    logger.info("auth.signout", extra={"extra_data": {"user_id": ctx.user_id}})


@router.get("/user", response_model=UserOut, summary="Current account")
def current_user(ctx: AuthContext = Depends(require_user), db: Session = Depends(get_db)):
    return get_user(db, ctx.user_id)


@router.post("/recover", status_code=status.HTTP_202_ACCEPTED, summary="Request a password reset")
def recover(payload: RecoverRequest, db: Session = Depends(get_db)):
    user = get_user_by_email(db, payload.email)
    if user is not None:
        # No mail transport is configured; operators relay the token from the log.
        logger.info(
            "auth.password_reset_requested",
            extra={"extra_data": {"user_id": user.id, "reset_token": issue_reset_token(user.id)}},
        )
    return {"status": "accepted"}


@router.post("/reset", response_model=UserOut, summary="Set a new password with a reset token")
def reset_password(payload: ResetRequest, db: Session = Depends(get_db)):
    try:
        subject = decode_token(payload.token, verify_type="reset").sub
    except ValueError as exc:
        raise AuthError(str(exc)) from exc
    user = get_user(db, subject)
    if user is None:
        raise AuthError("User not found")
    return set_password(db, user, payload.password)
