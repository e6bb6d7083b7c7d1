"""CRUD helpers for accounts and role grants."""

from __future__ import annotations

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ..core.config import settings
from ..core.errors import AuthError, MutationError
from ..core.permissions import ADMIN_ROLE
from ..core.security import hash_password, verify_password
from ..models.user import User, UserRole
from ..schemas.patrimony import to_iso

INVALID_CREDENTIALS = "Invalid login credentials"
ALREADY_REGISTERED = "User already registered"


def get_user(db: Session, user_id: str) -> User | None:
    return db.get(User, user_id)


def get_user_by_email(db: Session, email: str) -> User | None:
    stmt = select(User).where(User.email == (email or "").strip().lower())
    return db.execute(stmt).scalars().first()


def create_user(db: Session, email: str, password: str, full_name: str) -> User:
    """
    Register an account. Emails listed in ``ADMIN_EMAILS`` start with the
    elevated role.
    """
    email = email.strip().lower()
    if get_user_by_email(db, email):
        raise MutationError(ALREADY_REGISTERED)
    user = User(
        email=email,
        password_hash=hash_password(password),
        full_name=full_name.strip(),
        created_at=to_iso(),
    )
    if email in settings.admin_emails:
        user.roles.append(UserRole(role=ADMIN_ROLE))
    db.add(user)
    try:
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        raise MutationError(ALREADY_REGISTERED) from exc
    db.refresh(user)
    return user


def authenticate(db: Session, email: str, password: str) -> User:
    user = get_user_by_email(db, email)
    if not user or not verify_password(password, user.password_hash):
        raise AuthError(INVALID_CREDENTIALS)
    return user


def set_password(db: Session, user: User, password: str) -> User:
    user.password_hash = hash_password(password)
    db.commit()
    db.refresh(user)
    return user


def grant_role(db: Session, user: User, role: str = ADMIN_ROLE) -> UserRole:
    for grant in user.roles:
        if grant.role == role:
            return grant
    grant = UserRole(user_id=user.id, role=role)
    db.add(grant)
    db.commit()
    db.refresh(user)
    return grant


def list_roles(db: Session, user_id: str, role: str | None = None) -> list[UserRole]:
    stmt = select(UserRole).where(UserRole.user_id == user_id)
    if role:
        stmt = stmt.where(UserRole.role == role)
    return list(db.execute(stmt).scalars().all())


def has_role(db: Session, user_id: str, role: str = ADMIN_ROLE) -> bool:
    return bool(list_roles(db, user_id, role))
