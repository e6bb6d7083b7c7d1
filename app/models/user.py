from __future__ import annotations

from uuid import uuid4

from sqlalchemy import Column, ForeignKey, Integer, Text, UniqueConstraint
from sqlalchemy.orm import relationship

from ..db.session import Base


class User(Base):
    __tablename__ = "users"

    id = Column(Text, primary_key=True, default=lambda: str(uuid4()))
    email = Column(Text, nullable=False, unique=True, index=True)
    password_hash = Column(Text, nullable=False)
    full_name = Column(Text, nullable=False)
    created_at = Column(Text, nullable=False)

    roles = relationship("UserRole", back_populates="user", cascade="all, delete-orphan", lazy="selectin")

    @property
    def role_names(self) -> set[str]:
        return {grant.role for grant in self.roles}


class UserRole(Base):
    """A role grant; ``admin`` is the elevated one."""

    __tablename__ = "user_roles"
    __table_args__ = (UniqueConstraint("user_id", "role", name="uq_user_roles_user_role"),)

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Text, ForeignKey("users.id"), nullable=False, index=True)
    role = Column(Text, nullable=False)

    user = relationship("User", back_populates="roles")
