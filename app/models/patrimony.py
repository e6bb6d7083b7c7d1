from __future__ import annotations

from uuid import uuid4

from sqlalchemy import Column, ForeignKey, Text

from ..db.session import Base


def new_id() -> str:
    return str(uuid4())


class Patrimony(Base):
    """One tracked asset and its maintenance metadata.

    ``user_id`` is the owning principal and ``registered_at`` the creation
    timestamp; neither changes after insert.
    """

    __tablename__ = "patrimonies"

    id = Column(Text, primary_key=True, default=new_id)
    number = Column(Text, nullable=False, index=True, unique=True)
    model = Column(Text, nullable=False)
    registered_by = Column(Text, nullable=False)
    observations = Column(Text, nullable=False, default="")
    status = Column(Text, nullable=False)
    location = Column(Text, nullable=False)
    custom_location = Column(Text, nullable=True)
    registered_at = Column(Text, nullable=False, index=True)
    user_id = Column(Text, ForeignKey("users.id"), nullable=False, index=True)
