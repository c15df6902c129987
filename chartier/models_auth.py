# chartier/models_auth.py
from __future__ import annotations

import uuid
from datetime import datetime, timezone

from sqlalchemy import Column, DateTime, String, Uuid, UniqueConstraint
from sqlalchemy.orm import declarative_base


# IMPORTANT: this Base is imported by chartier.db_models so all tables share one MetaData
Base = declarative_base()


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class User(Base):
    """
    Account / identity table.
    password_hash is NULL for accounts created through an OAuth sign-in.
    """
    __tablename__ = "users"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    name = Column(String(255), nullable=True)
    email = Column(String(255), nullable=False, index=True)
    username = Column(String(64), nullable=False, index=True)
    password_hash = Column(String(255), nullable=True)
    image = Column(String(1000), nullable=True)
    email_verified_at = Column(DateTime(timezone=True), nullable=True)

    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)

    __table_args__ = (
        UniqueConstraint("email", name="uq_users_email"),
        UniqueConstraint("username", name="uq_users_username"),
    )


__all__ = ["Base", "User", "utcnow"]
