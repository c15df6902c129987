# chartier/db_models.py
from __future__ import annotations

import uuid

from sqlalchemy import (
    Column,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
    Uuid,
)

# CRITICAL: import Base from models_auth so ALL tables share the same MetaData
from chartier.models_auth import Base, User, utcnow


# ----------------------------
# Characters (aggregated from TMDb + Jikan)
# ----------------------------
class Character(Base):
    """
    One fictional character tied to one media work.
    external_id is the catalog key: {source}-{mediaType}-{mediaId}-{characterId}.
    Rows are created lazily (sync or first reference) and never deleted here.
    """
    __tablename__ = "characters"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    external_id = Column(String(128), nullable=False, index=True)
    source = Column(String(16), nullable=False)

    name = Column(String(300), nullable=False)
    image = Column(String(1000), nullable=True)
    description = Column(Text, nullable=True)

    media_title = Column(String(300), nullable=False, default="")
    media_type = Column(String(16), nullable=False, index=True)  # movie | series | anime
    media_id = Column(String(32), nullable=False)
    release_year = Column(Integer, nullable=True)
    media_poster = Column(String(1000), nullable=True)
    portrayer_name = Column(String(300), nullable=True)  # movies/series only

    # Mutated only through atomic UPDATE ... SET trending_score = trending_score + delta
    trending_score = Column(Float, nullable=False, default=0.0, index=True)
    last_activity_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)

    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)

    __table_args__ = (
        UniqueConstraint("external_id", "source", name="uq_characters_external_source"),
    )


# ----------------------------
# Reviews / likes
# ----------------------------
class Review(Base):
    """
    A user's tier rating of a character. One row per (user, character);
    resubmitting updates it in place.
    """
    __tablename__ = "reviews"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id = Column(Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    character_id = Column(Uuid, ForeignKey("characters.id", ondelete="CASCADE"), nullable=False, index=True)

    tier = Column(String(16), nullable=False)
    comment = Column(Text, nullable=False)

    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False, index=True)
    updated_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)

    __table_args__ = (
        UniqueConstraint("user_id", "character_id", name="uq_reviews_user_character"),
    )


class ReviewLike(Base):
    __tablename__ = "review_likes"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    review_id = Column(Uuid, ForeignKey("reviews.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = Column(Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)

    __table_args__ = (
        UniqueConstraint("review_id", "user_id", name="uq_review_likes_review_user"),
    )


__all__ = [
    "Base",
    "User",
    "Character",
    "Review",
    "ReviewLike",
]
