"""create users, characters, reviews, review_likes

Revision ID: 7c1e2a9d4b50
Revises:
Create Date: 2026-10-17 09:12:44.118204

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = '7c1e2a9d4b50'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _table_exists(name: str) -> bool:
    return sa.inspect(op.get_bind()).has_table(name)


def upgrade() -> None:
    """Upgrade schema."""
    # guarded so the revision can be stamped onto a database created by hand
    if not _table_exists("users"):
        op.create_table(
            "users",
            sa.Column("id", sa.Uuid(), nullable=False),
            sa.Column("name", sa.String(length=255), nullable=True),
            sa.Column("email", sa.String(length=255), nullable=False),
            sa.Column("username", sa.String(length=64), nullable=False),
            sa.Column("password_hash", sa.String(length=255), nullable=True),
            sa.Column("image", sa.String(length=1000), nullable=True),
            sa.Column("email_verified_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("email", name="uq_users_email"),
            sa.UniqueConstraint("username", name="uq_users_username"),
        )
        op.create_index(op.f("ix_users_email"), "users", ["email"], unique=False)
        op.create_index(op.f("ix_users_username"), "users", ["username"], unique=False)

    if not _table_exists("characters"):
        op.create_table(
            "characters",
            sa.Column("id", sa.Uuid(), nullable=False),
            sa.Column("external_id", sa.String(length=128), nullable=False),
            sa.Column("source", sa.String(length=16), nullable=False),
            sa.Column("name", sa.String(length=300), nullable=False),
            sa.Column("image", sa.String(length=1000), nullable=True),
            sa.Column("description", sa.Text(), nullable=True),
            sa.Column("media_title", sa.String(length=300), nullable=False),
            sa.Column("media_type", sa.String(length=16), nullable=False),
            sa.Column("media_id", sa.String(length=32), nullable=False),
            sa.Column("release_year", sa.Integer(), nullable=True),
            sa.Column("media_poster", sa.String(length=1000), nullable=True),
            sa.Column("portrayer_name", sa.String(length=300), nullable=True),
            sa.Column("trending_score", sa.Float(), nullable=False),
            sa.Column("last_activity_at", sa.DateTime(timezone=True), nullable=False),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
            sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("external_id", "source", name="uq_characters_external_source"),
        )
        op.create_index(op.f("ix_characters_external_id"), "characters", ["external_id"], unique=False)
        op.create_index(op.f("ix_characters_media_type"), "characters", ["media_type"], unique=False)
        op.create_index(op.f("ix_characters_trending_score"), "characters", ["trending_score"], unique=False)

    if not _table_exists("reviews"):
        op.create_table(
            "reviews",
            sa.Column("id", sa.Uuid(), nullable=False),
            sa.Column("user_id", sa.Uuid(), nullable=False),
            sa.Column("character_id", sa.Uuid(), nullable=False),
            sa.Column("tier", sa.String(length=16), nullable=False),
            sa.Column("comment", sa.Text(), nullable=False),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
            sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
            sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
            sa.ForeignKeyConstraint(["character_id"], ["characters.id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("user_id", "character_id", name="uq_reviews_user_character"),
        )
        op.create_index(op.f("ix_reviews_user_id"), "reviews", ["user_id"], unique=False)
        op.create_index(op.f("ix_reviews_character_id"), "reviews", ["character_id"], unique=False)
        op.create_index(op.f("ix_reviews_created_at"), "reviews", ["created_at"], unique=False)

    if not _table_exists("review_likes"):
        op.create_table(
            "review_likes",
            sa.Column("id", sa.Uuid(), nullable=False),
            sa.Column("review_id", sa.Uuid(), nullable=False),
            sa.Column("user_id", sa.Uuid(), nullable=False),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
            sa.ForeignKeyConstraint(["review_id"], ["reviews.id"], ondelete="CASCADE"),
            sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("review_id", "user_id", name="uq_review_likes_review_user"),
        )
        op.create_index(op.f("ix_review_likes_review_id"), "review_likes", ["review_id"], unique=False)
        op.create_index(op.f("ix_review_likes_user_id"), "review_likes", ["user_id"], unique=False)


def downgrade() -> None:
    """Downgrade schema."""
    op.drop_table("review_likes")
    op.drop_table("reviews")
    op.drop_table("characters")
    op.drop_table("users")
