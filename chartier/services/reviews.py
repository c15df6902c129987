# chartier/services/reviews.py
from __future__ import annotations

import logging
import uuid
from typing import Any, Dict, Iterable, List, Optional, Set, Tuple

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from chartier.constants import LIKE_TRENDING_DELTA, REVIEW_SORTS, TIERS
from chartier.db_models import Review, ReviewLike, User
from chartier.errors import InvalidInput, NotFound, StoreFailure
from chartier.integrations.registry import CatalogRegistry
from chartier.models_auth import utcnow
from chartier.services.identity import lookup_character, resolve_character
from chartier.services.stats import bump_character_activity

logger = logging.getLogger(__name__)


# ──────────────────────────────────────────────────────────────────────
# Helpers
# ──────────────────────────────────────────────────────────────────────

def validate_rating(tier: Optional[str], comment: Optional[str]) -> Tuple[str, str]:
    tier_val = (tier or "").strip().lower()
    comment_val = (comment or "").strip()
    if not tier_val or not comment_val:
        raise InvalidInput("Tier and comment are required")
    if tier_val not in TIERS:
        raise InvalidInput(f"Tier must be one of: {', '.join(TIERS)}")
    return tier_val, comment_val


def public_user(u: User) -> Dict[str, Any]:
    return {
        "id": str(u.id),
        "username": u.username,
        "name": u.name or None,
        "image": u.image or None,
    }


def _serialize(r: Review, author: User, likes: int, liked: bool) -> Dict[str, Any]:
    return {
        "id": str(r.id),
        "userId": str(r.user_id),
        "characterId": str(r.character_id),
        "tier": r.tier,
        "comment": r.comment,
        "createdAt": r.created_at,
        "updatedAt": r.updated_at,
        "likes": likes,
        "likedByUser": liked,
        "user": public_user(author),
    }


async def _like_count(db: AsyncSession, review_id: uuid.UUID) -> int:
    n = await db.scalar(
        select(func.count(ReviewLike.id)).where(ReviewLike.review_id == review_id)
    )
    return int(n or 0)


async def _liked_by(db: AsyncSession, review_ids: Iterable[uuid.UUID], user_id: uuid.UUID) -> Set[uuid.UUID]:
    ids = list(review_ids)
    if not ids:
        return set()
    rows = await db.execute(
        select(ReviewLike.review_id).where(
            ReviewLike.user_id == user_id,
            ReviewLike.review_id.in_(ids),
        )
    )
    return set(rows.scalars().all())


def _as_uuid(value: Any, what: str) -> uuid.UUID:
    if isinstance(value, uuid.UUID):
        return value
    try:
        return uuid.UUID(str(value))
    except ValueError:
        raise NotFound(f"{what} not found") from None


async def _upsert_review(
    db: AsyncSession,
    user_id: uuid.UUID,
    character_id: uuid.UUID,
    tier: str,
    comment: str,
) -> Review:
    """Update the (user, character) row if present, else insert it."""
    for _ in range(2):
        existing = (
            await db.execute(
                select(Review).where(
                    Review.user_id == user_id,
                    Review.character_id == character_id,
                )
            )
        ).scalar_one_or_none()

        now = utcnow()
        if existing is not None:
            existing.tier = tier
            existing.comment = comment
            existing.updated_at = now
            await db.commit()
            await db.refresh(existing)
            return existing

        review = Review(
            user_id=user_id,
            character_id=character_id,
            tier=tier,
            comment=comment,
            created_at=now,
            updated_at=now,
        )
        db.add(review)
        try:
            await db.commit()
        except IntegrityError:
            # a concurrent first submission won the insert; update that row instead
            await db.rollback()
            continue
        await db.refresh(review)
        return review

    raise StoreFailure("Could not save review")


# ──────────────────────────────────────────────────────────────────────
# Operations
# ──────────────────────────────────────────────────────────────────────

async def submit_rating(
    db: AsyncSession,
    user_id: uuid.UUID,
    character_reference: str,
    tier: Optional[str],
    comment: Optional[str],
    catalogs: CatalogRegistry,
) -> Dict[str, Any]:
    """Create or update the one review a user holds for a character."""
    tier, comment = validate_rating(tier, comment)
    character = await resolve_character(db, character_reference, catalogs)
    character_id = character.id

    review = await _upsert_review(db, user_id, character_id, tier, comment)

    author = await db.get(User, user_id)
    if author is None:
        raise NotFound("User not found")
    likes = await _like_count(db, review.id)
    liked = review.id in await _liked_by(db, [review.id], user_id)
    out = _serialize(review, author, likes, liked)

    await bump_character_activity(db, character_id)
    return out


async def list_reviews(
    db: AsyncSession,
    character_reference: str,
    sort: str = "newest",
    viewer_id: Optional[uuid.UUID] = None,
) -> List[Dict[str, Any]]:
    if sort not in REVIEW_SORTS:
        raise InvalidInput(f"Sort must be one of: {', '.join(REVIEW_SORTS)}")

    character = await lookup_character(db, character_reference)
    if character is None:
        # never persisted -> nobody could have reviewed it
        return []

    counts = (
        select(ReviewLike.review_id, func.count(ReviewLike.id).label("likes"))
        .group_by(ReviewLike.review_id)
        .subquery()
    )
    likes = func.coalesce(counts.c.likes, 0)

    q = (
        select(Review, User, likes.label("likes"))
        .join(User, User.id == Review.user_id)
        .outerjoin(counts, counts.c.review_id == Review.id)
        .where(Review.character_id == character.id)
    )
    if sort == "likes":
        q = q.order_by(likes.desc(), Review.created_at.desc(), Review.id)
    else:
        q = q.order_by(Review.created_at.desc(), Review.id)

    rows = (await db.execute(q)).all()
    liked: Set[uuid.UUID] = set()
    if viewer_id is not None:
        liked = await _liked_by(db, (r.id for r, _, _ in rows), viewer_id)

    return [_serialize(r, author, int(n), r.id in liked) for r, author, n in rows]


async def toggle_like(
    db: AsyncSession,
    review_id: Any,
    user_id: uuid.UUID,
    character_reference: Optional[str] = None,
) -> Dict[str, Any]:
    rid = _as_uuid(review_id, "Review")
    review = await db.get(Review, rid)
    if review is None:
        raise NotFound("Review not found")
    character_id = review.character_id
    if character_reference is not None:
        character = await lookup_character(db, character_reference)
        if character is None or character.id != character_id:
            raise NotFound("Review not found")

    existing = (
        await db.execute(
            select(ReviewLike).where(
                ReviewLike.review_id == rid,
                ReviewLike.user_id == user_id,
            )
        )
    ).scalar_one_or_none()

    if existing is not None:
        await db.delete(existing)
        await db.commit()
        liked = False
    else:
        db.add(ReviewLike(review_id=rid, user_id=user_id, created_at=utcnow()))
        inserted = True
        try:
            await db.commit()
        except IntegrityError:
            # a concurrent toggle already inserted this like
            await db.rollback()
            inserted = False
        liked = True
        if inserted:
            await bump_character_activity(db, character_id, LIKE_TRENDING_DELTA)

    return {"liked": liked, "likes": await _like_count(db, rid)}
