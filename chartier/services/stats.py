# chartier/services/stats.py
from __future__ import annotations

import logging
import uuid
from datetime import timedelta
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import func, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from chartier.constants import RECENT_ACTIVITY_WINDOW_HOURS, empty_distribution
from chartier.db_models import Character, Review, User
from chartier.errors import NotFound
from chartier.models_auth import utcnow

logger = logging.getLogger(__name__)


def serialize_character(c: Character) -> Dict[str, Any]:
    return {
        "id": str(c.id),
        "externalId": c.external_id,
        "source": c.source,
        "name": c.name,
        "image": c.image or None,
        "description": c.description or None,
        "mediaTitle": c.media_title,
        "mediaType": c.media_type,
        "mediaId": c.media_id,
        "releaseYear": c.release_year or None,
        "mediaPoster": c.media_poster or None,
        "actorName": c.portrayer_name or None,
        "createdAt": c.created_at,
        "updatedAt": c.updated_at,
    }


async def _distribution(db: AsyncSession, *criteria) -> Tuple[Dict[str, int], int]:
    rows = await db.execute(
        select(Review.tier, func.count(Review.id)).where(*criteria).group_by(Review.tier)
    )
    dist = empty_distribution()
    total = 0
    for tier, n in rows.all():
        total += n
        if tier in dist:
            dist[tier] = n
    return dist, total


async def character_stats(db: AsyncSession, character_id: uuid.UUID) -> Dict[str, Any]:
    """
    totalRatings / tierDistribution / recentActivity are computed at read time.
    trendingScore is the stored counter, read fresh from the row.
    """
    dist, total = await _distribution(db, Review.character_id == character_id)

    since = utcnow() - timedelta(hours=RECENT_ACTIVITY_WINDOW_HOURS)
    recent = await db.scalar(
        select(func.count(Review.id)).where(
            Review.character_id == character_id,
            Review.created_at >= since,
        )
    )
    trending = await db.scalar(select(Character.trending_score).where(Character.id == character_id))

    return {
        "totalRatings": total,
        "tierDistribution": dist,
        "trendingScore": float(trending or 0.0),
        "recentActivity": int(recent or 0),
    }


async def user_profile_stats(db: AsyncSession, username: str) -> Dict[str, Any]:
    user = (await db.execute(select(User).where(User.username == username))).scalar_one_or_none()
    if user is None:
        raise NotFound("User not found")

    # outer join: a review whose character vanished still lists, with character=None
    rows = (
        await db.execute(
            select(Review, Character)
            .outerjoin(Character, Character.id == Review.character_id)
            .where(Review.user_id == user.id)
            .order_by(Review.created_at.desc(), Review.id)
        )
    ).all()

    dist = empty_distribution()
    ratings: List[Dict[str, Any]] = []
    for review, character in rows:
        if review.tier in dist:
            dist[review.tier] += 1
        ratings.append(
            {
                "id": str(review.id),
                "tier": review.tier,
                "comment": review.comment,
                "createdAt": review.created_at,
                "updatedAt": review.updated_at,
                "character": (
                    {
                        "id": str(character.id),
                        "name": character.name,
                        "image": character.image or None,
                        "mediaTitle": character.media_title,
                        "mediaType": character.media_type,
                        "releaseYear": character.release_year or None,
                    }
                    if character is not None
                    else None
                ),
            }
        )

    return {
        "id": str(user.id),
        "username": user.username,
        "name": user.name or None,
        "image": user.image or None,
        "totalRatings": len(rows),
        "tierDistribution": dist,
        "ratings": ratings,
        "createdAt": user.created_at,
    }


async def bump_character_activity(
    db: AsyncSession,
    character_id: uuid.UUID,
    trending_delta: float = 0.0,
) -> bool:
    """
    Best-effort: atomically add ``trending_delta`` to the stored trending score
    and stamp last activity. Failures are logged and reported as False, never
    raised, so the calling like/rating still succeeds.
    """
    values: Dict[str, Any] = {"last_activity_at": utcnow()}
    if trending_delta:
        values["trending_score"] = Character.trending_score + trending_delta
    try:
        await db.execute(
            update(Character)
            .where(Character.id == character_id)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        await db.commit()
        return True
    except SQLAlchemyError:
        await db.rollback()
        logger.warning("Failed to bump activity for character %s", character_id, exc_info=True)
        return False


async def character_page(
    db: AsyncSession,
    *,
    sort: str = "trending",
    media_type: Optional[str] = None,
    page: int = 1,
    limit: int = 20,
) -> Dict[str, Any]:
    q = select(Character)
    count_q = select(func.count(Character.id))
    if media_type and media_type != "all":
        q = q.where(Character.media_type == media_type)
        count_q = count_q.where(Character.media_type == media_type)

    if sort == "popular":
        counts = (
            select(Review.character_id, func.count(Review.id).label("n"))
            .group_by(Review.character_id)
            .subquery()
        )
        q = q.outerjoin(counts, counts.c.character_id == Character.id).order_by(
            func.coalesce(counts.c.n, 0).desc(), Character.trending_score.desc()
        )
    elif sort == "recent":
        q = q.order_by(Character.created_at.desc())
    else:
        q = q.order_by(Character.trending_score.desc(), Character.last_activity_at.desc())

    q = q.order_by(Character.id).offset((page - 1) * limit).limit(limit)

    rows = (await db.execute(q)).scalars().all()
    total = int(await db.scalar(count_q) or 0)
    return {
        "characters": [serialize_character(c) for c in rows],
        "pagination": {
            "page": page,
            "limit": limit,
            "total": total,
            "hasMore": page * limit < total,
        },
    }
