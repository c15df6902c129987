# chartier/services/catalog_sync.py
"""
Bulk character sync: pull trending/popular/top media from both catalogs,
fetch each media's characters and upsert them on (external_id, source).

Any single listing or media that fails is logged and skipped; the batch
never aborts because of one upstream hiccup.
"""
from __future__ import annotations

import asyncio
import logging
import random
import uuid
from typing import Any, Awaitable, Dict, List

from sqlalchemy.dialects.postgresql import insert as pg_insert  # PG UPSERT
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.ext.asyncio import AsyncSession

from chartier.core.settings import settings
from chartier.db_models import Character
from chartier.errors import ChartierError
from chartier.integrations.base import CatalogCharacter, MediaSummary
from chartier.integrations.registry import CatalogRegistry
from chartier.models_auth import utcnow

logger = logging.getLogger(__name__)

# columns refreshed on conflict; trending score / activity / created_at stay put
_REFRESH_COLUMNS = (
    "name",
    "image",
    "media_title",
    "media_poster",
    "release_year",
    "portrayer_name",
    "updated_at",
)


async def _listing(label: str, call: Awaitable[List[MediaSummary]]) -> List[MediaSummary]:
    try:
        return await call
    except ChartierError as e:
        logger.warning("Sync listing %s failed: %s", label, e)
        return []


def _unique(items: List[MediaSummary]) -> List[MediaSummary]:
    seen: Dict[str, MediaSummary] = {}
    for it in items:
        seen.setdefault(it.media_id, it)
    return list(seen.values())


async def collect_media(catalogs: CatalogRegistry) -> Dict[str, List[MediaSummary]]:
    tmdb = catalogs.for_media_type("movie")
    jikan = catalogs.for_media_type("anime")

    listings = await asyncio.gather(
        _listing("trending movies p1", tmdb.list_trending("movie", 1)),
        _listing("trending movies p2", tmdb.list_trending("movie", 2)),
        _listing("popular movies", tmdb.list_popular("movie", 1)),
        _listing("top rated movies", tmdb.list_top_rated("movie", 1)),
        _listing("trending series p1", tmdb.list_trending("series", 1)),
        _listing("trending series p2", tmdb.list_trending("series", 2)),
        _listing("popular series", tmdb.list_popular("series", 1)),
        _listing("seasonal anime", jikan.list_trending("anime", 1)),
        _listing("top anime p1", jikan.list_top_rated("anime", 1)),
        _listing("top anime p2", jikan.list_top_rated("anime", 2)),
    )
    movies = [m for chunk in listings[0:4] for m in chunk]
    series = [m for chunk in listings[4:7] for m in chunk]
    anime = [m for chunk in listings[7:10] for m in chunk]
    return {"movie": _unique(movies), "series": _unique(series), "anime": _unique(anime)}


def _row(c: CatalogCharacter) -> Dict[str, Any]:
    now = utcnow()
    return {
        "id": uuid.uuid4(),
        "external_id": c.external_id,
        "source": c.source,
        "name": c.name,
        "image": c.image,
        "description": c.description,
        "media_title": c.media_title,
        "media_type": c.media_type,
        "media_id": c.media_id,
        "release_year": c.release_year,
        "media_poster": c.media_poster,
        "portrayer_name": c.portrayer_name,
        "trending_score": random.uniform(0, 100),
        "last_activity_at": now,
        "created_at": now,
        "updated_at": now,
    }


async def upsert_characters(db: AsyncSession, characters: List[CatalogCharacter]) -> int:
    if not characters:
        return 0
    # one row per key; the same character can surface through two listings
    rows = list({(c.external_id, c.source): _row(c) for c in characters}.values())

    dialect = db.get_bind().dialect.name
    insert = pg_insert if dialect == "postgresql" else sqlite_insert
    # sqlite caps bound parameters per statement
    batch = 500 if dialect == "postgresql" else 50
    for start in range(0, len(rows), batch):
        stmt = insert(Character).values(rows[start:start + batch])
        stmt = stmt.on_conflict_do_update(
            index_elements=["external_id", "source"],
            set_={col: stmt.excluded[col] for col in _REFRESH_COLUMNS},
        )
        await db.execute(stmt)
    await db.commit()
    return len(rows)


async def sync_catalog(
    db: AsyncSession,
    catalogs: CatalogRegistry,
    *,
    per_type: int | None = None,
    tmdb_pause: float | None = None,
    jikan_pause: float | None = None,
) -> Dict[str, int]:
    per_type = settings.sync_media_per_type if per_type is None else per_type
    pauses = {
        "movie": settings.sync_tmdb_pause if tmdb_pause is None else tmdb_pause,
        "series": settings.sync_tmdb_pause if tmdb_pause is None else tmdb_pause,
        "anime": settings.sync_jikan_pause if jikan_pause is None else jikan_pause,
    }

    media = await collect_media(catalogs)
    collected: List[CatalogCharacter] = []
    skipped = 0

    for media_type, items in media.items():
        adapter = catalogs.for_media_type(media_type)
        for item in items[:per_type]:
            try:
                collected.extend(await adapter.list_characters(media_type, item.media_id))
            except ChartierError as e:
                skipped += 1
                logger.warning("Sync skipped %s %s (%s): %s", media_type, item.media_id, item.title, e)
                continue
            if pauses[media_type]:
                await asyncio.sleep(pauses[media_type])

    processed = await upsert_characters(db, collected)
    logger.info("Catalog sync processed %d characters, skipped %d media", processed, skipped)
    return {"processed": processed, "skipped": skipped}
