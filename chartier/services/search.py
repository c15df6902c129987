# chartier/services/search.py
from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from chartier.core.settings import settings
from chartier.db_models import Character
from chartier.errors import ChartierError, InvalidInput
from chartier.integrations.base import CatalogCharacter, CatalogClient
from chartier.integrations.registry import CatalogRegistry
from chartier.services.identity import ext_token

logger = logging.getLogger(__name__)

# media taken per type, characters per media
MEDIA_LIMITS = {"movie": 10, "series": 10, "anime": 5}
CHARACTERS_PER_MEDIA = 15


async def _concurrent(adapter: CatalogClient, media_type: str, query: str) -> List[CatalogCharacter]:
    media = await adapter.search(query, media_type)

    async def one(media_id: str) -> List[CatalogCharacter]:
        try:
            return await adapter.list_characters(media_type, media_id, CHARACTERS_PER_MEDIA)
        except ChartierError as e:
            logger.info("Search skipped %s %s: %s", media_type, media_id, e)
            return []

    chunks = await asyncio.gather(*(one(m.media_id) for m in media[: MEDIA_LIMITS[media_type]]))
    return [c for chunk in chunks for c in chunk]


async def _sequential(adapter: CatalogClient, media_type: str, query: str) -> List[CatalogCharacter]:
    """Jikan rate limits hard, so its media are walked one at a time."""
    media = await adapter.search(query, media_type)
    out: List[CatalogCharacter] = []
    for m in media[: MEDIA_LIMITS[media_type]]:
        try:
            out.extend(await adapter.list_characters(media_type, m.media_id, CHARACTERS_PER_MEDIA))
        except ChartierError as e:
            logger.info("Search skipped %s %s: %s", media_type, m.media_id, e)
            continue
        if settings.sync_jikan_pause:
            await asyncio.sleep(settings.sync_jikan_pause)
    return out


async def _per_type(catalogs: CatalogRegistry, media_type: str, query: str) -> List[CatalogCharacter]:
    adapter = catalogs.for_media_type(media_type)
    walk = _sequential if media_type == "anime" else _concurrent
    try:
        return await walk(adapter, media_type, query)
    except ChartierError as e:
        logger.warning("Search for %r in %s failed: %s", query, media_type, e)
        return []


async def _durable_ids(db: AsyncSession, found: List[CatalogCharacter]) -> Dict[tuple, str]:
    external_ids = list({c.external_id for c in found})
    if not external_ids:
        return {}
    rows = await db.execute(
        select(Character.id, Character.external_id, Character.source).where(
            Character.external_id.in_(external_ids)
        )
    )
    return {(ext, source): str(cid) for cid, ext, source in rows.all()}


def _result(c: CatalogCharacter, ref: str) -> Dict[str, Any]:
    return {
        "id": ref,
        "externalId": c.external_id,
        "source": c.source,
        "name": c.name,
        "image": c.image,
        "mediaTitle": c.media_title,
        "mediaType": c.media_type,
        "mediaId": c.media_id,
        "releaseYear": c.release_year,
        "mediaPoster": c.media_poster,
        "actorName": c.portrayer_name,
        "role": c.role,
        "order": c.order,
    }


async def search_characters(
    db: AsyncSession,
    catalogs: CatalogRegistry,
    query: Optional[str],
    media_type: Optional[str] = None,
) -> Dict[str, Any]:
    """
    Fan out to the catalogs, then label each hit with its durable id when it
    is already stored, or an ``ext-`` token that the resolver can persist later.
    """
    q = (query or "").strip()
    if media_type and media_type != "all" and media_type not in MEDIA_LIMITS:
        raise InvalidInput("mediaType must be one of: movie, series, anime, all")
    if not q:
        return {"characters": [], "pagination": {"page": 1, "limit": 100, "total": 0, "hasMore": False}}

    types = [media_type] if media_type and media_type != "all" else list(MEDIA_LIMITS)
    chunks = await asyncio.gather(*(_per_type(catalogs, t, q) for t in types))
    found = [c for chunk in chunks for c in chunk]

    known = await _durable_ids(db, found)
    results = [
        _result(c, known.get((c.external_id, c.source)) or ext_token(c.source, c.media_type, c.external_id))
        for c in found
    ]
    results.sort(key=lambda r: ((r["mediaTitle"] or "").lower(), r["order"]))

    return {
        "characters": results,
        "pagination": {"page": 1, "limit": len(results), "total": len(results), "hasMore": False},
    }
