# chartier/routes/characters.py
from __future__ import annotations

from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from chartier.constants import CHARACTER_SORTS, MEDIA_TYPES, TIER_LABELS
from chartier.database import get_async_db
from chartier.errors import InvalidInput
from chartier.integrations.registry import CatalogRegistry, get_catalogs
from chartier.models_auth import User
from chartier.schemas import RatingIn
from chartier.security import optional_user, require_user
from chartier.services.catalog_sync import sync_catalog
from chartier.services.identity import resolve_character
from chartier.services.reviews import list_reviews, submit_rating, toggle_like
from chartier.services.stats import character_page, character_stats, serialize_character

router = APIRouter(prefix="/characters", tags=["characters"])


@router.get("", summary="Browse stored characters")
async def browse(
    sort: str = Query("trending"),
    media_type: Optional[str] = Query(None, alias="mediaType"),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    db: AsyncSession = Depends(get_async_db),
) -> Dict[str, Any]:
    if sort not in CHARACTER_SORTS:
        raise InvalidInput(f"Sort must be one of: {', '.join(CHARACTER_SORTS)}")
    if media_type and media_type != "all" and media_type not in MEDIA_TYPES:
        raise InvalidInput(f"mediaType must be one of: {', '.join(MEDIA_TYPES)}, all")
    return await character_page(db, sort=sort, media_type=media_type, page=page, limit=limit)


@router.get("/tiers", summary="Tier buckets, best first")
async def tiers() -> Dict[str, Any]:
    return {
        "tiers": [
            {"value": value, "label": label, "description": description}
            for value, (label, description) in TIER_LABELS.items()
        ]
    }


@router.post("/sync", summary="Pull trending characters from the catalogs")
async def sync(
    _: User = Depends(require_user),
    db: AsyncSession = Depends(get_async_db),
    catalogs: CatalogRegistry = Depends(get_catalogs),
) -> Dict[str, int]:
    return await sync_catalog(db, catalogs)


@router.get("/{ref}", summary="Character with rating stats")
async def get_character(
    ref: str,
    db: AsyncSession = Depends(get_async_db),
    catalogs: CatalogRegistry = Depends(get_catalogs),
) -> Dict[str, Any]:
    character = await resolve_character(db, ref, catalogs)
    body = serialize_character(character)
    return {"character": body, "stats": await character_stats(db, character.id)}


@router.get("/{ref}/reviews", summary="Reviews for a character")
async def reviews(
    ref: str,
    sort: str = Query("newest"),
    viewer: Optional[User] = Depends(optional_user),
    db: AsyncSession = Depends(get_async_db),
) -> Dict[str, Any]:
    viewer_id = viewer.id if viewer is not None else None
    return {"reviews": await list_reviews(db, ref, sort, viewer_id)}


@router.post("/{ref}/reviews", status_code=status.HTTP_201_CREATED, summary="Create or update my review")
async def rate(
    ref: str,
    payload: RatingIn,
    user: User = Depends(require_user),
    db: AsyncSession = Depends(get_async_db),
    catalogs: CatalogRegistry = Depends(get_catalogs),
) -> Dict[str, Any]:
    review = await submit_rating(db, user.id, ref, payload.tier, payload.comment, catalogs)
    return {"review": review}


@router.post("/{ref}/reviews/{review_id}/like", summary="Toggle my like on a review")
async def like(
    ref: str,
    review_id: str,
    user: User = Depends(require_user),
    db: AsyncSession = Depends(get_async_db),
) -> Dict[str, Any]:
    return await toggle_like(db, review_id, user.id, ref)
