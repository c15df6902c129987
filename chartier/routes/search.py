# chartier/routes/search.py
from __future__ import annotations

from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from chartier.database import get_async_db
from chartier.integrations.registry import CatalogRegistry, get_catalogs
from chartier.services.search import search_characters

router = APIRouter(prefix="/search", tags=["search"])


@router.get("", summary="Search characters across the catalogs")
async def search(
    q: str = Query("", max_length=200),
    media_type: Optional[str] = Query(None, alias="mediaType"),
    db: AsyncSession = Depends(get_async_db),
    catalogs: CatalogRegistry = Depends(get_catalogs),
) -> Dict[str, Any]:
    return await search_characters(db, catalogs, q, media_type)
