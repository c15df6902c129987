# chartier/routes/users.py
from __future__ import annotations

from typing import Any, Dict

from fastapi import APIRouter, Depends, Path
from sqlalchemy.ext.asyncio import AsyncSession

from chartier.database import get_async_db
from chartier.services.stats import user_profile_stats

router = APIRouter(prefix="/users", tags=["users"])


@router.get("/{username}", summary="Public profile with ratings")
async def profile(
    username: str = Path(..., max_length=64),
    db: AsyncSession = Depends(get_async_db),
) -> Dict[str, Any]:
    return {"profile": await user_profile_stats(db, username)}
