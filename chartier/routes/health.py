# chartier/routes/health.py
from __future__ import annotations

import logging

from fastapi import APIRouter
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from chartier.database import async_engine
from chartier.infra import cache

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Health"])


# --- simple DB ping ---------------------------------------------------------
async def ping_db() -> bool:
    try:
        async with async_engine.connect() as conn:
            res = await conn.execute(text("SELECT 1"))
            return res.scalar() == 1
    except (SQLAlchemyError, OSError):
        logger.warning("Readiness DB ping failed", exc_info=True)
        return False


@router.get("/health", summary="Liveness")
async def health():
    # no external deps
    return {"ok": True}


@router.get("/ready", summary="Readiness")
async def ready():
    db_ok = await ping_db()
    body = {"ok": db_ok, "db": db_ok, "cache": cache.is_ready()}
    if db_ok:
        return body
    return JSONResponse(status_code=503, content=body)
