# chartier/scheduler.py
from __future__ import annotations

import logging
from typing import Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler

from chartier.core.settings import settings
from chartier.database import AsyncSessionLocal
from chartier.integrations.registry import get_catalogs
from chartier.services.catalog_sync import sync_catalog

logger = logging.getLogger(__name__)

_scheduler: Optional[AsyncIOScheduler] = None


async def run_sync_once() -> dict:
    async with AsyncSessionLocal() as db:
        return await sync_catalog(db, get_catalogs())


def start_jobs(interval_minutes: Optional[int] = None) -> Optional[AsyncIOScheduler]:
    global _scheduler
    minutes = settings.sync_interval_minutes if interval_minutes is None else interval_minutes
    if minutes <= 0:
        return None
    if _scheduler:
        return _scheduler
    _scheduler = AsyncIOScheduler()
    # max_instances=1: a slow sync is never overlapped by the next tick
    _scheduler.add_job(run_sync_once, "interval", minutes=minutes, id="catalog_sync", max_instances=1)
    _scheduler.start()
    logger.info("Catalog sync scheduled every %d minutes", minutes)
    return _scheduler


def stop_jobs() -> None:
    global _scheduler
    if _scheduler:
        _scheduler.shutdown(wait=False)
        _scheduler = None
