# chartier/infra/cache.py
from __future__ import annotations

import json
from typing import Any, Optional

import redis.asyncio as redis

from chartier.core.settings import settings

_redis: Optional[redis.Redis] = None


def init(url: str) -> None:
    """Synchronous init. Stores a global Redis client."""
    global _redis
    _redis = redis.from_url(url, decode_responses=True)


def is_ready() -> bool:
    return _redis is not None


def client() -> Optional[redis.Redis]:
    """
    Return the Redis client, lazily initialised from REDIS_URL.
    None means caching is switched off (no REDIS_URL configured).
    """
    if _redis is None and settings.redis_url:
        init(settings.redis_url)
    return _redis


async def close() -> None:
    global _redis
    if _redis is not None:
        await _redis.aclose()
        _redis = None


async def get_json(key: str) -> Any:
    c = client()
    if c is None:
        return None
    val = await c.get(key)
    if val is None:
        return None
    try:
        return json.loads(val)
    except ValueError:
        return None


async def set_json(key: str, value: Any, ttl: int = 3600) -> None:
    c = client()
    if c is None:
        return
    await c.set(key, json.dumps(value, ensure_ascii=False), ex=ttl)
