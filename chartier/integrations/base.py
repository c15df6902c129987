# chartier/integrations/base.py
"""
Shared plumbing for the read-only media catalogs (TMDb, Jikan).

Every adapter normalises upstream payloads into ``MediaSummary`` and
``CatalogCharacter``. HTTP goes through ``CatalogClient._get_json`` which adds
a Redis read-through cache, a fixed-delay retry on HTTP 429 and maps transport
failures to ``UpstreamUnavailable``.
"""
from __future__ import annotations

import hashlib
import json
import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import httpx
from tenacity import (
    AsyncRetrying,
    before_sleep_log,
    retry_if_exception_type,
    stop_after_attempt,
    wait_fixed,
)

from chartier.core.settings import settings
from chartier.errors import UpstreamUnavailable
from chartier.infra import cache

logger = logging.getLogger(__name__)


@dataclass
class MediaSummary:
    source: str
    media_type: str
    media_id: str
    title: str
    poster: Optional[str] = None
    release_year: Optional[int] = None
    overview: Optional[str] = None


@dataclass
class CatalogCharacter:
    external_id: str
    source: str
    name: str
    image: Optional[str]
    media_title: str
    media_type: str
    media_id: str
    release_year: Optional[int]
    media_poster: Optional[str]
    order: int
    portrayer_name: Optional[str] = None
    role: Optional[str] = None
    description: Optional[str] = None


def make_external_id(source: str, media_type: str, media_id: Any, character_id: Any) -> str:
    return f"{source}-{media_type}-{media_id}-{character_id}"


def year_from_date(value: Optional[str]) -> Optional[int]:
    """'2019-04-24' -> 2019; anything unparseable -> None."""
    if not value:
        return None
    head = str(value)[:4]
    return int(head) if head.isdigit() else None


class RateLimited(Exception):
    """Upstream answered 429; retried after a fixed pause."""


class CatalogClient:
    source: str = ""
    base_url: str = ""

    def __init__(
        self,
        *,
        timeout: Optional[float] = None,
        retry_delay: Optional[float] = None,
        max_attempts: Optional[int] = None,
        cache_ttl: Optional[int] = None,
    ):
        self.timeout = settings.catalog_timeout if timeout is None else timeout
        self.retry_delay = settings.catalog_retry_delay if retry_delay is None else retry_delay
        self.max_attempts = settings.catalog_max_attempts if max_attempts is None else max_attempts
        self.cache_ttl = settings.catalog_cache_ttl if cache_ttl is None else cache_ttl

    # ---------- hooks ----------

    def _headers(self) -> Dict[str, str]:
        return {"Accept": "application/json"}

    def _auth_params(self) -> Dict[str, Any]:
        return {}

    # ---------- transport ----------

    def _cache_key(self, path: str, params: Dict[str, Any]) -> str:
        blob = json.dumps(params, sort_keys=True, default=str)
        digest = hashlib.sha1(blob.encode("utf-8")).hexdigest()[:16]
        return f"catalog:{self.source}:{path}:{digest}"

    async def _fetch(self, path: str, params: Dict[str, Any]) -> Any:
        query = {**self._auth_params(), **params}
        async with httpx.AsyncClient(timeout=self.timeout, headers=self._headers()) as client:
            r = await client.get(f"{self.base_url}{path}", params=query)
            if r.status_code == 429:
                raise RateLimited(f"{self.source} rate limited on {path}")
            r.raise_for_status()
            return r.json()

    async def _get_json(self, path: str, params: Optional[Dict[str, Any]] = None) -> Any:
        params = params or {}
        key = self._cache_key(path, params)

        try:
            cached = await cache.get_json(key)
            if cached is not None:
                return cached
        except Exception:
            # cache not ready / network hiccup -> go direct
            logger.warning("Catalog cache read failed for %s", key, exc_info=True)

        try:
            async for attempt in AsyncRetrying(
                retry=retry_if_exception_type(RateLimited),
                wait=wait_fixed(self.retry_delay),
                stop=stop_after_attempt(self.max_attempts),
                before_sleep=before_sleep_log(logger, logging.WARNING),
                reraise=True,
            ):
                with attempt:
                    data = await self._fetch(path, params)
        except RateLimited as e:
            raise UpstreamUnavailable(str(e)) from e
        except httpx.HTTPStatusError as e:
            raise UpstreamUnavailable(
                f"{self.source} error {e.response.status_code} on {path}"
            ) from e
        except (httpx.HTTPError, ValueError) as e:
            raise UpstreamUnavailable(f"{self.source} unreachable on {path}: {type(e).__name__}") from e

        try:
            await cache.set_json(key, data, ttl=self.cache_ttl)
        except Exception:
            logger.warning("Catalog cache write failed for %s", key, exc_info=True)
        return data

    # ---------- adapter contract ----------

    async def list_trending(self, media_type: str, page: int = 1) -> List[MediaSummary]:
        raise NotImplementedError

    async def list_popular(self, media_type: str, page: int = 1) -> List[MediaSummary]:
        raise NotImplementedError

    async def list_top_rated(self, media_type: str, page: int = 1) -> List[MediaSummary]:
        raise NotImplementedError

    async def search(self, query: str, media_type: str) -> List[MediaSummary]:
        raise NotImplementedError

    async def list_characters(
        self, media_type: str, media_id: Any, limit: Optional[int] = None
    ) -> List[CatalogCharacter]:
        raise NotImplementedError

    async def get_character(
        self, media_type: str, media_id: Any, external_id: str
    ) -> Optional[CatalogCharacter]:
        """Re-fetch one character by listing its media's cast."""
        for ch in await self.list_characters(media_type, media_id):
            if ch.external_id == external_id:
                return ch
        return None
