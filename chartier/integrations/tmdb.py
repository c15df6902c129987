# chartier/integrations/tmdb.py
from __future__ import annotations

import asyncio
from typing import Any, Dict, List, Optional

from chartier.constants import SOURCE_TMDB
from chartier.core.settings import settings
from chartier.errors import InvalidInput
from chartier.integrations.base import (
    CatalogCharacter,
    CatalogClient,
    MediaSummary,
    make_external_id,
    year_from_date,
)

# our media_type -> TMDb path segment
_KIND = {"movie": "movie", "series": "tv"}


class TMDBClient(CatalogClient):
    """Movies and series. Credits are the source of characters."""

    source = SOURCE_TMDB

    def __init__(
        self,
        access_token: Optional[str] = None,
        api_key: Optional[str] = None,
        base: Optional[str] = None,
        image_base: Optional[str] = None,
        **kwargs: Any,
    ):
        super().__init__(**kwargs)
        self.access_token = access_token if access_token is not None else settings.tmdb_access_token
        self.api_key = api_key if api_key is not None else settings.tmdb_api_key
        self.base_url = base or settings.tmdb_base_url
        self.image_base = image_base or settings.tmdb_image_base

    def _headers(self) -> Dict[str, str]:
        headers = super()._headers()
        if self.access_token:
            headers["Authorization"] = f"Bearer {self.access_token}"
        return headers

    def _auth_params(self) -> Dict[str, Any]:
        if not self.access_token and self.api_key:
            return {"api_key": self.api_key}
        return {}

    def _img(self, path: Optional[str], size: str = "w500") -> Optional[str]:
        if not path:
            return None
        return f"{self.image_base}/{size}{path}"

    @staticmethod
    def _kind(media_type: str) -> str:
        try:
            return _KIND[media_type]
        except KeyError:
            raise InvalidInput(f"TMDb does not serve media type '{media_type}'") from None

    def _summary(self, media_type: str, item: Dict[str, Any]) -> MediaSummary:
        return MediaSummary(
            source=self.source,
            media_type=media_type,
            media_id=str(item.get("id")),
            title=item.get("title") or item.get("name") or "",
            poster=self._img(item.get("poster_path")),
            release_year=year_from_date(item.get("release_date") or item.get("first_air_date")),
            overview=item.get("overview"),
        )

    def _summaries(self, media_type: str, payload: Dict[str, Any]) -> List[MediaSummary]:
        return [self._summary(media_type, it) for it in payload.get("results") or [] if it.get("id")]

    # ---------- listings ----------

    async def list_trending(self, media_type: str, page: int = 1) -> List[MediaSummary]:
        data = await self._get_json(f"/trending/{self._kind(media_type)}/week", {"page": page})
        return self._summaries(media_type, data)

    async def list_popular(self, media_type: str, page: int = 1) -> List[MediaSummary]:
        data = await self._get_json(f"/{self._kind(media_type)}/popular", {"page": page})
        return self._summaries(media_type, data)

    async def list_top_rated(self, media_type: str, page: int = 1) -> List[MediaSummary]:
        data = await self._get_json(f"/{self._kind(media_type)}/top_rated", {"page": page})
        return self._summaries(media_type, data)

    async def search(self, query: str, media_type: str) -> List[MediaSummary]:
        data = await self._get_json(
            f"/search/{self._kind(media_type)}",
            {"query": query, "include_adult": "false"},
        )
        return self._summaries(media_type, data)

    # ---------- characters ----------

    async def list_characters(
        self, media_type: str, media_id: Any, limit: Optional[int] = None
    ) -> List[CatalogCharacter]:
        kind = self._kind(media_type)
        media_id = int(media_id)
        credits, media = await asyncio.gather(
            self._get_json(f"/{kind}/{media_id}/credits"),
            self._get_json(f"/{kind}/{media_id}"),
        )

        cast = sorted(credits.get("cast") or [], key=lambda m: m.get("order", 0))
        if limit:
            cast = cast[:limit]

        title = media.get("title") or media.get("name") or ""
        year = year_from_date(media.get("release_date") or media.get("first_air_date"))
        poster = self._img(media.get("poster_path"))

        return [
            CatalogCharacter(
                external_id=make_external_id(self.source, media_type, media_id, member["id"]),
                source=self.source,
                name=member.get("character") or member.get("name") or "",
                image=self._img(member.get("profile_path")),
                media_title=title,
                media_type=media_type,
                media_id=str(media_id),
                release_year=year,
                media_poster=poster,
                portrayer_name=member.get("name"),
                order=int(member.get("order", 0)),
            )
            for member in cast
            if member.get("id") is not None
        ]
