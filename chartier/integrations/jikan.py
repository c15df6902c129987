# chartier/integrations/jikan.py
from __future__ import annotations

from typing import Any, Dict, List, Optional

from chartier.constants import SOURCE_JIKAN
from chartier.core.settings import settings
from chartier.errors import InvalidInput
from chartier.integrations.base import (
    CatalogCharacter,
    CatalogClient,
    MediaSummary,
    make_external_id,
)


def _anime_year(anime: Dict[str, Any]) -> Optional[int]:
    year = anime.get("year")
    if year:
        return int(year)
    start = ((anime.get("aired") or {}).get("prop") or {}).get("from") or {}
    return int(start["year"]) if start.get("year") else None


def _anime_poster(anime: Dict[str, Any]) -> Optional[str]:
    jpg = (anime.get("images") or {}).get("jpg") or {}
    return jpg.get("large_image_url") or jpg.get("image_url")


class JikanClient(CatalogClient):
    """
    Anime via the Jikan (MyAnimeList) API. No key; aggressive rate limiting,
    which the base client absorbs with its 429 retry.
    """

    source = SOURCE_JIKAN

    def __init__(self, base: Optional[str] = None, **kwargs: Any):
        super().__init__(**kwargs)
        self.base_url = base or settings.jikan_base_url

    @staticmethod
    def _check(media_type: str) -> None:
        if media_type != "anime":
            raise InvalidInput(f"Jikan does not serve media type '{media_type}'")

    def _summary(self, anime: Dict[str, Any]) -> MediaSummary:
        return MediaSummary(
            source=self.source,
            media_type="anime",
            media_id=str(anime.get("mal_id")),
            title=anime.get("title") or "",
            poster=_anime_poster(anime),
            release_year=_anime_year(anime),
            overview=anime.get("synopsis"),
        )

    def _summaries(self, payload: Dict[str, Any]) -> List[MediaSummary]:
        return [self._summary(a) for a in payload.get("data") or [] if a.get("mal_id")]

    # ---------- listings ----------

    async def list_trending(self, media_type: str = "anime", page: int = 1) -> List[MediaSummary]:
        """Current season stands in for 'trending'."""
        self._check(media_type)
        return self._summaries(await self._get_json("/seasons/now", {"page": page}))

    async def list_popular(self, media_type: str = "anime", page: int = 1) -> List[MediaSummary]:
        self._check(media_type)
        return self._summaries(await self._get_json("/top/anime", {"page": page, "filter": "bypopularity"}))

    async def list_top_rated(self, media_type: str = "anime", page: int = 1) -> List[MediaSummary]:
        self._check(media_type)
        return self._summaries(await self._get_json("/top/anime", {"page": page}))

    async def search(self, query: str, media_type: str = "anime") -> List[MediaSummary]:
        self._check(media_type)
        return self._summaries(await self._get_json("/anime", {"q": query, "limit": 20}))

    # ---------- characters ----------

    async def list_characters(
        self, media_type: str, media_id: Any, limit: Optional[int] = None
    ) -> List[CatalogCharacter]:
        self._check(media_type)
        anime_id = int(media_id)
        # sequential on purpose: Jikan allows ~3 req/s
        chars = await self._get_json(f"/anime/{anime_id}/characters")
        anime = (await self._get_json(f"/anime/{anime_id}")).get("data") or {}

        entries = [e for e in chars.get("data") or [] if (e.get("character") or {}).get("mal_id")]
        # Main characters first, otherwise keep upstream order (sort is stable)
        entries.sort(key=lambda e: 0 if e.get("role") == "Main" else 1)
        if limit:
            entries = entries[:limit]

        title = anime.get("title") or ""
        year = _anime_year(anime)
        poster = _anime_poster(anime)

        out: List[CatalogCharacter] = []
        for index, entry in enumerate(entries):
            ch = entry["character"]
            out.append(
                CatalogCharacter(
                    external_id=make_external_id(self.source, "anime", anime_id, ch["mal_id"]),
                    source=self.source,
                    name=ch.get("name") or "",
                    image=(((ch.get("images") or {}).get("jpg")) or {}).get("image_url"),
                    media_title=title,
                    media_type="anime",
                    media_id=str(anime_id),
                    release_year=year,
                    media_poster=poster,
                    role=entry.get("role"),
                    order=index,
                )
            )
        return out
