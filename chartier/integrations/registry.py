# chartier/integrations/registry.py
from __future__ import annotations

from typing import Dict, Iterable, Optional

from chartier.constants import SOURCE_JIKAN, SOURCE_TMDB
from chartier.errors import NotFound
from chartier.integrations.base import CatalogClient
from chartier.integrations.jikan import JikanClient
from chartier.integrations.tmdb import TMDBClient

# which catalog serves which media type
MEDIA_SOURCE = {"movie": SOURCE_TMDB, "series": SOURCE_TMDB, "anime": SOURCE_JIKAN}


class CatalogRegistry:
    def __init__(self, adapters: Iterable[CatalogClient]):
        self._by_source: Dict[str, CatalogClient] = {a.source: a for a in adapters}

    def adapter(self, source: str) -> CatalogClient:
        try:
            return self._by_source[source]
        except KeyError:
            raise NotFound(f"Unknown catalog source '{source}'") from None

    def for_media_type(self, media_type: str) -> CatalogClient:
        return self.adapter(MEDIA_SOURCE.get(media_type, ""))


_registry: Optional[CatalogRegistry] = None


def get_catalogs() -> CatalogRegistry:
    """FastAPI dependency; tests override it with fakes."""
    global _registry
    if _registry is None:
        _registry = CatalogRegistry([TMDBClient(), JikanClient()])
    return _registry
