import uuid

import pytest
from sqlalchemy import func, select

from chartier.db_models import Character
from chartier.errors import NotFound
from chartier.services.identity import (
    DurableRef,
    ExternalRef,
    ext_token,
    insert_character,
    lookup_character,
    parse_reference,
    resolve_character,
)
from chartier.tests.factories import LIGHT, NEO, TRINITY, stock_tmdb
from chartier.integrations.registry import CatalogRegistry


async def _count(db) -> int:
    return await db.scalar(select(func.count(Character.id)))


def test_parse_durable_id():
    raw = "3f2b8c1e-9a4d-4c7e-8b1a-0d9e6f5a4b3c"
    assert parse_reference(raw) == DurableRef(uuid.UUID(raw))
    assert parse_reference(raw.upper()) == DurableRef(uuid.UUID(raw))


def test_parse_raw_external_id():
    ref = parse_reference("tmdb-movie-603-6384")
    assert isinstance(ref, ExternalRef)
    assert (ref.source, ref.media_type, ref.media_id, ref.character_id) == ("tmdb", "movie", "603", "6384")
    assert ref.refetchable


def test_parse_ext_token_matches_raw_form():
    token = ext_token("jikan", "anime", "jikan-anime-1535-71")
    assert token == "ext-jikan-anime-jikan-anime-1535-71"
    assert parse_reference(token) == parse_reference("jikan-anime-1535-71")


def test_parse_ext_token_with_opaque_key_is_lookup_only():
    ref = parse_reference("ext-tmdb-movie-legacy_key")
    assert ref == ExternalRef(external_id="legacy_key", source="tmdb", media_type="movie")
    assert not ref.refetchable


def test_parse_unknown_raw_key_is_lookup_only():
    ref = parse_reference("some-old-key")
    assert ref == ExternalRef(external_id="some-old-key")
    assert not ref.refetchable


@pytest.mark.parametrize("raw", ["", "   ", "ext-", "ext-tmdb", "ext-tmdb-movie", "ext-jikan-anime-tmdb-movie-603-6384"])
def test_parse_rejects_malformed_or_inconsistent(raw):
    with pytest.raises(NotFound):
        parse_reference(raw)


async def test_ext_token_and_raw_id_converge(db, catalogs):
    assert await _count(db) == 0

    created = await resolve_character(db, ext_token("tmdb", "movie", NEO.external_id), catalogs)
    created_id = created.id
    assert created.name == "Neo"
    assert created.portrayer_name == "Keanu Reeves"
    assert 0 <= created.trending_score < 100

    again = await resolve_character(db, NEO.external_id, catalogs)
    by_id = await resolve_character(db, str(created_id), catalogs)
    assert again.id == created_id
    assert by_id.id == created_id
    assert await _count(db) == 1


async def test_raw_id_creates_before_token_is_seen(db, catalogs):
    first = await resolve_character(db, LIGHT.external_id, catalogs)
    first_id = first.id
    second = await resolve_character(db, ext_token("jikan", "anime", LIGHT.external_id), catalogs)
    assert second.id == first_id
    assert await _count(db) == 1


async def test_missing_durable_id_is_not_found(db, catalogs):
    with pytest.raises(NotFound):
        await resolve_character(db, str(uuid.uuid4()), catalogs)


async def test_character_gone_from_catalog_is_not_found(db, catalogs):
    with pytest.raises(NotFound):
        await resolve_character(db, "tmdb-movie-603-999999", catalogs)
    assert await _count(db) == 0


async def test_upstream_failure_surfaces_as_not_found(db, jikan):
    registry = CatalogRegistry([stock_tmdb(fail=["603"]), jikan])
    with pytest.raises(NotFound):
        await resolve_character(db, NEO.external_id, registry)


async def test_lookup_only_does_not_create(db, catalogs):
    with pytest.raises(NotFound):
        await resolve_character(db, TRINITY.external_id, catalogs, create=False)
    assert await lookup_character(db, TRINITY.external_id) is None
    assert await lookup_character(db, "ext-") is None


async def test_insert_conflict_falls_back_to_existing_row(db):
    first = await insert_character(db, NEO, trending_score=5.0)
    first_id = first.id

    # a second insert of the same (external_id, source) loses the race
    second = await insert_character(db, NEO, trending_score=50.0)
    assert second.id == first_id
    assert second.trending_score == 5.0
    assert await _count(db) == 1
