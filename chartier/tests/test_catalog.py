import httpx
import pytest
import respx

from chartier.errors import InvalidInput, UpstreamUnavailable
from chartier.integrations.jikan import JikanClient
from chartier.integrations.tmdb import TMDBClient

TMDB = "https://tmdb.test/3"
JIKAN = "https://jikan.test/v4"


def _tmdb(**kw) -> TMDBClient:
    opts = dict(access_token="tok", base=TMDB, image_base="https://img.test/t/p", retry_delay=0, max_attempts=3)
    opts.update(kw)
    return TMDBClient(**opts)


def _jikan(**kw) -> JikanClient:
    return JikanClient(base=JIKAN, retry_delay=0, max_attempts=3, **kw)


MATRIX = {"id": 603, "title": "The Matrix", "release_date": "1999-03-30", "poster_path": "/matrix.jpg"}
MATRIX_CREDITS = {
    "cast": [
        {"id": 530, "name": "Carrie-Anne Moss", "character": "Trinity", "order": 2, "profile_path": "/moss.jpg"},
        {"id": 6384, "name": "Keanu Reeves", "character": "Neo", "order": 0, "profile_path": "/keanu.jpg"},
        {"id": 2975, "name": "Laurence Fishburne", "character": "", "order": 1, "profile_path": None},
    ]
}


@respx.mock
async def test_tmdb_characters_are_normalised_in_billing_order():
    respx.get(host="tmdb.test", path="/3/movie/603/credits").mock(
        return_value=httpx.Response(200, json=MATRIX_CREDITS)
    )
    respx.get(host="tmdb.test", path="/3/movie/603").mock(return_value=httpx.Response(200, json=MATRIX))

    cast = await _tmdb().list_characters("movie", "603")

    assert [c.external_id for c in cast] == ["tmdb-movie-603-6384", "tmdb-movie-603-2975", "tmdb-movie-603-530"]
    neo = cast[0]
    assert neo.name == "Neo"
    assert neo.portrayer_name == "Keanu Reeves"
    assert neo.image == "https://img.test/t/p/w500/keanu.jpg"
    assert neo.media_title == "The Matrix"
    assert neo.release_year == 1999
    assert neo.media_poster == "https://img.test/t/p/w500/matrix.jpg"
    assert neo.order == 0
    # blank character name falls back to the actor
    assert cast[1].name == "Laurence Fishburne"
    assert cast[1].image is None


@respx.mock
async def test_tmdb_series_use_tv_paths_and_limit():
    respx.get(host="tmdb.test", path="/3/tv/1396/credits").mock(
        return_value=httpx.Response(
            200,
            json={"cast": [{"id": 17419, "name": "Bryan Cranston", "character": "Walter White", "order": 0},
                           {"id": 84497, "name": "Aaron Paul", "character": "Jesse Pinkman", "order": 1}]},
        )
    )
    respx.get(host="tmdb.test", path="/3/tv/1396").mock(
        return_value=httpx.Response(200, json={"id": 1396, "name": "Breaking Bad", "first_air_date": "2008-01-20"})
    )

    cast = await _tmdb().list_characters("series", 1396, limit=1)
    assert len(cast) == 1
    assert cast[0].external_id == "tmdb-series-1396-17419"
    assert cast[0].media_title == "Breaking Bad"
    assert cast[0].release_year == 2008

    found = await _tmdb().get_character("series", "1396", "tmdb-series-1396-84497")
    assert found is not None and found.name == "Jesse Pinkman"


@respx.mock
async def test_tmdb_sends_bearer_or_api_key():
    route = respx.get(host="tmdb.test", path="/3/trending/movie/week").mock(
        return_value=httpx.Response(200, json={"results": [MATRIX]})
    )

    items = await _tmdb().list_trending("movie", 1)
    assert [(m.media_id, m.title, m.release_year) for m in items] == [("603", "The Matrix", 1999)]
    assert route.calls.last.request.headers["Authorization"] == "Bearer tok"

    await _tmdb(access_token="", api_key="k3y").list_trending("movie", 2)
    request = route.calls.last.request
    assert request.url.params["api_key"] == "k3y"
    assert "Authorization" not in request.headers


@respx.mock
async def test_responses_are_cached(fake_app_cache):
    route = respx.get(host="tmdb.test", path="/3/movie/popular").mock(
        return_value=httpx.Response(200, json={"results": [MATRIX]})
    )
    client = _tmdb()
    first = await client.list_popular("movie", 1)
    second = await client.list_popular("movie", 1)
    assert first == second
    assert route.call_count == 1
    assert await fake_app_cache.keys("catalog:tmdb:*")


@respx.mock
async def test_rate_limit_is_retried_then_succeeds():
    route = respx.get(host="tmdb.test", path="/3/search/movie").mock(
        side_effect=[httpx.Response(429), httpx.Response(429), httpx.Response(200, json={"results": [MATRIX]})]
    )
    items = await _tmdb().search("matrix", "movie")
    assert route.call_count == 3
    assert items[0].title == "The Matrix"


@respx.mock
async def test_rate_limit_exhaustion_is_upstream_unavailable():
    route = respx.get(host="tmdb.test", path="/3/movie/top_rated").mock(return_value=httpx.Response(429))
    with pytest.raises(UpstreamUnavailable):
        await _tmdb(max_attempts=2).list_top_rated("movie", 1)
    assert route.call_count == 2


@respx.mock
async def test_server_error_is_not_retried():
    route = respx.get(host="tmdb.test", path="/3/movie/popular").mock(return_value=httpx.Response(500))
    with pytest.raises(UpstreamUnavailable):
        await _tmdb().list_popular("movie", 1)
    assert route.call_count == 1


async def test_wrong_media_type_is_invalid_input():
    with pytest.raises(InvalidInput):
        await _tmdb().list_trending("anime", 1)
    with pytest.raises(InvalidInput):
        await _jikan().list_trending("movie", 1)


@respx.mock
async def test_jikan_puts_main_characters_first():
    respx.get(host="jikan.test", path="/v4/anime/1535/characters").mock(
        return_value=httpx.Response(
            200,
            json={
                "data": [
                    {"role": "Supporting", "character": {"mal_id": 75, "name": "Ryuk", "images": {"jpg": {"image_url": "https://cdn/ryuk.jpg"}}}},
                    {"role": "Main", "character": {"mal_id": 80, "name": "Yagami, Light"}},
                    {"role": "Supporting", "character": {"mal_id": 77, "name": "Misa"}},
                    {"role": "Main", "character": {"mal_id": 71, "name": "Lawliet, L"}},
                ]
            },
        )
    )
    respx.get(host="jikan.test", path="/v4/anime/1535").mock(
        return_value=httpx.Response(
            200,
            json={
                "data": {
                    "mal_id": 1535,
                    "title": "Death Note",
                    "year": None,
                    "aired": {"prop": {"from": {"year": 2006}}},
                    "images": {"jpg": {"large_image_url": "https://cdn/dn.jpg"}},
                }
            },
        )
    )

    cast = await _jikan().list_characters("anime", "1535", limit=3)

    assert [c.external_id for c in cast] == ["jikan-anime-1535-80", "jikan-anime-1535-71", "jikan-anime-1535-75"]
    assert [c.order for c in cast] == [0, 1, 2]
    assert [c.role for c in cast] == ["Main", "Main", "Supporting"]
    assert cast[2].image == "https://cdn/ryuk.jpg"
    assert cast[0].release_year == 2006
    assert cast[0].media_poster == "https://cdn/dn.jpg"
    assert cast[0].portrayer_name is None


@respx.mock
async def test_jikan_listings():
    respx.get(host="jikan.test", path="/v4/top/anime").mock(
        return_value=httpx.Response(200, json={"data": [{"mal_id": 5114, "title": "Fullmetal Alchemist: Brotherhood", "year": 2009}]})
    )
    items = await _jikan().list_top_rated("anime", 1)
    assert [(m.source, m.media_type, m.media_id, m.release_year) for m in items] == [("jikan", "anime", "5114", 2009)]
