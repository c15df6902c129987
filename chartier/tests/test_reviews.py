from datetime import timedelta

import pytest
from sqlalchemy import Select, Update, false, func, select, update
from sqlalchemy.exc import OperationalError

from chartier.db_models import Character, Review, ReviewLike
from chartier.errors import InvalidInput, NotFound
from chartier.services.identity import ext_token, insert_character
from chartier.services.reviews import list_reviews, submit_rating, toggle_like, validate_rating
from chartier.tests.factories import NEO, TRINITY, make_user


async def _review_count(db) -> int:
    return await db.scalar(select(func.count(Review.id)))


def test_validate_rating_normalises_tier():
    assert validate_rating("  GOAT ", " Best ever ") == ("goat", "Best ever")


@pytest.mark.parametrize(
    "tier,comment,message",
    [
        (None, "fine", "Tier and comment are required"),
        ("goat", "", "Tier and comment are required"),
        ("goat", "   ", "Tier and comment are required"),
        ("legendary", "fine", "Tier must be one of: goat, god, enjoyable, mediocre, weak"),
    ],
)
def test_validate_rating_rejects(tier, comment, message):
    with pytest.raises(InvalidInput) as exc:
        validate_rating(tier, comment)
    assert exc.value.message == message


async def test_resubmitting_updates_the_single_review(db, catalogs):
    user = await make_user(db, "neo_fan")
    ref = ext_token("tmdb", "movie", NEO.external_id)

    first = await submit_rating(db, user.id, ref, "god", "Solid", catalogs)
    second = await submit_rating(db, user.id, NEO.external_id, "goat", "The one", catalogs)

    assert second["id"] == first["id"]
    assert second["tier"] == "goat"
    assert second["comment"] == "The one"
    assert second["createdAt"] == first["createdAt"]
    assert second["updatedAt"] >= first["updatedAt"]
    assert second["likes"] == 0
    assert second["likedByUser"] is False
    assert second["user"] == {"id": str(user.id), "username": "neo_fan", "name": None, "image": None}
    assert await _review_count(db) == 1


async def test_empty_comment_writes_nothing(db, catalogs):
    user = await make_user(db, "critic")
    with pytest.raises(InvalidInput):
        await submit_rating(db, user.id, NEO.external_id, "goat", "", catalogs)
    assert await _review_count(db) == 0
    # validation runs before resolution, so the character was not created either
    assert await db.scalar(select(func.count(Character.id))) == 0


async def test_rating_unknown_character_is_not_found(db, catalogs):
    user = await make_user(db, "critic")
    with pytest.raises(NotFound):
        await submit_rating(db, user.id, "tmdb-movie-603-424242", "weak", "who?", catalogs)


async def test_rating_touches_last_activity(db, catalogs):
    user = await make_user(db, "critic")
    character = await insert_character(db, NEO, trending_score=10.0)
    character_id = character.id
    old = character.last_activity_at - timedelta(days=3)
    await db.execute(update(Character).where(Character.id == character_id).values(last_activity_at=old))
    await db.commit()

    await submit_rating(db, user.id, str(character_id), "god", "Great", catalogs)

    touched = await db.scalar(select(Character.last_activity_at).where(Character.id == character_id))
    assert touched > old
    assert await db.scalar(select(Character.trending_score).where(Character.id == character_id)) == 10.0


async def test_like_toggle_is_involutive(db, catalogs):
    author = await make_user(db, "author")
    fan = await make_user(db, "fan")
    review = await submit_rating(db, author.id, NEO.external_id, "goat", "Best ever", catalogs)

    on = await toggle_like(db, review["id"], fan.id)
    assert on == {"liked": True, "likes": 1}
    off = await toggle_like(db, review["id"], fan.id)
    assert off == {"liked": False, "likes": 0}
    assert await db.scalar(select(func.count(ReviewLike.id))) == 0


async def test_like_bumps_trending_score_once(db, catalogs):
    author = await make_user(db, "author")
    fan = await make_user(db, "fan")
    character = await insert_character(db, NEO, trending_score=20.0)
    character_id = character.id
    review = await submit_rating(db, author.id, str(character_id), "goat", "Best ever", catalogs)

    await toggle_like(db, review["id"], fan.id)
    await toggle_like(db, review["id"], fan.id)  # unlike leaves the score alone

    score = await db.scalar(select(Character.trending_score).where(Character.id == character_id))
    assert score == 21.0


async def test_like_checks_review_belongs_to_character(db, catalogs):
    author = await make_user(db, "author")
    review = await submit_rating(db, author.id, NEO.external_id, "goat", "Best ever", catalogs)
    await insert_character(db, TRINITY)

    with pytest.raises(NotFound):
        await toggle_like(db, review["id"], author.id, TRINITY.external_id)
    with pytest.raises(NotFound):
        await toggle_like(db, "not-a-uuid", author.id)


async def test_list_reviews_sort_orders(db, catalogs):
    users = [await make_user(db, f"user{i}") for i in range(3)]
    reviews = []
    for i, u in enumerate(users):
        reviews.append(await submit_rating(db, u.id, NEO.external_id, "enjoyable", f"take {i}", catalogs))

    # user0's review is the oldest but gets the most likes
    await toggle_like(db, reviews[0]["id"], users[1].id)
    await toggle_like(db, reviews[0]["id"], users[2].id)
    await toggle_like(db, reviews[1]["id"], users[0].id)

    newest = await list_reviews(db, NEO.external_id, "newest")
    created = [r["createdAt"] for r in newest]
    assert created == sorted(created, reverse=True)
    assert [r["id"] for r in newest][0] == reviews[2]["id"]

    by_likes = await list_reviews(db, NEO.external_id, "likes", viewer_id=users[0].id)
    counts = [r["likes"] for r in by_likes]
    assert counts == sorted(counts, reverse=True)
    assert [r["id"] for r in by_likes] == [reviews[0]["id"], reviews[1]["id"], reviews[2]["id"]]
    assert [r["likedByUser"] for r in by_likes] == [False, True, False]


async def test_list_reviews_for_unpersisted_character_is_empty(db):
    assert await list_reviews(db, ext_token("tmdb", "movie", TRINITY.external_id)) == []
    assert await db.scalar(select(func.count(Character.id))) == 0


async def test_list_reviews_rejects_unknown_sort(db):
    with pytest.raises(InvalidInput):
        await list_reviews(db, NEO.external_id, "oldest")


async def test_like_survives_failed_trending_update(db, catalogs, monkeypatch):
    author = await make_user(db, "author")
    fan = await make_user(db, "fan")
    character = await insert_character(db, NEO, trending_score=5.0)
    character_id = character.id
    review = await submit_rating(db, author.id, str(character_id), "goat", "Best ever", catalogs)

    real_execute = db.execute

    async def execute(stmt, *args, **kwargs):
        if isinstance(stmt, Update) and stmt.table.name == "characters":
            raise OperationalError("UPDATE characters", {}, Exception("database is locked"))
        return await real_execute(stmt, *args, **kwargs)

    monkeypatch.setattr(db, "execute", execute)
    out = await toggle_like(db, review["id"], fan.id)
    monkeypatch.undo()

    assert out == {"liked": True, "likes": 1}
    assert await db.scalar(select(func.count(ReviewLike.id))) == 1
    assert await db.scalar(select(Character.trending_score).where(Character.id == character_id)) == 5.0


async def test_concurrent_first_review_becomes_update(db, catalogs, monkeypatch):
    user = await make_user(db, "racer")
    first = await submit_rating(db, user.id, NEO.external_id, "weak", "Meh", catalogs)

    # the next review lookup misses the row, as if another request inserted it meanwhile
    real_execute = db.execute
    missed = []

    async def execute(stmt, *args, **kwargs):
        if not missed and isinstance(stmt, Select) and stmt.column_descriptions[0]["entity"] is Review:
            missed.append(stmt)
            stmt = stmt.where(false())
        return await real_execute(stmt, *args, **kwargs)

    monkeypatch.setattr(db, "execute", execute)
    second = await submit_rating(db, user.id, NEO.external_id, "god", "Grew on me", catalogs)
    monkeypatch.undo()

    assert missed
    assert second["id"] == first["id"]
    rows = (await db.execute(select(Review))).scalars().all()
    assert len(rows) == 1
    assert (rows[0].tier, rows[0].comment) == ("god", "Grew on me")
