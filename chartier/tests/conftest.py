# chartier/tests/conftest.py
import os

# must be set before chartier.core.settings is imported
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite://")
os.environ.setdefault("AUTH_SECRET", "test-secret")
os.environ["SYNC_INTERVAL_MINUTES"] = "0"
os.environ["SYNC_TMDB_PAUSE"] = "0"
os.environ["SYNC_JIKAN_PAUSE"] = "0"
os.environ["CATALOG_RETRY_DELAY"] = "0"

import fakeredis.aioredis
import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from chartier.database import get_async_db
from chartier.db_models import Base
from chartier.integrations.registry import CatalogRegistry, get_catalogs
from chartier.tests.factories import stock_jikan, stock_tmdb


@pytest.fixture(autouse=True)
async def fake_app_cache(monkeypatch):
    """Point chartier.infra.cache at a FakeRedis client for every test."""
    fake = fakeredis.aioredis.FakeRedis(decode_responses=True)

    import chartier.infra.cache as app_cache
    monkeypatch.setattr(app_cache, "_redis", fake, raising=True)

    try:
        yield fake
    finally:
        await fake.aclose()


@pytest.fixture
async def engine():
    # one shared in-memory connection so every session sees the same tables
    eng = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with eng.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    try:
        yield eng
    finally:
        await eng.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(bind=engine, expire_on_commit=False, autoflush=False)


@pytest.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def tmdb():
    return stock_tmdb()


@pytest.fixture
def jikan():
    return stock_jikan()


@pytest.fixture
def catalogs(tmdb, jikan):
    return CatalogRegistry([tmdb, jikan])


@pytest.fixture
async def client(session_factory, catalogs):
    from chartier.main import app

    async def _db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_async_db] = _db
    app.dependency_overrides[get_catalogs] = lambda: catalogs
    try:
        async with AsyncClient(transport=ASGITransport(app=app), base_url="http://testserver") as ac:
            yield ac
    finally:
        app.dependency_overrides.clear()

