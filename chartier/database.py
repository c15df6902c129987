# chartier/database.py
from __future__ import annotations

from collections.abc import AsyncGenerator
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from chartier.core.settings import settings


def _normalise_url(value: Optional[str]) -> Optional[str]:
    if not value:
        return None
    return value.strip().strip('"').strip("'")


def _to_async_driver(url: str) -> str:
    """
    Ensure the SQLAlchemy URL uses an async driver.
    - postgres://             -> postgresql+asyncpg://
    - postgresql+psycopg://   -> postgresql+asyncpg://
    - postgresql://           -> postgresql+asyncpg://
    - sqlite:// (tests, dev)  -> sqlite+aiosqlite://
    """
    if url.startswith("postgres://"):
        url = "postgresql://" + url[len("postgres://"):]
    if url.startswith("postgresql+psycopg://"):
        return "postgresql+asyncpg://" + url.split("postgresql+psycopg://", 1)[1]
    if url.startswith("postgresql://"):
        return "postgresql+asyncpg://" + url.split("postgresql://", 1)[1]
    if url.startswith("sqlite://"):
        return "sqlite+aiosqlite://" + url.split("sqlite://", 1)[1]
    return url


ASYNC_DATABASE_URL = _to_async_driver(_normalise_url(settings.database_url) or "")

if not ASYNC_DATABASE_URL:
    raise RuntimeError(
        "DATABASE_URL is empty. Set it like "
        "'postgresql+asyncpg://user:pass@db:5432/chartier'."
    )

if ASYNC_DATABASE_URL.startswith("sqlite"):
    async_engine = create_async_engine(ASYNC_DATABASE_URL, future=True)
else:
    async_engine = create_async_engine(ASYNC_DATABASE_URL, future=True, pool_pre_ping=True)

AsyncSessionLocal: async_sessionmaker[AsyncSession] = async_sessionmaker(
    bind=async_engine, expire_on_commit=False, autoflush=False
)


async def get_async_db() -> AsyncGenerator[AsyncSession, None]:
    """FastAPI dependency that yields an AsyncSession."""
    async with AsyncSessionLocal() as session:
        yield session
