# alembic/env.py
from __future__ import annotations

import os
import sys
from logging.config import fileConfig

from alembic import context
from sqlalchemy import create_engine, pool

# --- Make sure we can import the package, and load .env ---
PROJECT_ROOT = os.path.dirname(os.path.abspath(__file__))   # .../alembic
PROJECT_PARENT = os.path.dirname(PROJECT_ROOT)              # project root
if PROJECT_PARENT not in sys.path:
    sys.path.insert(0, PROJECT_PARENT)

from dotenv import load_dotenv  # noqa: E402

# do NOT override shell env vars
load_dotenv(override=False)

from chartier.core.settings import settings  # noqa: E402
from chartier.db_models import Base          # noqa: E402

target_metadata = Base.metadata
config = context.config


# ----------------------------
# URL normalization
# ----------------------------

def _to_sync_url(url: str) -> str:
    """Alembic runs synchronously: asyncpg -> psycopg v3, aiosqlite -> sqlite."""
    u = (url or "").strip()
    if not u:
        return u

    if u.startswith("postgres://"):
        u = "postgresql://" + u[len("postgres://"):]
    if u.startswith("postgresql://"):
        u = "postgresql+psycopg://" + u[len("postgresql://"):]

    u = u.replace("+asyncpg", "+psycopg")
    u = u.replace("+psycopg2", "+psycopg")
    u = u.replace("sqlite+aiosqlite://", "sqlite://")
    return u


def _choose_sync_url() -> str:
    """
    Priority:
    1) ALEMBIC_SYNC_URL
    2) DATABASE_URL
    3) settings.database_url
    """
    for key in ("ALEMBIC_SYNC_URL", "DATABASE_URL"):
        v = os.getenv(key)
        if v:
            return _to_sync_url(v)
    return _to_sync_url(settings.database_url)


url_sync = _choose_sync_url()
if not url_sync:
    raise RuntimeError("No DB URL found for Alembic. Set ALEMBIC_SYNC_URL or DATABASE_URL.")

config.set_main_option("sqlalchemy.url", url_sync)

if config.config_file_name is not None:
    fileConfig(config.config_file_name)


# ----------------------------
# Migration runners
# ----------------------------

def run_migrations_offline() -> None:
    context.configure(
        url=config.get_main_option("sqlalchemy.url"),
        target_metadata=target_metadata,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
    )
    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online() -> None:
    connectable = create_engine(
        config.get_main_option("sqlalchemy.url"),
        poolclass=pool.NullPool,
    )

    with connectable.connect() as connection:
        context.configure(connection=connection, target_metadata=target_metadata)

        with context.begin_transaction():
            context.run_migrations()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
