"""Database configuration and session management for the remote secret store.

Uses async SQLAlchemy with PostgreSQL (asyncpg driver). The engine is built
from ``Settings.database_url`` when the app starts.
"""

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase


def create_db_engine(database_url: str, echo: bool = False) -> AsyncEngine:
    """Create the async engine for the secret store."""
    pool_args = {}
    if not database_url.startswith("sqlite"):
        pool_args = {"pool_size": 5, "max_overflow": 10}
    return create_async_engine(
        database_url,
        echo=echo,
        pool_pre_ping=True,
        **pool_args,
    )


def create_session_maker(bind: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Build a session factory for the given engine."""
    return async_sessionmaker(
        bind,
        class_=AsyncSession,
        expire_on_commit=False,
        autocommit=False,
        autoflush=False,
    )


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy models."""
    pass


async def init_db(bind: AsyncEngine) -> None:
    """Create the secret store tables.

    Deployments normally provision the ``ai_secrets`` table themselves; a
    missing table is reported as STORE_UNAVAILABLE rather than created
    implicitly, so this only runs when explicitly enabled.
    """
    async with bind.begin() as conn:
        # Import models to ensure they're registered
        from savestack.db import models  # noqa: F401
        await conn.run_sync(Base.metadata.create_all)


async def close_db(bind: AsyncEngine) -> None:
    """Close database connections."""
    await bind.dispose()
