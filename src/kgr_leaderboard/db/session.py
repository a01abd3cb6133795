"""Database engine and session configuration."""

from __future__ import annotations

from typing import Any

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase

from kgr_leaderboard.core.settings import Settings


class Base(DeclarativeBase):
    """Declarative base shared by all ORM models."""


def build_engine(settings: Settings, **kwargs: Any) -> AsyncEngine:
    """Create the async engine for the configured database."""
    url = settings.async_database_url
    connect_args: dict[str, Any] = kwargs.pop("connect_args", {})
    if url.startswith("postgresql+asyncpg") and settings.database_ssl:
        # Managed Postgres hosts terminate TLS with certificates we do not pin.
        connect_args.setdefault("ssl", "require")
    if not url.startswith("sqlite"):
        kwargs.setdefault("pool_pre_ping", True)

    return create_async_engine(
        url,
        echo=settings.sql_debug,
        connect_args=connect_args,
        **kwargs,
    )


def build_sessionmaker(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Return a session factory bound to ``engine``."""
    return async_sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)


async def create_tables(engine: AsyncEngine) -> None:
    """Create all database tables that do not exist yet."""
    # Ensure model modules are imported so that metadata is populated.
    import kgr_leaderboard.models  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def drop_tables(engine: AsyncEngine) -> None:
    """Drop all database tables."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
