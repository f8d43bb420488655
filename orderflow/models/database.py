"""Async database engine/session helpers."""

from __future__ import annotations

from collections.abc import AsyncIterator
from typing import Any
from urllib.parse import quote_plus

from sqlalchemy import text
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from orderflow.config import settings
from orderflow.models.base import Base
from orderflow.util.logger import logger

engine: AsyncEngine | None = None
AsyncSessionLocal: async_sessionmaker[AsyncSession] | None = None
session_factory: async_sessionmaker[AsyncSession] | None = None


def _admin_database_url() -> str:
    """Build a connection URL to a maintenance DB for CREATE DATABASE checks."""
    user = quote_plus(settings.postgres_user)
    password = quote_plus(settings.postgres_password)
    return (
        f"postgresql+asyncpg://{user}:{password}@"
        f"{settings.postgres_host}:{settings.postgres_port}/postgres"
    )


def _quote_identifier(identifier: str) -> str:
    """Safely quote SQL identifiers like database names."""
    escaped = identifier.replace('"', '""')
    return f'"{escaped}"'


def _import_all_models() -> None:
    """Import models so SQLAlchemy metadata knows all tables."""
    import orderflow.models.order_event  # noqa: F401
    import orderflow.models.order_rating  # noqa: F401
    import orderflow.models.service_order  # noqa: F401


def _engine_options() -> dict[str, Any]:
    options: dict[str, Any] = {
        "pool_pre_ping": True,
        "echo": settings.sqlalchemy_echo,
    }
    if settings.uses_postgres:
        options["pool_size"] = settings.postgres_pool_size
        options["max_overflow"] = settings.postgres_max_overflow
    return options


def _ensure_engine() -> None:
    global engine, AsyncSessionLocal, session_factory
    if engine is None:
        engine = create_async_engine(settings.database_url, **_engine_options())
    if AsyncSessionLocal is None:
        AsyncSessionLocal = async_sessionmaker(
            bind=engine,
            class_=AsyncSession,
            expire_on_commit=False,
            autoflush=False,
        )
        session_factory = AsyncSessionLocal


async def _ensure_database_exists() -> None:
    """Create target PostgreSQL database when it is missing."""
    if not settings.uses_postgres or settings.database_url_override:
        return
    admin_engine = create_async_engine(
        _admin_database_url(),
        pool_pre_ping=True,
        echo=settings.sqlalchemy_echo,
        isolation_level="AUTOCOMMIT",
    )

    try:
        async with admin_engine.connect() as connection:
            result = await connection.execute(
                text("SELECT 1 FROM pg_database WHERE datname = :database_name"),
                {"database_name": settings.postgres_db},
            )
            if result.scalar() != 1:
                database_name = _quote_identifier(settings.postgres_db)
                await connection.execute(text(f"CREATE DATABASE {database_name}"))
                logger.info('PostgreSQL database "%s" created.', settings.postgres_db)
    finally:
        await admin_engine.dispose()


async def init_postgres(*, ensure_schema: bool = True) -> None:
    """Initialize database and shared engine/session factory.

    Parameters
    ----------
    ensure_schema:
        When True, create missing order tables.
    """
    await _ensure_database_exists()
    _import_all_models()
    _ensure_engine()
    assert engine is not None

    if ensure_schema:
        async with engine.begin() as connection:
            await connection.execute(text("SELECT 1"))
            await connection.run_sync(Base.metadata.create_all)
        logger.info("Database pool initialized and schema ensured.")
        return

    async with engine.connect() as connection:
        await connection.execute(text("SELECT 1"))
    logger.info("Database pool initialized.")


async def close_postgres() -> None:
    """Dispose engine and reset global references."""
    global engine, AsyncSessionLocal, session_factory

    if engine is not None:
        await engine.dispose()
        logger.info("Database pool closed.")

    engine = None
    AsyncSessionLocal = None
    session_factory = None


async def init_db(drop_existing: bool = False) -> None:
    """Create tables (optionally dropping existing tables first)."""
    await init_postgres(ensure_schema=False)
    assert engine is not None

    async with engine.begin() as connection:
        if drop_existing:
            await connection.run_sync(Base.metadata.drop_all)
        await connection.run_sync(Base.metadata.create_all)


async def get_db_session() -> AsyncIterator[AsyncSession]:
    """Yield async session from shared factory."""
    if AsyncSessionLocal is None:
        await init_postgres()
    assert AsyncSessionLocal is not None

    async with AsyncSessionLocal() as session:
        yield session


async def postgres_healthcheck() -> bool:
    """Check database liveness with SELECT 1."""
    if engine is None:
        return False
    try:
        async with engine.connect() as connection:
            await connection.execute(text("SELECT 1"))
        return True
    except Exception:
        logger.exception("Database health check failed.")
        return False
