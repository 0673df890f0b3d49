"""
Database Configuration for Gearhead Assistant

Async SQLAlchemy engine and session management against the Supabase
Postgres instance. Repositories open one short-lived session per operation
so they stay usable from detached tasks after a response has been sent.
"""

import re
from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional
from urllib.parse import quote_plus

from sqlalchemy import text
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from gearhead.config.settings import settings


class DatabaseManager:
    """
    Owns the async engine and session factory.

    A single instance is shared per process so every repository draws
    from the same connection pool.
    """

    _instance: Optional["DatabaseManager"] = None
    _engine: Optional[AsyncEngine] = None
    _session_factory: Optional[async_sessionmaker[AsyncSession]] = None

    def __new__(cls) -> "DatabaseManager":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    @property
    def engine(self) -> AsyncEngine:
        if self._engine is None:
            self._initialize_engine()
        return self._engine

    @property
    def session_factory(self) -> async_sessionmaker[AsyncSession]:
        if self._session_factory is None:
            self._initialize_engine()
        return self._session_factory

    def _initialize_engine(self) -> None:
        self._engine = create_async_engine(
            resolve_database_url(),
            echo=settings.database_echo,
            pool_size=settings.database_pool_size,
            max_overflow=settings.database_max_overflow,
            pool_timeout=settings.database_pool_timeout,
            pool_pre_ping=True,
        )
        self._session_factory = async_sessionmaker(
            bind=self._engine,
            class_=AsyncSession,
            expire_on_commit=False,
            autoflush=False,
        )

    async def close(self) -> None:
        """Dispose of the connection pool."""
        if self._engine:
            await self._engine.dispose()
            self._engine = None
            self._session_factory = None


def resolve_database_url(
    database_url: Optional[str] = None,
    supabase_url: Optional[str] = None,
    supabase_password: Optional[str] = None,
) -> str:
    """
    Build the asyncpg connection URL.

    Uses DATABASE_URL when set, otherwise derives the direct connection
    host from SUPABASE_URL (https://<ref>.supabase.co) and SUPABASE_PASSWORD.

    Raises:
        ValueError: neither source is configured, or SUPABASE_URL is malformed
    """
    database_url = database_url or settings.database_url
    supabase_url = supabase_url or settings.supabase_url
    supabase_password = supabase_password or settings.supabase_password

    if database_url:
        for prefix in ("postgresql://", "postgres://"):
            if database_url.startswith(prefix):
                return database_url.replace(prefix, "postgresql+asyncpg://", 1)
        return database_url

    if not supabase_url or not supabase_password:
        raise ValueError(
            "Either DATABASE_URL or (SUPABASE_URL + SUPABASE_PASSWORD) is required."
        )

    match = re.match(r"https?://([^.]+)\.supabase\.co", supabase_url)
    if not match:
        raise ValueError(f"Invalid SUPABASE_URL format: {supabase_url}")

    project_ref = match.group(1)
    password = quote_plus(supabase_password)
    return (
        f"postgresql+asyncpg://postgres:{password}"
        f"@db.{project_ref}.supabase.co:5432/postgres"
    )


_db_manager: Optional[DatabaseManager] = None


def get_db_manager() -> DatabaseManager:
    """Get or create the database manager instance."""
    global _db_manager
    if _db_manager is None:
        _db_manager = DatabaseManager()
    return _db_manager


@asynccontextmanager
async def get_session_context() -> AsyncGenerator[AsyncSession, None]:
    """
    Transactional session scope.

    Commits when the block exits cleanly and rolls back on any exception.

    Usage:
        async with get_session_context() as session:
            result = await session.execute(query)
    """
    db = get_db_manager()
    async with db.session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


async def init_db() -> None:
    """Verify the pool can reach Postgres (called on app startup)."""
    db = get_db_manager()
    async with db.session_factory() as session:
        await session.execute(text("SELECT 1"))


async def close_db() -> None:
    """Close database connection pool (called on app shutdown)."""
    await get_db_manager().close()
