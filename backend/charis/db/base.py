"""Declarative base plus the process-wide async engine and session factory.

Production runs on PostgreSQL (asyncpg) with the schema owned by the alembic
migration. SQLite URLs are accepted too, which is what the tests and local
runs use; an in-memory SQLite database lives on a single shared connection so
every session sees the same tables.
"""

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase
from sqlalchemy.pool import StaticPool


class Base(DeclarativeBase):
    pass


_engine: AsyncEngine | None = None
_session_factory: async_sessionmaker[AsyncSession] | None = None


def build_engine(database_url: str, echo: bool = False) -> AsyncEngine:
    if database_url.startswith("sqlite"):
        options: dict = {"connect_args": {"check_same_thread": False}}
        if ":memory:" in database_url or database_url.endswith("://"):
            options["poolclass"] = StaticPool
        return create_async_engine(database_url, echo=echo, **options)
    return create_async_engine(database_url, echo=echo, pool_pre_ping=True)


def build_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


async def create_tables(engine: AsyncEngine) -> None:
    """Create the agent tables that do not exist yet."""
    import charis.db.models  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def init_db(database_url: str, echo: bool = False, auto_create: bool = False) -> None:
    """Set up the shared engine and session factory once per process.

    ``auto_create`` creates missing tables directly instead of relying on the
    alembic migration having been applied.
    """
    global _engine, _session_factory

    if _engine is not None:
        return

    _engine = build_engine(database_url, echo=echo)
    _session_factory = build_session_factory(_engine)
    if auto_create:
        await create_tables(_engine)


async def close_db() -> None:
    global _engine, _session_factory

    if _engine is not None:
        await _engine.dispose()
        _engine = None
        _session_factory = None


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    """Return the shared session factory.

    Raises RuntimeError if init_db() has not been called.
    """
    if _session_factory is None:
        raise RuntimeError("Database not initialized. Call init_db() first.")
    return _session_factory
