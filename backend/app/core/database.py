"""
Database engine and session management for the incident log ledger.

One engine serves logs, revisions and users. Services receive the session
factory (``get_session_factory``) and open a short session per operation;
request handlers that need a plain session use ``get_db``.
"""

from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator, Dict

from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase

from backend.app.core.config import Settings, get_settings

settings = get_settings()


def _engine_options(settings: Settings) -> Dict[str, Any]:
    options: Dict[str, Any] = {"echo": settings.debug}
    if settings.database_url.startswith("postgresql"):
        options.update(
            pool_size=settings.database_pool_size,
            max_overflow=settings.database_max_overflow,
            pool_pre_ping=True,
        )
        if settings.db_ssl_mode == "require":
            options["connect_args"] = {"ssl": "require"}
    return options


engine = create_async_engine(settings.database_url, **_engine_options(settings))

if engine.dialect.name == "sqlite":
    @event.listens_for(engine.sync_engine, "connect")
    def _enable_sqlite_foreign_keys(dbapi_connection, connection_record):
        # Revisions must point at an existing log
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

async_session_maker = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


class Base(DeclarativeBase):
    """Base class for SQLAlchemy models."""
    pass


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    """Dependency returning the session factory used by the ledger services."""
    return async_session_maker


@asynccontextmanager
async def get_db_context() -> AsyncGenerator[AsyncSession, None]:
    """Session that commits on success and rolls back on any error."""
    async with async_session_maker() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """FastAPI dependency wrapping ``get_db_context``."""
    async with get_db_context() as session:
        yield session
