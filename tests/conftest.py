"""
Pytest configuration and fixtures.
"""

import os
from datetime import datetime, timezone
from typing import AsyncGenerator

os.environ.setdefault("SECRET_KEY", "test-secret-key-not-for-production")

import pytest
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.pool import StaticPool

from backend.app.main import app
from backend.app.core.database import Base, get_db, get_session_factory
# Register every table with Base.metadata
from backend.app.models import IncidentLogORM, LogRevisionORM, UserORM  # noqa: F401

from tests.fakes import FakeClock, InMemoryLogPersistence
from tests.helpers import TEST_USERS

# Use in-memory SQLite for testing
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

engine = create_async_engine(
    TEST_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)

TestingSessionLocal = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False
)

@pytest.fixture(scope="function")
def session_factory() -> async_sessionmaker[AsyncSession]:
    """Returns the session factory for testing."""
    return TestingSessionLocal

@pytest.fixture(scope="function")
async def db_session() -> AsyncGenerator[AsyncSession, None]:
    """
    Creates a fresh schema and session for a test; everything is dropped afterwards.
    """
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    async with TestingSessionLocal() as session:
        yield session

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

@pytest.fixture(scope="function")
async def seeded_users(db_session: AsyncSession) -> dict:
    """Inserts TEST_USERS and returns them keyed by name."""
    for user_id, username, role, full_name, callsign in TEST_USERS.values():
        db_session.add(UserORM(
            id=user_id,
            username=username,
            hashed_password="not-used",
            role=role,
            full_name=full_name,
            callsign=callsign,
        ))
    await db_session.commit()
    return TEST_USERS

@pytest.fixture(scope="function")
async def client(db_session: AsyncSession) -> AsyncGenerator[AsyncClient, None]:
    """
    Test client with the database dependencies pointed at the test engine.
    Authentication is real: use ``auth_headers`` to obtain a bearer token.
    """
    async def override_get_db():
        yield db_session

    def override_get_session_factory():
        return TestingSessionLocal

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_session_factory] = override_get_session_factory

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as c:
        yield c

    app.dependency_overrides.clear()

@pytest.fixture
def clock() -> FakeClock:
    return FakeClock(datetime(2026, 7, 4, 14, 0, 0, tzinfo=timezone.utc))

@pytest.fixture
def memory_persistence() -> InMemoryLogPersistence:
    persistence = InMemoryLogPersistence()
    for user_id, username, role, full_name, callsign in TEST_USERS.values():
        persistence.add_user(user_id, username=username, role=role, full_name=full_name, callsign=callsign)
    return persistence


@pytest.fixture
async def file_session_factory(tmp_path) -> AsyncGenerator[async_sessionmaker[AsyncSession], None]:
    """
    Session factory over a SQLite file, so concurrent sessions use separate
    connections and contend on real database locks. Users are pre-seeded.
    """
    file_engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'ledger.db'}")
    async with file_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    factory = async_sessionmaker(file_engine, class_=AsyncSession, expire_on_commit=False)
    async with factory() as session:
        for user_id, username, role, full_name, callsign in TEST_USERS.values():
            session.add(UserORM(
                id=user_id,
                username=username,
                hashed_password="not-used",
                role=role,
                full_name=full_name,
                callsign=callsign,
            ))
        await session.commit()

    yield factory
    await file_engine.dispose()
