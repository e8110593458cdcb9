"""
Shared fixtures: an in-memory SQLite database with the full schema.

StaticPool keeps a single connection so every session in a test sees the
same in-memory database.
"""

import datetime

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from learniq.database.base import Base
from learniq.database import models  # noqa: F401

TEST_DB_URL = "sqlite+aiosqlite:///:memory:"


class FixedClock:
    """Settable UTC clock."""

    def __init__(self, now: datetime.datetime):
        self.now = now

    def __call__(self) -> datetime.datetime:
        return self.now

    def advance(self, days: int = 0, **kwargs) -> None:
        self.now += datetime.timedelta(days=days, **kwargs)


@pytest_asyncio.fixture
async def engine():
    test_engine = create_async_engine(
        TEST_DB_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield test_engine
    await test_engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def session(session_factory):
    async with session_factory() as db_session:
        yield db_session


@pytest.fixture
def clock():
    return FixedClock(datetime.datetime(2026, 3, 10, 15, 30, tzinfo=datetime.timezone.utc))
