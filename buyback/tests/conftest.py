"""
Centralized Test Configuration.

Every test gets a fresh in-memory SQLite database, a fixed business clock,
no mapping provider (suburb estimates only) and its own breaker and cache.
"""

from datetime import date, datetime

import pytest
from httpx import AsyncClient, ASGITransport
from sqlalchemy import event
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker, AsyncSession
from sqlalchemy.pool import StaticPool

from buyback.app.main import app
from buyback.app.db.session import get_db, Base
from buyback.app.core.dependencies import get_breaker, get_cache, get_clock, get_mapping_client
from buyback.app.core.reliability import CircuitBreaker
from buyback.app.domain.scheduling.slot_scheduler import SlotScheduler
from buyback.app.services.cache import CacheService, InMemoryCacheBackend

TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

# Tuesday; the rolling window starts here
TODAY = date(2026, 3, 10)


class FixedClock:
    """Settable stand-in for local_now()."""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def set(self, hour: int, minute: int = 0, day: date = TODAY):
        self.now = datetime(day.year, day.month, day.day, hour, minute)


# Mock Redis for the Redis cache backend
class MockRedis:
    def __init__(self):
        self.store = {}
        self.expiry = {}

    async def ping(self):
        return True

    async def get(self, key):
        return self.store.get(key)

    async def set(self, key, value, ex=None):
        self.store[key] = value
        self.expiry[key] = ex
        return True

    async def delete(self, key):
        if key in self.store:
            del self.store[key]
            return 1
        return 0

    async def scan_iter(self, match=None):
        prefix = match.rstrip("*") if match else ""
        for key in list(self.store):
            if key.startswith(prefix):
                yield key


@pytest.fixture
def mock_redis():
    return MockRedis()


@pytest.fixture
async def engine():
    test_engine = create_async_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    @event.listens_for(test_engine.sync_engine, "connect")
    def set_sqlite_pragma(dbapi_conn, connection_record):
        """Enable foreign key constraints for SQLite."""
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield test_engine

    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await test_engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def db_session(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def clock():
    return FixedClock(datetime(2026, 3, 10, 10, 0))


@pytest.fixture
def breaker():
    return CircuitBreaker(reset_timeout=None, name="test-mapping")


@pytest.fixture
def cache():
    return CacheService(InMemoryCacheBackend(), default_ttl=900)


@pytest.fixture
async def scheduler(db_session, clock):
    """Scheduler over an initialized slot window."""
    slot_scheduler = SlotScheduler(db_session, clock)
    await slot_scheduler.ensure_slots_initialized()
    return slot_scheduler


@pytest.fixture
async def client(session_factory, clock, breaker, cache):
    """Async client with database, clock, provider and cache overridden."""

    async def override_get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_clock] = lambda: clock
    app.dependency_overrides[get_mapping_client] = lambda: None
    app.dependency_overrides[get_breaker] = lambda: breaker
    app.dependency_overrides[get_cache] = lambda: cache

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac

    app.dependency_overrides = {}
