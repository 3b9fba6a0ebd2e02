"""
Pytest configuration and fixtures for testing
"""
from datetime import datetime, timezone

import pytest
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.pool import StaticPool

from database import Base
from config.settings import CLASSIFICATION_GUEST, CLASSIFICATION_REGULAR
from services.balance_store import BalanceStore
from services.clock import FrozenClock
from services.entitlements import EntitlementResolver, Entitlements
from services.ledger_service import BalanceLedger
from utils.balance_cache import BalanceCache

# In-memory SQLite database for testing
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

START = datetime(2025, 1, 1, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
async def test_engine():
    """
    Fresh in-memory database per test.

    StaticPool keeps the single in-memory connection alive for every
    session opened on this engine.
    """
    engine = create_async_engine(
        TEST_DATABASE_URL,
        echo=False,
        future=True,
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        # Import models to ensure they're registered with Base
        from database_models import UserBalance, AppliedTransaction, ConsumptionRecord, MessageLogEntry  # noqa: F401
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest.fixture
def session_factory(test_engine):
    return async_sessionmaker(
        test_engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autocommit=False,
        autoflush=False,
    )


@pytest.fixture
async def test_db(session_factory):
    """
    Fixture that provides an AsyncSession on the per-test database.
    """
    async with session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()


@pytest.fixture
def clock():
    return FrozenClock(START)


@pytest.fixture
def resolver():
    """Guest gets 2 trial messages a day, regular gets 5."""
    return EntitlementResolver({
        CLASSIFICATION_GUEST: Entitlements(trial_capacity=2, max_messages_per_day_legacy=20),
        CLASSIFICATION_REGULAR: Entitlements(trial_capacity=5, max_messages_per_day_legacy=100),
    })


@pytest.fixture
def store(session_factory):
    return BalanceStore(session_factory)


@pytest.fixture
def ledger(store, resolver, clock):
    return BalanceLedger(
        store,
        resolver=resolver,
        clock=clock,
        cache=BalanceCache(ttl_seconds=60),
        lock_timeout=5,
    )
