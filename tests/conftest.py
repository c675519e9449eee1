"""
Pytest configuration and fixtures
"""

from typing import AsyncGenerator

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncEngine, async_sessionmaker

from core.database import create_engine_for, create_session_factory
from core.rate_limiter import RateLimiter, reset_rate_limiters
from models.base import Base
from orchestration.store import MetricsStore
from tests.factories import sqlite_url


@pytest.fixture(autouse=True)
def fresh_rate_limiters():
    """Shared limiters bind to the loop that first uses them"""
    reset_rate_limiters()
    yield
    reset_rate_limiters()


@pytest.fixture
def fast_limiter():
    """Rate limiter that never paces"""
    return RateLimiter(max_concurrent=10, min_delay_ms=0)


@pytest_asyncio.fixture(scope="function")
async def test_engine(tmp_path) -> AsyncGenerator[AsyncEngine, None]:
    """Create test database engine"""
    engine = create_engine_for(sqlite_url(tmp_path))

    # Create all tables
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    # Drop all tables after test
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest.fixture
def session_factory(test_engine) -> async_sessionmaker:
    return create_session_factory(test_engine)


@pytest.fixture
def store(session_factory) -> MetricsStore:
    return MetricsStore(session_factory)
