"""
Async database engine and session factory.

MetricsStore opens one session per operation from ``async_session_maker``.
Scripts and tests pointing at another database build their own pair with
``create_engine_for`` and ``create_session_factory``.
"""

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool
from core.config import settings
import logging

logger = logging.getLogger(__name__)


def create_engine_for(database_url: str) -> AsyncEngine:
    """Engine without connection pooling; every session gets its own connection"""
    return create_async_engine(
        database_url,
        echo=False,
        poolclass=NullPool,
    )


def create_session_factory(bind: AsyncEngine) -> async_sessionmaker:
    # Loaded rows stay readable after the session that produced them closes
    return async_sessionmaker(
        bind,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False
    )


engine = create_engine_for(settings.DATABASE_URL)
async_session_maker = create_session_factory(engine)
