"""
FastAPI dependencies
"""

from sqlalchemy.ext.asyncio import AsyncSession

from core.config import settings
from core.database import async_session_maker
from orchestration.store import MetricsStore
from providers.registry import ProviderRegistry, build_registry


async def get_db() -> AsyncSession:
    """Database session for the request"""
    async with async_session_maker() as session:
        yield session


def get_store() -> MetricsStore:
    return MetricsStore(async_session_maker)


def get_registry() -> ProviderRegistry:
    """Registry rebuilt per request from the configured credentials"""
    return build_registry(settings)
