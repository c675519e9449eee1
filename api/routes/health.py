"""
Health check endpoint with database and provider freshness status
"""

import logging

from fastapi import APIRouter, Depends, Request
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from api.dependencies import get_db, get_registry, get_store
from orchestration.queries import get_latest_metrics
from orchestration.store import MetricsStore
from providers.registry import ProviderRegistry
from schemas.api import HealthCheckResponse

logger = logging.getLogger(__name__)
router = APIRouter(tags=["Health"])


@router.get("/health", response_model=HealthCheckResponse)
async def health_check(
    request: Request,
    db: AsyncSession = Depends(get_db),
    store: MetricsStore = Depends(get_store),
    registry: ProviderRegistry = Depends(get_registry),
):
    """
    Health check endpoint.

    Returns:
    - Database connectivity status
    - Registered providers
    - Providers whose data is stale
    """
    request_id = getattr(request.state, "request_id", "-")

    # Check database connectivity
    db_connected = False
    try:
        await db.execute(text("SELECT 1"))
        db_connected = True
    except Exception as e:
        logger.error(f"[{request_id}] Database connection failed: {str(e)}")

    stale_providers = []
    total_providers = 0
    if db_connected:
        try:
            dashboard = await get_latest_metrics(store)
            total_providers = len(dashboard.providers)
            stale_providers = dashboard.staleness.stale_providers
        except Exception as e:
            logger.error(f"[{request_id}] Failed to read provider freshness: {str(e)}")

    # Status is derived by the HealthCheckResponse validator
    return HealthCheckResponse(
        database_connected=db_connected,
        registered_providers=registry.ids(),
        total_providers=total_providers,
        stale_providers=stale_providers,
    )
