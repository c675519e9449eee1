"""
Fetch trigger endpoints wrapping the orchestration actions
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request

from api.dependencies import get_registry, get_store
from orchestration import actions
from orchestration.store import MetricsStore
from providers.registry import ProviderRegistry
from schemas.api import ActionResponse

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api", tags=["Fetch"])


@router.post("/fetch", response_model=ActionResponse)
async def fetch_all(
    request: Request,
    registry: ProviderRegistry = Depends(get_registry),
    store: MetricsStore = Depends(get_store),
    backfill: Optional[bool] = Query(None, description="Save every period from providers that return history"),
):
    """Fetch every configured provider now"""
    request_id = getattr(request.state, "request_id", "-")
    logger.info(f"[{request_id}] POST /api/fetch")
    return await actions.fetch_all_metrics(registry=registry, store=store, backfill=backfill)


@router.post("/fetch/stale", response_model=ActionResponse)
async def fetch_stale(
    request: Request,
    registry: ProviderRegistry = Depends(get_registry),
    store: MetricsStore = Depends(get_store),
    backfill: Optional[bool] = Query(None, description="Save every period from providers that return history"),
):
    """Fetch only providers whose data is stale"""
    request_id = getattr(request.state, "request_id", "-")
    logger.info(f"[{request_id}] POST /api/fetch/stale")
    return await actions.fetch_stale_metrics(registry=registry, store=store, backfill=backfill)


@router.post("/fetch/{provider_id}", response_model=ActionResponse)
async def fetch_provider(
    provider_id: str,
    request: Request,
    registry: ProviderRegistry = Depends(get_registry),
    store: MetricsStore = Depends(get_store),
    backfill: Optional[bool] = Query(None, description="Save every period from providers that return history"),
):
    """Fetch one provider now"""
    request_id = getattr(request.state, "request_id", "-")
    logger.info(f"[{request_id}] POST /api/fetch/{provider_id}")
    return await actions.fetch_provider_metrics(provider_id, registry=registry, store=store, backfill=backfill)


@router.post("/providers/{provider_id}/validate", response_model=ActionResponse)
async def validate_provider(
    provider_id: str,
    registry: ProviderRegistry = Depends(get_registry),
):
    """Probe a provider's API with its configured credentials"""
    return await actions.validate_provider(provider_id, registry=registry)
