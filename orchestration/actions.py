"""
Caller-facing actions.

Each action builds (or receives) a provider registry and a store, runs the
orchestrator and reduces the outcome to an ActionResponse. Actions never
raise; failures come back as ``success=False`` with an error message.

``backfill=True`` saves every period a provider returns from fetch_multiple()
instead of the current snapshot from fetch(); when omitted it follows
``settings.FETCH_HISTORY_ON_POLL``.
"""

import logging
from typing import List, Optional

from core.config import settings
from core.database import async_session_maker
from orchestration.orchestrator import FetchOrchestrator
from orchestration.store import MetricsStore
from providers.registry import ProviderRegistry, build_registry
from schemas.api import ActionResponse, ProviderResult
from schemas.metrics import FetchResult

logger = logging.getLogger(__name__)

NO_PROVIDERS_ERROR = "No providers configured"


def default_store() -> MetricsStore:
    return MetricsStore(async_session_maker)


def _summarize(results: List[FetchResult]) -> List[ProviderResult]:
    return [ProviderResult.from_fetch_result(r) for r in results]


def _error_text(error: BaseException) -> str:
    return str(error) or "Unknown error"


def _orchestrator(store: Optional[MetricsStore], backfill: Optional[bool]) -> FetchOrchestrator:
    if backfill is None:
        backfill = settings.FETCH_HISTORY_ON_POLL
    return FetchOrchestrator(store or default_store(), use_fetch_multiple=backfill)


async def fetch_all_metrics(
    registry: Optional[ProviderRegistry] = None,
    store: Optional[MetricsStore] = None,
    backfill: Optional[bool] = None,
) -> ActionResponse:
    """Fetch metrics from every configured provider"""
    try:
        registry = registry if registry is not None else build_registry(settings)
        providers = registry.get_all()

        if not providers:
            return ActionResponse(success=False, error=NO_PROVIDERS_ERROR)

        orchestrator = _orchestrator(store, backfill)
        results = await orchestrator.fetch_all(providers)

        success_count = sum(1 for r in results if r.status == "success")
        return ActionResponse(
            success=success_count > 0,
            message=f"Successfully fetched {success_count}/{len(providers)} providers",
            results=_summarize(results),
        )
    except Exception as e:
        logger.exception("[Action] fetch_all_metrics failed")
        return ActionResponse(success=False, error=_error_text(e))


async def fetch_provider_metrics(
    provider_id: str,
    registry: Optional[ProviderRegistry] = None,
    store: Optional[MetricsStore] = None,
    backfill: Optional[bool] = None,
) -> ActionResponse:
    """Fetch metrics from one provider"""
    try:
        registry = registry if registry is not None else build_registry(settings)
        provider = registry.get(provider_id)

        if provider is None:
            return ActionResponse(
                success=False,
                error=f'Provider "{provider_id}" not found or not configured',
            )

        orchestrator = _orchestrator(store, backfill)
        result = await orchestrator.fetch_provider(provider)

        return ActionResponse(
            success=True,
            message=f"Successfully fetched metrics from {provider.name}",
            results=[ProviderResult(provider_id=provider_id, status="success")],
            data={
                "provider_id": result.provider_id,
                "timestamp": result.timestamp.isoformat(),
                "metrics_count": len(result.metrics),
            },
        )
    except Exception as e:
        logger.error(f"[Action] fetch_provider_metrics({provider_id}) failed: {e}")
        return ActionResponse(
            success=False,
            error=_error_text(e),
            results=[ProviderResult(provider_id=provider_id, status="failure", error=_error_text(e))],
        )


async def fetch_stale_metrics(
    registry: Optional[ProviderRegistry] = None,
    store: Optional[MetricsStore] = None,
    backfill: Optional[bool] = None,
) -> ActionResponse:
    """Fetch only the providers whose data is stale"""
    try:
        registry = registry if registry is not None else build_registry(settings)
        providers = registry.get_all()

        if not providers:
            return ActionResponse(success=False, error=NO_PROVIDERS_ERROR)

        orchestrator = _orchestrator(store, backfill)
        results = await orchestrator.fetch_stale(providers)

        if not results:
            return ActionResponse(success=True, message="All providers are up to date")

        success_count = sum(1 for r in results if r.status == "success")
        return ActionResponse(
            success=success_count > 0,
            message=f"Refreshed {success_count}/{len(results)} stale providers",
            results=_summarize(results),
        )
    except Exception as e:
        logger.exception("[Action] fetch_stale_metrics failed")
        return ActionResponse(success=False, error=_error_text(e))


async def validate_provider(
    provider_id: str,
    registry: Optional[ProviderRegistry] = None,
) -> ActionResponse:
    """Check that a provider's credentials work"""
    try:
        registry = registry if registry is not None else build_registry(settings)
        provider = registry.get(provider_id)

        if provider is None:
            return ActionResponse(success=False, error=f'Provider "{provider_id}" not found')

        is_valid = await provider.validate_config()
        state = "valid" if is_valid else "invalid"
        return ActionResponse(success=is_valid, message=f"{provider.name} configuration is {state}")
    except Exception as e:
        logger.error(f"[Action] validate_provider({provider_id}) failed: {e}")
        return ActionResponse(success=False, error=_error_text(e))
