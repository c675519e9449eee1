"""
Metrics read endpoints: latest dashboard data, history, trends and fetch logs
"""

import logging
from typing import List

from fastapi import APIRouter, Depends, HTTPException, Path, Query, Request

from api.dependencies import get_store
from orchestration import queries
from orchestration.store import MetricsStore
from schemas.api import FetchLogResponse, MetricsResponse
from schemas.dashboard import MetricTrend, SnapshotPoint

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api", tags=["Metrics"])


@router.get("/metrics", response_model=MetricsResponse)
async def get_metrics(request: Request, store: MetricsStore = Depends(get_store)):
    """
    Latest metrics for every enabled provider.

    Includes staleness per provider and summary statistics.
    """
    request_id = getattr(request.state, "request_id", "-")
    logger.info(f"[{request_id}] GET /api/metrics")

    dashboard = await queries.get_latest_metrics(store)
    stats = await queries.get_dashboard_stats(store)
    return MetricsResponse(dashboard=dashboard, stats=stats)


@router.get("/metrics/{provider_id}/history", response_model=List[SnapshotPoint])
async def get_metric_history(
    request: Request,
    provider_id: str = Path(..., min_length=1),
    days: int = Query(7, ge=1, le=365, description="Number of days of history"),
    store: MetricsStore = Depends(get_store),
):
    """Snapshots for one provider over the last ``days`` days, oldest first"""
    request_id = getattr(request.state, "request_id", "-")
    logger.info(f"[{request_id}] GET /api/metrics/{provider_id}/history - days={days}")

    return await queries.get_provider_history(store, provider_id, days=days)


@router.get("/metrics/{provider_id}/trend/{metric_key}", response_model=MetricTrend)
async def get_metric_trend(
    provider_id: str,
    metric_key: str,
    store: MetricsStore = Depends(get_store),
):
    """Latest value of one metric compared with the previous snapshot"""
    trend = await queries.get_metric_trend(store, provider_id, metric_key)
    if trend is None:
        raise HTTPException(
            status_code=404,
            detail=f'Metric "{metric_key}" not found for provider "{provider_id}"'
        )
    return trend


@router.get("/providers/{provider_id}/logs", response_model=List[FetchLogResponse])
async def get_fetch_logs(
    provider_id: str,
    limit: int = Query(10, ge=1, le=100, description="Number of logs to return"),
    store: MetricsStore = Depends(get_store),
):
    """Most recent fetch attempts for a provider, newest first"""
    logs = await queries.get_provider_fetch_logs(store, provider_id, limit=limit)
    return [FetchLogResponse.model_validate(log) for log in logs]
