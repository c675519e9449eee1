"""
Dashboard read queries: latest metrics with staleness, history, trends,
fetch logs and summary statistics.
"""

import asyncio
import logging
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, List, Optional

from pydantic import ValidationError

from core.clock import utcnow
from models import FetchLog
from orchestration.store import MetricsStore
from providers.base import calculate_change, get_change_direction
from schemas.dashboard import (
    DashboardMetrics,
    DashboardStats,
    MetricTrend,
    ProviderDashboardData,
    ProviderStaleness,
    SnapshotPoint,
    StalenessInfo,
)
from schemas.metrics import MetricValue

logger = logging.getLogger(__name__)

TREND_BY_DIRECTION = {"up": "improving", "down": "declining", "neutral": "stable"}


def minutes_since(then: datetime, now: datetime) -> float:
    return (now - then).total_seconds() / 60


def is_stale(last_fetch_at: Optional[datetime], fetch_interval_minutes: int, now: datetime) -> bool:
    """Stale once a full fetch interval has elapsed; never-fetched data is stale"""
    if last_fetch_at is None:
        return True
    return minutes_since(last_fetch_at, now) >= fetch_interval_minutes


def parse_stored_metrics(provider_id: str, raw: Optional[Dict[str, Any]]) -> List[MetricValue]:
    """Stored metrics JSON back into MetricValues, skipping unreadable entries"""
    metrics = []
    for key, value in (raw or {}).items():
        if not isinstance(value, dict):
            continue
        try:
            metrics.append(MetricValue.model_validate(value))
        except ValidationError as e:
            logger.warning(f"[{provider_id}] Skipping stored metric '{key}': {e.error_count()} error(s)")
    return metrics


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


async def get_latest_metrics(
    store: MetricsStore,
    clock: Callable[[], datetime] = utcnow,
) -> DashboardMetrics:
    """Latest snapshot and staleness of every enabled provider"""
    now = clock()
    configs = await store.list_provider_configs(enabled_only=True)

    providers: List[ProviderDashboardData] = []
    stale_providers: List[str] = []
    oldest_data_age = 0.0

    for config in configs:
        latest = await store.get_latest_snapshot(config.provider_id)

        if latest is None:
            # No data yet
            providers.append(ProviderDashboardData(
                provider_id=config.provider_id,
                name=config.name,
                last_fetched=config.last_fetch_at,
                is_stale=True,
                fetch_interval_minutes=config.fetch_interval_minutes,
            ))
            stale_providers.append(config.provider_id)
            continue

        last_fetched = config.last_fetch_at or latest.snapshot_time
        stale = is_stale(last_fetched, config.fetch_interval_minutes, now)
        if stale:
            stale_providers.append(config.provider_id)
        oldest_data_age = max(oldest_data_age, minutes_since(last_fetched, now))

        providers.append(ProviderDashboardData(
            provider_id=config.provider_id,
            name=config.name,
            metrics=parse_stored_metrics(config.provider_id, latest.metrics),
            last_fetched=last_fetched,
            is_stale=stale,
            fetch_interval_minutes=config.fetch_interval_minutes,
        ))

    return DashboardMetrics(
        providers=providers,
        last_updated=now,
        staleness=StalenessInfo(
            has_stale_data=bool(stale_providers),
            stale_providers=stale_providers,
            oldest_data_age=round(oldest_data_age),
        ),
    )


async def get_provider_history(
    store: MetricsStore,
    provider_id: str,
    days: int = 7,
    clock: Callable[[], datetime] = utcnow,
) -> List[SnapshotPoint]:
    """Snapshots from the last ``days`` calendar days, oldest first"""
    cutoff = clock() - timedelta(days=days)
    snapshots = await store.get_snapshots_since(provider_id, cutoff)
    return [SnapshotPoint.model_validate(s) for s in snapshots]


async def get_provider_staleness(
    store: MetricsStore,
    provider_id: str,
    clock: Callable[[], datetime] = utcnow,
) -> ProviderStaleness:
    config = await store.get_provider_config(provider_id)
    if config is None or config.last_fetch_at is None:
        return ProviderStaleness(provider_id=provider_id, is_stale=True)

    now = clock()
    return ProviderStaleness(
        provider_id=provider_id,
        is_stale=is_stale(config.last_fetch_at, config.fetch_interval_minutes, now),
        minutes_old=round(minutes_since(config.last_fetch_at, now)),
    )


async def get_metric_trend(store: MetricsStore, provider_id: str, metric_key: str) -> Optional[MetricTrend]:
    """
    Compare a metric's value in the latest snapshot with the one before it.

    With no earlier numeric value, the change carried by the metric itself
    (if any) is used. Returns None when the latest snapshot lacks the metric.
    """
    snapshots = await store.get_recent_snapshots(provider_id, limit=2)
    if not snapshots:
        return None

    current_raw = (snapshots[0].metrics or {}).get(metric_key)
    if not isinstance(current_raw, dict):
        return None

    try:
        current = MetricValue.model_validate(current_raw)
    except ValidationError as e:
        logger.warning(f"[{provider_id}] Unreadable metric '{metric_key}': {e.error_count()} error(s)")
        return None

    previous_value = None
    if len(snapshots) > 1:
        previous_raw = (snapshots[1].metrics or {}).get(metric_key)
        if isinstance(previous_raw, dict):
            previous_value = previous_raw.get("value")

    if _is_number(current.value) and _is_number(previous_value):
        change = calculate_change(current.value, previous_value)
    else:
        change = current.change or 0.0

    direction = get_change_direction(change)
    return MetricTrend(
        metric_key=metric_key,
        label=current.label,
        current_value=current.value,
        previous_value=previous_value,
        change=change,
        change_direction=direction,
        trend=TREND_BY_DIRECTION[direction],
    )


async def get_provider_fetch_logs(store: MetricsStore, provider_id: str, limit: int = 10) -> List[FetchLog]:
    return await store.get_fetch_logs(provider_id, limit=limit)


async def get_dashboard_stats(store: MetricsStore) -> DashboardStats:
    total_snapshots, total_logs, active_providers, last_fetch = await asyncio.gather(
        store.count_snapshots(),
        store.count_fetch_logs(),
        store.count_enabled_providers(),
        store.get_last_fetch_started_at(),
    )
    return DashboardStats(
        total_snapshots=total_snapshots,
        total_logs=total_logs,
        active_providers=active_providers,
        last_fetch=last_fetch,
    )
