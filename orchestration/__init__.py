"""
Fetch orchestration for the metrics hub.

Modules:
    store: MetricsStore, the persistence boundary (configs, snapshots, logs)
    orchestrator: FetchOrchestrator, concurrent fetch with audit logging
        and staleness decisions
    queries: Dashboard reads (latest metrics, history, trends, stats)
    actions: Caller-facing async functions returning ActionResponse
    scheduler: APScheduler job refreshing stale providers

Usage:
    from core.database import async_session_maker
    from orchestration.orchestrator import FetchOrchestrator
    from orchestration.store import MetricsStore

    store = MetricsStore(async_session_maker)
    orchestrator = FetchOrchestrator(store)
    results = await orchestrator.fetch_stale(registry.get_all())
"""

from orchestration.orchestrator import FetchOrchestrator
from orchestration.store import MetricsStore

__all__ = [
    "MetricsStore",
    "FetchOrchestrator",
]
