import logging

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from core.config import settings
from orchestration.actions import fetch_stale_metrics
from orchestration.store import MetricsStore
from providers.registry import build_registry

logger = logging.getLogger(__name__)


class MetricsScheduler:
    """Periodically refreshes stale providers"""

    def __init__(self, store: MetricsStore, interval_minutes: int = settings.SCHEDULER_INTERVAL_MINUTES):
        self.scheduler = AsyncIOScheduler()
        self.store = store
        self.interval_minutes = interval_minutes

    async def run_fetch_job(self):
        """Job to refresh stale providers"""
        logger.info("Scheduler: Starting stale metrics refresh")
        # Fresh registry per run so credential changes are picked up
        response = await fetch_stale_metrics(registry=build_registry(settings), store=self.store)
        if response.success:
            logger.info(f"Scheduler: {response.message}")
        else:
            logger.error(f"Scheduler: Refresh failed - {response.error or response.message}")

    def start(self):
        """Start the scheduler"""
        self.scheduler.add_job(
            self.run_fetch_job,
            trigger=IntervalTrigger(minutes=self.interval_minutes),
            id="fetch_stale_metrics",
            replace_existing=True,
            max_instances=1,
            coalesce=True
        )
        self.scheduler.start()
        logger.info(f"Metrics scheduler started (every {self.interval_minutes} minutes)")

    def stop(self):
        if self.scheduler.running:
            self.scheduler.shutdown()
        logger.info("Metrics scheduler stopped")
