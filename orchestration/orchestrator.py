"""
Fetch orchestrator.

Runs provider fetches concurrently, records an audit log per attempt,
persists snapshots idempotently and decides which providers are stale.
"""

import asyncio
import logging
import time
from datetime import datetime
from typing import Callable, List, Sequence

from core.clock import utcnow
from core.exceptions import ConfigNotFoundError, FetchError
from orchestration.store import MetricsStore
from providers.base import DataProvider, supports_multiple
from schemas.metrics import FetchResult, ProviderMetrics

logger = logging.getLogger(__name__)


def _elapsed_ms(started: float) -> int:
    return int((time.monotonic() - started) * 1000)


def _error_message(error: BaseException) -> str:
    return str(error) or type(error).__name__


class FetchOrchestrator:
    """
    Coordinates fetches across providers.

    Responsibilities:
    - Fan out fetches with per-provider failure isolation
    - Open and close one FetchLog per attempt
    - Upsert snapshots keyed by (provider_id, snapshot_time)
    - Advance provider freshness on success only

    Args:
        store: Persistence boundary
        use_fetch_multiple: Call fetch_multiple() on providers that support it
            (history backfill); routine polls use fetch()
        clock: Source of "now" (naive UTC)
    """

    def __init__(
        self,
        store: MetricsStore,
        use_fetch_multiple: bool = False,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.store = store
        self.use_fetch_multiple = use_fetch_multiple
        self._clock = clock

    async def fetch_all(self, providers: Sequence[DataProvider]) -> List[FetchResult]:
        """
        Fetch every provider concurrently.

        One provider failing never cancels or affects the others.

        Returns:
            One FetchResult per provider, in input order
        """
        logger.info(f"[Orchestrator] Starting parallel fetch for {len(providers)} providers")
        started = time.monotonic()

        outcomes = await asyncio.gather(
            *(self._timed_fetch(provider) for provider in providers),
            return_exceptions=True
        )

        results = []
        for provider, outcome in zip(providers, outcomes):
            if isinstance(outcome, FetchResult):
                results.append(outcome)
            else:
                results.append(FetchResult(provider_id=provider.id, status="failure", error=outcome))

        succeeded = sum(1 for r in results if r.status == "success")
        logger.info(
            f"[Orchestrator] Completed all fetches in {_elapsed_ms(started)}ms: "
            f"{succeeded}/{len(results)} succeeded"
        )
        return results

    async def _timed_fetch(self, provider: DataProvider) -> FetchResult:
        started = time.monotonic()
        try:
            data = await self.fetch_provider(provider)
        except Exception as e:
            return FetchResult(
                provider_id=provider.id,
                status="failure",
                error=e,
                duration_ms=_elapsed_ms(started),
            )
        return FetchResult(
            provider_id=provider.id,
            status="success",
            data=data,
            duration_ms=_elapsed_ms(started),
        )

    async def fetch_provider(self, provider: DataProvider) -> ProviderMetrics:
        """
        Fetch, persist and log one provider.

        In backfill mode, providers with fetch_multiple() have every returned
        period saved and the most recent one is returned.

        Raises:
            Whatever the provider or store raised, after the FetchLog is
            marked FAILURE. Freshness is left untouched on failure.
        """
        log_id = await self.store.start_fetch_log(provider.id, self._clock())
        started = time.monotonic()

        try:
            logger.info(f"[Orchestrator] Fetching from {provider.name}...")

            if self.use_fetch_multiple and supports_multiple(provider):
                snapshots = await provider.fetch_multiple()
                if not snapshots:
                    raise FetchError(
                        "No data returned from provider",
                        context={"provider_id": provider.id}
                    )

                logger.info(f"[Orchestrator] Fetched {len(snapshots)} snapshots from {provider.name}")

                records_fetched = 0
                for snapshot in snapshots:
                    records_fetched += await self.store.upsert_snapshot(snapshot)
                latest = max(snapshots, key=lambda s: s.timestamp)
            else:
                latest = await provider.fetch()
                records_fetched = await self.store.upsert_snapshot(latest)

            await self._advance_freshness(provider.id)

            duration_ms = _elapsed_ms(started)
            await self.store.complete_fetch_log(log_id, self._clock(), duration_ms, records_fetched)

        except Exception as e:
            duration_ms = _elapsed_ms(started)
            logger.error(f"[Orchestrator] {provider.name} fetch failed after {duration_ms}ms: {e}")
            try:
                await self.store.fail_fetch_log(log_id, self._clock(), duration_ms, _error_message(e))
            except Exception as log_error:
                logger.error(f"[Orchestrator] Could not record failure for {provider.id}: {log_error}")
            raise

        logger.info(f"[Orchestrator] {provider.name} fetched successfully in {duration_ms}ms")
        return latest

    async def _advance_freshness(self, provider_id: str) -> None:
        try:
            await self.store.mark_provider_fetched(provider_id, self._clock())
        except ConfigNotFoundError:
            logger.warning(f"[Orchestrator] No config for {provider_id}; fetch time not recorded")

    async def should_refresh(self, provider_id: str) -> bool:
        """
        Whether a provider's data is stale.

        - no config: True (fetch to create data)
        - disabled: False
        - never fetched: True
        - otherwise: minutes since last fetch >= fetch interval
        """
        config = await self.store.get_provider_config(provider_id)

        if config is None:
            logger.warning(f"[Orchestrator] Provider config not found: {provider_id}")
            return True

        if not config.is_enabled:
            return False

        if config.last_fetch_at is None:
            return True

        minutes_since_last_fetch = (self._clock() - config.last_fetch_at).total_seconds() / 60
        return minutes_since_last_fetch >= config.fetch_interval_minutes

    async def get_providers_to_refresh(self, providers: Sequence[DataProvider]) -> List[DataProvider]:
        """Providers that are due, in input order"""
        to_refresh = []
        for provider in providers:
            if await self.should_refresh(provider.id):
                to_refresh.append(provider)
        return to_refresh

    async def fetch_stale(self, providers: Sequence[DataProvider]) -> List[FetchResult]:
        """Fetch only the stale providers; nothing is written when none are stale"""
        providers_to_fetch = await self.get_providers_to_refresh(providers)

        if not providers_to_fetch:
            logger.info("[Orchestrator] No providers need refreshing")
            return []

        logger.info(
            f"[Orchestrator] {len(providers_to_fetch)} provider(s) need refreshing: "
            f"{', '.join(p.name for p in providers_to_fetch)}"
        )
        return await self.fetch_all(providers_to_fetch)
