"""
Provider registry.

An explicitly constructed catalog of provider instances. Entry points build
a fresh registry with ``build_registry(settings)``, which registers only the
providers whose credentials are configured, and pass it where needed.
"""

import asyncio
import logging
from typing import TYPE_CHECKING, Dict, Iterable, List, Optional

from core.config import Settings
from core.exceptions import DuplicateProviderError, ProviderNotFoundError
from providers.base import DataProvider

if TYPE_CHECKING:
    from orchestration.store import MetricsStore

logger = logging.getLogger(__name__)


class ProviderRegistry:
    """Catalog of providers keyed by id, kept in registration order"""

    def __init__(self):
        self._providers: Dict[str, DataProvider] = {}

    def register(self, provider: DataProvider) -> None:
        """
        Register a provider.

        Raises:
            DuplicateProviderError: A provider with the same id is registered
        """
        if provider.id in self._providers:
            raise DuplicateProviderError(
                f'Provider with ID "{provider.id}" is already registered',
                context={"provider_id": provider.id}
            )

        self._providers[provider.id] = provider
        logger.info(f"[Registry] Registered provider: {provider.name} ({provider.id})")

    def register_all(self, providers: Iterable[DataProvider]) -> None:
        for provider in providers:
            self.register(provider)

    def get(self, provider_id: str) -> Optional[DataProvider]:
        """The provider, or None when it is not registered"""
        return self._providers.get(provider_id)

    def get_or_raise(self, provider_id: str) -> DataProvider:
        """
        The provider with this id.

        Raises:
            ProviderNotFoundError: No provider is registered under the id
        """
        provider = self._providers.get(provider_id)
        if provider is None:
            raise ProviderNotFoundError(
                f'Provider "{provider_id}" not found in registry',
                context={"provider_id": provider_id, "registered": self.ids()}
            )
        return provider

    def get_all(self) -> List[DataProvider]:
        return list(self._providers.values())

    async def get_enabled(self, store: "MetricsStore") -> List[DataProvider]:
        """Registered providers whose persisted config is enabled"""
        configs = await store.list_provider_configs(enabled_only=True)
        enabled = [self._providers[c.provider_id] for c in configs if c.provider_id in self._providers]
        logger.debug(f"[Registry] {len(enabled)} of {self.count()} providers enabled")
        return enabled

    def has(self, provider_id: str) -> bool:
        return provider_id in self._providers

    def count(self) -> int:
        return len(self._providers)

    def ids(self) -> List[str]:
        return list(self._providers.keys())

    def unregister(self, provider_id: str) -> bool:
        """Remove a provider; False if it was not registered"""
        removed = self._providers.pop(provider_id, None)
        if removed is not None:
            logger.info(f"[Registry] Unregistered provider: {provider_id}")
        return removed is not None

    def clear(self) -> None:
        self._providers.clear()
        logger.info("[Registry] Cleared all providers")

    async def validate_all(self) -> Dict[str, bool]:
        """Validate every registered provider's configuration concurrently"""
        providers = self.get_all()
        outcomes = await asyncio.gather(
            *(provider.validate_config() for provider in providers),
            return_exceptions=True
        )

        results: Dict[str, bool] = {}
        for provider, outcome in zip(providers, outcomes):
            if isinstance(outcome, BaseException):
                logger.error(f"[Registry] Validation failed for {provider.id}: {outcome}")
                results[provider.id] = False
            else:
                results[provider.id] = bool(outcome)
        return results

    def __len__(self) -> int:
        return len(self._providers)

    def __contains__(self, provider_id: object) -> bool:
        return provider_id in self._providers


def build_registry(config: Settings) -> ProviderRegistry:
    """
    Build a registry holding every provider whose credentials are configured.

    Providers whose configuration fails validation are logged and left out.
    """
    # Imported here so the registry module stays free of vendor dependencies
    from providers.attio import AttioProvider
    from providers.ga4 import GA4Provider
    from providers.notion import NotionProvider

    registry = ProviderRegistry()
    provider_kwargs = {
        "timeout_seconds": config.PROVIDER_TIMEOUT_SECONDS,
        "max_retries": config.MAX_RETRIES,
        "retry_base_delay": config.RETRY_BASE_DELAY_SECONDS,
        "retry_multiplier": config.RETRY_MULTIPLIER,
    }

    candidates = []
    if config.NOTION_API_KEY and config.NOTION_DATABASE_ID:
        candidates.append(("notion", lambda: NotionProvider(
            {"api_key": config.NOTION_API_KEY, "database_id": config.NOTION_DATABASE_ID},
            **provider_kwargs
        )))
    if config.ATTIO_API_KEY:
        candidates.append(("attio", lambda: AttioProvider(
            {"api_key": config.ATTIO_API_KEY, "object_slug": config.ATTIO_OBJECT_SLUG},
            **provider_kwargs
        )))
    if config.GA4_PROPERTY_ID and config.GA4_SERVICE_ACCOUNT_KEY:
        candidates.append(("ga4", lambda: GA4Provider(
            {"property_id": config.GA4_PROPERTY_ID, "service_account_key": config.GA4_SERVICE_ACCOUNT_KEY},
            **provider_kwargs
        )))

    for provider_id, factory in candidates:
        try:
            registry.register(factory())
        except ValueError as e:
            # pydantic ValidationError and google-auth key errors are ValueErrors
            logger.error(f"[Registry] Skipping {provider_id}: invalid configuration: {e}")

    logger.info(f"[Registry] Built registry with {registry.count()} provider(s): {registry.ids()}")
    return registry
