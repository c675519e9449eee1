"""
Metric providers.

Each provider adapts one external source to the common ProviderMetrics
model:

Modules:
    base: DataProvider protocol and shared transform helpers
    http: httpx client and vendor status-code mapping
    attio: CRM pipeline (Attio records API)
    ga4: Web analytics (Google Analytics 4 Data API)
    notion: Manually maintained metrics (Notion database)
    registry: ProviderRegistry and build_registry()

Usage:
    from core.config import settings
    from providers.registry import build_registry

    registry = build_registry(settings)
    for provider in registry.get_all():
        metrics = await provider.fetch()
"""

from providers.base import DataProvider, MultiPeriodProvider
from providers.registry import ProviderRegistry, build_registry

__all__ = [
    "DataProvider",
    "MultiPeriodProvider",
    "ProviderRegistry",
    "build_registry",
]
