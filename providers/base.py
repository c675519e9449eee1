"""
Provider capability contract and shared transform helpers.

A provider is any object exposing ``id``, ``name``, ``fetch_interval_minutes``,
``fetch()``, ``transform(raw)`` and ``validate_config()``. Providers that can
return many historical periods in one call also expose ``fetch_multiple()``.
Retry and timeout behaviour is composed from core.retry rather than inherited.
"""

import re
from typing import Any, List, Protocol, runtime_checkable

from schemas.metrics import ProviderMetrics, get_change_direction

__all__ = [
    "DataProvider",
    "MultiPeriodProvider",
    "supports_multiple",
    "calculate_change",
    "get_change_direction",
    "normalize_metric_key",
]

_NON_ALNUM_RE = re.compile(r"[^a-z0-9]+")


@runtime_checkable
class DataProvider(Protocol):
    """Base capability set every data provider implements"""

    id: str
    name: str
    fetch_interval_minutes: int

    async def fetch(self) -> ProviderMetrics:
        """
        Fetch the current snapshot from the provider's API.

        Raises:
            RetryExhaustedError: After the retry budget is spent
        """
        ...

    def transform(self, raw_data: Any) -> ProviderMetrics:
        """Map the provider's raw response to normalized metrics"""
        ...

    async def validate_config(self) -> bool:
        """Probe the API; True only if reachable and authorized. Never raises."""
        ...


@runtime_checkable
class MultiPeriodProvider(DataProvider, Protocol):
    """Provider that can also return one snapshot per historical period"""

    async def fetch_multiple(self) -> List[ProviderMetrics]:
        ...


def supports_multiple(provider: Any) -> bool:
    """Whether the provider exposes fetch_multiple()"""
    return callable(getattr(provider, "fetch_multiple", None))


def calculate_change(current: float, previous: float) -> float:
    """
    Percentage change between two periods, as percentage points.

    120 vs 100 gives 20.0. A zero previous value gives 0 rather than
    dividing by zero.
    """
    if previous == 0:
        return 0.0
    return (current - previous) / previous * 100


def normalize_metric_key(name: str) -> str:
    """
    Stable storage key for a metric label.

    "LinkedIn  Impressions!" -> "linkedin_impressions"
    """
    return _NON_ALNUM_RE.sub("_", name.lower()).strip("_")
