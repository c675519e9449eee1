"""
Pydantic schemas for validation and serialization.

Schemas:
    metrics: MetricValue, ProviderMetrics and FetchResult (the normalized model)
    attio, ga4, notion: Vendor configuration and raw response shapes
    dashboard: Read models returned by the dashboard queries
    api: Action and HTTP response models

Features:
    - Vendor responses are validated at the boundary, so transforms work on
      typed objects instead of untyped dicts
    - MetricValue enforces that change_direction agrees with change

Usage:
    from schemas.metrics import MetricValue, ProviderMetrics

Example:
    metric = MetricValue(value=120, type="count", label="Users Today", change=20.0)
    assert metric.change_direction == "up"
"""

from schemas.metrics import FetchResult, MetricValue, ProviderMetrics

__all__ = [
    "MetricValue",
    "ProviderMetrics",
    "FetchResult",
]
