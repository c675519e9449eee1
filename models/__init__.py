"""
SQLAlchemy ORM models for database tables.

This package defines the persisted side of the metrics pipeline:

Models:
    base: Base declarative class and shared enums (ProviderStatus, FetchStatus)
    provider_config: Per-provider configuration and schedule state
    metrics_snapshot: Idempotent time-series snapshots of normalized metrics
    fetch_log: One audit row per fetch attempt

Usage:
    from models import ProviderConfig, MetricsSnapshot, FetchLog
    from models.base import ProviderStatus, FetchStatus

Relationships:
    - ProviderConfig.provider_id ↔ MetricsSnapshot.provider_id (logical, no FK:
      snapshots may be written for providers that have no config yet)
    - ProviderConfig.provider_id ↔ FetchLog.provider_id (logical)
"""

from models.base import Base, ProviderStatus, FetchStatus
from models.provider_config import ProviderConfig
from models.metrics_snapshot import MetricsSnapshot
from models.fetch_log import FetchLog

__all__ = [
    "Base",
    "ProviderStatus",
    "FetchStatus",
    "ProviderConfig",
    "MetricsSnapshot",
    "FetchLog",
]
