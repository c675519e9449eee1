"""
Read models for the dashboard queries
"""

from datetime import date, datetime
from typing import Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field

from schemas.metrics import ChangeDirection, MetricValue

TrendDirection = Literal["improving", "declining", "stable"]


class ProviderDashboardData(BaseModel):
    """Latest metrics and freshness of one enabled provider"""
    provider_id: str
    name: str
    metrics: List[MetricValue] = Field(default_factory=list)
    last_fetched: Optional[datetime] = None
    is_stale: bool
    fetch_interval_minutes: int
    error: Optional[str] = None


class StalenessInfo(BaseModel):
    has_stale_data: bool
    stale_providers: List[str] = Field(default_factory=list)
    oldest_data_age: int = Field(0, description="Age of the oldest fetched data, in minutes")


class DashboardMetrics(BaseModel):
    providers: List[ProviderDashboardData]
    last_updated: datetime
    staleness: StalenessInfo


class ProviderStaleness(BaseModel):
    """Freshness of one provider; minutes_old is None when never fetched"""
    provider_id: str
    is_stale: bool
    minutes_old: Optional[int] = None


class MetricTrend(BaseModel):
    """Latest value of a metric compared with the previous snapshot"""
    metric_key: str
    label: str
    current_value: Union[int, float, str]
    previous_value: Optional[Union[int, float, str]] = None
    change: float = 0.0
    change_direction: ChangeDirection = "neutral"
    trend: TrendDirection = "stable"


class SnapshotPoint(BaseModel):
    """One point of a provider's metric history"""
    model_config = ConfigDict(from_attributes=True)

    snapshot_date: date
    snapshot_time: datetime
    metrics: Dict[str, Any]


class DashboardStats(BaseModel):
    total_snapshots: int
    total_logs: int
    active_providers: int
    last_fetch: Optional[datetime] = None
