"""
Pydantic schemas for normalized provider metrics with validation
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from core.clock import to_naive_utc

MetricType = Literal["currency", "count", "percentage", "duration", "text"]
ChangeDirection = Literal["up", "down", "neutral"]
FetchResultStatus = Literal["success", "failure", "partial"]

METRIC_TYPES = ("currency", "count", "percentage", "duration", "text")

# Changes within +/- this band count as flat
CHANGE_THRESHOLD = 0.1


def get_change_direction(change: float) -> ChangeDirection:
    """Trend direction for a signed period-over-period change"""
    if change > CHANGE_THRESHOLD:
        return "up"
    if change < -CHANGE_THRESHOLD:
        return "down"
    return "neutral"


class MetricValue(BaseModel):
    """
    One named measurement.

    Ensures:
    - type is one of the known metric types
    - change_direction agrees with the sign of change (derived when omitted)
    """

    value: Union[int, float, str]
    type: MetricType
    label: str = Field(..., min_length=1)
    change: Optional[float] = None
    change_direction: Optional[ChangeDirection] = None
    unit: Optional[str] = None

    @model_validator(mode="after")
    def check_change_direction(self):
        """Derive or verify the trend direction from change"""
        if self.change is None:
            return self
        expected = get_change_direction(self.change)
        if self.change_direction is None:
            self.change_direction = expected
        elif self.change_direction != expected:
            raise ValueError(
                f"change_direction '{self.change_direction}' contradicts change {self.change}"
            )
        return self


class ProviderMetrics(BaseModel):
    """
    A normalized snapshot produced by a provider.

    metadata is passed through to storage untouched.
    """

    provider_id: str = Field(..., min_length=1)
    timestamp: datetime
    metrics: Dict[str, MetricValue] = Field(default_factory=dict)
    metadata: Dict[str, Any] = Field(default_factory=dict)

    @field_validator("timestamp")
    @classmethod
    def normalize_timestamp(cls, v: datetime) -> datetime:
        """Store timestamps as naive UTC"""
        return to_naive_utc(v)

    def metrics_as_json(self) -> Dict[str, Dict[str, Any]]:
        """Metrics in the JSON shape persisted on MetricsSnapshot"""
        return {key: metric.model_dump(exclude_none=True) for key, metric in self.metrics.items()}

    @property
    def records_count(self) -> int:
        return len(self.metrics)


@dataclass
class FetchResult:
    """Per-provider outcome of one orchestration pass (never persisted)"""

    provider_id: str
    status: FetchResultStatus
    data: Optional[ProviderMetrics] = None
    error: Optional[BaseException] = None
    duration_ms: Optional[int] = None

    @property
    def error_message(self) -> Optional[str]:
        if self.error is None:
            return None
        return str(self.error) or type(self.error).__name__


class ProviderConfigInput(BaseModel):
    """Schema for creating or updating a persisted provider config"""

    model_config = ConfigDict(use_enum_values=True)

    provider_id: str = Field(..., min_length=1, max_length=100)
    name: str = Field(..., min_length=1, max_length=200)
    is_enabled: bool = True
    status: Literal["ACTIVE", "INACTIVE", "MAINTENANCE", "ERROR"] = "INACTIVE"
    fetch_interval_minutes: int = Field(..., gt=0)
    api_credentials: Optional[Dict[str, Any]] = None
    config: Optional[Dict[str, Any]] = None
