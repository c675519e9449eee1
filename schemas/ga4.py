"""
Google Analytics 4 configuration and Data API response schemas
"""

import json
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class GA4Config(BaseModel):
    """GA4 property and service account credentials"""
    property_id: str = Field(..., min_length=1, description="GA4 property ID is required")
    service_account_key: str = Field(..., min_length=1, description="GA4 service account key (JSON) is required")

    @field_validator("service_account_key")
    @classmethod
    def must_be_json_object(cls, v: str) -> str:
        try:
            parsed = json.loads(v)
        except json.JSONDecodeError as e:
            raise ValueError(f"service_account_key is not valid JSON: {e}") from e
        if not isinstance(parsed, dict):
            raise ValueError("service_account_key must be a JSON object")
        return v

    @property
    def service_account_info(self) -> Dict[str, Any]:
        return json.loads(self.service_account_key)


class GA4Value(BaseModel):
    model_config = ConfigDict(extra="allow")

    value: Optional[str] = None


class GA4Row(BaseModel):
    model_config = ConfigDict(extra="allow", populate_by_name=True)

    dimension_values: List[GA4Value] = Field(default_factory=list, alias="dimensionValues")
    metric_values: List[GA4Value] = Field(default_factory=list, alias="metricValues")

    def dimension(self, index: int) -> Optional[str]:
        if index < len(self.dimension_values):
            return self.dimension_values[index].value
        return None

    def metric_int(self, index: int) -> int:
        """Metric value at index as int; missing or blank values count as 0"""
        if index >= len(self.metric_values):
            return 0
        raw = self.metric_values[index].value
        if raw in (None, ""):
            return 0
        return int(float(raw))


class GA4Report(BaseModel):
    """One RunReportResponse"""
    model_config = ConfigDict(extra="allow", populate_by_name=True)

    rows: List[GA4Row] = Field(default_factory=list)
    row_count: Optional[int] = Field(default=None, alias="rowCount")


class GA4BatchResponse(BaseModel):
    """BatchRunReportsResponse"""
    model_config = ConfigDict(extra="allow")

    reports: List[GA4Report] = Field(default_factory=list)


class GA4PeriodTraffic(BaseModel):
    users: int = 0
    sessions: int = 0


class GA4PeriodComparison(BaseModel):
    """Current vs previous traffic for one paired date range"""
    current: GA4PeriodTraffic
    previous: GA4PeriodTraffic
    users_change: float = 0.0
    sessions_change: float = 0.0
