"""
Notion manual-metrics database configuration and response schemas
"""

import enum
from datetime import datetime
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field

from schemas.metrics import MetricType


class NotionConfig(BaseModel):
    """Notion provider configuration"""
    api_key: str = Field(..., min_length=1, description="Notion API key is required")
    database_id: str = Field(..., min_length=1, description="Notion database ID is required")


class NotionPage(BaseModel):
    """
    One database row.

    Property values keep Notion's own shape
    ({"type": "number", "number": 12}, {"type": "title", "title": [...]}, ...).
    """
    model_config = ConfigDict(extra="allow")

    id: str
    created_time: datetime
    last_edited_time: Optional[datetime] = None
    properties: Dict[str, Dict[str, Any]] = Field(default_factory=dict)


class NotionQueryResponse(BaseModel):
    """Envelope of ``POST /v1/databases/{id}/query``"""
    model_config = ConfigDict(extra="allow")

    results: List[Dict[str, Any]]
    has_more: bool = False
    next_cursor: Optional[str] = None


class RowLayout(str, enum.Enum):
    """How a database row encodes its metrics"""
    MULTI_METRIC = "multi_metric"    # fixed LinkedIn columns, several metrics per row
    SINGLE_METRIC = "single_metric"  # generic name/value/type row


class NotionMetric(BaseModel):
    """Metric parsed from a database row"""
    name: str
    value: Union[int, float, str]
    type: MetricType = "count"
    category: Optional[str] = None
    notes: Optional[str] = None
    date: datetime
