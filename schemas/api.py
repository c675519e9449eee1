"""
Pydantic schemas for API and action request/response models
"""

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, model_validator

from core.clock import utcnow
from models.base import FetchStatus
from schemas.dashboard import DashboardMetrics, DashboardStats
from schemas.metrics import FetchResult, FetchResultStatus


# ============================================================================
# Action Schemas
# ============================================================================

class ProviderResult(BaseModel):
    """Per-provider outcome reported by an action"""
    provider_id: str
    status: FetchResultStatus
    error: Optional[str] = None

    @classmethod
    def from_fetch_result(cls, result: FetchResult) -> "ProviderResult":
        return cls(provider_id=result.provider_id, status=result.status, error=result.error_message)


class ActionResponse(BaseModel):
    """Outcome of a caller-facing action: success flag, message and per-provider results"""
    success: bool
    message: Optional[str] = None
    error: Optional[str] = None
    results: List[ProviderResult] = Field(default_factory=list)
    data: Optional[Dict[str, Any]] = None

    class Config:
        json_schema_extra = {
            "example": {
                "success": True,
                "message": "Successfully fetched 2/3 providers",
                "results": [
                    {"provider_id": "notion", "status": "success"},
                    {"provider_id": "attio", "status": "success"},
                    {"provider_id": "ga4", "status": "failure", "error": "[ga4] Max retries exceeded: ..."}
                ]
            }
        }


# ============================================================================
# Health Check Schemas
# ============================================================================

class HealthCheckResponse(BaseModel):
    """Health check response model"""
    status: str = Field("healthy", description="Overall system status: healthy, degraded, unhealthy")
    timestamp: datetime = Field(default_factory=utcnow)
    database_connected: bool
    registered_providers: List[str] = Field(default_factory=list)
    total_providers: int = 0
    stale_providers: List[str] = Field(default_factory=list)

    @model_validator(mode="after")
    def determine_status(self):
        """Determine overall health status"""
        if not self.database_connected:
            self.status = "unhealthy"
        elif self.total_providers and len(self.stale_providers) >= self.total_providers:
            self.status = "degraded"
        else:
            self.status = "healthy"
        return self


# ============================================================================
# Metrics Schemas
# ============================================================================

class MetricsResponse(BaseModel):
    """Latest dashboard metrics with summary statistics"""
    dashboard: DashboardMetrics
    stats: DashboardStats


class FetchLogResponse(BaseModel):
    """One fetch attempt"""
    id: int
    provider_id: str
    status: FetchStatus
    started_at: datetime
    completed_at: Optional[datetime] = None
    duration_ms: Optional[int] = None
    records_fetched: Optional[int] = None
    error_message: Optional[str] = None

    class Config:
        from_attributes = True
        use_enum_values = True


# ============================================================================
# Error Response Schema
# ============================================================================

class ErrorResponse(BaseModel):
    """Standard error response"""
    error: str
    detail: Optional[str] = None
    timestamp: datetime = Field(default_factory=utcnow)

    class Config:
        json_schema_extra = {
            "example": {
                "error": "Provider not found",
                "detail": 'Provider "hubspot" not found in registry',
                "timestamp": "2024-01-15T10:30:00"
            }
        }
