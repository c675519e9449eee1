"""
Attio CRM configuration and raw response schemas
"""

import enum
from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class AttioConfig(BaseModel):
    """Attio API configuration"""
    api_key: str = Field(..., min_length=1, description="Attio API key is required")
    object_slug: str = Field(default="deals", min_length=1)  # e.g. "deals", "opportunities"


class PipelineStage(str, enum.Enum):
    """Pipeline stages in order"""
    CHASING = "Chasing"
    SCHEDULING = "Scheduling"
    INTRO_CALL = "Intro call"
    DEMO = "Demo"
    EVALUATION = "Evaluation"
    SIGNING = "Signing"
    PILOT = "Pilot"
    WON = "Won"
    Q1_FOLLOWUP = "26Q1 Follow-up"


PIPELINE_ORDER: List[PipelineStage] = list(PipelineStage)


class AttioRecordId(BaseModel):
    model_config = ConfigDict(extra="allow")

    workspace_id: Optional[str] = None
    object_id: Optional[str] = None
    record_id: str


class AttioAttributeValue(BaseModel):
    """
    One historical value of a record attribute.

    Select and status attributes nest their label under ``option`` or
    ``status`` instead of ``value``; currency attributes use ``currency_value``.
    """
    model_config = ConfigDict(extra="allow")

    active_from: Optional[str] = None
    active_until: Optional[str] = None
    attribute_type: Optional[str] = None
    value: Any = None
    option: Optional[Dict[str, Any]] = None
    status: Optional[Dict[str, Any]] = None

    def resolved(self) -> Any:
        """The attribute's plain value, unwrapping select/status titles"""
        if self.value is not None:
            return self.value
        extra = self.model_extra or {}
        if extra.get("currency_value") is not None:
            return extra["currency_value"]
        for nested in (self.status, self.option):
            if nested and nested.get("title") is not None:
                return nested["title"]
        return None


class AttioRecord(BaseModel):
    """A single record from the records query endpoint"""
    model_config = ConfigDict(extra="allow")

    id: AttioRecordId
    created_at: str
    web_url: str = ""
    values: Dict[str, List[AttioAttributeValue]] = Field(default_factory=dict)


class AttioQueryResponse(BaseModel):
    """
    Envelope of ``POST /v2/objects/{object}/records/query``.

    Records stay untyped here so one malformed record can be skipped
    without rejecting the whole response.
    """
    model_config = ConfigDict(extra="allow")

    data: List[Dict[str, Any]]


class AttioDeal(BaseModel):
    """Deal parsed from an Attio record"""
    record_id: str
    company_name: str
    stage: PipelineStage
    deal_value: Optional[float] = None
    created_at: datetime
    stage_changed_at: datetime
    days_in_stage: int
    web_url: str = ""
