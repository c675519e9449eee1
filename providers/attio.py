"""
Attio CRM provider.

Fetches deals from an Attio object and turns them into pipeline activity,
stage counts and pilot revenue metrics, passing per-deal details through
as metadata.
"""

import logging
import math
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, List, Optional, Union

import httpx
from pydantic import ValidationError

from core.clock import parse_iso_datetime, utcnow
from core.config import settings
from core.exceptions import MalformedRecordError
from core.rate_limiter import RateLimiter, get_rate_limiter
from core.retry import with_retry, with_timeout
from providers.http import build_client, parse_response, request_json
from schemas.attio import (
    AttioAttributeValue,
    AttioConfig,
    AttioDeal,
    AttioQueryResponse,
    AttioRecord,
    PipelineStage,
)
from schemas.metrics import MetricValue, ProviderMetrics

logger = logging.getLogger(__name__)

ATTIO_BASE_URL = "https://api.attio.com/v2"
QUERY_LIMIT = 500  # Max records per request

COMPANY_NAME_ATTRIBUTES = ("company_name", "name", "company")
STAGE_ATTRIBUTES = ("stage", "status")
DEAL_VALUE_ATTRIBUTES = ("deal_value", "value", "amount")


def extract_value(values: Dict[str, List[AttioAttributeValue]], attribute_slug: str) -> Any:
    """Most recent value of an attribute (first in the list), or None"""
    attribute_values = values.get(attribute_slug)
    if not attribute_values:
        return None
    return attribute_values[0].resolved()


def first_value(values: Dict[str, List[AttioAttributeValue]], slugs) -> Any:
    for slug in slugs:
        value = extract_value(values, slug)
        if value not in (None, ""):
            return value
    return None


def days_between(start: datetime, end: datetime) -> int:
    """Whole days from start to end, rounded down"""
    return math.floor((end - start).total_seconds() / 86400)


def parse_deal(record: Dict[str, Any], now: datetime) -> AttioDeal:
    """
    Parse one Attio record into a deal.

    Raises:
        MalformedRecordError: The record has no usable stage or bad structure
    """
    try:
        parsed = AttioRecord.model_validate(record)
        created_at = parse_iso_datetime(parsed.created_at)
    except (ValidationError, ValueError) as e:
        raw_id = record.get("id") if isinstance(record, dict) else None
        raise MalformedRecordError(
            "Failed to parse Attio record",
            context={"record_id": raw_id.get("record_id") if isinstance(raw_id, dict) else None},
            original_exception=e
        ) from e

    record_id = parsed.id.record_id
    values = parsed.values

    company_name = first_value(values, COMPANY_NAME_ATTRIBUTES) or "Unknown Company"

    stage_value = first_value(values, STAGE_ATTRIBUTES)
    if not stage_value:
        raise MalformedRecordError(f"No stage found for record {record_id}", context={"record_id": record_id})
    try:
        stage = PipelineStage(stage_value)
    except ValueError as e:
        raise MalformedRecordError(
            f"Unknown stage '{stage_value}' for record {record_id}",
            context={"record_id": record_id},
            original_exception=e
        ) from e

    deal_value = first_value(values, DEAL_VALUE_ATTRIBUTES)
    if isinstance(deal_value, bool) or not isinstance(deal_value, (int, float)):
        deal_value = None

    # Stage change time is when the current stage value became active
    stage_attribute = values.get("stage") or values.get("status") or []
    stage_changed_at = created_at
    if stage_attribute and stage_attribute[0].active_from:
        try:
            stage_changed_at = parse_iso_datetime(stage_attribute[0].active_from)
        except ValueError:
            logger.warning(f"[attio] Bad active_from on record {record_id}; using created_at")

    return AttioDeal(
        record_id=record_id,
        company_name=str(company_name),
        stage=stage,
        deal_value=deal_value,
        created_at=created_at,
        stage_changed_at=stage_changed_at,
        days_in_stage=days_between(stage_changed_at, now),
        web_url=parsed.web_url,
    )


class AttioProvider:
    """
    CRM pipeline provider backed by the Attio records API.

    Attributes:
        object_slug: Attio object holding deals (default: "deals")
        timeout_seconds: Bound on each API call; None disables it
        max_retries: Retries after the first failed attempt (default: 3)
    """

    id = "attio"
    name = "Attio CRM"
    fetch_interval_minutes = 30

    def __init__(
        self,
        config: Union[AttioConfig, Dict[str, Any]],
        *,
        rate_limiter: Optional[RateLimiter] = None,
        timeout_seconds: Optional[float] = settings.PROVIDER_TIMEOUT_SECONDS,
        max_retries: int = settings.MAX_RETRIES,
        retry_base_delay: float = settings.RETRY_BASE_DELAY_SECONDS,
        retry_multiplier: float = settings.RETRY_MULTIPLIER,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        validated = config if isinstance(config, AttioConfig) else AttioConfig.model_validate(config)

        self.api_key = validated.api_key
        self.object_slug = validated.object_slug
        self.rate_limiter = rate_limiter or get_rate_limiter(self.id)
        self.timeout_seconds = timeout_seconds
        self.max_retries = max_retries
        self.retry_base_delay = retry_base_delay
        self.retry_multiplier = retry_multiplier
        self._transport = transport
        self._clock = clock

        logger.info(f"[{self.id}] Initialized Attio provider")

    async def fetch(self) -> ProviderMetrics:
        """Fetch all deals and transform them into pipeline metrics"""
        async def attempt() -> ProviderMetrics:
            logger.info(f"[{self.id}] Fetching deals from Attio CRM")
            raw = await self.rate_limiter.execute(
                lambda: with_timeout(lambda: self._query_records(), self.timeout_seconds, self.id)
            )
            return self.transform(raw)

        return await with_retry(
            attempt,
            max_retries=self.max_retries,
            base_delay=self.retry_base_delay,
            multiplier=self.retry_multiplier,
            context=self.id,
        )

    async def _query_records(
        self,
        filter: Optional[Dict[str, Any]] = None,
        limit: int = QUERY_LIMIT,
    ) -> AttioQueryResponse:
        body: Dict[str, Any] = {"limit": limit, "offset": 0}
        if filter:
            body["filter"] = filter

        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }
        async with build_client(ATTIO_BASE_URL, headers, transport=self._transport) as client:
            payload = await request_json(
                client, "POST", f"/objects/{self.object_slug}/records/query", self.id, json=body
            )
        return parse_response(AttioQueryResponse, payload, self.id)

    def transform(self, raw_data: Union[AttioQueryResponse, Dict[str, Any]]) -> ProviderMetrics:
        """Transform Attio deals into standardized metrics"""
        if not isinstance(raw_data, AttioQueryResponse):
            raw_data = parse_response(AttioQueryResponse, raw_data, self.id)

        logger.info(f"[{self.id}] Transforming {len(raw_data.data)} Attio records")

        now = self._clock()
        deals = self._parse_deals(raw_data.data, now)
        one_week_ago = now - timedelta(days=7)
        one_month_ago = now - timedelta(days=30)

        def in_stage(stage: PipelineStage) -> List[AttioDeal]:
            return [d for d in deals if d.stage == stage]

        intro_calls = in_stage(PipelineStage.INTRO_CALL)
        demos = in_stage(PipelineStage.DEMO)
        pilots = in_stage(PipelineStage.PILOT)

        metrics: Dict[str, MetricValue] = {
            # Activity
            "intro_calls_this_week": MetricValue(
                value=sum(1 for d in intro_calls if d.created_at >= one_week_ago),
                type="count",
                label="Intro Calls This Week",
            ),
            "intro_calls_this_month": MetricValue(
                value=sum(1 for d in intro_calls if d.created_at >= one_month_ago),
                type="count",
                label="Intro Calls This Month",
            ),
            "demos_this_week": MetricValue(
                value=sum(1 for d in demos if d.stage_changed_at >= one_week_ago),
                type="count",
                label="Demos This Week",
            ),
            "demos_this_month": MetricValue(
                value=sum(1 for d in demos if d.stage_changed_at >= one_month_ago),
                type="count",
                label="Demos This Month",
            ),
            # Revenue
            "pilot_revenue": MetricValue(
                value=sum(d.deal_value or 0 for d in pilots),
                type="currency",
                label="Pilot Revenue",
            ),
            # Stage counts
            "evaluation_count": MetricValue(
                value=len(in_stage(PipelineStage.EVALUATION)),
                type="count",
                label="Active Opportunities",
            ),
            "scheduling_count": MetricValue(
                value=len(in_stage(PipelineStage.SCHEDULING)),
                type="count",
                label="Need to Schedule",
            ),
            "intro_calls_count": MetricValue(
                value=len(intro_calls),
                type="count",
                label="Upcoming Intro Calls",
            ),
        }

        return ProviderMetrics(
            provider_id=self.id,
            timestamp=now,
            metrics=metrics,
            metadata={
                "total_deals": len(deals),
                "deals": [
                    {
                        "record_id": d.record_id,
                        "company_name": d.company_name,
                        "stage": d.stage.value,
                        "deal_value": d.deal_value,
                        "days_in_stage": d.days_in_stage,
                        "web_url": d.web_url,
                    }
                    for d in deals
                ],
            },
        )

    def _parse_deals(self, records: List[Dict[str, Any]], now: datetime) -> List[AttioDeal]:
        deals = []
        for record in records:
            try:
                deals.append(parse_deal(record, now))
            except MalformedRecordError as e:
                logger.warning(f"[{self.id}] Skipping Attio record: {e.describe()}")
        return deals

    async def validate_config(self) -> bool:
        """Validate that the Attio configuration works"""
        try:
            logger.info(f"[{self.id}] Validating Attio configuration")
            await self.rate_limiter.execute(
                lambda: with_timeout(lambda: self._query_records(limit=1), self.timeout_seconds, self.id)
            )
            logger.info(f"[{self.id}] Attio configuration is valid")
            return True
        except Exception as e:
            logger.error(f"[{self.id}] Attio configuration is invalid: {e}")
            return False
