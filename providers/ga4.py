"""
Google Analytics 4 provider.

Uses the GA4 Data API (v1beta) over httpx with a service account token.
``fetch`` compares today, this week and this month against the preceding
periods in one batched call; ``fetch_multiple`` returns one snapshot per
day for the last 90 days.
"""

import asyncio
import logging
from datetime import datetime
from typing import Any, Awaitable, Callable, Dict, List, Optional, Union

import httpx
from google.auth.transport.requests import Request as GoogleAuthRequest
from google.oauth2 import service_account

from core.clock import utcnow
from core.config import settings
from core.exceptions import AuthError, MalformedRecordError, MalformedResponseError
from core.rate_limiter import RateLimiter, get_rate_limiter
from core.retry import with_retry, with_timeout
from providers.base import calculate_change, get_change_direction
from providers.http import build_client, parse_response, request_json
from schemas.ga4 import (
    GA4BatchResponse,
    GA4Config,
    GA4PeriodComparison,
    GA4PeriodTraffic,
    GA4Report,
    GA4Row,
)
from schemas.metrics import MetricValue, ProviderMetrics

logger = logging.getLogger(__name__)

GA4_BASE_URL = "https://analyticsdata.googleapis.com/v1beta"
GA4_SCOPES = ["https://www.googleapis.com/auth/analytics.readonly"]

TRAFFIC_METRICS = [{"name": "activeUsers"}, {"name": "sessions"}]

# (metric key prefix, label suffix, current range, previous range)
COMPARISON_PERIODS = [
    ("today", "Today", ("today", "today"), ("yesterday", "yesterday")),
    ("week", "This Week", ("7daysAgo", "today"), ("14daysAgo", "8daysAgo")),
    ("month", "This Month", ("30daysAgo", "today"), ("60daysAgo", "31daysAgo")),
]
HISTORY_RANGE = ("90daysAgo", "yesterday")

CURRENT_RANGE = "date_range_0"
PREVIOUS_RANGE = "date_range_1"

TokenProvider = Callable[[], Awaitable[str]]


class ServiceAccountTokenProvider:
    """Mints and caches OAuth access tokens for a service account"""

    def __init__(self, service_account_info: Dict[str, Any]):
        self._credentials = service_account.Credentials.from_service_account_info(
            service_account_info, scopes=GA4_SCOPES
        )
        self._lock = asyncio.Lock()

    async def __call__(self) -> str:
        async with self._lock:
            if not self._credentials.valid:
                try:
                    # google-auth refresh is blocking
                    await asyncio.to_thread(self._credentials.refresh, GoogleAuthRequest())
                except Exception as e:
                    raise AuthError(
                        "Failed to obtain GA4 access token",
                        context={"provider_id": "ga4"},
                        original_exception=e
                    ) from e
            return self._credentials.token


def parse_period_report(report: GA4Report) -> GA4PeriodComparison:
    """Split a two-range report into current/previous traffic and their change"""
    current = GA4PeriodTraffic()
    previous = GA4PeriodTraffic()

    for row in report.rows:
        traffic = GA4PeriodTraffic(users=row.metric_int(0), sessions=row.metric_int(1))
        date_range = row.dimension(0)
        if date_range == CURRENT_RANGE:
            current = traffic
        elif date_range == PREVIOUS_RANGE:
            previous = traffic

    return GA4PeriodComparison(
        current=current,
        previous=previous,
        users_change=calculate_change(current.users, previous.users),
        sessions_change=calculate_change(current.sessions, previous.sessions),
    )


def parse_daily_row(row: GA4Row) -> datetime:
    """Date of a daily row (dimension formatted YYYYMMDD)"""
    raw = row.dimension(0)
    try:
        return datetime.strptime(raw or "", "%Y%m%d")
    except ValueError as e:
        raise MalformedRecordError(f"Bad GA4 date dimension: {raw!r}", original_exception=e) from e


class GA4Provider:
    """
    Web analytics provider backed by the GA4 Data API.

    Attributes:
        property_id: GA4 property to report on
        timeout_seconds: Bound on each API call; None disables it
    """

    id = "ga4"
    name = "Google Analytics 4"
    fetch_interval_minutes = 240  # Intraday data refresh

    def __init__(
        self,
        config: Union[GA4Config, Dict[str, Any]],
        *,
        token_provider: Optional[TokenProvider] = None,
        rate_limiter: Optional[RateLimiter] = None,
        timeout_seconds: Optional[float] = settings.PROVIDER_TIMEOUT_SECONDS,
        max_retries: int = settings.MAX_RETRIES,
        retry_base_delay: float = settings.RETRY_BASE_DELAY_SECONDS,
        retry_multiplier: float = settings.RETRY_MULTIPLIER,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        validated = config if isinstance(config, GA4Config) else GA4Config.model_validate(config)

        self.property_id = validated.property_id
        self._token_provider = token_provider or ServiceAccountTokenProvider(validated.service_account_info)
        self.rate_limiter = rate_limiter or get_rate_limiter(self.id)
        self.timeout_seconds = timeout_seconds
        self.max_retries = max_retries
        self.retry_base_delay = retry_base_delay
        self.retry_multiplier = retry_multiplier
        self._transport = transport
        self._clock = clock

        logger.info(f"[{self.id}] Initialized GA4 provider")

    async def _post(self, method: str, body: Dict[str, Any]) -> Any:
        token = await self._token_provider()
        headers = {"Authorization": f"Bearer {token}"}
        async with build_client(GA4_BASE_URL, headers, transport=self._transport) as client:
            return await request_json(
                client, "POST", f"/properties/{self.property_id}:{method}", self.id, json=body
            )

    async def _call(self, method: str, body: Dict[str, Any]) -> Any:
        return await self.rate_limiter.execute(
            lambda: with_timeout(lambda: self._post(method, body), self.timeout_seconds, self.id)
        )

    async def _retrying(self, attempt: Callable[[], Awaitable[Any]]) -> Any:
        return await with_retry(
            attempt,
            max_retries=self.max_retries,
            base_delay=self.retry_base_delay,
            multiplier=self.retry_multiplier,
            context=self.id,
        )

    async def fetch(self) -> ProviderMetrics:
        """Fetch today/week/month traffic with period-over-period change"""
        async def attempt() -> ProviderMetrics:
            logger.info(f"[{self.id}] Fetching GA4 traffic data")
            payload = await self._call("batchRunReports", {
                "requests": [
                    {
                        "dateRanges": [
                            {"startDate": current[0], "endDate": current[1]},
                            {"startDate": previous[0], "endDate": previous[1]},
                        ],
                        "metrics": TRAFFIC_METRICS,
                    }
                    for _, _, current, previous in COMPARISON_PERIODS
                ],
            })
            return self.transform(payload)

        return await self._retrying(attempt)

    async def fetch_multiple(self) -> List[ProviderMetrics]:
        """Fetch one snapshot per day for the last 90 days, oldest first"""
        async def attempt() -> List[ProviderMetrics]:
            logger.info(f"[{self.id}] Fetching 90 days of historical GA4 data")
            payload = await self._call("runReport", {
                "dateRanges": [{"startDate": HISTORY_RANGE[0], "endDate": HISTORY_RANGE[1]}],
                "dimensions": [{"name": "date"}],
                "metrics": TRAFFIC_METRICS,
                "orderBys": [{"dimension": {"dimensionName": "date"}, "desc": False}],
            })
            return self.transform_multiple(payload)

        return await self._retrying(attempt)

    def transform(self, raw_data: Union[GA4BatchResponse, Dict[str, Any]]) -> ProviderMetrics:
        """Transform a batch response into today/week/month metrics"""
        if not isinstance(raw_data, GA4BatchResponse):
            raw_data = parse_response(GA4BatchResponse, raw_data, self.id)

        logger.info(f"[{self.id}] Transforming GA4 batch response")

        if len(raw_data.reports) < len(COMPARISON_PERIODS):
            raise MalformedResponseError(
                f"Expected {len(COMPARISON_PERIODS)} GA4 reports, got {len(raw_data.reports)}",
                context={"provider_id": self.id}
            )

        metrics: Dict[str, MetricValue] = {}
        metadata: Dict[str, Any] = {}

        for (prefix, label, _, _), report in zip(COMPARISON_PERIODS, raw_data.reports):
            period = parse_period_report(report)
            metrics[f"{prefix}_users"] = MetricValue(
                value=period.current.users,
                type="count",
                label=f"Users {label}",
                change=period.users_change,
                change_direction=get_change_direction(period.users_change),
            )
            metrics[f"{prefix}_sessions"] = MetricValue(
                value=period.current.sessions,
                type="count",
                label=f"Sessions {label}",
                change=period.sessions_change,
                change_direction=get_change_direction(period.sessions_change),
            )
            metadata_key = "today" if prefix == "today" else f"this_{prefix}"
            metadata[metadata_key] = period.current.model_dump()

        return ProviderMetrics(
            provider_id=self.id,
            timestamp=self._clock(),
            metrics=metrics,
            metadata=metadata,
        )

    def transform_multiple(self, raw_data: Union[GA4Report, Dict[str, Any]]) -> List[ProviderMetrics]:
        """Transform a daily report into one snapshot per day"""
        if not isinstance(raw_data, GA4Report):
            raw_data = parse_response(GA4Report, raw_data, self.id)

        logger.info(f"[{self.id}] Transforming GA4 daily historical data")

        snapshots = []
        for row in raw_data.rows:
            try:
                day = parse_daily_row(row)
                users = row.metric_int(0)
                sessions = row.metric_int(1)
            except (MalformedRecordError, ValueError) as e:
                logger.warning(f"[{self.id}] Skipping GA4 row: {e}")
                continue

            snapshots.append(ProviderMetrics(
                provider_id=self.id,
                timestamp=day,
                metrics={
                    "users": MetricValue(value=users, type="count", label="Users"),
                    "sessions": MetricValue(value=sessions, type="count", label="Sessions"),
                },
                metadata={"date": day.date().isoformat()},
            ))

        logger.info(f"[{self.id}] Created {len(snapshots)} daily snapshots")
        return snapshots

    async def validate_config(self) -> bool:
        """Validate GA4 configuration with a minimal report"""
        try:
            logger.info(f"[{self.id}] Validating GA4 configuration")
            await self._call("runReport", {
                "dateRanges": [{"startDate": "yesterday", "endDate": "yesterday"}],
                "metrics": [{"name": "sessions"}],
            })
            logger.info(f"[{self.id}] GA4 configuration is valid")
            return True
        except Exception as e:
            logger.error(f"[{self.id}] GA4 configuration is invalid: {e}")
            return False
