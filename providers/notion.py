"""
Notion provider.

Reads a manually maintained Notion database. Each row is classified by
the columns it carries and parsed by the matching row parser:

- MULTI_METRIC rows hold fixed LinkedIn columns, several metrics per row
- SINGLE_METRIC rows hold one generic name/value metric

``fetch`` keeps the most recent value per metric; ``fetch_multiple``
emits one snapshot per row (one reporting week each).
"""

import logging
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, Tuple, Union

import httpx
from pydantic import ValidationError

from core.clock import parse_iso_datetime, to_naive_utc, utcnow
from core.config import settings
from core.exceptions import MalformedRecordError
from core.rate_limiter import RateLimiter, get_rate_limiter
from core.retry import with_retry, with_timeout
from providers.base import normalize_metric_key
from providers.http import build_client, parse_response, request_json
from schemas.metrics import METRIC_TYPES, MetricValue, ProviderMetrics
from schemas.notion import NotionConfig, NotionMetric, NotionPage, NotionQueryResponse, RowLayout

logger = logging.getLogger(__name__)

NOTION_BASE_URL = "https://api.notion.com/v1"
NOTION_VERSION = "2022-06-28"
PAGE_SIZE = 100

# (column, metric label)
LINKEDIN_COLUMNS = [
    ("Linkedin_content_engagement", "LinkedIn Content Engagement"),
    ("Linkedin_impressions", "LinkedIn Impressions"),
    ("Linkedin_followers_stats", "LinkedIn Followers"),
]


def find_property_by_type(properties: Dict[str, Dict[str, Any]], prop_type: str) -> Optional[Dict[str, Any]]:
    """First property of the given Notion type, in column order"""
    for prop in properties.values():
        if prop.get("type") == prop_type:
            return prop
    return None


def extract_title(prop: Dict[str, Any]) -> str:
    title = prop.get("title") or []
    if title:
        return title[0].get("plain_text", "")
    return ""


def extract_rich_text(prop: Dict[str, Any]) -> str:
    return "".join(part.get("plain_text", "") for part in prop.get("rich_text") or [])


def extract_select(prop: Optional[Dict[str, Any]]) -> Optional[str]:
    if not prop or not prop.get("select"):
        return None
    return prop["select"].get("name")


def row_date(page: NotionPage) -> Optional[datetime]:
    """Start of the row's Date property, if set"""
    date_prop = page.properties.get("Date") or {}
    start = (date_prop.get("date") or {}).get("start")
    if not start:
        return None
    return parse_iso_datetime(start)


def classify_row(properties: Dict[str, Dict[str, Any]]) -> RowLayout:
    """Pick the row layout from the columns present"""
    if any(properties.get(column) for column, _ in LINKEDIN_COLUMNS):
        return RowLayout.MULTI_METRIC
    return RowLayout.SINGLE_METRIC


def parse_multi_metric_row(page: NotionPage) -> List[NotionMetric]:
    """Every filled LinkedIn column of the row"""
    date = row_date(page) or to_naive_utc(page.created_time)
    metrics = []
    for column, label in LINKEDIN_COLUMNS:
        prop = page.properties.get(column)
        if prop and prop.get("number") is not None:
            metrics.append(NotionMetric(name=label, value=prop["number"], type="count", date=date))
    return metrics


def parse_single_metric_row(page: NotionPage) -> List[NotionMetric]:
    """
    The row's one metric: title column is the name, first number column
    (or Value / first rich_text column) the value, Type select the type.
    Rows without a title yield nothing.
    """
    props = page.properties

    name_prop = find_property_by_type(props, "title")
    name = extract_title(name_prop) if name_prop else ""
    if not name:
        return []

    value: Union[int, float, str] = 0
    number_prop = find_property_by_type(props, "number")
    text_prop = props.get("Value") or find_property_by_type(props, "rich_text")
    if number_prop and number_prop.get("number") is not None:
        value = number_prop["number"]
    elif text_prop:
        value = extract_rich_text(text_prop) or "0"

    metric_type = (extract_select(props.get("Type")) or "count").lower()
    if metric_type not in METRIC_TYPES:
        metric_type = "count"

    notes_prop = props.get("Notes")

    return [NotionMetric(
        name=name,
        value=value,
        type=metric_type,
        category=extract_select(props.get("Category")),
        notes=extract_rich_text(notes_prop) if notes_prop else None,
        date=row_date(page) or to_naive_utc(page.created_time),
    )]


ROW_PARSERS: Dict[RowLayout, Callable[[NotionPage], List[NotionMetric]]] = {
    RowLayout.MULTI_METRIC: parse_multi_metric_row,
    RowLayout.SINGLE_METRIC: parse_single_metric_row,
}


def parse_row(row: Dict[str, Any]) -> Tuple[NotionPage, List[NotionMetric]]:
    """
    Parse one raw database row into its page and metrics.

    Raises:
        MalformedRecordError: The row is not a page or a value is unusable
    """
    try:
        page = NotionPage.model_validate(row)
        return page, ROW_PARSERS[classify_row(page.properties)](page)
    except (ValidationError, ValueError, TypeError, AttributeError) as e:
        raise MalformedRecordError(
            "Failed to parse Notion row",
            context={"row_id": row.get("id") if isinstance(row, dict) else None},
            original_exception=e
        ) from e


def to_metric_value(metric: NotionMetric) -> MetricValue:
    return MetricValue(value=metric.value, type=metric.type, label=metric.name)


class NotionProvider:
    """
    Manual metrics provider backed by a Notion database.

    Attributes:
        database_id: Notion database holding one row per metric or week
        timeout_seconds: Bound on each API call; None disables it
    """

    id = "notion"
    name = "Notion"
    fetch_interval_minutes = 1440  # Daily

    def __init__(
        self,
        config: Union[NotionConfig, Dict[str, Any]],
        *,
        rate_limiter: Optional[RateLimiter] = None,
        timeout_seconds: Optional[float] = settings.PROVIDER_TIMEOUT_SECONDS,
        max_retries: int = settings.MAX_RETRIES,
        retry_base_delay: float = settings.RETRY_BASE_DELAY_SECONDS,
        retry_multiplier: float = settings.RETRY_MULTIPLIER,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        validated = config if isinstance(config, NotionConfig) else NotionConfig.model_validate(config)

        self.api_key = validated.api_key
        self.database_id = validated.database_id
        self.rate_limiter = rate_limiter or get_rate_limiter(self.id)
        self.timeout_seconds = timeout_seconds
        self.max_retries = max_retries
        self.retry_base_delay = retry_base_delay
        self.retry_multiplier = retry_multiplier
        self._transport = transport
        self._clock = clock

        logger.info(f"[{self.id}] Initialized Notion provider")

    def _client(self) -> httpx.AsyncClient:
        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Notion-Version": NOTION_VERSION,
            "Content-Type": "application/json",
        }
        return build_client(NOTION_BASE_URL, headers, transport=self._transport)

    async def _query_database(self) -> NotionQueryResponse:
        body = {
            "sorts": [{"timestamp": "created_time", "direction": "descending"}],
            "page_size": PAGE_SIZE,
        }
        async with self._client() as client:
            payload = await request_json(
                client, "POST", f"/databases/{self.database_id}/query", self.id, json=body
            )
        return parse_response(NotionQueryResponse, payload, self.id)

    async def _query(self) -> NotionQueryResponse:
        return await self.rate_limiter.execute(
            lambda: with_timeout(self._query_database, self.timeout_seconds, self.id)
        )

    async def fetch(self) -> ProviderMetrics:
        """Fetch the latest value of every metric in the database"""
        async def attempt() -> ProviderMetrics:
            logger.info(f"[{self.id}] Fetching from Notion database")
            return self.transform(await self._query())

        return await with_retry(
            attempt,
            max_retries=self.max_retries,
            base_delay=self.retry_base_delay,
            multiplier=self.retry_multiplier,
            context=self.id,
        )

    async def fetch_multiple(self) -> List[ProviderMetrics]:
        """Fetch one snapshot per database row"""
        async def attempt() -> List[ProviderMetrics]:
            logger.info(f"[{self.id}] Fetching multiple weeks from Notion database")
            return self.transform_multiple(await self._query())

        return await with_retry(
            attempt,
            max_retries=self.max_retries,
            base_delay=self.retry_base_delay,
            multiplier=self.retry_multiplier,
            context=self.id,
        )

    def transform(self, raw_data: Union[NotionQueryResponse, Dict[str, Any]]) -> ProviderMetrics:
        """Transform database rows into metrics, latest date winning per key"""
        if not isinstance(raw_data, NotionQueryResponse):
            raw_data = parse_response(NotionQueryResponse, raw_data, self.id)

        logger.info(f"[{self.id}] Transforming {len(raw_data.results)} Notion entries")

        latest: Dict[str, NotionMetric] = {}
        for row in raw_data.results:
            try:
                _, parsed = parse_row(row)
            except MalformedRecordError as e:
                logger.warning(f"[{self.id}] Skipping Notion row: {e.describe()}")
                continue
            for metric in parsed:
                key = normalize_metric_key(metric.name)
                if not key:
                    continue
                if key not in latest or metric.date > latest[key].date:
                    latest[key] = metric

        return ProviderMetrics(
            provider_id=self.id,
            timestamp=self._clock(),
            metrics={key: to_metric_value(metric) for key, metric in latest.items()},
            metadata={
                "total_entries": len(raw_data.results),
                "has_more": raw_data.has_more,
            },
        )

    def transform_multiple(self, raw_data: Union[NotionQueryResponse, Dict[str, Any]]) -> List[ProviderMetrics]:
        """
        Transform database rows into one snapshot per reporting date.

        Rows sharing a date are merged. Rows arrive newest-created first, so the
        first row seen for a date wins on a repeated key.
        """
        if not isinstance(raw_data, NotionQueryResponse):
            raw_data = parse_response(NotionQueryResponse, raw_data, self.id)

        logger.info(f"[{self.id}] Transforming {len(raw_data.results)} Notion weeks")

        periods: Dict[datetime, Dict[str, MetricValue]] = {}
        entries: Dict[datetime, int] = {}
        for row in raw_data.results:
            try:
                page, parsed = parse_row(row)
                week_date = row_date(page) or to_naive_utc(page.created_time)
            except (MalformedRecordError, ValueError) as e:
                logger.warning(f"[{self.id}] Failed to parse Notion row for weekly snapshot: {e}")
                continue

            metrics = periods.setdefault(week_date, {})
            added = False
            for metric in parsed:
                key = normalize_metric_key(metric.name)
                if key and key not in metrics:
                    metrics[key] = to_metric_value(metric)
                    added = True
            if added:
                entries[week_date] = entries.get(week_date, 0) + 1

        snapshots = [
            ProviderMetrics(
                provider_id=self.id,
                timestamp=week_date,
                metrics=metrics,
                metadata={"week_date": week_date.isoformat(), "entries": entries[week_date]},
            )
            for week_date, metrics in periods.items()
            if metrics
        ]

        logger.info(f"[{self.id}] Created {len(snapshots)} weekly snapshots")
        return snapshots

    async def validate_config(self) -> bool:
        """Validate that the Notion configuration works by retrieving the database"""
        async def retrieve() -> Any:
            async with self._client() as client:
                return await request_json(client, "GET", f"/databases/{self.database_id}", self.id)

        try:
            logger.info(f"[{self.id}] Validating Notion configuration")
            await self.rate_limiter.execute(
                lambda: with_timeout(retrieve, self.timeout_seconds, self.id)
            )
            logger.info(f"[{self.id}] Notion configuration is valid")
            return True
        except Exception as e:
            logger.error(f"[{self.id}] Notion configuration is invalid: {e}")
            return False
