"""
Unit tests for the Google Analytics 4 provider
"""

import json
from datetime import datetime
from unittest.mock import AsyncMock

import httpx
import pytest

from core.exceptions import MalformedRecordError, MalformedResponseError, RetryExhaustedError
from providers.ga4 import GA4Provider, parse_daily_row, parse_period_report
from schemas.ga4 import GA4Report, GA4Row
from tests.factories import FIXED_NOW

GA4_CONFIG = {"property_id": "123456", "service_account_key": '{"type": "service_account"}'}


def range_row(date_range, users, sessions):
    return {
        "dimensionValues": [{"value": date_range}],
        "metricValues": [{"value": str(users)}, {"value": str(sessions)}],
    }


def daily_row(day, users, sessions):
    return {
        "dimensionValues": [{"value": day}],
        "metricValues": [{"value": str(users)}, {"value": str(sessions)}],
    }


BATCH_RESPONSE = {
    "reports": [
        {"rows": [range_row("date_range_0", 120, 200), range_row("date_range_1", 100, 250)]},
        {"rows": [range_row("date_range_0", 700, 900)]},  # no previous-period row
        {"rows": [range_row("date_range_0", 3000, 4000), range_row("date_range_1", 3000, 3600)]},
    ],
    "kind": "analyticsData#batchRunReports",
}

DAILY_RESPONSE = {
    "rows": [
        daily_row("20240601", 10, 15),
        daily_row("not-a-date", 1, 1),
        daily_row("20240602", 12, 18),
    ],
    "rowCount": 3,
}


def make_provider(fast_limiter, handler=None, **kwargs):
    return GA4Provider(
        GA4_CONFIG,
        token_provider=AsyncMock(return_value="ga4-token"),
        rate_limiter=fast_limiter,
        retry_base_delay=0,
        transport=httpx.MockTransport(handler) if handler else None,
        clock=lambda: FIXED_NOW,
        **kwargs
    )


class TestParsing:

    def test_period_report_change(self):
        period = parse_period_report(GA4Report.model_validate(BATCH_RESPONSE["reports"][0]))

        assert period.current.users == 120
        assert period.previous.users == 100
        assert period.users_change == pytest.approx(20.0)
        assert period.sessions_change == pytest.approx(-20.0)

    def test_missing_previous_period_gives_zero_change(self):
        period = parse_period_report(GA4Report.model_validate(BATCH_RESPONSE["reports"][1]))
        assert period.previous.users == 0
        assert period.users_change == 0.0

    def test_empty_report(self):
        period = parse_period_report(GA4Report())
        assert period.current.users == 0
        assert period.sessions_change == 0.0

    def test_daily_row_date(self):
        assert parse_daily_row(GA4Row.model_validate(daily_row("20240601", 1, 1))) == datetime(2024, 6, 1)

    def test_bad_daily_row_date(self):
        with pytest.raises(MalformedRecordError):
            parse_daily_row(GA4Row.model_validate(daily_row("June 1st", 1, 1)))


class TestGA4Transform:

    def test_period_metrics(self, fast_limiter):
        result = make_provider(fast_limiter).transform(BATCH_RESPONSE)

        today_users = result.metrics["today_users"]
        assert today_users.value == 120
        assert today_users.change == pytest.approx(20.0)
        assert today_users.change_direction == "up"
        assert today_users.label == "Users Today"

        assert result.metrics["today_sessions"].change_direction == "down"
        assert result.metrics["week_users"].change == 0.0
        assert result.metrics["week_users"].change_direction == "neutral"
        assert result.metrics["month_users"].change_direction == "neutral"
        assert result.metrics["month_sessions"].value == 4000
        assert set(result.metrics) == {
            "today_users", "today_sessions",
            "week_users", "week_sessions",
            "month_users", "month_sessions",
        }

    def test_period_metadata(self, fast_limiter):
        result = make_provider(fast_limiter).transform(BATCH_RESPONSE)

        assert result.metadata == {
            "today": {"users": 120, "sessions": 200},
            "this_week": {"users": 700, "sessions": 900},
            "this_month": {"users": 3000, "sessions": 4000},
        }
        assert result.timestamp == FIXED_NOW

    def test_missing_reports_rejected(self, fast_limiter):
        with pytest.raises(MalformedResponseError, match="Expected 3 GA4 reports, got 1"):
            make_provider(fast_limiter).transform({"reports": BATCH_RESPONSE["reports"][:1]})

    def test_daily_snapshots(self, fast_limiter):
        snapshots = make_provider(fast_limiter).transform_multiple(DAILY_RESPONSE)

        assert [s.timestamp for s in snapshots] == [datetime(2024, 6, 1), datetime(2024, 6, 2)]
        assert snapshots[0].metrics["users"].value == 10
        assert snapshots[0].metrics["sessions"].value == 15
        assert snapshots[1].metadata == {"date": "2024-06-02"}
        assert all(s.provider_id == "ga4" for s in snapshots)


class TestGA4Fetch:

    @pytest.mark.asyncio
    async def test_fetch_batches_three_periods(self, fast_limiter):
        requests = []

        def handler(request):
            requests.append(request)
            return httpx.Response(200, json=BATCH_RESPONSE)

        result = await make_provider(fast_limiter, handler).fetch()

        assert result.metrics["today_users"].value == 120
        request = requests[0]
        assert request.url.path == "/v1beta/properties/123456:batchRunReports"
        assert request.headers["Authorization"] == "Bearer ga4-token"
        body = json.loads(request.content)
        assert len(body["requests"]) == 3
        assert body["requests"][0]["dateRanges"] == [
            {"startDate": "today", "endDate": "today"},
            {"startDate": "yesterday", "endDate": "yesterday"},
        ]

    @pytest.mark.asyncio
    async def test_fetch_multiple_requests_daily_report(self, fast_limiter):
        requests = []

        def handler(request):
            requests.append(request)
            return httpx.Response(200, json=DAILY_RESPONSE)

        snapshots = await make_provider(fast_limiter, handler).fetch_multiple()

        assert len(snapshots) == 2
        assert requests[0].url.path == "/v1beta/properties/123456:runReport"
        body = json.loads(requests[0].content)
        assert body["dimensions"] == [{"name": "date"}]
        assert body["dateRanges"] == [{"startDate": "90daysAgo", "endDate": "yesterday"}]

    @pytest.mark.asyncio
    async def test_malformed_response_not_retried(self, fast_limiter):
        calls = 0

        def handler(request):
            nonlocal calls
            calls += 1
            return httpx.Response(200, json={"reports": []})

        with pytest.raises(RetryExhaustedError) as exc_info:
            await make_provider(fast_limiter, handler).fetch()

        assert calls == 1
        assert isinstance(exc_info.value.original_exception, MalformedResponseError)

    @pytest.mark.asyncio
    async def test_validate_config(self, fast_limiter):
        ok = make_provider(fast_limiter, lambda request: httpx.Response(200, json={"rows": []}))
        denied = make_provider(fast_limiter, lambda request: httpx.Response(403, text="no access"))

        assert await ok.validate_config() is True
        assert await denied.validate_config() is False


def test_service_account_key_must_be_json_object():
    with pytest.raises(ValueError):
        GA4Provider({"property_id": "1", "service_account_key": "[1, 2]"}, token_provider=AsyncMock())
