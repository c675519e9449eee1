"""
Unit tests for the Attio CRM provider
"""

import json

import httpx
import pytest

from core.exceptions import AuthError, MalformedRecordError, RetryExhaustedError
from providers.attio import AttioProvider, days_between, parse_deal
from schemas.attio import PipelineStage
from tests.factories import FIXED_NOW


def make_record(record_id, stage, created_at="2024-06-10T12:00:00.000000000Z", stage_since=None,
                company="Acme Corp", deal_value=None):
    values = {"name": [{"value": company}]}
    if stage is not None:
        stage_value = {"status": {"title": stage}}
        if stage_since:
            stage_value["active_from"] = stage_since
        values["stage"] = [stage_value]
    if deal_value is not None:
        values["value"] = [{"currency_value": deal_value, "attribute_type": "currency"}]
    return {
        "id": {"workspace_id": "ws", "object_id": "deals", "record_id": record_id},
        "created_at": created_at,
        "web_url": f"https://app.attio.com/deals/{record_id}",
        "values": values,
    }


PIPELINE = [
    make_record("r1", "Intro call", created_at="2024-06-14T09:00:00Z"),
    make_record("r2", "Intro call", created_at="2024-05-25T09:00:00Z"),
    make_record("r3", "Demo", created_at="2024-05-01T09:00:00Z", stage_since="2024-06-12T00:00:00Z"),
    make_record("r4", "Pilot", deal_value=5000),
    make_record("r5", "Pilot", deal_value=2500.5),
    make_record("r6", "Evaluation"),
    make_record("r7", "Scheduling"),
    make_record("r8", None),           # no stage
    make_record("r9", "Lost"),         # unknown stage
    {"values": {}},                    # no id
]


@pytest.fixture
def provider(fast_limiter):
    return AttioProvider(
        {"api_key": "attio_key"},
        rate_limiter=fast_limiter,
        retry_base_delay=0,
        timeout_seconds=None,
        clock=lambda: FIXED_NOW,
    )


class TestParseDeal:

    def test_days_in_stage_rounds_down(self):
        deal = parse_deal(
            make_record("r3", "Demo", stage_since="2024-06-12T00:00:00Z"),
            FIXED_NOW,
        )
        assert deal.stage == PipelineStage.DEMO
        assert deal.days_in_stage == 3

    def test_created_at_used_without_stage_history(self):
        deal = parse_deal(make_record("r1", "Won", created_at="2024-06-01T12:00:00Z"), FIXED_NOW)
        assert deal.stage_changed_at == deal.created_at
        assert deal.days_in_stage == 14

    def test_missing_company_name(self):
        record = make_record("r1", "Demo")
        del record["values"]["name"]
        assert parse_deal(record, FIXED_NOW).company_name == "Unknown Company"

    def test_unknown_stage_rejected(self):
        with pytest.raises(MalformedRecordError, match="Unknown stage 'Lost'"):
            parse_deal(make_record("r9", "Lost"), FIXED_NOW)

    def test_bad_created_at_rejected(self):
        with pytest.raises(MalformedRecordError):
            parse_deal(make_record("r1", "Demo", created_at="yesterday"), FIXED_NOW)

    def test_days_between(self):
        from datetime import datetime
        assert days_between(datetime(2024, 6, 12), datetime(2024, 6, 15, 12)) == 3


class TestAttioTransform:

    def test_pipeline_metrics(self, provider):
        result = provider.transform({"data": PIPELINE})
        values = {key: metric.value for key, metric in result.metrics.items()}

        assert values == {
            "intro_calls_this_week": 1,
            "intro_calls_this_month": 2,
            "demos_this_week": 1,
            "demos_this_month": 1,
            "pilot_revenue": 7500.5,
            "evaluation_count": 1,
            "scheduling_count": 1,
            "intro_calls_count": 2,
        }
        assert result.metrics["pilot_revenue"].type == "currency"
        assert result.timestamp == FIXED_NOW

    def test_malformed_records_skipped(self, provider):
        result = provider.transform({"data": PIPELINE})

        assert result.metadata["total_deals"] == 7
        record_ids = [deal["record_id"] for deal in result.metadata["deals"]]
        assert "r8" not in record_ids
        assert "r9" not in record_ids

    def test_deal_metadata(self, provider):
        result = provider.transform({"data": [make_record("r3", "Demo", stage_since="2024-06-12T00:00:00Z")]})

        assert result.metadata["deals"] == [{
            "record_id": "r3",
            "company_name": "Acme Corp",
            "stage": "Demo",
            "deal_value": None,
            "days_in_stage": 3,
            "web_url": "https://app.attio.com/deals/r3",
        }]

    def test_empty_pipeline(self, provider):
        result = provider.transform({"data": []})
        assert all(metric.value == 0 for metric in result.metrics.values())
        assert result.metadata["total_deals"] == 0


class TestAttioFetch:

    @pytest.mark.asyncio
    async def test_fetch_queries_records(self, fast_limiter):
        requests = []

        def handler(request: httpx.Request) -> httpx.Response:
            requests.append(request)
            return httpx.Response(200, json={"data": PIPELINE[:2]})

        provider = AttioProvider(
            {"api_key": "attio_key", "object_slug": "opportunities"},
            rate_limiter=fast_limiter,
            transport=httpx.MockTransport(handler),
            clock=lambda: FIXED_NOW,
        )
        result = await provider.fetch()

        assert result.metrics["intro_calls_count"].value == 2
        assert len(requests) == 1
        request = requests[0]
        assert request.method == "POST"
        assert request.url.path == "/v2/objects/opportunities/records/query"
        assert request.headers["Authorization"] == "Bearer attio_key"
        assert json.loads(request.content)["limit"] == 500

    @pytest.mark.asyncio
    async def test_server_errors_retried(self, provider):
        calls = 0

        def handler(request):
            nonlocal calls
            calls += 1
            if calls < 3:
                return httpx.Response(502, text="bad gateway")
            return httpx.Response(200, json={"data": []})

        provider._transport = httpx.MockTransport(handler)
        result = await provider.fetch()

        assert calls == 3
        assert result.metadata["total_deals"] == 0

    @pytest.mark.asyncio
    async def test_auth_failure_not_retried(self, provider):
        calls = 0

        def handler(request):
            nonlocal calls
            calls += 1
            return httpx.Response(401, json={"message": "Invalid API key"})

        provider._transport = httpx.MockTransport(handler)

        with pytest.raises(RetryExhaustedError) as exc_info:
            await provider.fetch()

        assert calls == 1
        assert isinstance(exc_info.value.original_exception, AuthError)
        assert exc_info.value.message.startswith("[attio] Max retries exceeded")

    @pytest.mark.asyncio
    async def test_persistent_failure_exhausts_budget(self, provider):
        calls = 0

        def handler(request):
            nonlocal calls
            calls += 1
            return httpx.Response(500, text="internal error")

        provider._transport = httpx.MockTransport(handler)

        with pytest.raises(RetryExhaustedError):
            await provider.fetch()
        assert calls == 4

    @pytest.mark.asyncio
    async def test_validate_config(self, provider):
        provider._transport = httpx.MockTransport(lambda request: httpx.Response(200, json={"data": []}))
        assert await provider.validate_config() is True

        provider._transport = httpx.MockTransport(lambda request: httpx.Response(403, text="forbidden"))
        assert await provider.validate_config() is False


def test_missing_api_key_rejected():
    with pytest.raises(ValueError):
        AttioProvider({"api_key": ""})
