"""
Unit tests for the normalized metric schemas
"""

from datetime import datetime, timedelta, timezone

import pytest
from pydantic import ValidationError

from core.exceptions import AuthError
from schemas.metrics import FetchResult, MetricValue, ProviderConfigInput, ProviderMetrics, get_change_direction


class TestMetricValue:

    def test_direction_derived_from_change(self):
        assert MetricValue(value=120, type="count", label="Users", change=20.0).change_direction == "up"
        assert MetricValue(value=80, type="count", label="Users", change=-20.0).change_direction == "down"
        assert MetricValue(value=100, type="count", label="Users", change=0.0).change_direction == "neutral"

    def test_small_changes_are_neutral(self):
        assert get_change_direction(0.05) == "neutral"
        assert get_change_direction(-0.1) == "neutral"
        assert get_change_direction(0.11) == "up"

    def test_contradicting_direction_rejected(self):
        with pytest.raises(ValidationError, match="contradicts"):
            MetricValue(value=80, type="count", label="Users", change=-20.0, change_direction="up")

    def test_no_change_leaves_direction_unset(self):
        metric = MetricValue(value="Acme", type="text", label="Top Account")
        assert metric.change is None
        assert metric.change_direction is None

    def test_unknown_type_rejected(self):
        with pytest.raises(ValidationError):
            MetricValue(value=1, type="ratio", label="Conversion")

    def test_empty_label_rejected(self):
        with pytest.raises(ValidationError):
            MetricValue(value=1, type="count", label="")


class TestProviderMetrics:

    def test_aware_timestamp_stored_as_naive_utc(self):
        aware = datetime(2024, 6, 15, 14, 0, tzinfo=timezone(timedelta(hours=2)))
        snapshot = ProviderMetrics(provider_id="ga4", timestamp=aware)
        assert snapshot.timestamp == datetime(2024, 6, 15, 12, 0)
        assert snapshot.timestamp.tzinfo is None

    def test_metrics_as_json_drops_unset_fields(self):
        snapshot = ProviderMetrics(
            provider_id="attio",
            timestamp=datetime(2024, 6, 15),
            metrics={"pilot_revenue": MetricValue(value=5000, type="currency", label="Pilot Revenue")},
        )
        assert snapshot.metrics_as_json() == {
            "pilot_revenue": {"value": 5000, "type": "currency", "label": "Pilot Revenue"}
        }
        assert snapshot.records_count == 1

    def test_provider_id_required(self):
        with pytest.raises(ValidationError):
            ProviderMetrics(provider_id="", timestamp=datetime(2024, 6, 15))


class TestFetchResult:

    def test_error_message(self):
        result = FetchResult(provider_id="attio", status="failure", error=AuthError("401 Unauthorized"))
        assert result.error_message == "401 Unauthorized"

    def test_error_message_falls_back_to_type(self):
        result = FetchResult(provider_id="attio", status="failure", error=TimeoutError())
        assert result.error_message == "TimeoutError"

    def test_no_error(self):
        assert FetchResult(provider_id="attio", status="success").error_message is None


class TestProviderConfigInput:

    def test_interval_must_be_positive(self):
        with pytest.raises(ValidationError):
            ProviderConfigInput(provider_id="ga4", name="GA4", fetch_interval_minutes=0)

    def test_unknown_status_rejected(self):
        with pytest.raises(ValidationError):
            ProviderConfigInput(provider_id="ga4", name="GA4", fetch_interval_minutes=60, status="PAUSED")
