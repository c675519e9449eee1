"""
Tests for the seed and fetch command-line scripts
"""

from datetime import timedelta
from unittest.mock import patch

import pytest

from core.config import Settings
from models import ProviderStatus
from providers.registry import ProviderRegistry
from scripts import run_fetch
from scripts.seed import seed, seed_configs
from tests.factories import FIXED_NOW, StubMultiProvider, StubProvider, make_metrics


def settings_with(**credentials) -> Settings:
    values = {
        "NOTION_API_KEY": None,
        "NOTION_DATABASE_ID": None,
        "ATTIO_API_KEY": None,
        "GA4_PROPERTY_ID": None,
        "GA4_SERVICE_ACCOUNT_KEY": None,
    }
    values.update(credentials)
    return Settings(**values)


class TestSeed:

    def test_enabled_follows_credentials(self):
        configs = {c.provider_id: c for c in seed_configs(settings_with(ATTIO_API_KEY="attio_key"))}

        assert set(configs) == {"notion", "attio", "ga4", "phantombuster", "finta"}
        assert configs["attio"].is_enabled is True
        assert configs["notion"].is_enabled is False
        assert configs["finta"].status == "MAINTENANCE"
        assert configs["notion"].fetch_interval_minutes == 1440

    @pytest.mark.asyncio
    async def test_seed_is_rerunnable(self, store):
        await seed(store, settings_with())
        await seed(store, settings_with(NOTION_API_KEY="secret_notion"))

        configs = await store.list_provider_configs()
        assert len(configs) == 5
        notion = await store.get_provider_config("notion")
        assert notion.is_enabled is True
        assert notion.status == ProviderStatus.ACTIVE


class TestRunFetch:

    def test_modes_are_exclusive(self):
        assert run_fetch.parse_args(["--provider", "ga4"]).provider == "ga4"
        assert run_fetch.parse_args(["--stale", "-v"]).verbose is True
        with pytest.raises(SystemExit):
            run_fetch.parse_args(["--stale", "--validate"])

    def test_backfill_defaults_to_settings(self):
        assert run_fetch.parse_args([]).backfill is None
        assert run_fetch.parse_args(["--provider", "ga4", "--backfill"]).backfill is True

    @pytest.mark.asyncio
    async def test_backfill_saves_every_period(self, store):
        days = [FIXED_NOW - timedelta(days=d) for d in (1, 0)]
        provider = StubMultiProvider("ga4", snapshots=[make_metrics("ga4", timestamp=day) for day in days])
        registry = ProviderRegistry()
        registry.register(provider)

        with patch("scripts.run_fetch.build_registry", return_value=registry), \
                patch("scripts.run_fetch.MetricsStore", return_value=store):
            assert await run_fetch.run(run_fetch.parse_args(["--provider", "ga4", "--backfill"])) == 0

        assert provider.multiple_calls == 1
        assert await store.count_snapshots("ga4") == 2

    @pytest.mark.asyncio
    async def test_fetch_all_exit_codes(self, store):
        registry = ProviderRegistry()
        registry.register(StubProvider("notion"))

        with patch("scripts.run_fetch.build_registry", return_value=registry), \
                patch("scripts.run_fetch.MetricsStore", return_value=store):
            assert await run_fetch.run(run_fetch.parse_args([])) == 0
            assert await run_fetch.run(run_fetch.parse_args(["--provider", "hubspot"])) == 1

        assert await store.count_snapshots("notion") == 1

    @pytest.mark.asyncio
    async def test_validate_mode(self):
        registry = ProviderRegistry()
        registry.register_all([StubProvider("notion"), StubProvider("attio", valid=False)])

        with patch("scripts.run_fetch.build_registry", return_value=registry):
            assert await run_fetch.run(run_fetch.parse_args(["--validate"])) == 1
