"""
Populate providers_config with the known providers.

Providers are enabled when their credentials are configured. Re-running
updates the existing rows in place.
"""

import asyncio
import logging
import sys
import os

# Add current directory to path to allow imports from core, models, etc.
sys.path.append(os.getcwd())

from core.config import Settings, settings
from core.database import async_session_maker
from core.logging import setup_logging
from orchestration.store import MetricsStore
from schemas.metrics import ProviderConfigInput

logger = logging.getLogger(__name__)


def seed_configs(config: Settings):
    """Provider configs to seed, given the configured credentials"""
    return [
        ProviderConfigInput(
            provider_id="notion",
            name="Notion",
            is_enabled=bool(config.NOTION_API_KEY),
            status="ACTIVE",
            fetch_interval_minutes=1440,  # Daily
            config={
                "description": "Manual metrics tracking via Notion database",
                "data_types": ["manual_entries", "custom_metrics"],
            },
        ),
        ProviderConfigInput(
            provider_id="attio",
            name="Attio CRM",
            is_enabled=bool(config.ATTIO_API_KEY),
            status="INACTIVE",
            fetch_interval_minutes=240,  # 4 hours
            config={
                "description": "CRM deals and pipeline metrics",
                "data_types": ["deals", "pipeline_value", "contacts"],
            },
        ),
        ProviderConfigInput(
            provider_id="ga4",
            name="Google Analytics 4",
            is_enabled=bool(config.GA4_PROPERTY_ID),
            status="INACTIVE",
            fetch_interval_minutes=60,
            config={
                "description": "Website traffic and engagement metrics",
                "data_types": ["users", "sessions"],
            },
        ),
        ProviderConfigInput(
            provider_id="phantombuster",
            name="Phantombuster",
            is_enabled=False,
            status="INACTIVE",
            fetch_interval_minutes=360,  # 6 hours
            config={
                "description": "Social media automation and outreach metrics",
                "data_types": ["linkedin", "campaign_results"],
            },
        ),
        ProviderConfigInput(
            provider_id="finta",
            name="Finta",
            is_enabled=False,
            status="MAINTENANCE",  # No API access yet
            fetch_interval_minutes=1440,
            config={
                "description": "Financial data and transactions",
                "data_types": ["transactions", "accounts", "balance"],
            },
        ),
    ]


async def seed(store: MetricsStore, config: Settings = settings):
    logger.info("Seeding provider configs...")
    for provider_config in seed_configs(config):
        saved = await store.upsert_provider_config(provider_config)
        state = "enabled" if saved.is_enabled else "disabled"
        logger.info(f"  {saved.name} ({saved.provider_id}): {state}, every {saved.fetch_interval_minutes} min")
    logger.info("Seeding complete")


if __name__ == "__main__":
    setup_logging()
    asyncio.run(seed(MetricsStore(async_session_maker)))
