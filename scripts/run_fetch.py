"""
Fetch metrics from the configured providers from the command line.

    python scripts/run_fetch.py                  # every provider
    python scripts/run_fetch.py --stale          # only stale providers
    python scripts/run_fetch.py --provider ga4   # one provider
    python scripts/run_fetch.py --provider ga4 --backfill  # save full GA4 history
    python scripts/run_fetch.py --validate       # probe credentials only
"""

import argparse
import asyncio
import logging
import sys
import os

# Add current directory to path to allow imports from core, models, etc.
sys.path.append(os.getcwd())

from core.config import settings
from core.database import async_session_maker
from core.logging import setup_logging
from orchestration import actions
from orchestration.store import MetricsStore
from providers.registry import build_registry

logger = logging.getLogger(__name__)


def parse_args(argv=None):
    parser = argparse.ArgumentParser(description="Fetch metrics from configured providers")
    mode = parser.add_mutually_exclusive_group()
    mode.add_argument("--stale", action="store_true", help="Fetch only providers whose data is stale")
    mode.add_argument("--provider", metavar="ID", help="Fetch a single provider")
    mode.add_argument("--validate", action="store_true", help="Validate provider credentials without fetching")
    parser.add_argument(
        "--backfill", action="store_true", default=None,
        help="Save every period from providers that return history (GA4 daily, Notion weekly)"
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Log at DEBUG level")
    return parser.parse_args(argv)


async def run(args) -> int:
    registry = build_registry(settings)
    store = MetricsStore(async_session_maker)

    if args.validate:
        results = await registry.validate_all()
        for provider_id, is_valid in results.items():
            logger.info(f"{provider_id}: {'valid' if is_valid else 'INVALID'}")
        return 0 if results and all(results.values()) else 1

    if args.provider:
        response = await actions.fetch_provider_metrics(
            args.provider, registry=registry, store=store, backfill=args.backfill
        )
    elif args.stale:
        response = await actions.fetch_stale_metrics(registry=registry, store=store, backfill=args.backfill)
    else:
        response = await actions.fetch_all_metrics(registry=registry, store=store, backfill=args.backfill)

    for result in response.results:
        line = f"{result.provider_id}: {result.status}"
        if result.error:
            line += f" ({result.error})"
        logger.info(line)

    if response.success:
        logger.info(response.message)
        return 0

    logger.error(response.error or response.message)
    return 1


if __name__ == "__main__":
    args = parse_args()
    setup_logging("DEBUG" if args.verbose else None)
    sys.exit(asyncio.run(run(args)))
