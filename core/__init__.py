"""
Core utilities and configuration for the metrics hub.

This package provides the foundational pieces every other layer uses:

Modules:
    config: Application settings from environment variables / .env
    database: Async engine and session factory
    exceptions: Exception hierarchy (retryable vs non-retryable fetch errors)
    logging: Logging configuration
    clock: Naive-UTC time helpers
    rate_limiter: Per-service concurrency and pacing gate
    retry: Exponential backoff and timeout wrappers

Usage:
    from core.config import settings
    from core.logging import setup_logging
    from core.rate_limiter import get_rate_limiter
    from core.retry import with_retry, with_timeout

Example:
    setup_logging()

    limiter = get_rate_limiter("notion")
    result = await limiter.execute(lambda: with_retry(fetch_page, context="notion"))
"""

from core.config import settings
from core.logging import setup_logging
from core.rate_limiter import get_rate_limiter
from core.retry import with_retry, with_timeout

__all__ = [
    "settings",
    "setup_logging",
    "get_rate_limiter",
    "with_retry",
    "with_timeout",
]
