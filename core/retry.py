"""
Retry and timeout helpers for async operations.

``with_retry`` wraps any zero-argument coroutine function with exponential
backoff; ``retry_async`` is the decorator form. ``with_timeout`` bounds an
operation's latency when a timeout is configured.
"""

import asyncio
import functools
import logging
from typing import Any, Awaitable, Callable, Optional, TypeVar

from core.exceptions import (
    MetricsHubError,
    NonRetryableError,
    RetryExhaustedError,
    TransientFetchError,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

MAX_RETRIES = 3
BASE_DELAY_SECONDS = 1.0
BACKOFF_MULTIPLIER = 2.0


def is_retryable(error: BaseException) -> bool:
    """Every failure is retried except the explicitly non-retryable ones"""
    return not isinstance(error, NonRetryableError)


def backoff_delays(
    max_retries: int = MAX_RETRIES,
    base_delay: float = BASE_DELAY_SECONDS,
    multiplier: float = BACKOFF_MULTIPLIER,
) -> list:
    """Delays slept before each retry, e.g. [1.0, 2.0, 4.0]"""
    return [base_delay * (multiplier ** attempt) for attempt in range(max_retries)]


def _error_message(error: BaseException) -> str:
    if isinstance(error, MetricsHubError):
        return error.message
    return str(error) or type(error).__name__


async def with_retry(
    operation: Callable[[], Awaitable[T]],
    *,
    max_retries: int = MAX_RETRIES,
    base_delay: float = BASE_DELAY_SECONDS,
    multiplier: float = BACKOFF_MULTIPLIER,
    retry_if: Callable[[BaseException], bool] = is_retryable,
    context: str = "operation",
    sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
) -> T:
    """
    Run ``operation`` with exponential backoff.

    The operation is attempted once and then retried up to ``max_retries``
    times, sleeping ``base_delay * multiplier ** n`` before retry ``n``.
    When the budget is spent, or ``retry_if`` rejects an error, the last
    error is wrapped in RetryExhaustedError with ``context`` in its message.

    Args:
        operation: Zero-argument coroutine function to run
        max_retries: Retries after the first attempt
        base_delay: Delay before the first retry, in seconds
        multiplier: Factor applied to the delay after each retry
        retry_if: Predicate deciding whether an error is worth retrying
        context: Label used in log lines and the terminal error (e.g. provider id)
        sleep: Sleep function, replaceable in tests

    Raises:
        RetryExhaustedError: After the final failed attempt
    """
    delays = backoff_delays(max_retries, base_delay, multiplier)
    attempt = 0

    while True:
        attempt += 1
        try:
            return await operation()
        except asyncio.CancelledError:
            raise
        except Exception as e:
            retries_left = max_retries - (attempt - 1)
            if retries_left <= 0 or not retry_if(e):
                if not retry_if(e):
                    logger.warning(f"[{context}] Not retrying {type(e).__name__}: {_error_message(e)}")
                raise RetryExhaustedError(
                    f"[{context}] Max retries exceeded: {_error_message(e)}",
                    context={
                        "provider_id": context,
                        "attempts": attempt,
                        "error_type": type(e).__name__,
                    },
                    original_exception=e
                ) from e

            delay = delays[attempt - 1]
            logger.warning(
                f"[{context}] Fetch failed, retrying in {delay * 1000:.0f}ms... "
                f"({retries_left} retries remaining): {_error_message(e)}"
            )
            await sleep(delay)


def retry_async(
    *,
    max_retries: int = MAX_RETRIES,
    base_delay: float = BASE_DELAY_SECONDS,
    multiplier: float = BACKOFF_MULTIPLIER,
    retry_if: Callable[[BaseException], bool] = is_retryable,
    context: Optional[str] = None,
):
    """
    Decorator form of ``with_retry`` for coroutine functions.

    Example:
        @retry_async(max_retries=2, context="ga4")
        async def load_report():
            ...
    """
    def decorator(func: Callable[..., Awaitable[T]]):
        @functools.wraps(func)
        async def wrapper(*args, **kwargs):
            return await with_retry(
                lambda: func(*args, **kwargs),
                max_retries=max_retries,
                base_delay=base_delay,
                multiplier=multiplier,
                retry_if=retry_if,
                context=context or func.__qualname__,
            )
        return wrapper
    return decorator


async def with_timeout(
    operation: Callable[[], Awaitable[T]],
    timeout_seconds: Optional[float],
    context: str = "operation",
) -> T:
    """
    Run ``operation`` bounded by ``timeout_seconds``.

    ``None`` runs it unbounded. Expiry raises TransientFetchError so the
    retry wrapper treats it like any other network failure.
    """
    if timeout_seconds is None:
        return await operation()
    try:
        return await asyncio.wait_for(operation(), timeout=timeout_seconds)
    except asyncio.TimeoutError as e:
        raise TransientFetchError(
            f"Operation timed out after {timeout_seconds * 1000:.0f}ms",
            context={"provider_id": context, "timeout_seconds": timeout_seconds},
            original_exception=e
        ) from e
