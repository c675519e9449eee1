"""
Custom exceptions for the metrics fetch pipeline with structured error context.

Each exception carries a human-readable message, a context dictionary
(provider id, status code, attempt counts, ...) and the original exception
that caused it, if any.

Exception Hierarchy:
    MetricsHubError (base)
    ├── FetchError
    │   ├── TransientFetchError (retryable)
    │   │   └── RateLimitedError
    │   ├── AuthError (non-retryable)
    │   ├── MalformedResponseError (non-retryable)
    │   └── RetryExhaustedError
    ├── TransformationError
    │   └── MalformedRecordError
    ├── RegistryError
    │   ├── DuplicateProviderError
    │   └── ProviderNotFoundError
    ├── ConfigNotFoundError
    ├── PersistenceError
    └── RetryableError / NonRetryableError (mixins)
"""

from typing import Optional, Dict, Any

from core.clock import utcnow


class MetricsHubError(Exception):
    """
    Base exception for all metrics pipeline errors.

    Attributes:
        message: Human-readable error message
        context: Additional context information (provider_id, status_code, etc.)
        original_exception: The original exception that was caught (if any)
    """

    def __init__(
        self,
        message: str,
        context: Optional[Dict[str, Any]] = None,
        original_exception: Optional[BaseException] = None
    ):
        self.message = message
        self.context = context or {}
        self.original_exception = original_exception
        self.timestamp = utcnow()

        super().__init__(message)
        if original_exception:
            self.__cause__ = original_exception

    def __str__(self) -> str:
        return self.message

    def describe(self) -> str:
        """Format error message with context and cause, for logs."""
        base_msg = f"{self.__class__.__name__}: {self.message}"

        if self.context:
            context_str = ", ".join(f"{k}={v}" for k, v in self.context.items())
            base_msg += f" | Context: {context_str}"

        if self.original_exception:
            base_msg += f" | Caused by: {type(self.original_exception).__name__}: {str(self.original_exception)}"

        return base_msg

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for logging/storage."""
        return {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "context": self.context,
            "timestamp": self.timestamp.isoformat(),
            "original_error": str(self.original_exception) if self.original_exception else None
        }


# ============================================================================
# Retry Strategy Mixins
# ============================================================================

class RetryableError(MetricsHubError):
    """
    Mixin for errors that should trigger retry logic.

    Use this for transient errors like:
    - Network timeouts
    - Rate limiting (HTTP 429)
    - Service unavailable (HTTP 5xx)
    """
    pass


class NonRetryableError(MetricsHubError):
    """
    Mixin for errors that should NOT trigger retry logic.

    Use this for permanent errors like:
    - Authentication failures (HTTP 401, 403)
    - Responses whose shape does not match the vendor schema
    """
    pass


# ============================================================================
# Fetch Errors
# ============================================================================

class FetchError(MetricsHubError):
    """
    Base exception for provider fetch failures.

    Context should include:
        - provider_id: The provider that failed
        - status_code: HTTP status code (if applicable)
        - url: The endpoint that failed (if applicable)
    """
    pass


class TransientFetchError(RetryableError, FetchError):
    """Network, timeout or 5xx errors from a vendor API."""
    pass


class RateLimitedError(TransientFetchError):
    """Vendor rate limiting (HTTP 429)."""

    def __init__(
        self,
        message: str,
        context: Optional[Dict[str, Any]] = None,
        original_exception: Optional[BaseException] = None,
        retry_after: Optional[float] = None
    ):
        super().__init__(message, context, original_exception)
        self.retry_after = retry_after
        if retry_after:
            self.context["retry_after"] = retry_after


class AuthError(NonRetryableError, FetchError):
    """Invalid or missing credentials (HTTP 401, 403)."""
    pass


class MalformedResponseError(NonRetryableError, FetchError):
    """A vendor response did not match the expected envelope."""
    pass


class RetryExhaustedError(FetchError):
    """
    Terminal failure after the retry budget was spent (or a non-retryable
    error stopped the retries early).

    Context should include:
        - provider_id: The provider that failed
        - attempts: Number of attempts made
    """
    pass


# ============================================================================
# Transformation Errors
# ============================================================================

class TransformationError(MetricsHubError):
    """Base exception for response-to-metric transformation failures."""
    pass


class MalformedRecordError(TransformationError):
    """
    A single raw record could not be parsed.

    Raised and caught inside a transform; the record is logged and skipped.
    """
    pass


# ============================================================================
# Registry Errors
# ============================================================================

class RegistryError(MetricsHubError):
    """Base exception for provider registry operations."""
    pass


class DuplicateProviderError(RegistryError):
    """A provider with the same id is already registered."""
    pass


class ProviderNotFoundError(RegistryError):
    """No provider with the given id is registered."""
    pass


# ============================================================================
# Persistence Errors
# ============================================================================

class ConfigNotFoundError(MetricsHubError):
    """
    No persisted ProviderConfig exists for a provider.

    Soft error: the orchestrator treats a missing config as stale.
    """
    pass


class PersistenceError(MetricsHubError):
    """
    Database operation failed.

    Context should include:
        - operation: Type of database operation (INSERT, UPDATE, UPSERT)
        - table_name: Name of the table
    """
    pass
