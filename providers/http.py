"""
HTTP plumbing shared by the vendor providers.

Maps transport failures and vendor status codes onto the fetch error
taxonomy so the retry wrapper can tell transient failures from permanent ones.
"""

from typing import Any, Dict, Optional, Type, TypeVar

import httpx
from pydantic import BaseModel, ValidationError

from core.exceptions import (
    AuthError,
    FetchError,
    MalformedResponseError,
    RateLimitedError,
    TransientFetchError,
)

ModelT = TypeVar("ModelT", bound=BaseModel)

DEFAULT_HTTP_TIMEOUT = 30.0


def build_client(
    base_url: str,
    headers: Optional[Dict[str, str]] = None,
    timeout: Optional[float] = DEFAULT_HTTP_TIMEOUT,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> httpx.AsyncClient:
    """Create the AsyncClient a provider uses for every call"""
    return httpx.AsyncClient(
        base_url=base_url,
        headers=headers or {},
        timeout=timeout,
        transport=transport,
    )


def raise_for_vendor_status(response: httpx.Response, provider_id: str) -> None:
    """
    Raise the matching fetch error for a non-2xx response.

    Raises:
        AuthError: HTTP 401, 403
        RateLimitedError: HTTP 429
        TransientFetchError: HTTP 5xx
        FetchError: Any other non-2xx status
    """
    if response.is_success:
        return

    status = response.status_code
    context = {
        "provider_id": provider_id,
        "status_code": status,
        "url": str(response.request.url) if response.request else None,
        "response_body": response.text[:500],  # Truncate
    }
    message = f"{provider_id} API error ({status}): {response.text[:200]}"

    if status in (401, 403):
        raise AuthError(message, context=context)

    if status == 429:
        retry_after = response.headers.get("Retry-After")
        raise RateLimitedError(
            message,
            context=context,
            retry_after=float(retry_after) if retry_after and retry_after.isdigit() else None
        )

    if status >= 500:
        raise TransientFetchError(message, context=context)

    raise FetchError(message, context=context)


async def request_json(
    client: httpx.AsyncClient,
    method: str,
    url: str,
    provider_id: str,
    **kwargs: Any,
) -> Any:
    """
    Issue one request and decode its JSON body.

    Raises:
        TransientFetchError: Timeouts and network errors
        MalformedResponseError: Body is not JSON
        FetchError: See raise_for_vendor_status
    """
    try:
        response = await client.request(method, url, **kwargs)
    except httpx.TimeoutException as e:
        raise TransientFetchError(
            f"{provider_id} request timed out",
            context={"provider_id": provider_id, "url": url},
            original_exception=e
        ) from e
    except httpx.TransportError as e:
        raise TransientFetchError(
            f"{provider_id} network error: {e}",
            context={"provider_id": provider_id, "url": url},
            original_exception=e
        ) from e

    raise_for_vendor_status(response, provider_id)

    try:
        return response.json()
    except ValueError as e:
        raise MalformedResponseError(
            f"{provider_id} returned a non-JSON response",
            context={
                "provider_id": provider_id,
                "url": url,
                "response_body": response.text[:500]
            },
            original_exception=e
        ) from e


def parse_response(model: Type[ModelT], payload: Any, provider_id: str) -> ModelT:
    """
    Validate a decoded response against the vendor schema.

    Raises:
        MalformedResponseError: The payload does not match ``model``
    """
    try:
        return model.model_validate(payload)
    except ValidationError as e:
        raise MalformedResponseError(
            f"{provider_id} response did not match {model.__name__}: {e.error_count()} error(s)",
            context={"provider_id": provider_id, "errors": e.errors()[:5]},
            original_exception=e
        ) from e
