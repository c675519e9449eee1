"""
Request context for the metrics API.

Every request gets an id (the caller's X-Request-ID when it is usable) that
routes read from ``request.state.request_id`` and prefix onto their log lines.
Fetch triggers are logged at INFO since they call vendor APIs; dashboard reads
only at DEBUG.
"""

import logging
import re
import time
import uuid
from typing import Optional

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.responses import Response

logger = logging.getLogger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"
DURATION_HEADER = "X-Response-Time-ms"

_REQUEST_ID_RE = re.compile(r"^[A-Za-z0-9._:-]{1,64}$")


def resolve_request_id(incoming: Optional[str]) -> str:
    """Reuse a caller-supplied id if it is short and log-safe, else mint one"""
    if incoming and _REQUEST_ID_RE.match(incoming):
        return incoming
    return f"req_{uuid.uuid4().hex[:12]}"


class RequestContextMiddleware(BaseHTTPMiddleware):
    """Assigns request ids and reports per-request timing"""

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        request_id = resolve_request_id(request.headers.get(REQUEST_ID_HEADER))
        request.state.request_id = request_id
        started = time.perf_counter()

        try:
            response = await call_next(request)
        except Exception:
            logger.exception(f"[{request_id}] Unhandled error on {request.method} {request.url.path}")
            raise

        elapsed_ms = int((time.perf_counter() - started) * 1000)
        response.headers[REQUEST_ID_HEADER] = request_id
        response.headers[DURATION_HEADER] = str(elapsed_ms)

        level = logging.INFO if request.method == "POST" else logging.DEBUG
        logger.log(
            level,
            f"[{request_id}] {request.method} {request.url.path} -> {response.status_code} ({elapsed_ms}ms)"
        )
        return response
