"""FastAPI middleware for request tracing and metrics"""

import time
import uuid

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request

from yield_ledger.infrastructure.observability.logging import current_request_id
from yield_ledger.infrastructure.observability.metrics import request_duration_histogram

MAX_REQUEST_ID_LENGTH = 128


class RequestIDMiddleware(BaseHTTPMiddleware):
    """
    Propagate or assign a request ID.

    The ID is echoed in X-Request-ID and attached to every log line written
    while the request is handled, so a refused withdrawal or a settlement
    can be traced from the admin UI to the service logs.
    """

    async def dispatch(self, request: Request, call_next):
        request_id = request.headers.get("X-Request-ID", "").strip()
        if not request_id or len(request_id) > MAX_REQUEST_ID_LENGTH:
            request_id = str(uuid.uuid4())
        request.state.request_id = request_id

        token = current_request_id.set(request_id)
        try:
            response = await call_next(request)
        finally:
            current_request_id.reset(token)
        response.headers["X-Request-ID"] = request_id
        return response


class MetricsMiddleware(BaseHTTPMiddleware):
    """
    Record request latency labelled by route template.

    Paths that match no route share one "unmatched" label; otherwise every
    request to a mistyped or scanned URL would mint a new time series.
    """

    async def dispatch(self, request: Request, call_next):
        start_time = time.perf_counter()
        status = 500
        try:
            response = await call_next(request)
            status = response.status_code
            return response
        finally:
            route = request.scope.get("route")
            request_duration_histogram.labels(
                method=request.method,
                endpoint=getattr(route, "path", "unmatched"),
                status=status,
            ).observe(time.perf_counter() - start_time)
