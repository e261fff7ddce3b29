# ==== CORRELATION ID MIDDLEWARE ==== #

"""
Correlation ID middleware for request tracing in ManagerOS.

Assigns every request a correlation id (taken from the ``X-Correlation-Id``
header when the client sends one), echoes it on the response and records
request latency.
"""

import time
import uuid
from typing import Callable

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

from manageros.observability.metrics import http_request_latency_seconds
from manageros.observability.tracing import get_tracer


# ==== MODULE INITIALIZATION ==== #

tracer = get_tracer(__name__)

CORRELATION_HEADER = "X-Correlation-Id"


# ==== CORRELATION MIDDLEWARE CLASS ==== #

class CorrelationMiddleware(BaseHTTPMiddleware):
    """Middleware adding correlation IDs to requests and responses."""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        # --► CORRELATION ID MANAGEMENT
        correlation_id = request.headers.get(CORRELATION_HEADER) or str(uuid.uuid4())

        # Store in request state for downstream access
        request.state.correlation_id = correlation_id

        start_time = time.perf_counter()

        with tracer.start_as_current_span("http_request") as span:
            span.set_attribute("http.method", request.method)
            span.set_attribute("http.url", str(request.url))
            span.set_attribute("correlation_id", correlation_id)

            response = await call_next(request)

            response.headers[CORRELATION_HEADER] = correlation_id

            # --► METRICS COLLECTION
            # Route template keeps label cardinality bounded
            route = request.scope.get("route")
            path = getattr(route, "path", "unmatched")

            http_request_latency_seconds.labels(
                method=request.method,
                path=path,
                status_code=str(response.status_code)
            ).observe(time.perf_counter() - start_time)

            span.set_attribute("http.status_code", response.status_code)
            return response
