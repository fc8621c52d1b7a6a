"""Prometheus metrics for the HTTP layer and the voting core."""

from __future__ import annotations

import time
from collections.abc import Awaitable, Callable

from fastapi import APIRouter, Request, Response
from prometheus_client import CONTENT_TYPE_LATEST, Counter, Histogram, generate_latest
from starlette.middleware.base import BaseHTTPMiddleware

REQUEST_LATENCY_SECONDS = Histogram(
    "http_request_latency_seconds",
    "Latency of HTTP requests in seconds.",
    labelnames=("method", "route"),
)
REQUEST_COUNTER = Counter(
    "http_requests_total",
    "Total number of HTTP requests processed.",
    labelnames=("method", "route", "status"),
)
REQUEST_ERROR_COUNTER = Counter(
    "http_request_errors_total",
    "Total number of HTTP requests that resulted in server errors.",
    labelnames=("method", "route", "status"),
)
VOTE_OUTCOME_COUNTER = Counter(
    "votes_cast_total",
    "Vote submissions by outcome (ACCEPTED or the rejection reason).",
    labelnames=("outcome",),
)
MEMBER_REGISTRATION_COUNTER = Counter(
    "member_registrations_total",
    "Membership registration attempts by outcome.",
    labelnames=("outcome",),
)
INVITATION_DELIVERY_COUNTER = Counter(
    "invitation_deliveries_total",
    "Invitation deliveries by status.",
    labelnames=("status",),
)


def _route_label(request: Request) -> str:
    # Route templates keep invitation tokens and ids out of label values.
    route = request.scope.get("route")
    return getattr(route, "path", None) or "unmatched"


class PrometheusMiddleware(BaseHTTPMiddleware):
    """Middleware that records request metrics for Prometheus scraping."""

    async def dispatch(
        self, request: Request, call_next: Callable[[Request], Awaitable[Response]]
    ) -> Response:  # type: ignore[override]
        method = request.method
        start_time = time.perf_counter()
        status = "500"

        try:
            response = await call_next(request)
            status = str(response.status_code)
            if response.status_code >= 500:
                REQUEST_ERROR_COUNTER.labels(method=method, route=_route_label(request), status=status).inc()
            return response
        except Exception:
            REQUEST_ERROR_COUNTER.labels(method=method, route=_route_label(request), status="500").inc()
            raise
        finally:
            route = _route_label(request)
            REQUEST_LATENCY_SECONDS.labels(method=method, route=route).observe(time.perf_counter() - start_time)
            REQUEST_COUNTER.labels(method=method, route=route, status=status).inc()


metrics_router = APIRouter(tags=["observability"])


@metrics_router.get("/metrics", include_in_schema=False)
def metrics_endpoint() -> Response:
    """Expose Prometheus metrics for scraping."""
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)


__all__ = [
    "INVITATION_DELIVERY_COUNTER",
    "MEMBER_REGISTRATION_COUNTER",
    "PrometheusMiddleware",
    "REQUEST_COUNTER",
    "REQUEST_ERROR_COUNTER",
    "REQUEST_LATENCY_SECONDS",
    "VOTE_OUTCOME_COUNTER",
    "metrics_endpoint",
    "metrics_router",
]
