"""Prometheus metrics utilities for API and worker processes."""

from __future__ import annotations

import time
from collections.abc import Awaitable, Callable

from fastapi import APIRouter, Request, Response
from prometheus_client import CONTENT_TYPE_LATEST, Counter, Gauge, Histogram, generate_latest
from starlette.middleware.base import BaseHTTPMiddleware

REQUEST_LATENCY_SECONDS = Histogram(
    "http_request_latency_seconds",
    "Latency of HTTP requests in seconds.",
    labelnames=("method", "path"),
)
REQUEST_COUNTER = Counter(
    "http_requests_total",
    "Total number of HTTP requests processed.",
    labelnames=("method", "path", "status"),
)
REQUEST_ERROR_COUNTER = Counter(
    "http_request_errors_total",
    "Total number of HTTP requests that resulted in server errors.",
    labelnames=("method", "path", "status"),
)
QUEUE_DEPTH_GAUGE = Gauge(
    "payout_queue_depth",
    "Number of ledger entries waiting in each reconciliation queue.",
    labelnames=("queue_name",),
)
PAYOUT_TRANSFER_COUNTER = Counter(
    "payout_transfers_total",
    "Gateway transfer attempts by leg and outcome.",
    labelnames=("leg", "outcome"),
)
GATEWAY_LATENCY_SECONDS = Histogram(
    "payout_gateway_latency_seconds",
    "Round-trip time of mobile-money gateway transfers.",
    labelnames=("leg",),
)
STALE_PAYOUT_CLAIMS_COUNTER = Counter(
    "payout_stale_claims_released_total",
    "Processing claims that timed out and were marked failed.",
)


class PrometheusMiddleware(BaseHTTPMiddleware):
    """Middleware that records request metrics for Prometheus scraping."""

    async def dispatch(
        self, request: Request, call_next: Callable[[Request], Awaitable[Response]]
    ) -> Response:  # type: ignore[override]
        method = request.method
        path = request.url.path
        start_time = time.perf_counter()
        status = "500"

        try:
            response = await call_next(request)
            status = str(response.status_code)
            if response.status_code >= 500:
                REQUEST_ERROR_COUNTER.labels(method=method, path=path, status=status).inc()
            return response
        except Exception:
            REQUEST_ERROR_COUNTER.labels(method=method, path=path, status="500").inc()
            raise
        finally:
            latency = time.perf_counter() - start_time
            REQUEST_LATENCY_SECONDS.labels(method=method, path=path).observe(latency)
            REQUEST_COUNTER.labels(method=method, path=path, status=status).inc()


metrics_router = APIRouter(tags=["observability"])


@metrics_router.get("/metrics", include_in_schema=False)
def metrics_endpoint() -> Response:
    """Expose Prometheus metrics for scraping."""
    payload = generate_latest()
    return Response(content=payload, media_type=CONTENT_TYPE_LATEST)


def report_queue_depth(queue_name: str, depth: int | float) -> None:
    """Report the depth of a named reconciliation queue."""
    QUEUE_DEPTH_GAUGE.labels(queue_name=queue_name).set(max(0.0, float(depth)))


def record_transfer(leg: str, *, success: bool, latency_seconds: float) -> None:
    PAYOUT_TRANSFER_COUNTER.labels(leg=leg, outcome="success" if success else "failure").inc()
    GATEWAY_LATENCY_SECONDS.labels(leg=leg).observe(latency_seconds)


__all__ = [
    "GATEWAY_LATENCY_SECONDS",
    "PAYOUT_TRANSFER_COUNTER",
    "PrometheusMiddleware",
    "QUEUE_DEPTH_GAUGE",
    "REQUEST_COUNTER",
    "REQUEST_ERROR_COUNTER",
    "REQUEST_LATENCY_SECONDS",
    "STALE_PAYOUT_CLAIMS_COUNTER",
    "metrics_endpoint",
    "metrics_router",
    "record_transfer",
    "report_queue_depth",
]
