"""Observability utilities."""

from .audit import AuditLogRecord, AuditMiddleware, mask_payload
from .metrics import (
    GATEWAY_LATENCY_SECONDS,
    PAYOUT_TRANSFER_COUNTER,
    QUEUE_DEPTH_GAUGE,
    REQUEST_COUNTER,
    REQUEST_ERROR_COUNTER,
    REQUEST_LATENCY_SECONDS,
    STALE_PAYOUT_CLAIMS_COUNTER,
    PrometheusMiddleware,
    metrics_router,
    record_transfer,
    report_queue_depth,
)
from .tracing import (
    initialise_tracing,
    inject_traceparent,
    instrument_fastapi_app,
    instrument_sqlalchemy_engine,
    payout_span,
    span_from_traceparent,
)

__all__ = [
    "AuditLogRecord",
    "AuditMiddleware",
    "GATEWAY_LATENCY_SECONDS",
    "PAYOUT_TRANSFER_COUNTER",
    "PrometheusMiddleware",
    "QUEUE_DEPTH_GAUGE",
    "REQUEST_COUNTER",
    "REQUEST_ERROR_COUNTER",
    "REQUEST_LATENCY_SECONDS",
    "STALE_PAYOUT_CLAIMS_COUNTER",
    "initialise_tracing",
    "inject_traceparent",
    "instrument_fastapi_app",
    "instrument_sqlalchemy_engine",
    "mask_payload",
    "metrics_router",
    "payout_span",
    "record_transfer",
    "report_queue_depth",
    "span_from_traceparent",
]
