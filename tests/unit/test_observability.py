from __future__ import annotations

from fastapi import FastAPI
from fastapi.testclient import TestClient
from opentelemetry import trace

from bountypay.obs import (
    PAYOUT_TRANSFER_COUNTER,
    QUEUE_DEPTH_GAUGE,
    PrometheusMiddleware,
    initialise_tracing,
    inject_traceparent,
    mask_payload,
    metrics_router,
    record_transfer,
    report_queue_depth,
    span_from_traceparent,
)


def test_metrics_endpoint_exposes_counters() -> None:
    app = FastAPI()
    app.add_middleware(PrometheusMiddleware)
    app.include_router(metrics_router)

    client = TestClient(app)
    response = client.get("/metrics")

    assert response.status_code == 200
    assert "http_requests_total" in response.text


def test_report_queue_depth_updates_gauge() -> None:
    report_queue_depth("payout_pending", 7)
    sample_family = next(iter(QUEUE_DEPTH_GAUGE.collect()))
    sample = next(
        item for item in sample_family.samples if item.labels["queue_name"] == "payout_pending"
    )
    assert sample.value == 7


def test_record_transfer_counts_by_leg_and_outcome() -> None:
    counter = PAYOUT_TRANSFER_COUNTER.labels(leg="platform", outcome="failure")
    before = counter._value.get()

    record_transfer("platform", success=False, latency_seconds=0.25)

    assert counter._value.get() == before + 1


def test_mask_payload_hides_phone_numbers_and_bank_details() -> None:
    masked = mask_payload(
        {
            "phone_number": "258841234567",
            "wallet_type": "mpesa",
            "details": {"nib": "000800000000000000000", "paypal_email": "hunter@example.com"},
            "notes": "paid to 258849999999",
        }
    )

    assert masked["phone_number"] == "***4567"
    assert masked["wallet_type"] == "mpesa"
    assert masked["details"]["nib"] == "***0000"
    assert masked["details"]["paypal_email"] == "***.com"
    assert masked["notes"] == "paid to 258849999999"


def test_span_from_traceparent_links_context() -> None:
    initialise_tracing(service_name="unit-test-service")
    tracer = trace.get_tracer(__name__)
    with tracer.start_as_current_span("parent"):
        carrier = inject_traceparent({})
    traceparent = carrier.get("traceparent")
    assert traceparent is not None

    with span_from_traceparent("child", traceparent) as span:
        assert (
            span.get_span_context().trace_id == trace.get_current_span().get_span_context().trace_id
        )
