from __future__ import annotations

import json
from decimal import Decimal

from bountypay.core.config import get_settings
from bountypay.services.gibrapay import TransferResult, WalletBalance
from tests.conftest import FakeGateway, InMemoryS3Client


def _create_request(client, admin_headers, report, **overrides):  # type: ignore[no-untyped-def]
    payload = {
        "report_id": report.id,
        "company_id": report.company_id,
        "pentester_id": report.pentester_id,
        "gross_amount": "1000.00",
    }
    payload.update(overrides)
    return client.post("/api/payouts/requests", json=payload, headers=admin_headers)


def test_admin_token_is_required(client, make_report) -> None:
    report = make_report()

    missing = _create_request(client, {}, report)
    wrong = _create_request(client, {"X-Admin-Token": "nope"}, report)

    assert missing.status_code == 401
    assert wrong.status_code == 401


def test_deposit_confirmation_flow(
    client,
    admin_headers,
    make_report,
    gateway: FakeGateway,
    audit_s3_client: InMemoryS3Client,
) -> None:
    report = make_report()
    gateway.queue("PENT", TransferResult(success=True, provider_tx_id="TX1"))

    created = _create_request(client, admin_headers, report)
    assert created.status_code == 201
    body = created.json()
    assert body["state"] == "DEPOSIT_PENDING"
    assert Decimal(body["platform_fee"]) == Decimal("100.00")
    assert Decimal(body["net_amount"]) == Decimal("900.00")
    transaction_id = body["id"]

    confirmed = client.post(f"/api/payouts/{transaction_id}/confirm-deposit", headers=admin_headers)
    assert confirmed.status_code == 200
    result = confirmed.json()
    assert result["transaction"]["state"] == "PAYOUT_COMPLETE"
    assert result["transaction"]["pentester_payment_reference"] == "TX1"
    assert result["payout"]["success"] is True

    again = client.post(f"/api/payouts/{transaction_id}/confirm-deposit", headers=admin_headers)
    assert again.status_code == 409

    settings = get_settings()
    bucket = audit_s3_client.buckets[settings.audit_log_bucket]
    records = [json.loads(raw) for raw in bucket.values()]
    confirm_records = [record for record in records if record["path"].endswith("/confirm-deposit")]
    assert confirm_records
    assert confirm_records[0]["actor"] == "ops@bountypay.test"
    assert confirm_records[0]["transaction_id"] == transaction_id


def test_request_masks_phone_in_audit_trail(
    client, admin_headers, make_report, audit_s3_client: InMemoryS3Client
) -> None:
    report = make_report()

    response = _create_request(
        client, admin_headers, report, direct_payment=True, phone_number="258841234567", wallet_type="emola"
    )

    assert response.status_code == 201
    assert response.json()["wallet_type"] == "emola"
    bucket = audit_s3_client.buckets[get_settings().audit_log_bucket]
    raw = b"".join(bucket.values()).decode("utf-8")
    assert "258841234567" not in raw
    assert "***4567" in raw


def test_invalid_amount_is_unprocessable(client, admin_headers, make_report) -> None:
    response = _create_request(client, admin_headers, make_report(), gross_amount="-10")

    assert response.status_code == 422


def test_unknown_transaction_is_not_found(client, admin_headers) -> None:
    response = client.post("/api/payouts/does-not-exist/try-payout", headers=admin_headers)

    assert response.status_code == 404


def test_manual_payout_flow(client, admin_headers, make_report, gateway: FakeGateway) -> None:
    report = make_report(payout_method="paypal", payout_details={"paypal_email": "hunter@example.com"})
    transaction_id = _create_request(client, admin_headers, report).json()["id"]

    confirmed = client.post(f"/api/payouts/{transaction_id}/confirm-deposit", headers=admin_headers).json()
    assert confirmed["payout"]["state"] == "MANUAL_PAYOUT_REQUIRED"
    assert confirmed["payout"]["payout_details"] == {"paypal_email": "hunter@example.com"}
    assert gateway.transfers == []

    missing_reference = client.post(
        f"/api/payouts/{transaction_id}/confirm-manual", json={}, headers=admin_headers
    )
    assert missing_reference.status_code == 422

    paid = client.post(
        f"/api/payouts/{transaction_id}/confirm-manual",
        json={"reference": "PP-123", "notes": "sent via PayPal"},
        headers=admin_headers,
    )
    assert paid.status_code == 200
    assert paid.json()["state"] == "PAYOUT_COMPLETE"
    assert paid.json()["payout_type"] == "manual"

    twice = client.post(
        f"/api/payouts/{transaction_id}/confirm-manual", json={"reference": "PP-124"}, headers=admin_headers
    )
    assert twice.status_code == 409


def test_retry_flow_requires_reconciliation(client, admin_headers, make_report, gateway: FakeGateway) -> None:
    gateway.queue("PENT", TransferResult(success=False, error="insufficient balance"))
    transaction_id = _create_request(client, admin_headers, make_report()).json()["id"]
    failed = client.post(f"/api/payouts/{transaction_id}/confirm-deposit", headers=admin_headers).json()
    assert failed["transaction"]["state"] == "PAYOUT_FAILED"
    assert failed["transaction"]["gibrapay_error"] == "insufficient balance"

    refused = client.post(f"/api/payouts/{transaction_id}/retry", json={}, headers=admin_headers)
    assert refused.status_code == 409

    retried = client.post(
        f"/api/payouts/{transaction_id}/retry",
        json={"provider_reconciled": True, "note": "checked provider statement"},
        headers=admin_headers,
    )
    assert retried.status_code == 200
    assert retried.json()["success"] is True
    assert retried.json()["state"] == "PAYOUT_COMPLETE"


def test_reconciliation_queues_endpoint(client, admin_headers, make_report) -> None:
    pending_id = _create_request(client, admin_headers, make_report()).json()["id"]
    manual_report = make_report(payout_method="bank_transfer", payout_details={"nib": "0008"})
    manual_id = _create_request(client, admin_headers, manual_report).json()["id"]
    client.post(f"/api/payouts/{manual_id}/confirm-deposit", headers=admin_headers)

    response = client.get("/api/payouts/queues", headers=admin_headers)

    assert response.status_code == 200
    queues = response.json()
    assert [item["id"] for item in queues["deposit_pending"]] == [pending_id]
    assert [item["id"] for item in queues["payout_pending"]] == [manual_id]
    assert queues["completed"] == []

    inverted = client.get(
        "/api/payouts/queues",
        params={"date_from": "2030-01-02", "date_to": "2030-01-01"},
        headers=admin_headers,
    )
    assert inverted.status_code == 422


def test_checkout_quote_uses_platform_fee(client, admin_headers) -> None:
    updated = client.put("/api/settings/fees", json={"platform_fee_percent": "15"}, headers=admin_headers)
    assert updated.status_code == 200

    response = client.get("/api/payouts/quote", params={"reward_amount": "1000"})

    assert response.status_code == 200
    quote = response.json()
    assert Decimal(quote["platform_fee"]) == Decimal("150.00")
    assert Decimal(quote["total"]) == Decimal("1150.00")


def test_fee_settings_round_trip_and_validation(client, admin_headers) -> None:
    current = client.get("/api/settings/fees", headers=admin_headers)
    assert current.status_code == 200
    assert Decimal(current.json()["pentester_deduction_percent"]) == Decimal("10")

    updated = client.put(
        "/api/settings/fees",
        json={"pentester_deduction_percent": "7.5", "platform_remittance_phone": "258 84 999 9999"},
        headers=admin_headers,
    )
    assert updated.status_code == 200
    assert updated.json()["platform_remittance_phone"] == "258849999999"
    assert Decimal(updated.json()["pentester_deduction_percent"]) == Decimal("7.5")

    out_of_range = client.put("/api/settings/fees", json={"platform_fee_percent": "120"}, headers=admin_headers)
    bad_phone = client.put(
        "/api/settings/fees", json={"platform_remittance_phone": "12345"}, headers=admin_headers
    )
    assert out_of_range.status_code == 422
    assert bad_phone.status_code == 422


def test_wallet_balance_endpoint(client, admin_headers, gateway: FakeGateway) -> None:
    ok = client.get("/api/settings/wallet-balance", headers=admin_headers)
    assert ok.status_code == 200
    assert Decimal(ok.json()["balance"]) == Decimal("5000.00")

    gateway.balance = WalletBalance(success=False, error="wallet not found")
    failed = client.get("/api/settings/wallet-balance", headers=admin_headers)
    assert failed.status_code == 502


def test_health_endpoints(client) -> None:
    assert client.get("/api/healthz").json()["status"] == "ok"
    assert client.get("/api/readyz").json()["status"] == "ready"


def test_failed_payout_is_refused_outside_retry_route(client, admin_headers, make_report, gateway: FakeGateway) -> None:
    report = make_report()
    gateway.queue("PENT", TransferResult(success=False, error="timeout"))
    transaction_id = _create_request(client, admin_headers, report).json()["id"]
    client.post(f"/api/payouts/{transaction_id}/confirm-deposit", headers=admin_headers)

    direct = client.post(f"/api/payouts/{transaction_id}/try-payout", headers=admin_headers)
    processed = client.post(f"/api/payouts/reports/{report.id}/process", json={}, headers=admin_headers)

    assert direct.status_code == 409
    assert "retry" in direct.json()["detail"]
    assert processed.status_code == 409
    assert len(gateway.leg("PENT")) == 1
    current = client.get(f"/api/payouts/{transaction_id}", headers=admin_headers).json()
    assert current["state"] == "PAYOUT_FAILED"
    assert current["payout_attempts"] == 1


def test_confirm_deposit_reports_unusable_wallet_phone(
    client, admin_headers, make_report, gateway: FakeGateway
) -> None:
    report = make_report(payout_method="mpesa", payout_details={"phone_number": "n/a"})
    transaction_id = _create_request(client, admin_headers, report).json()["id"]

    response = client.post(f"/api/payouts/{transaction_id}/confirm-deposit", headers=admin_headers)

    assert response.status_code == 200
    body = response.json()
    assert body["transaction"]["deposit_status"] == "confirmed"
    assert body["transaction"]["state"] == "DEPOSIT_CONFIRMED"
    assert body["payout"]["success"] is False
    assert "no digits" in body["payout"]["error"]
    assert gateway.transfers == []
