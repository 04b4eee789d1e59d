from __future__ import annotations

from decimal import Decimal

import pytest

from bountypay.models import DepositStatus, GibrapayStatus, PayoutType, Transaction
from bountypay.services.ledger import PayoutState


def _transaction(**overrides: object) -> Transaction:
    fields: dict[str, object] = {
        "report_id": "report-1",
        "company_id": "company-1",
        "pentester_id": "hunter-1",
        "gross_amount": Decimal("1000.00"),
        "platform_fee": Decimal("100.00"),
        "net_amount": Decimal("900.00"),
        "deposit_status": DepositStatus.PENDING,
        "pentester_paid": False,
        "payout_type": PayoutType.PENDING,
        "gibrapay_status": None,
    }
    fields.update(overrides)
    return Transaction(**fields)


@pytest.mark.parametrize(
    ("overrides", "expected"),
    [
        ({}, PayoutState.DEPOSIT_PENDING),
        ({"deposit_status": DepositStatus.CONFIRMED}, PayoutState.DEPOSIT_CONFIRMED),
        (
            {"deposit_status": DepositStatus.CONFIRMED, "gibrapay_status": GibrapayStatus.PROCESSING},
            PayoutState.PAYOUT_PROCESSING,
        ),
        (
            {"deposit_status": DepositStatus.CONFIRMED, "gibrapay_status": GibrapayStatus.FAILED},
            PayoutState.PAYOUT_FAILED,
        ),
        (
            {"deposit_status": DepositStatus.CONFIRMED, "payout_type": PayoutType.MANUAL},
            PayoutState.MANUAL_PAYOUT_REQUIRED,
        ),
        (
            {
                "deposit_status": DepositStatus.CONFIRMED,
                "pentester_paid": True,
                "gibrapay_status": GibrapayStatus.COMPLETE,
            },
            PayoutState.PAYOUT_COMPLETE,
        ),
        ({"deposit_status": DepositStatus.CONFIRMED, "pentester_paid": True}, PayoutState.PAYOUT_COMPLETE),
    ],
)
def test_state_is_derived_from_stored_fields(overrides: dict[str, object], expected: PayoutState) -> None:
    assert PayoutState.of(_transaction(**overrides)) is expected


def test_ussd_sent_on_confirmed_deposit_reads_as_awaiting_payout() -> None:
    transaction = _transaction(deposit_status=DepositStatus.CONFIRMED, gibrapay_status=GibrapayStatus.USSD_SENT)

    assert PayoutState.of(transaction) is PayoutState.DEPOSIT_CONFIRMED
