from __future__ import annotations

import asyncio
from decimal import Decimal

from sqlalchemy.orm import Session

from bountypay.models import GibrapayStatus, PayoutType
from bountypay.obs import QUEUE_DEPTH_GAUGE
from bountypay.services.payouts import PayoutService
from workers.payout_sweeper.main import run_once


def _queue_depth(queue_name: str) -> float:
    family = next(iter(QUEUE_DEPTH_GAUGE.collect()))
    return next(sample.value for sample in family.samples if sample.labels["queue_name"] == queue_name)


def test_sweep_releases_abandoned_claims_and_reports_depths(
    payout_service: PayoutService, make_report, db_session: Session, clock
) -> None:
    report = make_report()
    transaction = payout_service.request_payment(
        report_id=report.id,
        company_id=report.company_id,
        pentester_id=report.pentester_id,
        gross_amount=Decimal("1000"),
        actor="ops",
    )
    payout_service.confirm_deposit(transaction.id, actor="ops", trigger_payout=False)
    clock.advance(hours=-1)
    claimed_at = clock()
    payout_service.ledger.claim_payout(
        transaction.id,
        payout_type=PayoutType.AUTOMATIC_MPESA,
        now=claimed_at,
        stale_before=claimed_at - payout_service.processing_timeout,
    )
    db_session.commit()

    released = asyncio.run(run_once(payout_service))

    assert released == [transaction.id]
    assert payout_service.ledger.get(transaction.id).gibrapay_status == GibrapayStatus.FAILED
    assert _queue_depth("payout_pending") == 1
    assert _queue_depth("deposit_pending") == 0
