"""Admin payout reconciliation routes."""
from __future__ import annotations

from datetime import date
from decimal import Decimal

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from sqlalchemy.orm import Session

from bountypay.api.deps import get_db_session, get_payout_service, require_admin
from bountypay.schemas import (
    CheckoutQuoteRead,
    DepositConfirmationResponse,
    ManualPaymentConfirmation,
    PaymentRequest,
    PayoutOutcomeRead,
    ProcessPayoutRequest,
    ReconciliationQueuesRead,
    RetryPayoutRequest,
    TransactionRead,
)
from bountypay.services.amounts import checkout_quote
from bountypay.services.fee_policy import FeePolicyProvider
from bountypay.services.payouts import PayoutService

router = APIRouter(prefix="/payouts")


@router.post("/requests", response_model=TransactionRead, status_code=status.HTTP_201_CREATED)
def request_payment(
    payload: PaymentRequest,
    request: Request,
    service: PayoutService = Depends(get_payout_service),
    actor: str = Depends(require_admin),
) -> TransactionRead:
    transaction = service.request_payment(
        report_id=payload.report_id,
        company_id=payload.company_id,
        pentester_id=payload.pentester_id,
        gross_amount=payload.gross_amount,
        actor=actor,
        direct_payment=payload.direct_payment,
        phone_number=payload.phone_number,
        wallet_type=payload.wallet_type,
    )
    request.state.transaction_id = transaction.id
    return TransactionRead.from_transaction(transaction)


@router.post("/reports/{report_id}/process", response_model=PayoutOutcomeRead)
def process_report_payout(
    report_id: str,
    payload: ProcessPayoutRequest,
    request: Request,
    service: PayoutService = Depends(get_payout_service),
    actor: str = Depends(require_admin),
) -> PayoutOutcomeRead:
    outcome = service.process_payout(
        report_id,
        actor=actor,
        reward_amount=payload.reward_amount,
        phone_number=payload.phone_number,
        wallet_type=payload.wallet_type,
        direct_payment=payload.direct_payment,
    )
    request.state.transaction_id = outcome.transaction_id
    return PayoutOutcomeRead.model_validate(outcome)


@router.get("/queues", response_model=ReconciliationQueuesRead)
def reconciliation_queues(
    date_from: date | None = Query(default=None),
    date_to: date | None = Query(default=None),
    service: PayoutService = Depends(get_payout_service),
    _actor: str = Depends(require_admin),
) -> ReconciliationQueuesRead:
    if date_from is not None and date_to is not None and date_from > date_to:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail="date_from is after date_to")
    queues = service.reconciliation_queues(date_from=date_from, date_to=date_to)
    return ReconciliationQueuesRead(
        deposit_pending=[TransactionRead.from_transaction(tx) for tx in queues.deposit_pending],
        payout_pending=[TransactionRead.from_transaction(tx) for tx in queues.payout_pending],
        completed=[TransactionRead.from_transaction(tx) for tx in queues.completed],
    )


@router.get("/quote", response_model=CheckoutQuoteRead)
def quote_checkout(
    reward_amount: Decimal = Query(...),
    session: Session = Depends(get_db_session),
) -> CheckoutQuoteRead:
    fee_percent = FeePolicyProvider(session).current_fee()
    quote = checkout_quote(reward_amount, fee_percent)
    return CheckoutQuoteRead(
        reward=quote.reward,
        platform_fee_percent=fee_percent,
        platform_fee=quote.platform_fee,
        total=quote.total,
    )


@router.post("/release-stale", response_model=list[str])
def release_stale_claims(
    service: PayoutService = Depends(get_payout_service),
    _actor: str = Depends(require_admin),
) -> list[str]:
    return service.release_stale_claims()


@router.get("/{transaction_id}", response_model=TransactionRead)
def get_transaction(
    transaction_id: str,
    service: PayoutService = Depends(get_payout_service),
    _actor: str = Depends(require_admin),
) -> TransactionRead:
    transaction = service.ledger.get(transaction_id)
    return TransactionRead.from_transaction(transaction)


@router.post("/{transaction_id}/confirm-deposit", response_model=DepositConfirmationResponse)
def confirm_deposit(
    transaction_id: str,
    request: Request,
    trigger_payout: bool = Query(default=True),
    service: PayoutService = Depends(get_payout_service),
    actor: str = Depends(require_admin),
) -> DepositConfirmationResponse:
    request.state.transaction_id = transaction_id
    confirmation = service.confirm_deposit(transaction_id, actor=actor, trigger_payout=trigger_payout)
    payout = PayoutOutcomeRead.model_validate(confirmation.payout) if confirmation.payout is not None else None
    return DepositConfirmationResponse(
        transaction=TransactionRead.from_transaction(confirmation.transaction),
        payout=payout,
    )


@router.post("/{transaction_id}/try-payout", response_model=PayoutOutcomeRead)
def try_automatic_payout(
    transaction_id: str,
    request: Request,
    service: PayoutService = Depends(get_payout_service),
    actor: str = Depends(require_admin),
) -> PayoutOutcomeRead:
    request.state.transaction_id = transaction_id
    outcome = service.try_automatic_payout(transaction_id, actor=actor)
    return PayoutOutcomeRead.model_validate(outcome)


@router.post("/{transaction_id}/confirm-manual", response_model=TransactionRead)
def confirm_manual_payment(
    transaction_id: str,
    payload: ManualPaymentConfirmation,
    request: Request,
    service: PayoutService = Depends(get_payout_service),
    actor: str = Depends(require_admin),
) -> TransactionRead:
    request.state.transaction_id = transaction_id
    transaction = service.confirm_manual_payment(
        transaction_id,
        actor=actor,
        reference=payload.reference,
        notes=payload.notes,
    )
    return TransactionRead.from_transaction(transaction)


@router.post("/{transaction_id}/retry", response_model=PayoutOutcomeRead)
def retry_payout(
    transaction_id: str,
    payload: RetryPayoutRequest,
    request: Request,
    service: PayoutService = Depends(get_payout_service),
    actor: str = Depends(require_admin),
) -> PayoutOutcomeRead:
    request.state.transaction_id = transaction_id
    outcome = service.retry_payout(
        transaction_id,
        actor=actor,
        provider_reconciled=payload.provider_reconciled,
        note=payload.note,
    )
    return PayoutOutcomeRead.model_validate(outcome)


__all__ = ["router"]
