"""Admin fee policy and custodial wallet routes."""
from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from bountypay.api.deps import get_db_session, get_payout_service, require_admin
from bountypay.core.logging import mask_phone
from bountypay.models import AuditLog
from bountypay.schemas import FeePolicyRead, FeePolicyUpdate, WalletBalanceRead
from bountypay.services.amounts import InvalidAmount
from bountypay.services.fee_policy import FeePolicyProvider, InvalidPhoneNumber
from bountypay.services.payouts import PayoutService

router = APIRouter(prefix="/settings")


@router.get("/fees", response_model=FeePolicyRead)
def read_fee_policy(
    session: Session = Depends(get_db_session),
    _actor: str = Depends(require_admin),
) -> FeePolicyRead:
    return FeePolicyRead.model_validate(FeePolicyProvider(session).snapshot())


@router.put("/fees", response_model=FeePolicyRead)
def update_fee_policy(
    payload: FeePolicyUpdate,
    session: Session = Depends(get_db_session),
    actor: str = Depends(require_admin),
) -> FeePolicyRead:
    provider = FeePolicyProvider(session)
    try:
        snapshot = provider.update(
            platform_fee_percent=payload.platform_fee_percent,
            pentester_deduction_percent=payload.pentester_deduction_percent,
            platform_remittance_phone=payload.platform_remittance_phone,
        )
    except (InvalidAmount, InvalidPhoneNumber) as exc:
        session.rollback()
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(exc)) from exc

    session.add(
        AuditLog(
            actor=actor,
            action="settings.fees_updated",
            resource_type="PlatformSetting",
            resource_id=None,
            payload={
                "platform_fee_percent": str(snapshot.platform_fee_percent),
                "pentester_deduction_percent": str(snapshot.pentester_deduction_percent),
                "platform_remittance_phone": mask_phone(snapshot.platform_remittance_phone),
            },
        )
    )
    session.commit()
    return FeePolicyRead.model_validate(snapshot)


@router.get("/wallet-balance", response_model=WalletBalanceRead)
def wallet_balance(
    service: PayoutService = Depends(get_payout_service),
    _actor: str = Depends(require_admin),
) -> WalletBalanceRead:
    balance = service.wallet_balance()
    if not balance.success:
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=balance.error or "Balance unavailable")
    return WalletBalanceRead.model_validate(balance)


__all__ = ["router"]
