"""Pydantic schemas for payout ledger resources."""
from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from bountypay.models import (
    DepositStatus,
    GibrapayStatus,
    PayoutType,
    Transaction,
    TransactionStatus,
    WalletType,
)
from bountypay.services.ledger import PayoutState


class PaymentRequest(BaseModel):
    """Payload recording that a company owes a reward for an accepted report."""

    report_id: str = Field(..., min_length=1, max_length=36)
    company_id: str = Field(..., min_length=1, max_length=36)
    pentester_id: str = Field(..., min_length=1, max_length=36)
    gross_amount: Decimal = Field(..., description="Reward amount in MZN")
    direct_payment: bool = Field(default=False, description="Company pays the reward straight to a wallet")
    phone_number: str | None = Field(default=None, max_length=32)
    wallet_type: WalletType | None = None


class ProcessPayoutRequest(BaseModel):
    """Payload for paying a report in one step; the report supplies the parties."""

    reward_amount: Decimal | None = Field(default=None, description="Overrides the report's reward amount")
    direct_payment: bool = False
    phone_number: str | None = Field(default=None, max_length=32)
    wallet_type: WalletType | None = None


class ManualPaymentConfirmation(BaseModel):
    reference: str = Field(..., min_length=1, max_length=128, description="Bank or PayPal transfer reference")
    notes: str | None = Field(default=None, max_length=1000)


class RetryPayoutRequest(BaseModel):
    provider_reconciled: bool = Field(
        default=False,
        description="Operator confirmed in provider records that the previous transfer did not settle",
    )
    note: str | None = Field(default=None, max_length=1000)


class TransactionRead(BaseModel):
    """Serialized ledger entry with its derived payout state."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    report_id: str
    company_id: str
    pentester_id: str
    gross_amount: Decimal
    platform_fee: Decimal
    net_amount: Decimal
    status: TransactionStatus
    deposit_status: DepositStatus
    deposit_confirmed_at: datetime | None
    completed_at: datetime | None
    pentester_paid: bool
    pentester_paid_at: datetime | None
    pentester_payment_reference: str | None
    pentester_payment_notes: str | None
    payout_type: PayoutType
    gibrapay_status: GibrapayStatus | None
    gibrapay_pentester_tx_id: str | None
    gibrapay_platform_tx_id: str | None
    platform_fee_remitted_at: datetime | None = None
    gibrapay_error: str | None
    wallet_type: WalletType | None
    direct_payment: bool
    payout_attempts: int
    lock_version: int
    created_at: datetime
    state: PayoutState | None = None

    @classmethod
    def from_transaction(cls, transaction: Transaction) -> "TransactionRead":
        return cls.model_validate(transaction).model_copy(update={"state": PayoutState.of(transaction)})


class PayoutOutcomeRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    transaction_id: str
    state: PayoutState
    automatic: bool
    success: bool
    pentester_tx_id: str | None = None
    platform_tx_id: str | None = None
    error: str | None = None
    payout_method: str | None = None
    payout_details: dict[str, Any] = Field(default_factory=dict)


class DepositConfirmationResponse(BaseModel):
    transaction: TransactionRead
    payout: PayoutOutcomeRead | None = None


class ReconciliationQueuesRead(BaseModel):
    """Admin reconciliation view: unfunded, funded-but-unpaid and recently paid entries."""

    deposit_pending: list[TransactionRead]
    payout_pending: list[TransactionRead]
    completed: list[TransactionRead]


class CheckoutQuoteRead(BaseModel):
    reward: Decimal
    platform_fee_percent: Decimal
    platform_fee: Decimal
    total: Decimal


__all__ = [
    "CheckoutQuoteRead",
    "DepositConfirmationResponse",
    "ManualPaymentConfirmation",
    "PaymentRequest",
    "PayoutOutcomeRead",
    "ProcessPayoutRequest",
    "ReconciliationQueuesRead",
    "RetryPayoutRequest",
    "TransactionRead",
]
