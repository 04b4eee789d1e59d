"""Pydantic schemas package."""

from .payout import (
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
from .settings import FeePolicyRead, FeePolicyUpdate, WalletBalanceRead

__all__ = [
    "CheckoutQuoteRead",
    "DepositConfirmationResponse",
    "FeePolicyRead",
    "FeePolicyUpdate",
    "ManualPaymentConfirmation",
    "PaymentRequest",
    "PayoutOutcomeRead",
    "ProcessPayoutRequest",
    "ReconciliationQueuesRead",
    "RetryPayoutRequest",
    "TransactionRead",
    "WalletBalanceRead",
]
