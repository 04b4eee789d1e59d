"""Payout engine error hierarchy."""
from __future__ import annotations


class PayoutError(RuntimeError):
    """Base class for payout service errors."""


class TransactionNotFound(PayoutError):
    """Raised when no ledger entry matches the given identifier."""


class ReportNotFound(PayoutError):
    """Raised when the report to be paid cannot be located."""


class InvalidAmount(PayoutError, ValueError):
    """Raised when a gross amount or percentage cannot be split."""


class GuardViolation(PayoutError):
    """Raised when an operation is invoked outside its allowed state; nothing is mutated."""


class DepositAlreadyConfirmed(GuardViolation):
    """Raised when a deposit is confirmed twice."""


class AlreadyPaidOrNotConfirmed(GuardViolation):
    """Raised when an automatic payout is attempted on a paid or unfunded transaction."""


class AlreadyPaid(GuardViolation):
    """Raised when a transaction whose hunter is already paid would be paid again."""


class RetryNotAllowed(GuardViolation):
    """Raised when a retry is requested for a payout that has not failed."""


class ReconciliationRequired(GuardViolation):
    """Raised when a retry lacks the operator's provider reconciliation acknowledgement."""


class PayoutInProgress(GuardViolation):
    """Raised when another caller holds the processing claim for the transaction."""


class PayoutDestinationError(PayoutError):
    """Raised when a wallet payout has no phone number to send to."""


class LedgerInvariantError(PayoutError):
    """Raised when persisted amounts violate ``gross == fee + net``."""


class PayoutConcurrencyError(PayoutError):
    """Raised when optimistic locking detects a concurrent update."""


__all__ = [
    "AlreadyPaid",
    "AlreadyPaidOrNotConfirmed",
    "DepositAlreadyConfirmed",
    "GuardViolation",
    "InvalidAmount",
    "LedgerInvariantError",
    "PayoutConcurrencyError",
    "PayoutDestinationError",
    "PayoutError",
    "PayoutInProgress",
    "ReconciliationRequired",
    "ReportNotFound",
    "RetryNotAllowed",
    "TransactionNotFound",
]
