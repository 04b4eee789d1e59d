"""ORM models package."""
from .audit_log import AuditLog
from .base import Base, TimestampMixin
from .platform_setting import PlatformSetting
from .report import WALLET_PAYOUT_METHODS, Profile, Report
from .transaction import (
    DepositStatus,
    GibrapayStatus,
    PayoutType,
    Transaction,
    TransactionStatus,
    WalletType,
)

__all__ = [
    "AuditLog",
    "Base",
    "DepositStatus",
    "GibrapayStatus",
    "PayoutType",
    "PlatformSetting",
    "Profile",
    "Report",
    "TimestampMixin",
    "Transaction",
    "TransactionStatus",
    "WALLET_PAYOUT_METHODS",
    "WalletType",
]
