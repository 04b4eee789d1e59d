"""Platform transaction (payout ledger) ORM model."""
from __future__ import annotations

import enum
import uuid
from datetime import datetime
from decimal import Decimal

from sqlalchemy import Boolean, DateTime, Index, Integer, Numeric, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from bountypay.models.base import Base, TimestampMixin, value_enum


class DepositStatus(str, enum.Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"


class TransactionStatus(str, enum.Enum):
    PENDING = "pending"
    COMPLETED = "completed"


class PayoutType(str, enum.Enum):
    PENDING = "pending"
    MANUAL = "manual"
    AUTOMATIC_MPESA = "automatic_mpesa"
    AUTOMATIC_EMOLA = "automatic_emola"


class GibrapayStatus(str, enum.Enum):
    USSD_SENT = "ussd_sent"
    PROCESSING = "processing"
    COMPLETE = "complete"
    FAILED = "failed"


class WalletType(str, enum.Enum):
    MPESA = "mpesa"
    EMOLA = "emola"

    @property
    def payout_type(self) -> PayoutType:
        if self is WalletType.EMOLA:
            return PayoutType.AUTOMATIC_EMOLA
        return PayoutType.AUTOMATIC_MPESA


class Transaction(TimestampMixin, Base):
    """Lifecycle record of one report's reward payment.

    Field names are a stable contract for report status display and the
    CSV/PDF exports; rows are never deleted.
    """

    __tablename__ = "platform_transactions"
    __table_args__ = (
        Index("ix_platform_transactions_deposit_status", "deposit_status"),
        Index("ix_platform_transactions_pentester_paid", "pentester_paid"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    report_id: Mapped[str] = mapped_column(String(36), nullable=False, unique=True)
    company_id: Mapped[str] = mapped_column(String(36), nullable=False)
    pentester_id: Mapped[str] = mapped_column(String(36), nullable=False)

    gross_amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    platform_fee: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    net_amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)

    status: Mapped[TransactionStatus] = mapped_column(
        value_enum(TransactionStatus, "transaction_status"),
        nullable=False,
        default=TransactionStatus.PENDING,
    )
    deposit_status: Mapped[DepositStatus] = mapped_column(
        value_enum(DepositStatus, "deposit_status"), nullable=False, default=DepositStatus.PENDING
    )
    deposit_confirmed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

    pentester_paid: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    pentester_paid_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    pentester_payment_reference: Mapped[str | None] = mapped_column(String(128))
    pentester_payment_notes: Mapped[str | None] = mapped_column(Text)

    payout_type: Mapped[PayoutType] = mapped_column(
        value_enum(PayoutType, "payout_type"), nullable=False, default=PayoutType.PENDING
    )
    gibrapay_status: Mapped[GibrapayStatus | None] = mapped_column(
        value_enum(GibrapayStatus, "gibrapay_status")
    )
    gibrapay_pentester_tx_id: Mapped[str | None] = mapped_column(String(128))
    gibrapay_platform_tx_id: Mapped[str | None] = mapped_column(String(128))
    platform_fee_remitted_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    gibrapay_error: Mapped[str | None] = mapped_column(Text)

    wallet_type: Mapped[WalletType | None] = mapped_column(value_enum(WalletType, "wallet_type"))
    phone_number: Mapped[str | None] = mapped_column(String(32))
    direct_payment: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    payout_claimed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    payout_attempts: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    lock_version: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    __mapper_args__ = {"version_id_col": lock_version}


__all__ = [
    "DepositStatus",
    "GibrapayStatus",
    "PayoutType",
    "Transaction",
    "TransactionStatus",
    "WalletType",
]
