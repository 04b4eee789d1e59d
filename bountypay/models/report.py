"""Report and profile records owned by the marketplace and read by the payout engine."""
from __future__ import annotations

import uuid
from decimal import Decimal

from sqlalchemy import ForeignKey, JSON, Numeric, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from bountypay.models.base import Base, TimestampMixin

WALLET_PAYOUT_METHODS = frozenset({"mpesa", "emola"})


class Profile(TimestampMixin, Base):
    """Hunter or company profile; only payout-related columns are mapped."""

    __tablename__ = "profiles"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    display_name: Mapped[str | None] = mapped_column(String(255))
    payout_method: Mapped[str | None] = mapped_column(String(32))
    payout_details: Mapped[dict | None] = mapped_column(JSON)

    @property
    def payout_phone(self) -> str | None:
        return (self.payout_details or {}).get("phone_number") or None

    @property
    def has_wallet_payout(self) -> bool:
        return self.payout_method in WALLET_PAYOUT_METHODS


class Report(TimestampMixin, Base):
    """Vulnerability report accepted for a reward."""

    __tablename__ = "reports"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    company_id: Mapped[str] = mapped_column(String(36), nullable=False)
    pentester_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("profiles.id", ondelete="RESTRICT"), nullable=False
    )
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    status: Mapped[str] = mapped_column(String(32), nullable=False, default="accepted")
    reward_amount: Mapped[Decimal | None] = mapped_column(Numeric(12, 2))

    pentester = relationship("Profile")


__all__ = ["Profile", "Report", "WALLET_PAYOUT_METHODS"]
