"""Schemas for the admin fee policy and custodial wallet views."""
from __future__ import annotations

from decimal import Decimal
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class FeePolicyRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    platform_fee_percent: Decimal
    pentester_deduction_percent: Decimal
    platform_remittance_phone: str | None


class FeePolicyUpdate(BaseModel):
    """Fee policy changes; omitted fields are left as they are."""

    platform_fee_percent: Decimal | None = Field(default=None, ge=0, le=100)
    pentester_deduction_percent: Decimal | None = Field(default=None, ge=0, le=100)
    platform_remittance_phone: str | None = Field(
        default=None,
        max_length=32,
        description="Wallet number in national format, e.g. 258841234567",
    )


class WalletBalanceRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    success: bool
    name: str | None = None
    balance: Decimal | None = None
    statistics: dict[str, Any] | None = None
    error: str | None = None


__all__ = ["FeePolicyRead", "FeePolicyUpdate", "WalletBalanceRead"]
