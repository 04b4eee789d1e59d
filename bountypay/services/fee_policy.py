"""Platform fee policy lookups backed by the ``platform_settings`` table."""
from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.orm import Session

from bountypay.core.config import Settings, get_settings
from bountypay.models import PlatformSetting
from bountypay.services.amounts import InvalidAmount, validate_percentage

logger = logging.getLogger(__name__)

PLATFORM_FEE_KEY = "platform_fee_percentage"
PENTESTER_DEDUCTION_KEY = "pentester_deduction_percentage"
PLATFORM_PHONE_KEY = "platform_mpesa_number"

_DESCRIPTIONS = {
    PLATFORM_FEE_KEY: "Commission added on top of each reward and charged to the company",
    PENTESTER_DEDUCTION_KEY: "Share withheld from the hunter's reward and kept in custody",
    PLATFORM_PHONE_KEY: "Wallet number receiving the platform's share of each payout",
}


class InvalidPhoneNumber(ValueError):
    """Raised when a remittance phone number does not match the national format."""


@dataclass(frozen=True, slots=True)
class FeePolicySnapshot:
    """Fee policy values read once and used for a single calculation."""

    platform_fee_percent: Decimal
    pentester_deduction_percent: Decimal
    platform_remittance_phone: str | None


def clean_phone_number(phone: str) -> str:
    return re.sub(r"\D", "", phone)


def validate_platform_phone(phone: str, *, country_code: str = "258") -> str:
    """Return the digits-only phone number if it is ``<country code>`` plus nine digits."""

    cleaned = clean_phone_number(phone)
    if not re.fullmatch(rf"{re.escape(country_code)}\d{{9}}", cleaned):
        raise InvalidPhoneNumber(f"phone number must be {country_code} followed by 9 digits")
    return cleaned


class FeePolicyProvider:
    """Reads the mutable fee policy; values may change between calls."""

    def __init__(self, session: Session, *, settings: Settings | None = None) -> None:
        self._session = session
        self._settings = settings or get_settings()

    def _raw(self, key: str) -> str | None:
        return self._session.scalar(
            select(PlatformSetting.setting_value).where(PlatformSetting.setting_key == key)
        )

    def _percentage(self, key: str, default: Decimal) -> Decimal:
        raw = self._raw(key)
        if raw is None:
            return default
        try:
            return validate_percentage(raw)
        except InvalidAmount:
            logger.warning("ignoring invalid stored percentage", extra={"setting_key": key, "value": raw})
            return default

    def current_fee(self) -> Decimal:
        return self._percentage(PLATFORM_FEE_KEY, self._settings.default_platform_fee_percentage)

    def current_deduction_percent(self) -> Decimal:
        return self._percentage(
            PENTESTER_DEDUCTION_KEY, self._settings.default_pentester_deduction_percentage
        )

    def platform_remittance_phone(self) -> str | None:
        stored = self._raw(PLATFORM_PHONE_KEY)
        phone = stored or self._settings.platform_mpesa_number
        if not phone:
            return None
        return clean_phone_number(phone) or None

    def snapshot(self) -> FeePolicySnapshot:
        return FeePolicySnapshot(
            platform_fee_percent=self.current_fee(),
            pentester_deduction_percent=self.current_deduction_percent(),
            platform_remittance_phone=self.platform_remittance_phone(),
        )

    def update(
        self,
        *,
        platform_fee_percent: Decimal | None = None,
        pentester_deduction_percent: Decimal | None = None,
        platform_remittance_phone: str | None = None,
    ) -> FeePolicySnapshot:
        """Validate and persist the supplied values; omitted values are left unchanged."""

        updates: dict[str, str] = {}
        if platform_fee_percent is not None:
            updates[PLATFORM_FEE_KEY] = str(validate_percentage(platform_fee_percent))
        if pentester_deduction_percent is not None:
            updates[PENTESTER_DEDUCTION_KEY] = str(validate_percentage(pentester_deduction_percent))
        if platform_remittance_phone is not None:
            updates[PLATFORM_PHONE_KEY] = validate_platform_phone(
                platform_remittance_phone, country_code=self._settings.phone_country_code
            )

        for key, value in updates.items():
            setting = self._session.scalar(select(PlatformSetting).where(PlatformSetting.setting_key == key))
            if setting is None:
                setting = PlatformSetting(setting_key=key, setting_value=value, description=_DESCRIPTIONS[key])
                self._session.add(setting)
            else:
                setting.setting_value = value
        self._session.flush()
        if updates:
            logger.info("fee policy updated", extra={"setting_keys": sorted(updates)})
        return self.snapshot()


__all__ = [
    "FeePolicyProvider",
    "FeePolicySnapshot",
    "InvalidPhoneNumber",
    "PENTESTER_DEDUCTION_KEY",
    "PLATFORM_FEE_KEY",
    "PLATFORM_PHONE_KEY",
    "clean_phone_number",
    "validate_platform_phone",
]
