from __future__ import annotations

from decimal import Decimal

import pytest
from sqlalchemy import select
from sqlalchemy.orm import Session

from bountypay.core.config import get_settings
from bountypay.models import PlatformSetting
from bountypay.services.amounts import InvalidAmount
from bountypay.services.fee_policy import (
    PLATFORM_FEE_KEY,
    PLATFORM_PHONE_KEY,
    FeePolicyProvider,
    InvalidPhoneNumber,
    validate_platform_phone,
)


def test_defaults_apply_when_nothing_is_stored(db_session: Session) -> None:
    settings = get_settings()
    provider = FeePolicyProvider(db_session)

    assert provider.current_fee() == settings.default_platform_fee_percentage
    assert provider.current_deduction_percent() == settings.default_pentester_deduction_percentage


def test_update_persists_values_and_is_read_back(db_session: Session) -> None:
    provider = FeePolicyProvider(db_session)

    snapshot = provider.update(
        platform_fee_percent=Decimal("12.5"),
        pentester_deduction_percent=Decimal("8"),
        platform_remittance_phone="+258 84 123 4567",
    )
    db_session.commit()

    assert snapshot.platform_fee_percent == Decimal("12.5")
    assert snapshot.pentester_deduction_percent == Decimal("8")
    assert snapshot.platform_remittance_phone == "258841234567"
    stored = db_session.scalar(
        select(PlatformSetting.setting_value).where(PlatformSetting.setting_key == PLATFORM_PHONE_KEY)
    )
    assert stored == "258841234567"


def test_partial_update_leaves_other_values(db_session: Session) -> None:
    provider = FeePolicyProvider(db_session)
    provider.update(platform_fee_percent=Decimal("15"))
    provider.update(pentester_deduction_percent=Decimal("5"))

    assert provider.current_fee() == Decimal("15")
    assert provider.current_deduction_percent() == Decimal("5")


def test_update_rejects_out_of_range_percentage(db_session: Session) -> None:
    provider = FeePolicyProvider(db_session)

    with pytest.raises(InvalidAmount):
        provider.update(platform_fee_percent=Decimal("101"))


def test_update_rejects_foreign_phone_number(db_session: Session) -> None:
    provider = FeePolicyProvider(db_session)

    with pytest.raises(InvalidPhoneNumber):
        provider.update(platform_remittance_phone="+351912345678")


def test_corrupt_stored_percentage_falls_back_to_default(db_session: Session) -> None:
    db_session.add(PlatformSetting(setting_key=PLATFORM_FEE_KEY, setting_value="ten percent"))
    db_session.commit()

    assert FeePolicyProvider(db_session).current_fee() == get_settings().default_platform_fee_percentage


@pytest.mark.parametrize("phone", ["258841234567", "258 84 123 4567", "+258-84-123-4567"])
def test_validate_platform_phone_accepts_national_format(phone: str) -> None:
    assert validate_platform_phone(phone) == "258841234567"


@pytest.mark.parametrize("phone", ["84123456", "2588412345678", "", "258abc"])
def test_validate_platform_phone_rejects_other_shapes(phone: str) -> None:
    with pytest.raises(InvalidPhoneNumber):
        validate_platform_phone(phone)
