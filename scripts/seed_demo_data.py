"""Seed script for a demo hunter, accepted reports and fee policy."""
from __future__ import annotations

import logging
from decimal import Decimal

from sqlalchemy.orm import Session

from bountypay.db.session import engine, get_session
from bountypay.models import Base, Profile, Report
from bountypay.services.fee_policy import FeePolicyProvider

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

DEMO_COMPANY_ID = "00000000-0000-0000-0000-00000000c0de"

DEMO_PROFILES = [
    ("00000000-0000-0000-0000-0000000000a1", "Wallet Hunter", "mpesa", {"phone_number": "258841234567"}),
    ("00000000-0000-0000-0000-0000000000a2", "Bank Hunter", "bank_transfer", {"bank_name": "BCI", "nib": "000800000000000000000"}),
]


def seed(session: Session) -> None:
    """Seed demo profiles, one accepted report per profile and the default fee policy."""

    for profile_id, name, method, details in DEMO_PROFILES:
        if session.get(Profile, profile_id) is not None:
            logger.info("Profile %s already exists", profile_id)
            continue
        session.add(Profile(id=profile_id, display_name=name, payout_method=method, payout_details=details))
        session.add(
            Report(
                company_id=DEMO_COMPANY_ID,
                pentester_id=profile_id,
                title=f"Stored XSS reported by {name}",
                reward_amount=Decimal("1000.00"),
            )
        )
        logger.info("Added profile %s with an accepted report", profile_id)

    session.flush()
    snapshot = FeePolicyProvider(session).update(
        platform_fee_percent=Decimal("10"),
        pentester_deduction_percent=Decimal("10"),
    )
    logger.info("Fee policy set to %s", snapshot)


def main() -> None:
    Base.metadata.create_all(bind=engine)
    with get_session() as session:
        seed(session)


if __name__ == "__main__":
    main()
