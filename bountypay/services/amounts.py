"""Reward amount arithmetic in currency minor units."""
from __future__ import annotations

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation

from bountypay.services.errors import InvalidAmount

MINOR_UNITS = 100
_CENT = Decimal("0.01")
_HUNDRED = Decimal("100")


@dataclass(frozen=True, slots=True)
class AmountSplit:
    """Fee and net portions of a gross reward, in minor units."""

    gross_minor: int
    fee_minor: int
    net_minor: int

    @property
    def gross(self) -> Decimal:
        return from_minor_units(self.gross_minor)

    @property
    def fee(self) -> Decimal:
        return from_minor_units(self.fee_minor)

    @property
    def net(self) -> Decimal:
        return from_minor_units(self.net_minor)


@dataclass(frozen=True, slots=True)
class CheckoutQuote:
    """Amounts charged to a company paying a reward by card."""

    reward: Decimal
    platform_fee: Decimal
    total: Decimal


def _as_decimal(value: Decimal | int | float | str, *, label: str) -> Decimal:
    try:
        result = Decimal(str(value))
    except (InvalidOperation, ValueError) as exc:
        raise InvalidAmount(f"{label} is not a number: {value!r}") from exc
    if not result.is_finite():
        raise InvalidAmount(f"{label} must be finite")
    return result


def to_minor_units(amount: Decimal | int | float | str) -> int:
    """Convert a major-unit amount to integer minor units, rounding half-up."""

    value = _as_decimal(amount, label="amount")
    return int((value * MINOR_UNITS).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def from_minor_units(minor: int) -> Decimal:
    return (Decimal(minor) / MINOR_UNITS).quantize(_CENT)


def validate_percentage(percent: Decimal | int | float | str) -> Decimal:
    """Return ``percent`` as a Decimal, rejecting values outside [0, 100]."""

    value = _as_decimal(percent, label="percentage")
    if value < 0 or value > _HUNDRED:
        raise InvalidAmount(f"percentage must be between 0 and 100, got {value}")
    return value


def percentage_of(amount_minor: int, percent: Decimal) -> int:
    """Return ``percent`` of ``amount_minor``, rounded half-up to a whole minor unit."""

    share = Decimal(amount_minor) * percent / _HUNDRED
    return int(share.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def compute_split(gross_amount: Decimal | int | float | str, fee_percent: Decimal | int | float | str) -> AmountSplit:
    """Split ``gross_amount`` into a fee and a net amount.

    The fee is rounded half-up to the minor unit and the net amount is the
    exact remainder, so ``fee + net == gross`` always holds.
    """

    gross_minor = to_minor_units(gross_amount)
    if gross_minor <= 0:
        raise InvalidAmount("gross amount must be positive")
    percent = validate_percentage(fee_percent)
    fee_minor = percentage_of(gross_minor, percent)
    return AmountSplit(gross_minor=gross_minor, fee_minor=fee_minor, net_minor=gross_minor - fee_minor)


def checkout_quote(reward_amount: Decimal | int | float | str, platform_fee_percent: Decimal | int | float | str) -> CheckoutQuote:
    """Quote a card checkout where the platform fee is added on top of the reward."""

    reward_minor = to_minor_units(reward_amount)
    if reward_minor <= 0:
        raise InvalidAmount("reward amount must be positive")
    fee_minor = percentage_of(reward_minor, validate_percentage(platform_fee_percent))
    return CheckoutQuote(
        reward=from_minor_units(reward_minor),
        platform_fee=from_minor_units(fee_minor),
        total=from_minor_units(reward_minor + fee_minor),
    )


def split_is_consistent(gross: Decimal, fee: Decimal, net: Decimal) -> bool:
    """Check the persisted ledger invariant ``gross == fee + net`` with non-negative parts."""

    gross_minor, fee_minor, net_minor = (to_minor_units(value) for value in (gross, fee, net))
    return fee_minor >= 0 and net_minor >= 0 and gross_minor == fee_minor + net_minor


__all__ = [
    "AmountSplit",
    "CheckoutQuote",
    "InvalidAmount",
    "MINOR_UNITS",
    "checkout_quote",
    "compute_split",
    "from_minor_units",
    "percentage_of",
    "split_is_consistent",
    "to_minor_units",
    "validate_percentage",
]
