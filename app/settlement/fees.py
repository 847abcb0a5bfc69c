"""
Fee calculator for splitting a gross service charge.

Pure functions with no I/O. All amounts are integer cents and every
percentage is applied with Decimal arithmetic, rounded half-up to the cent,
so repeated calculations never drift.

Split order:
    rail_fee       = gross * rail_fee_percent + rail_fee_fixed
    after_rail     = gross - rail_fee
    after_referral = after_rail - referral_fee
    platform_share = after_referral * platform_share_percent
    payee_share    = after_referral * (1 - platform_share_percent)

Each share is rounded half-up on its own, so rail_fee + referral_fee +
platform_share + payee_share equals gross within one cent. The rounding
residue is left where it falls and is not moved into platform_share.

Usage:
    from settlement.fees import FeeSchedule, split

    result = split(5500, referral_fee_cents=500, schedule=FeeSchedule(), visits=4)
    result.platform_share_cents   # 1203
    result.payee_share_cents      # 3608
    result.payee_per_visit_cents  # 902
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from decimal import ROUND_HALF_UP, Decimal

from django.conf import settings

WHOLE_CENT = Decimal("1")


def round_cents(value: Decimal) -> int:
    """Round a Decimal amount of cents half-up to a whole cent."""
    return int(value.quantize(WHOLE_CENT, rounding=ROUND_HALF_UP))


@dataclass(frozen=True)
class FeeSchedule:
    """
    Fee parameters for a split.

    Attributes:
        rail_fee_percent: Card network percentage (0.029 = 2.9%)
        rail_fee_fixed_cents: Card network fixed fee per charge
        platform_share_percent: Platform cut of the post-referral amount
    """

    rail_fee_percent: Decimal = Decimal("0.029")
    rail_fee_fixed_cents: int = 30
    platform_share_percent: Decimal = Decimal("0.25")

    def __post_init__(self):
        if not Decimal("0") <= self.rail_fee_percent < Decimal("1"):
            raise ValueError(f"rail_fee_percent out of range: {self.rail_fee_percent}")
        if not Decimal("0") <= self.platform_share_percent <= Decimal("1"):
            raise ValueError(
                f"platform_share_percent out of range: {self.platform_share_percent}"
            )
        if self.rail_fee_fixed_cents < 0:
            raise ValueError("rail_fee_fixed_cents must not be negative")

    @classmethod
    def from_settings(cls) -> FeeSchedule:
        """Build the schedule configured in settings."""
        return cls(
            rail_fee_percent=Decimal(str(settings.SETTLEMENT_RAIL_FEE_PERCENT)),
            rail_fee_fixed_cents=settings.SETTLEMENT_RAIL_FEE_FIXED_CENTS,
            platform_share_percent=Decimal(
                str(settings.SETTLEMENT_PLATFORM_SHARE_PERCENT)
            ),
        )


@dataclass(frozen=True)
class FeeSplit:
    """
    Result of splitting one gross charge. All values in cents.

    payee_per_visit_cents is payee_share_cents divided by the number of
    visits in the billing period (1 for one-off services).
    """

    gross_cents: int
    rail_fee_cents: int
    after_rail_cents: int
    referral_fee_cents: int
    after_referral_cents: int
    platform_share_cents: int
    payee_share_cents: int
    visits: int = 1
    payee_per_visit_cents: int = field(default=0)

    @property
    def residue_cents(self) -> int:
        """gross minus the sum of all parts; within [-1, 1]."""
        return self.gross_cents - (
            self.rail_fee_cents
            + self.referral_fee_cents
            + self.platform_share_cents
            + self.payee_share_cents
        )

    def as_dict(self) -> dict[str, int]:
        return asdict(self)


def split(
    gross_cents: int,
    referral_fee_cents: int = 0,
    schedule: FeeSchedule | None = None,
    visits: int = 1,
) -> FeeSplit:
    """
    Split a gross charge into rail fee, referral fee, platform and payee shares.

    The rail fee is capped at the gross amount and the referral fee at what
    remains after it, so no share is ever negative.

    Args:
        gross_cents: Amount charged to the customer
        referral_fee_cents: Fixed referral deduction, 0 without an active referral
        schedule: Fee parameters (defaults to FeeSchedule())
        visits: Visits in the billing period for the per-visit payee amount

    Returns:
        FeeSplit with every component in cents

    Raises:
        ValueError: If an amount is negative or visits is less than 1
    """
    if gross_cents < 0:
        raise ValueError(f"gross_cents must not be negative: {gross_cents}")
    if referral_fee_cents < 0:
        raise ValueError(f"referral_fee_cents must not be negative: {referral_fee_cents}")
    if visits < 1:
        raise ValueError(f"visits must be at least 1: {visits}")

    schedule = schedule or FeeSchedule()

    rail_fee = round_cents(
        Decimal(gross_cents) * schedule.rail_fee_percent
        + Decimal(schedule.rail_fee_fixed_cents)
    )
    rail_fee = min(rail_fee, gross_cents)
    after_rail = gross_cents - rail_fee

    referral_fee = min(referral_fee_cents, after_rail)
    after_referral = after_rail - referral_fee

    platform_share = round_cents(
        Decimal(after_referral) * schedule.platform_share_percent
    )
    payee_share = round_cents(
        Decimal(after_referral) * (Decimal("1") - schedule.platform_share_percent)
    )

    return FeeSplit(
        gross_cents=gross_cents,
        rail_fee_cents=rail_fee,
        after_rail_cents=after_rail,
        referral_fee_cents=referral_fee,
        after_referral_cents=after_referral,
        platform_share_cents=platform_share,
        payee_share_cents=payee_share,
        visits=visits,
        payee_per_visit_cents=round_cents(Decimal(payee_share) / Decimal(visits)),
    )
