"""
Tests for the fee calculator.

Covers the split order, half-up rounding, the per-visit amount and the
guards that keep every share non-negative.
"""

from decimal import Decimal

import pytest

from settlement.fees import FeeSchedule, round_cents, split


class TestRoundCents:
    def test_rounds_half_up(self):
        assert round_cents(Decimal("189.5")) == 190
        assert round_cents(Decimal("902.5")) == 903

    def test_rounds_down_below_half(self):
        assert round_cents(Decimal("1202.49")) == 1202


class TestSplit:
    def test_subscription_visit_with_referral(self):
        """$55 charge, $5 referral fee, four visits in the period."""
        result = split(5500, referral_fee_cents=500, schedule=FeeSchedule(), visits=4)

        assert result.rail_fee_cents == 190
        assert result.after_rail_cents == 5310
        assert result.referral_fee_cents == 500
        assert result.after_referral_cents == 4810
        assert result.platform_share_cents == 1203
        assert result.payee_share_cents == 3608
        assert result.payee_per_visit_cents == 902

    def test_without_referral(self):
        result = split(10000)

        assert result.rail_fee_cents == 320
        assert result.referral_fee_cents == 0
        assert result.after_referral_cents == 9680
        assert result.platform_share_cents == 2420
        assert result.payee_share_cents == 7260
        assert result.payee_per_visit_cents == 7260

    def test_parts_sum_to_gross_within_one_cent(self):
        schedule = FeeSchedule()
        for gross in (1, 99, 1234, 5500, 9999, 123457):
            for referral_fee in (0, 500):
                result = split(gross, referral_fee_cents=referral_fee, schedule=schedule)
                assert abs(result.residue_cents) <= 1

    def test_shares_are_rounded_independently(self):
        """Both halves of 4810 * 25% round up; the extra cent stays in place."""
        result = split(5500, referral_fee_cents=500)

        assert result.platform_share_cents == round_cents(Decimal("4810") * Decimal("0.25"))
        assert result.payee_share_cents == round_cents(Decimal("4810") * Decimal("0.75"))
        assert result.residue_cents == -1

    def test_rail_fee_capped_at_gross(self):
        result = split(10)

        assert result.rail_fee_cents == 10
        assert result.after_rail_cents == 0
        assert result.platform_share_cents == 0
        assert result.payee_share_cents == 0

    def test_referral_fee_capped_at_amount_after_rail(self):
        result = split(400, referral_fee_cents=500)

        assert result.rail_fee_cents == 42
        assert result.referral_fee_cents == 358
        assert result.after_referral_cents == 0
        assert result.payee_share_cents == 0

    def test_zero_gross(self):
        result = split(0)

        assert result.rail_fee_cents == 0
        assert result.payee_per_visit_cents == 0
        assert result.residue_cents == 0

    def test_custom_schedule(self):
        schedule = FeeSchedule(
            rail_fee_percent=Decimal("0"),
            rail_fee_fixed_cents=0,
            platform_share_percent=Decimal("0.5"),
        )

        result = split(1001, schedule=schedule)

        assert result.platform_share_cents == 501
        assert result.payee_share_cents == 501
        assert result.residue_cents == -1

    def test_as_dict_contains_every_component(self):
        data = split(5500, referral_fee_cents=500, visits=4).as_dict()

        assert data["gross_cents"] == 5500
        assert data["payee_per_visit_cents"] == 902
        assert data["visits"] == 4

    @pytest.mark.parametrize(
        "kwargs",
        [
            {"gross_cents": -1},
            {"gross_cents": 100, "referral_fee_cents": -5},
            {"gross_cents": 100, "visits": 0},
        ],
    )
    def test_rejects_invalid_input(self, kwargs):
        with pytest.raises(ValueError):
            split(**kwargs)


class TestFeeSchedule:
    def test_rejects_out_of_range_percentages(self):
        with pytest.raises(ValueError):
            FeeSchedule(rail_fee_percent=Decimal("1.5"))
        with pytest.raises(ValueError):
            FeeSchedule(platform_share_percent=Decimal("-0.1"))

    def test_rejects_negative_fixed_fee(self):
        with pytest.raises(ValueError):
            FeeSchedule(rail_fee_fixed_cents=-1)

    def test_from_settings(self, settings):
        settings.SETTLEMENT_RAIL_FEE_PERCENT = "0.03"
        settings.SETTLEMENT_RAIL_FEE_FIXED_CENTS = 25
        settings.SETTLEMENT_PLATFORM_SHARE_PERCENT = "0.2"

        schedule = FeeSchedule.from_settings()

        assert schedule.rail_fee_percent == Decimal("0.03")
        assert schedule.rail_fee_fixed_cents == 25
        assert schedule.platform_share_percent == Decimal("0.2")
