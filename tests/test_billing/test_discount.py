"""Unit tests for discount and platform fee arithmetic.

All tests are *pure*: no database, no I/O.
"""

from __future__ import annotations

from decimal import Decimal

import pytest

from qrpay.core.errors import InvalidAmount, InvalidRate
from qrpay.services.billing.discount import (
    calculate_discount,
    calculate_platform_fee,
    round_half_up,
)

RATES = [3, 6, 9]


# ── Test: calculate_discount ─────────────────────────────────────────


class TestCalculateDiscount:
    def test_six_percent_of_540_rupees(self):
        """54000 paise at 6% -> 3240 off, 50760 payable."""
        breakdown = calculate_discount(54000, 6, RATES)
        assert breakdown.discount_amount == 3240
        assert breakdown.net_payable == 50760
        assert breakdown.gross_amount == 54000
        assert breakdown.discount_rate == 6

    def test_half_rounds_up(self):
        """50 * 3% = 1.5 -> 2."""
        breakdown = calculate_discount(50, 3, RATES)
        assert breakdown.discount_amount == 2
        assert breakdown.net_payable == 48

    def test_below_half_rounds_down(self):
        """149 * 3% = 4.47 -> 4."""
        assert calculate_discount(149, 3, RATES).discount_amount == 4

    def test_nine_percent_half(self):
        """250 * 9% = 22.5 -> 23."""
        assert calculate_discount(250, 9, RATES).discount_amount == 23

    @pytest.mark.parametrize("gross", [1, 7, 99, 12345, 9_999_999])
    @pytest.mark.parametrize("rate", RATES)
    def test_discount_and_net_sum_to_gross(self, gross, rate):
        breakdown = calculate_discount(gross, rate, RATES)
        assert breakdown.discount_amount + breakdown.net_payable == gross
        assert 0 <= breakdown.discount_amount <= gross

    @pytest.mark.parametrize("gross", [0, -1, -54000])
    def test_non_positive_amount_rejected(self, gross):
        with pytest.raises(InvalidAmount):
            calculate_discount(gross, 6, RATES)

    @pytest.mark.parametrize("gross", [10.5, "100", None, True])
    def test_non_integer_amount_rejected(self, gross):
        with pytest.raises(InvalidAmount):
            calculate_discount(gross, 6, RATES)

    @pytest.mark.parametrize("rate", [0, 5, 10, 100, -3])
    def test_rate_outside_allowed_set_rejected(self, rate):
        with pytest.raises(InvalidRate):
            calculate_discount(1000, rate, RATES)

    def test_amount_checked_before_rate(self):
        with pytest.raises(InvalidAmount):
            calculate_discount(0, 5, RATES)


# ── Test: calculate_platform_fee / round_half_up ─────────────────────


class TestPlatformFee:
    def test_one_percent_of_gross(self):
        assert calculate_platform_fee(54000, 1.0) == 540

    def test_fee_rounds_half_up(self):
        assert calculate_platform_fee(150, 1.0) == 2
        assert calculate_platform_fee(149, 1.0) == 1

    def test_fractional_percent(self):
        """0.5% of 1000 = 5."""
        assert calculate_platform_fee(1000, 0.5) == 5

    def test_zero_percent(self):
        assert calculate_platform_fee(54000, 0.0) == 0


def test_round_half_up_is_not_bankers_rounding():
    assert round_half_up(Decimal("2.5")) == 3
    assert round_half_up(Decimal("3.5")) == 4
    assert round_half_up(Decimal("2.4999")) == 2
