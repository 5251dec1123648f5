"""Discount arithmetic.

Pure functions, no DB and no side effects.  All amounts are integer minor
currency units; the only rounding rule used anywhere in the money path is
round-half-up to the nearest minor unit.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from typing import Iterable

from qrpay.core.errors import InvalidAmount, InvalidRate


@dataclass(frozen=True)
class DiscountBreakdown:
    """What the payer is shown and what is later charged."""

    gross_amount: int
    discount_rate: int
    discount_amount: int
    net_payable: int


def round_half_up(value: Decimal) -> int:
    """Round a Decimal to a whole minor unit, halves away from zero."""
    return int(value.quantize(Decimal(1), rounding=ROUND_HALF_UP))


def _is_whole_number(value) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def calculate_discount(
    gross_amount: int,
    discount_rate: int,
    allowed_rates: Iterable[int],
) -> DiscountBreakdown:
    """Compute the discount and net payable for a gross amount.

    ``discount = round_half_up(gross * rate / 100)`` and
    ``net_payable = gross - discount``, so the two always sum to gross.

    Args:
        gross_amount: Positive amount in minor units.
        discount_rate: Whole percent, must be one of ``allowed_rates``.
        allowed_rates: The discount slabs configured for the platform.

    Raises:
        InvalidAmount: ``gross_amount`` is not a positive integer.
        InvalidRate: ``discount_rate`` is not an allowed slab.
    """
    if not _is_whole_number(gross_amount) or gross_amount <= 0:
        raise InvalidAmount()
    if not _is_whole_number(discount_rate) or discount_rate not in set(allowed_rates):
        raise InvalidRate()

    discount = round_half_up(Decimal(gross_amount) * Decimal(discount_rate) / 100)
    return DiscountBreakdown(
        gross_amount=gross_amount,
        discount_rate=discount_rate,
        discount_amount=discount,
        net_payable=gross_amount - discount,
    )


def calculate_platform_fee(gross_amount: int, fee_percent: float) -> int:
    """Platform fee on the gross amount, same rounding as the discount."""
    fee = Decimal(gross_amount) * Decimal(str(fee_percent)) / 100
    return round_half_up(fee)
