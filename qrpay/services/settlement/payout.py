"""Payout method resolution and the direct -> platform fallback rule."""

from __future__ import annotations

from datetime import datetime

from qrpay.core.logging import get_logger
from qrpay.models.enums import SettlementMode
from qrpay.models.merchant import Merchant

logger = get_logger(__name__)


def resolve_payout_method(
    merchant: Merchant,
    now: datetime,
) -> tuple[SettlementMode, bool]:
    """Decide the merchant's payout mode as of ``now``.

    DIRECT merchants that can no longer receive split payouts (not
    verified, payouts disabled, a failed split, no linked account) are
    treated as PLATFORM_MANAGED and the fallback is recorded on the
    merchant.  It stays in force for every later computation until
    eligibility is restored.  Nothing here touches the payer's payment.

    Mutates ``merchant``; the caller commits.

    Returns:
        ``(effective_mode, fallback_applied)``
    """
    if merchant.settlement_mode == SettlementMode.PLATFORM_MANAGED:
        return SettlementMode.PLATFORM_MANAGED, False

    if merchant.direct_payout_eligible:
        if merchant.direct_fallback_active:
            logger.info("Direct payout restored: merchant=%s", merchant.id)
            merchant.direct_fallback_active = False
            merchant.fallback_since = None
        return SettlementMode.DIRECT, False

    if not merchant.direct_fallback_active:
        merchant.direct_fallback_active = True
        merchant.fallback_since = now
        logger.warning(
            "Direct payout fallback activated: merchant=%s reason=%s",
            merchant.id,
            merchant.payout_block_reason or merchant.verification_status.value,
        )
    return SettlementMode.PLATFORM_MANAGED, True
