"""Merchant administration: onboarding record, review, payout controls."""

from __future__ import annotations

import uuid
from typing import Optional

from sqlalchemy.orm import Session

from qrpay.core.config import Settings
from qrpay.core.errors import InvalidRate, UnknownMerchant
from qrpay.core.logging import get_logger
from qrpay.models.enums import SettlementMode, VerificationStatus
from qrpay.models.merchant import Merchant

logger = get_logger(__name__)


class MerchantRegistry:
    """Administrative mutations of merchants.

    Every mutation locks the merchant row first, the same lock bill
    issuance and settlement take, so a suspension cannot interleave with
    an in-flight issuance check.
    """

    def __init__(self, db: Session, config: Settings) -> None:
        self.db = db
        self.config = config

    def register(
        self,
        business_name: str,
        discount_rate: int,
        category: Optional[str] = None,
        settlement_mode: SettlementMode = SettlementMode.PLATFORM_MANAGED,
        payout_account_ref: Optional[str] = None,
    ) -> Merchant:
        if discount_rate not in self.config.allowed_discount_rates:
            raise InvalidRate()

        merchant = Merchant(
            id=uuid.uuid4(),
            business_name=business_name,
            category=category,
            discount_rate=discount_rate,
            settlement_mode=settlement_mode,
            payout_account_ref=payout_account_ref,
            verification_status=VerificationStatus.PENDING,
            direct_payout_enabled=True,
        )
        self.db.add(merchant)
        self.db.commit()
        self.db.refresh(merchant)
        logger.info("Merchant registered: id=%s name=%s", merchant.id, business_name)
        return merchant

    def get(self, merchant_id: uuid.UUID) -> Merchant:
        merchant = self.db.query(Merchant).filter(Merchant.id == merchant_id).first()
        if merchant is None:
            raise UnknownMerchant()
        return merchant

    def set_verification(
        self,
        merchant_id: uuid.UUID,
        status: VerificationStatus,
        reason: Optional[str] = None,
    ) -> Merchant:
        merchant = self._lock(merchant_id)
        previous = merchant.verification_status
        merchant.verification_status = status
        if status != VerificationStatus.VERIFIED and reason:
            merchant.payout_block_reason = reason
        self.db.commit()
        self.db.refresh(merchant)
        logger.info(
            "Merchant verification changed: id=%s %s -> %s",
            merchant_id,
            previous.value,
            status.value,
        )
        return merchant

    def update_settlement(
        self,
        merchant_id: uuid.UUID,
        settlement_mode: Optional[SettlementMode] = None,
        payout_account_ref: Optional[str] = None,
        discount_rate: Optional[int] = None,
    ) -> Merchant:
        merchant = self._lock(merchant_id)
        if discount_rate is not None:
            if discount_rate not in self.config.allowed_discount_rates:
                self.db.rollback()
                raise InvalidRate()
            merchant.discount_rate = discount_rate
        if settlement_mode is not None:
            merchant.settlement_mode = settlement_mode
        if payout_account_ref is not None:
            merchant.payout_account_ref = payout_account_ref
        self.db.commit()
        self.db.refresh(merchant)
        return merchant

    def set_payout_eligibility(
        self,
        merchant_id: uuid.UUID,
        enabled: bool,
        reason: Optional[str] = None,
    ) -> Merchant:
        """Revoke or restore direct payout.  Restoring clears any fallback."""
        merchant = self._lock(merchant_id)
        merchant.direct_payout_enabled = enabled
        if enabled:
            merchant.payout_block_reason = None
            if merchant.direct_payout_eligible:
                merchant.direct_fallback_active = False
                merchant.fallback_since = None
        else:
            merchant.payout_block_reason = reason or "revoked by administrator"
        self.db.commit()
        self.db.refresh(merchant)
        logger.info(
            "Merchant payout eligibility: id=%s enabled=%s reason=%s",
            merchant_id,
            enabled,
            reason,
        )
        return merchant

    def record_split_failure(
        self,
        merchant_id: uuid.UUID,
        reason: str,
    ) -> Merchant:
        """A split transfer to the merchant failed; stop splitting to them."""
        logger.warning("Split transfer failed: merchant=%s reason=%s", merchant_id, reason)
        return self.set_payout_eligibility(
            merchant_id,
            enabled=False,
            reason=f"split failure: {reason}",
        )

    def _lock(self, merchant_id: uuid.UUID) -> Merchant:
        merchant = (
            self.db.query(Merchant)
            .filter(Merchant.id == merchant_id)
            .with_for_update()
            .first()
        )
        if merchant is None:
            self.db.rollback()
            raise UnknownMerchant()
        return merchant
