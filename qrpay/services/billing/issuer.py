"""Bill issuance and merchant-side bill management."""

from __future__ import annotations

import calendar
import uuid
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy.orm import Session

from qrpay.core.config import Settings
from qrpay.core.errors import (
    BillNotActive,
    InvalidAmount,
    MerchantNotEligible,
    QRPayError,
    UnknownBill,
    UnknownMerchant,
)
from qrpay.core.logging import get_logger
from qrpay.models.bill import Bill
from qrpay.models.enums import BillStatus
from qrpay.models.merchant import Merchant
from qrpay.services.billing.discount import calculate_discount
from qrpay.services.billing.token import TokenPayload, encode_token
from qrpay.services.billing.transitions import compare_and_set_status

logger = get_logger(__name__)


class BillIssuer:
    """Creates single-use, expiring bills for verified merchants."""

    def __init__(self, db: Session, config: Settings) -> None:
        self.db = db
        self.config = config

    def issue_bill(
        self,
        merchant_id: uuid.UUID,
        gross_amount: int,
        description: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> Bill:
        """Issue a new ACTIVE bill and its scannable token.

        The merchant row is read with ``SELECT ... FOR UPDATE`` in the same
        transaction as the insert, so a concurrent suspension either lands
        before (and the gate refuses) or after (and the bill predates it).

        Raises:
            UnknownMerchant: No such merchant.
            MerchantNotEligible: Merchant is not VERIFIED.
            InvalidAmount / InvalidRate: From the discount calculator, or the
                amount is outside the configured bill limits.
        """
        now = now or datetime.utcnow()

        merchant = (
            self.db.query(Merchant)
            .filter(Merchant.id == merchant_id)
            .with_for_update()
            .first()
        )
        if merchant is None:
            self.db.rollback()
            raise UnknownMerchant()
        if not merchant.is_verified:
            self.db.rollback()
            logger.info(
                "Bill refused: merchant=%s status=%s",
                merchant_id,
                merchant.verification_status.value,
            )
            raise MerchantNotEligible()

        try:
            breakdown = calculate_discount(
                gross_amount,
                merchant.discount_rate,
                self.config.allowed_discount_rates,
            )
            if not (
                self.config.min_bill_amount
                <= gross_amount
                <= self.config.max_bill_amount
            ):
                raise InvalidAmount(
                    f"Amount must be between {self.config.min_bill_amount} and "
                    f"{self.config.max_bill_amount} minor units."
                )
        except QRPayError:
            self.db.rollback()
            raise

        bill_id = uuid.uuid4()
        expires_at = now + timedelta(minutes=self.config.bill_expiry_minutes)
        token = encode_token(
            TokenPayload(
                bill_id=bill_id,
                merchant_id=merchant.id,
                expires_at_epoch=calendar.timegm(expires_at.utctimetuple()),
            ),
            self.config.token_secret,
        )

        bill = Bill(
            id=bill_id,
            merchant_id=merchant.id,
            gross_amount=breakdown.gross_amount,
            discount_rate=breakdown.discount_rate,
            discount_amount=breakdown.discount_amount,
            net_payable=breakdown.net_payable,
            description=description,
            token=token,
            status=BillStatus.ACTIVE,
            created_at=now,
            expires_at=expires_at,
        )
        self.db.add(bill)
        self.db.commit()
        self.db.refresh(bill)

        logger.info(
            "Bill issued: bill=%s merchant=%s gross=%d discount=%d net=%d",
            bill.id,
            merchant.id,
            bill.gross_amount,
            bill.discount_amount,
            bill.net_payable,
        )
        return bill

    def cancel_bill(
        self,
        merchant_id: uuid.UUID,
        bill_id: uuid.UUID,
        now: Optional[datetime] = None,
    ) -> Bill:
        """Cancel one of the merchant's ACTIVE bills."""
        now = now or datetime.utcnow()
        bill = (
            self.db.query(Bill)
            .filter(Bill.id == bill_id, Bill.merchant_id == merchant_id)
            .first()
        )
        if bill is None:
            raise UnknownBill()

        if not compare_and_set_status(
            self.db, bill, BillStatus.ACTIVE, BillStatus.CANCELLED, now
        ):
            self.db.rollback()
            raise BillNotActive("This bill is not active.")

        self.db.commit()
        logger.info("Bill cancelled: bill=%s merchant=%s", bill.id, merchant_id)
        return bill

    def list_active_bills(
        self,
        merchant_id: uuid.UUID,
        now: Optional[datetime] = None,
    ) -> list[Bill]:
        """The merchant's ACTIVE, unexpired bills, newest first."""
        now = now or datetime.utcnow()
        return (
            self.db.query(Bill)
            .filter(
                Bill.merchant_id == merchant_id,
                Bill.status == BillStatus.ACTIVE,
                Bill.expires_at >= now,
            )
            .order_by(Bill.created_at.desc())
            .all()
        )
