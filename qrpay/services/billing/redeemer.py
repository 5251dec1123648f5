"""Token redemption: the single-use gate between scan and payment."""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from sqlalchemy.orm import Session

from qrpay.core.config import Settings
from qrpay.core.errors import BillExpired, BillNotActive, MalformedToken
from qrpay.core.logging import get_logger
from qrpay.models.bill import Bill
from qrpay.models.enums import BillStatus
from qrpay.services.billing.token import decode_token
from qrpay.services.billing.transitions import compare_and_set_status, expire_bill

logger = get_logger(__name__)


class BillRedeemer:
    """Validates scanned tokens and reserves the bill for one payer."""

    def __init__(self, db: Session, config: Settings) -> None:
        self.db = db
        self.config = config

    def redeem_token(
        self,
        token: str,
        payer_id: str,
        now: Optional[datetime] = None,
    ) -> Bill:
        """Lock the bill behind ``token`` for ``payer_id``.

        Checks run in this order: token integrity, expiry (regardless of
        stored status), then ACTIVE status.  The ACTIVE -> LOCKED move is a
        conditional update, so of two concurrent scans exactly one wins and
        the other gets ``BillNotActive``.

        Returns:
            The LOCKED bill with its stored breakdown (never recomputed).
        """
        now = now or datetime.utcnow()
        payload = decode_token(token, self.config.token_secret)

        bill = self.db.query(Bill).filter(Bill.id == payload.bill_id).first()
        if (
            bill is None
            or bill.merchant_id != payload.merchant_id
            or bill.token != token.strip()
        ):
            raise MalformedToken()

        if bill.is_expired(now):
            if expire_bill(self.db, bill, now):
                self.db.commit()
            else:
                self.db.rollback()
            raise BillExpired()

        if bill.status != BillStatus.ACTIVE:
            raise BillNotActive()

        locked = compare_and_set_status(
            self.db,
            bill,
            BillStatus.ACTIVE,
            BillStatus.LOCKED,
            now,
            locked_by=payer_id,
            locked_at=now,
        )
        if not locked:
            self.db.rollback()
            raise BillNotActive()

        self.db.commit()
        logger.info("Bill locked: bill=%s payer=%s", bill.id, payer_id)
        return bill
